"""Compile chapter markup into a typed display tree.

Markup is parsed with markdown-it (CommonMark plus tables, strikethrough
and ``$``/``$$`` math) into a syntax tree, which is then lowered node by
node. The compiler is re-run on every streamed update of a chat reply, so
it keeps no state between calls and never raises on bad input.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog
from markdown_it import MarkdownIt
from markdown_it.tree import SyntaxTreeNode
from mdit_py_plugins.dollarmath import dollarmath_plugin

from chapterlens.markup.formula import MathEngine, MathMLEngine, substitute_math
from chapterlens.markup.front_matter import strip_front_matter
from chapterlens.markup.nodes import (
    Blockquote,
    Code,
    DisplayNode,
    DisplayTree,
    Emphasis,
    Heading,
    Image,
    InlineCode,
    LineBreak,
    Link,
    List,
    ListItem,
    Paragraph,
    Rule,
    Strikethrough,
    Strong,
    Table,
    TableCell,
    TableRow,
    Text,
)

logger = structlog.get_logger()

PLACEHOLDER_TEXT = "Nothing to preview yet."

_ALIGNMENTS = ("left", "center", "right")

Lowerer = Callable[[SyntaxTreeNode, str | None], DisplayTree]


def create_parser() -> MarkdownIt:
    """Build the markdown-it parser with the table, strikethrough and math extensions."""
    return (
        MarkdownIt("commonmark")
        .enable(["table", "strikethrough"])
        .use(dollarmath_plugin, double_inline=True)
    )


def placeholder() -> DisplayTree:
    return (Paragraph(children=(Text(value=PLACEHOLDER_TEXT),)),)


def _attr(node: SyntaxTreeNode, name: str) -> str | None:
    value = node.attrs.get(name)
    return None if value is None else str(value)


def _heading_depth(node: SyntaxTreeNode) -> int:
    try:
        depth = int(node.tag.lstrip("h"))
    except ValueError:
        depth = 1
    return min(max(depth, 1), 6)


def _cell_alignment(node: SyntaxTreeNode) -> str | None:
    style = _attr(node, "style") or ""
    _, _, align = style.partition("text-align:")
    align = align.strip()
    return align if align in _ALIGNMENTS else None


class DocumentCompiler:
    """Lowers markup to display nodes.

    Args:
        math_engine: Typesetter for math nodes. Defaults to MathML output.
        parser: Preconfigured markdown-it instance. Parsing never mutates it,
            so one instance serves concurrent compiles.
    """

    def __init__(
        self,
        math_engine: MathEngine | None = None,
        parser: MarkdownIt | None = None,
    ) -> None:
        self._math_engine = math_engine or MathMLEngine()
        self._parser = parser or create_parser()
        self._lowerers: dict[str, Lowerer] = {
            "text": lambda node, hint: (Text(value=node.content),),
            "softbreak": lambda node, hint: (Text(value="\n"),),
            "hardbreak": lambda node, hint: (LineBreak(),),
            "hr": lambda node, hint: (Rule(),),
            "paragraph": self._lower_paragraph,
            "heading": self._lower_heading,
            "strong": lambda node, hint: (Strong(children=self._lower_children(node, hint)),),
            "em": lambda node, hint: (Emphasis(children=self._lower_children(node, hint)),),
            "s": lambda node, hint: (Strikethrough(children=self._lower_children(node, hint)),),
            "code_inline": lambda node, hint: (InlineCode(value=node.content),),
            "fence": self._lower_fence,
            "code_block": lambda node, hint: (Code(value=node.content),),
            "blockquote": lambda node, hint: (Blockquote(children=self._lower_children(node, hint)),),
            "bullet_list": self._lower_list,
            "ordered_list": self._lower_list,
            "list_item": lambda node, hint: (ListItem(children=self._lower_children(node, hint)),),
            "link": self._lower_link,
            "image": self._lower_image,
            "table": self._lower_table,
            "math_inline": self._lower_math,
            "math_inline_double": self._lower_math,
            "math_block": self._lower_math,
            "math_block_label": self._lower_math,
        }

    def render(self, source: str | None, style_hint: str | None = None) -> DisplayTree:
        """Strip front matter from raw chapter markup, then compile it."""
        return self.compile(strip_front_matter(source), style_hint)

    def compile(self, markup: str | None, style_hint: str | None = None) -> DisplayTree:
        """Compile already-stripped markup. Always returns at least one node.

        ``style_hint`` is carried onto paragraphs for the view layer and does
        not change the tree's shape.
        """
        markup = markup or ""
        if not markup.strip():
            return placeholder()

        try:
            root = SyntaxTreeNode(self._parser.parse(markup))
            nodes = self._lower_children(root, style_hint)
        except Exception as e:
            logger.error(
                "markup_compile_failed",
                error=f"{type(e).__name__}: {e}",
                source_length=len(markup),
            )
            return (Code(value=markup),)

        return nodes or placeholder()

    def _lower(self, node: SyntaxTreeNode, hint: str | None) -> DisplayTree:
        lowerer = self._lowerers.get(node.type)
        if lowerer is not None:
            return lowerer(node, hint)
        # Unknown containers are flattened, unknown leaves (raw HTML, ...) dropped.
        return self._lower_children(node, hint)

    def _lower_children(self, node: SyntaxTreeNode, hint: str | None) -> DisplayTree:
        lowered: list[DisplayNode] = []
        for child in node.children:
            lowered.extend(self._lower(child, hint))
        return tuple(lowered)

    def _lower_paragraph(self, node: SyntaxTreeNode, hint: str | None) -> DisplayTree:
        return (Paragraph(children=self._lower_children(node, hint), class_name=hint),)

    def _lower_heading(self, node: SyntaxTreeNode, hint: str | None) -> DisplayTree:
        return (Heading(depth=_heading_depth(node), children=self._lower_children(node, hint)),)

    def _lower_fence(self, node: SyntaxTreeNode, hint: str | None) -> DisplayTree:
        info = node.info.strip()
        return (Code(value=node.content, language=info.split()[0] if info else None),)

    def _lower_list(self, node: SyntaxTreeNode, hint: str | None) -> DisplayTree:
        ordered = node.type == "ordered_list"
        start = None
        if ordered:
            try:
                start = int(_attr(node, "start") or 1)
            except ValueError:
                start = 1
        return (List(ordered=ordered, start=start, children=self._lower_children(node, hint)),)

    def _lower_link(self, node: SyntaxTreeNode, hint: str | None) -> DisplayTree:
        return (
            Link(
                url=_attr(node, "href") or "",
                title=_attr(node, "title"),
                children=self._lower_children(node, hint),
            ),
        )

    def _lower_image(self, node: SyntaxTreeNode, hint: str | None) -> DisplayTree:
        return (Image(url=_attr(node, "src") or "", alt=node.content, title=_attr(node, "title")),)

    def _lower_table(self, node: SyntaxTreeNode, hint: str | None) -> DisplayTree:
        rows: list[SyntaxTreeNode] = []
        for section in node.children:
            if section.type == "tr":
                rows.append(section)
            else:
                rows.extend(row for row in section.children if row.type == "tr")
        if not rows:
            return ()

        head, *body = rows
        return (
            Table(
                children=(
                    self._lower_row(head, header=True, hint=hint),
                    *(self._lower_row(row, header=False, hint=hint) for row in body),
                ),
            ),
        )

    def _lower_row(self, row: SyntaxTreeNode, header: bool, hint: str | None) -> TableRow:
        return TableRow(
            children=tuple(
                TableCell(
                    header=header,
                    align=_cell_alignment(cell),
                    children=self._lower_children(cell, hint),
                )
                for cell in row.children
            ),
        )

    def _lower_math(self, node: SyntaxTreeNode, hint: str | None) -> DisplayTree:
        display = node.type != "math_inline"
        return (substitute_math(node.content.strip(), display, self._math_engine),)
