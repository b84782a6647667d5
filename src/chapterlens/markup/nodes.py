"""Typed display tree produced by the document compiler.

Every node kind is its own frozen model, tagged by ``type``; ``DisplayNode``
is the closed union of all of them. Trees are immutable values: each
compile builds new nodes and nothing is shared between calls.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _Node(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Text(_Node):
    type: Literal["text"] = "text"
    value: str


class Paragraph(_Node):
    type: Literal["paragraph"] = "paragraph"
    children: tuple[DisplayNode, ...] = ()
    class_name: str | None = Field(None, alias="className")


class Heading(_Node):
    type: Literal["heading"] = "heading"
    depth: int = Field(1, ge=1, le=6)
    children: tuple[DisplayNode, ...] = ()


class Strong(_Node):
    type: Literal["strong"] = "strong"
    children: tuple[DisplayNode, ...] = ()


class Emphasis(_Node):
    type: Literal["emphasis"] = "emphasis"
    children: tuple[DisplayNode, ...] = ()


class Strikethrough(_Node):
    type: Literal["strikethrough"] = "strikethrough"
    children: tuple[DisplayNode, ...] = ()


class InlineCode(_Node):
    type: Literal["inlineCode"] = "inlineCode"
    value: str


class Code(_Node):
    type: Literal["code"] = "code"
    value: str
    language: str | None = None


class Blockquote(_Node):
    type: Literal["blockquote"] = "blockquote"
    children: tuple[DisplayNode, ...] = ()


class List(_Node):
    type: Literal["list"] = "list"
    ordered: bool = False
    start: int | None = None
    children: tuple[DisplayNode, ...] = ()


class ListItem(_Node):
    type: Literal["listItem"] = "listItem"
    children: tuple[DisplayNode, ...] = ()


class Link(_Node):
    type: Literal["link"] = "link"
    url: str
    title: str | None = None
    children: tuple[DisplayNode, ...] = ()


class Image(_Node):
    type: Literal["image"] = "image"
    url: str
    alt: str = ""
    title: str | None = None


class LineBreak(_Node):
    type: Literal["lineBreak"] = "lineBreak"


class Rule(_Node):
    type: Literal["rule"] = "rule"


class Table(_Node):
    """Rows in order; the first row is the header row."""

    type: Literal["table"] = "table"
    children: tuple[DisplayNode, ...] = ()


class TableRow(_Node):
    type: Literal["tableRow"] = "tableRow"
    children: tuple[DisplayNode, ...] = ()


class TableCell(_Node):
    type: Literal["tableCell"] = "tableCell"
    header: bool = False
    align: Literal["left", "center", "right"] | None = None
    children: tuple[DisplayNode, ...] = ()


class InlineMath(_Node):
    type: Literal["inlineMath"] = "inlineMath"
    source: str
    markup: str = ""
    failed: bool = False


class BlockMath(_Node):
    type: Literal["blockMath"] = "blockMath"
    source: str
    markup: str = ""
    failed: bool = False


DisplayNode = Annotated[
    Union[
        Text,
        Paragraph,
        Heading,
        Strong,
        Emphasis,
        Strikethrough,
        InlineCode,
        Code,
        Blockquote,
        List,
        ListItem,
        Link,
        Image,
        LineBreak,
        Rule,
        Table,
        TableRow,
        TableCell,
        InlineMath,
        BlockMath,
    ],
    Field(discriminator="type"),
]

DisplayTree = tuple[DisplayNode, ...]

for _model in (Paragraph, Heading, Strong, Emphasis, Strikethrough, Blockquote,
               List, ListItem, Link, Table, TableRow, TableCell):
    _model.model_rebuild()

_tree_adapter: TypeAdapter[tuple[Any, ...]] = TypeAdapter(DisplayTree)


def dump_tree(tree: DisplayTree) -> list[dict[str, Any]]:
    """Serialize a tree to JSON-ready dicts using the wire field names."""
    return _tree_adapter.dump_python(tree, mode="json", by_alias=True)
