"""Markup compilation: front matter, display tree, math typesetting."""

from chapterlens.markup.compiler import PLACEHOLDER_TEXT, DocumentCompiler, create_parser
from chapterlens.markup.formula import MathEngine, MathMLEngine, substitute_math
from chapterlens.markup.front_matter import ParsedChapter, parse_front_matter, strip_front_matter
from chapterlens.markup.nodes import DisplayNode, DisplayTree, dump_tree

__all__ = [
    "DocumentCompiler",
    "PLACEHOLDER_TEXT",
    "create_parser",
    "MathEngine",
    "MathMLEngine",
    "substitute_math",
    "ParsedChapter",
    "parse_front_matter",
    "strip_front_matter",
    "DisplayNode",
    "DisplayTree",
    "dump_tree",
]
