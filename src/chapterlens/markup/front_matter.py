"""Leading ``---`` metadata blocks in chapter markup."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

import structlog
import yaml

logger = structlog.get_logger()

FRONT_MATTER_DELIMITER = "---"

_FRONT_MATTER = re.compile(
    r"^\ufeff?(?:\s*\r?\n)?---\s*(?:\r?\n|\r)(.*?)(?:\r?\n|\r)---\s*(?:\r?\n|\r)*",
    re.DOTALL,
)
_LEADING_BLANK_LINE = re.compile(r"^\s*(\r?\n)")
_LEADING_SPACE = re.compile(r"^[\s\ufeff]*")


def strip_front_matter(source: str | None) -> str:
    """Remove a leading front matter block and the blank lines after it.

    Input that does not start with ``---`` (ignoring leading whitespace)
    is returned unchanged.
    """
    if not source:
        return ""
    if not _LEADING_SPACE.sub("", source).startswith(FRONT_MATTER_DELIMITER):
        return source
    return _LEADING_SPACE.sub("", _FRONT_MATTER.sub("", source, count=1))


@dataclass(frozen=True)
class ParsedChapter:
    """Chapter markup split into body and front matter."""

    content: str
    front_matter: dict[str, Any] = field(default_factory=dict)
    meta: dict[str, Any] = field(default_factory=dict)


def parse_front_matter(source: str | None) -> ParsedChapter:
    """Split chapter markup into its body and YAML front matter.

    ``meta`` is the ``meta`` mapping of the front matter, used for page
    metadata. Unparseable YAML keeps the whole input as content.
    """
    text = source if isinstance(source, str) else ""
    match = _FRONT_MATTER.match(text)
    if match is None:
        return ParsedChapter(content=_strip_leading_blank(text))

    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        logger.warning("front_matter_parse_failed", error=str(e))
        return ParsedChapter(content=text)

    front_matter = _string_keys(data) if isinstance(data, dict) else {}
    meta = front_matter.get("meta")
    return ParsedChapter(
        content=_strip_leading_blank(text[match.end():]),
        front_matter=front_matter,
        meta=meta if isinstance(meta, dict) else {},
    )


def _string_keys(value: Any) -> Any:
    """Recursively turn mapping keys into strings; YAML keys may be dates or numbers."""
    if isinstance(value, dict):
        return {str(key): _string_keys(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_string_keys(item) for item in value]
    return value


def _strip_leading_blank(value: str) -> str:
    return _LEADING_BLANK_LINE.sub("", value.removeprefix("\ufeff"), count=1)
