"""Case-insensitive access to MSBuild XML.

MSBuild accepts ``PackageVersion``, ``packageversion`` and friends, and legacy
projects carry the msbuild/2003 namespace. Reading goes through ElementTree
with local-name matching. Writing never re-serializes a tree: ``scan_tags``
locates tags in the original text so callers can splice single attribute
values and leave every other byte alone.
"""

import html
import re
import xml.etree.ElementTree as ET
from collections.abc import Iterator
from dataclasses import dataclass, field


def local_name(tag: str) -> str:
    """``{namespace}Name`` or ``prefix:Name`` -> ``Name``."""
    if not isinstance(tag, str):
        return ""
    if tag.startswith("{"):
        tag = tag.split("}", 1)[1]
    return tag.rsplit(":", 1)[-1]


def name_matches(element: ET.Element, name: str) -> bool:
    return local_name(element.tag).lower() == name.lower()


def iter_descendants(element: ET.Element, name: str) -> Iterator[ET.Element]:
    """All descendants (not ``element`` itself) with the given local name."""
    for node in element.iter():
        if node is not element and name_matches(node, name):
            yield node


def find_children(element: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in element if name_matches(child, name)]


def get_attribute(element: ET.Element, name: str) -> str | None:
    wanted = name.lower()
    for key, value in element.attrib.items():
        if local_name(key).lower() == wanted:
            return value
    return None


def element_text(element: ET.Element) -> str:
    return "".join(element.itertext()).strip()


def get_value(element: ET.Element, name: str) -> str | None:
    """Metadata given either as an attribute or as a nested element."""
    value = get_attribute(element, name)
    if value is not None:
        return value
    for child in find_children(element, name):
        text = element_text(child)
        if text:
            return text
    return None


def parse_document(data: bytes) -> ET.Element:
    """Parse XML bytes; raises ``ET.ParseError`` on malformed input."""
    return ET.fromstring(data)


def normalize_attribute(raw: str) -> str:
    """Raw attribute text -> the value an XML parser would report.

    Line endings fold to a single LF before whitespace becomes spaces, and
    character references such as ``&#10;`` are decoded last so they survive.
    """
    folded = raw.replace("\r\n", "\n").replace("\r", "\n")
    return html.unescape(re.sub(r"[\t\n]", " ", folded))


def escape_attribute(value: str, quote: str = '"') -> str:
    escaped = value.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
    if quote == '"':
        return escaped.replace('"', "&quot;")
    return escaped.replace("'", "&apos;")


_TOKEN_RE = re.compile(
    r"""
      <!--.*?-->
    | <!\[CDATA\[.*?\]\]>
    | <\?.*?\?>
    | <!DOCTYPE[^>]*>
    | </(?P<end>[^\s>]+)\s*>
    | <(?P<name>[^\s/>!?]+)
      (?P<attrs>(?:[^>"'/]|/(?!>)|"[^"]*"|'[^']*')*)
      (?P<selfclose>/?)>
    """,
    re.VERBOSE | re.DOTALL,
)

_ATTR_RE = re.compile(
    r"""(?P<lead>\s+)(?P<name>[^\s=/>]+)\s*=\s*(?P<quote>["'])(?P<value>.*?)(?P=quote)""",
    re.DOTALL,
)


@dataclass
class RawAttribute:
    """An attribute located in the source text (absolute offsets)."""

    name: str
    raw_value: str
    quote: str
    start: int
    end: int
    value_start: int
    value_end: int

    @property
    def value(self) -> str:
        return normalize_attribute(self.raw_value)


@dataclass
class RawTag:
    """A start, end or empty-element tag located in the source text."""

    name: str
    start: int
    end: int
    is_end: bool = False
    self_closing: bool = False
    attributes: list[RawAttribute] = field(default_factory=list)

    @property
    def local(self) -> str:
        return local_name(self.name).lower()

    def attribute(self, name: str) -> RawAttribute | None:
        wanted = name.lower()
        for attr in self.attributes:
            if local_name(attr.name).lower() == wanted:
                return attr
        return None


def scan_tags(text: str) -> list[RawTag]:
    """Locate every tag in ``text``, skipping comments, CDATA and PIs."""
    tags: list[RawTag] = []
    for match in _TOKEN_RE.finditer(text):
        if match.group("end"):
            tags.append(RawTag(name=match.group("end"), start=match.start(), end=match.end(), is_end=True))
            continue
        if not match.group("name"):
            continue

        attrs_offset = match.start("attrs")
        attributes = [
            RawAttribute(
                name=attr.group("name"),
                raw_value=attr.group("value"),
                quote=attr.group("quote"),
                start=attrs_offset + attr.start(),
                end=attrs_offset + attr.end(),
                value_start=attrs_offset + attr.start("value"),
                value_end=attrs_offset + attr.end("value"),
            )
            for attr in _ATTR_RE.finditer(match.group("attrs"))
        ]
        tags.append(
            RawTag(
                name=match.group("name"),
                start=match.start(),
                end=match.end(),
                self_closing=bool(match.group("selfclose")),
                attributes=attributes,
            )
        )
    return tags


def find_closing_index(tags: list[RawTag], index: int) -> int | None:
    """Index of the end tag matching the start tag at ``index``."""
    opening = tags[index]
    if opening.is_end or opening.self_closing:
        return None

    depth = 0
    for position in range(index + 1, len(tags)):
        tag = tags[position]
        if tag.local != opening.local:
            continue
        if tag.is_end:
            if depth == 0:
                return position
            depth -= 1
        elif not tag.self_closing:
            depth += 1
    return None


def child_text_span(text: str, tags: list[RawTag], index: int, name: str) -> tuple[int, int] | None:
    """Offsets of the trimmed text of child ``name`` of the element at ``index``.

    Used for metadata written as a nested element, e.g.
    ``<PackageVersion Include="x"><Version>1.0</Version></PackageVersion>``.
    """
    closing = find_closing_index(tags, index)
    if closing is None:
        return None

    wanted = name.lower()
    for position in range(index + 1, closing):
        tag = tags[position]
        if tag.is_end or tag.self_closing or tag.local != wanted:
            continue
        end_index = find_closing_index(tags, position)
        if end_index is None:
            return None
        start, end = tag.end, tags[end_index].start
        body = text[start:end]
        stripped_start = start + (len(body) - len(body.lstrip()))
        stripped_end = end - (len(body) - len(body.rstrip()))
        return stripped_start, max(stripped_start, stripped_end)
    return None


def splice(text: str, edits: list[tuple[int, int, str]]) -> str:
    """Apply non-overlapping (start, end, replacement) edits to ``text``."""
    pieces = []
    cursor = 0
    for start, end, replacement in sorted(edits):
        pieces.append(text[cursor:start])
        pieces.append(replacement)
        cursor = end
    pieces.append(text[cursor:])
    return "".join(pieces)


def read_text(data: bytes) -> tuple[str, bool]:
    """Decode file bytes, reporting whether a UTF-8 BOM was present."""
    has_bom = data.startswith(b"\xef\xbb\xbf")
    return data.decode("utf-8-sig"), has_bom


def encode_text(text: str, has_bom: bool) -> bytes:
    encoded = text.encode("utf-8")
    return b"\xef\xbb\xbf" + encoded if has_bom else encoded
