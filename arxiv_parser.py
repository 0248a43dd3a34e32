"""Decoding and normalization of arXiv Atom search responses."""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from datetime import UTC, datetime

from models import LinkType, RawAuthor, RawDocument, RawEntry, RawLink, Record

LOGGER = logging.getLogger(__name__)

EPOCH = datetime.fromtimestamp(0, UTC)

# Child tags that may occur more than once under a given parent. Every
# occurrence is collected before it is decoded; other children are scalars.
_REPEATED_CHILDREN: dict[str, frozenset[str]] = {
    "feed": frozenset({"entry"}),
    "entry": frozenset({"author", "link"}),
    "author": frozenset(),
    "link": frozenset(),
}

_WHITESPACE_RE = re.compile(r"\s+")
_RFC3339_RE = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})[Tt ]"
    r"(?P<time>\d{2}:\d{2}:\d{2}(?:\.\d+)?)"
    r"(?P<offset>[Zz]|[+-]\d{2}:\d{2})$"
)


class XmlDecodeError(ValueError):
    """Raised when a response body is not a decodable Atom feed."""


def decode_document(text: str) -> RawDocument:
    """Decode a raw Atom feed into a document of raw entries.

    Raises:
        XmlDecodeError: if the text is not well-formed XML or the root element
            is not an Atom ``feed``.
    """
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise XmlDecodeError(f"Malformed feed XML: {exc}") from exc

    if _local_name(root.tag) != "feed":
        raise XmlDecodeError(f"Unexpected root element: {_local_name(root.tag)!r}")

    _, repeated = _split_children(root)
    return RawDocument(entries=tuple(_decode_entry(node) for node in repeated["entry"]))


def _decode_entry(element: ET.Element) -> RawEntry:
    scalars, repeated = _split_children(element)
    return RawEntry(
        title=_scalar_text(scalars, "title"),
        summary=_scalar_text(scalars, "summary"),
        published=_scalar_text(scalars, "published"),
        authors=tuple(_decode_author(node) for node in repeated["author"]),
        links=tuple(_decode_link(node) for node in repeated["link"]),
    )


def _decode_author(element: ET.Element) -> RawAuthor:
    scalars, _ = _split_children(element)
    return RawAuthor(name=_scalar_text(scalars, "name"))


def _decode_link(element: ET.Element) -> RawLink:
    return RawLink(
        href=element.get("href", ""),
        link_type=LinkType.from_mime(element.get("type")),
    )


def _split_children(
    element: ET.Element,
) -> tuple[dict[str, ET.Element], dict[str, list[ET.Element]]]:
    """Separate scalar children from known-repeated ones.

    Repeated tags keep every occurrence in document order. Scalar tags keep the
    last occurrence, which is harmless because the schema declares them once.
    """
    repeated_tags = _REPEATED_CHILDREN.get(_local_name(element.tag), frozenset())
    scalars: dict[str, ET.Element] = {}
    repeated: dict[str, list[ET.Element]] = {tag: [] for tag in repeated_tags}

    for child in element:
        if not isinstance(child.tag, str):
            continue  # comments and processing instructions
        name = _local_name(child.tag)
        if name in repeated_tags:
            repeated[name].append(child)
        else:
            scalars[name] = child

    return scalars, repeated


def _scalar_text(scalars: dict[str, ET.Element], tag: str) -> str:
    node = scalars.get(tag)
    if node is None:
        return ""
    return "".join(node.itertext())


def _local_name(tag: str) -> str:
    # "{http://www.w3.org/2005/Atom}entry" -> "entry"
    return tag.rsplit("}", 1)[-1]


def normalize_entry(entry: RawEntry, record_id: int) -> Record:
    """Map one raw entry onto a canonical Record with the given id."""
    return Record(
        id=record_id,
        title=normalize_whitespace(entry.title),
        summary=normalize_whitespace(entry.summary),
        authors=tuple(normalize_whitespace(author.name) for author in entry.authors),
        published=parse_published(entry.published),
        link=select_home_link(entry.links),
    )


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def parse_published(raw: str) -> datetime:
    """Parse an RFC3339 timestamp into UTC, falling back to the Unix epoch.

    Only full RFC3339 date-times are accepted: a date, a ``T`` or space, a time
    and a mandatory ``Z`` or ``+HH:MM`` offset. Date-only, offset-less and ISO
    basic-format values fall back like any other unparsable string.
    """
    match = _RFC3339_RE.match(raw.strip())
    if match is None:
        LOGGER.warning("Failed to parse published date %r, using epoch", raw)
        return EPOCH

    offset = match["offset"]
    value = f"{match['date']}T{match['time']}{'+00:00' if offset in ('Z', 'z') else offset}"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        LOGGER.warning("Failed to parse published date %r, using epoch", raw)
        return EPOCH

    return parsed.astimezone(UTC)


def select_home_link(links: tuple[RawLink, ...] | list[RawLink]) -> str:
    """Return the href of the first HTML link, or an empty string."""
    for link in links:
        if link.link_type is LinkType.HOME:
            return link.href
    return ""
