#!/usr/bin/env python3
"""
Feed document parser.

Raw response bytes are decoded once (declared charset honoured, transcoded to
UTF-8) and handed to a fixed, ordered list of schema probes: RSS 2.0, Atom,
then RDF/RSS 1.0. The first probe that finds at least one item wins; later
probes are never consulted. A document that happens to satisfy an earlier
schema's minimal shape is captured by that schema.
"""

import re
from typing import Iterator, List, Optional, Sequence

from bs4 import UnicodeDammit
from lxml import etree

from config import get_logger
from errors import ParseError
from models import UnifiedItem
from utils import clean_description

# Module-specific logger
logger = get_logger("parser")

CONTENT_NS = "http://purl.org/rss/1.0/modules/content/"
DC_NS = "http://purl.org/dc/elements/1.1/"

_RE_XML_DECL_ENCODING = re.compile(r'^(<\?xml[^>]*?encoding\s*=\s*["\'])([^"\']+)(["\'])', re.IGNORECASE)

_STRICT_XML_OPTIONS = dict(
    recover=False,
    resolve_entities=False,
    no_network=True,
    collect_ids=False,
    remove_comments=True,
    remove_pis=True,
)


def _parse_root_element(data: bytes):
    """Parse data up to the close of its root element.

    Input is fed line by line and parsing stops at the root's end event, so
    trailing junk on later lines (server notices, cache banners) is never
    seen by the parser.
    """
    parser = etree.XMLPullParser(events=("start", "end"), **_STRICT_XML_OPTIONS)
    depth = 0
    for line in data.splitlines(keepends=True):
        parser.feed(line)
        for event, element in parser.read_events():
            if event == "start":
                depth += 1
                continue
            depth -= 1
            if depth == 0:
                return element
    return parser.close()


def decode_xml(body: bytes):
    """Decode raw bytes into an lxml root element.

    The encoding is taken from the BOM or XML declaration when present (falling
    back to sniffing), the text is transcoded to UTF-8 and the declaration is
    rewritten to match before strict parsing. Content after the root element
    is ignored.

    Raises:
        ParseError: if the bytes cannot be decoded or are not well-formed XML.
    """
    if not body or not body.strip():
        raise ParseError("empty document")

    dammit = UnicodeDammit(body, is_html=False)
    text = dammit.unicode_markup
    if text is None:
        raise ParseError("unable to detect document encoding")
    if dammit.original_encoding and dammit.original_encoding.lower() not in ("utf-8", "ascii"):
        logger.debug(f"Transcoded feed document from {dammit.original_encoding}")

    text = _RE_XML_DECL_ENCODING.sub(r"\1utf-8\3", text.lstrip(), count=1)
    try:
        return _parse_root_element(text.encode("utf-8"))
    except etree.XMLSyntaxError as e:
        raise ParseError(f"invalid XML: {e}") from e


def _local_name(tag) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _namespace(tag) -> str:
    if isinstance(tag, str) and tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return ""


def _children(element, name: str, namespace: Optional[str] = None) -> Iterator:
    for child in element:
        if _local_name(child.tag) != name:
            continue
        if namespace is not None and _namespace(child.tag) != namespace:
            continue
        yield child


def _text(element) -> str:
    return "".join(element.itertext())


def _child_text(element, name: str, namespace: Optional[str] = None) -> str:
    """Text of the first matching child with content, or "" when there is none."""
    for child in _children(element, name, namespace):
        value = _text(child)
        if value:
            return value
    return ""


class SchemaProbe:
    """One feed format. try_parse returns the mapped items, or None when the
    document does not have this format's shape or has no items."""

    name = "unknown"

    def try_parse(self, root) -> Optional[List[UnifiedItem]]:
        elements = list(self.find_items(root))
        if not elements:
            return None
        return [self.map_item(element) for element in elements]

    def find_items(self, root) -> Iterator:
        raise NotImplementedError

    def map_item(self, element) -> UnifiedItem:
        raise NotImplementedError


class Rss2Probe(SchemaProbe):
    name = "rss2"

    def find_items(self, root) -> Iterator:
        for channel in _children(root, "channel"):
            yield from _children(channel, "item")

    def map_item(self, element) -> UnifiedItem:
        snippet = clean_description(_child_text(element, "description"))
        if not snippet:
            snippet = clean_description(_child_text(element, "encoded", CONTENT_NS))
        link = _child_text(element, "link").strip()
        if not link:
            link = _child_text(element, "guid").strip()
        return UnifiedItem(
            title=_child_text(element, "title"),
            link=link,
            published_at=_child_text(element, "pubDate"),
            snippet=snippet,
        )


def pick_atom_link(links: Sequence) -> str:
    """Choose an entry's href from its <link> elements.

    Prefers the first link whose rel is empty/"alternate" and whose type is
    empty or text/html; otherwise the first link with any href.
    """
    for link in links:
        href = link.get("href") or ""
        if not href:
            continue
        rel = link.get("rel") or ""
        link_type = link.get("type") or ""
        if rel in ("", "alternate") and (link_type == "" or link_type.startswith("text/html")):
            return href
    for link in links:
        href = link.get("href") or ""
        if href:
            return href
    return ""


class AtomProbe(SchemaProbe):
    name = "atom"

    def find_items(self, root) -> Iterator:
        return _children(root, "entry")

    def map_item(self, element) -> UnifiedItem:
        snippet = clean_description(_child_text(element, "summary"))
        if not snippet:
            snippet = clean_description(_child_text(element, "content"))
        return UnifiedItem(
            title=_child_text(element, "title"),
            link=pick_atom_link(list(_children(element, "link"))),
            published_at=_child_text(element, "updated"),
            snippet=snippet,
        )


class RdfProbe(SchemaProbe):
    name = "rdf"

    def find_items(self, root) -> Iterator:
        return _children(root, "item")

    def map_item(self, element) -> UnifiedItem:
        return UnifiedItem(
            title=_child_text(element, "title"),
            link=_child_text(element, "link"),
            published_at=_child_text(element, "date", DC_NS),
            snippet=clean_description(_child_text(element, "description")),
        )


DEFAULT_PROBES = (Rss2Probe(), AtomProbe(), RdfProbe())


def parse_feed_items(body: bytes, probes: Sequence[SchemaProbe] = DEFAULT_PROBES) -> List[UnifiedItem]:
    """Parse a feed document into unified items.

    Raises:
        ParseError: if the document is not XML or no probe yields any items.
    """
    try:
        root = decode_xml(body)
    except ParseError as e:
        logger.debug(f"Feed document could not be decoded: {e}")
        raise ParseError() from e

    for probe in probes:
        items = probe.try_parse(root)
        if items:
            logger.debug(f"Parsed {len(items)} items as {probe.name}")
            return items

    raise ParseError()
