"""
HTML fragment → Notion rich text spans.

:func:`extract_spans` walks a fragment depth first and returns the
ordered list of :class:`~bc2notion.models.notion_span.Span` objects that
make up its visible text.  Formatting tags add annotation flags (nested
tags accumulate), anchors set a link inherited by everything inside
them, ``<br>`` becomes a single space and Basecamp mentions become
``👤 Name``.

The raw spans then go through a fixed post-pass:

1. adjacent spans with the same annotations and link are merged, as long
   as the merged text stays within ``max_text_length``;
2. trailing blank spans without a link are dropped;
3. spans longer than ``max_text_length`` are split into consecutive
   chunks carrying the same annotations and link;
4. links that are not absolute ``http``/``https`` URLs are demoted to
   plain text of the form ``content (url)``, and any span that grows past
   the limit because of it is split again.

Lengths are measured in UTF-16 code units because that is how the
Notion API counts them.  The module performs no I/O.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Tuple, Union
from urllib.parse import urlparse

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

from bc2notion.models.notion_span import Annotations, Span, utf16_len
from bc2notion.parsers.notion_schema import MAX_RICH_TEXT_ITEMS, MAX_TEXT_LENGTH, MAX_URL_LENGTH
from bc2notion.utils.logs import log_message

MENTION_CONTENT_TYPE = "application/vnd.basecamp.mention"

FORMAT_TAGS = {
    "b": "bold",
    "strong": "bold",
    "i": "italic",
    "em": "italic",
    "u": "underline",
    "ins": "underline",
    "s": "strikethrough",
    "strike": "strikethrough",
    "del": "strikethrough",
    "code": "code",
    "kbd": "code",
    "samp": "code",
    "tt": "code",
}
SKIP_TAGS = {"script", "style", "template", "head"}

_WS_RE = re.compile(r"\s+")

NodeInput = Union[str, Tag, NavigableString, Iterable[Union[Tag, NavigableString]], None]


def normalize_ws(text: str) -> str:
    return _WS_RE.sub(" ", (text or "").replace("\xa0", " ").replace("\u200b", ""))


def clean_url(url: Optional[str]) -> Optional[str]:
    if url is None:
        return None
    cleaned = re.sub(r"\s+", "", str(url))
    return cleaned or None


def valid_link(url: Optional[str]) -> bool:
    """Absolute http(s) URL with a host, short enough for Notion."""
    if not url or len(url) > MAX_URL_LENGTH:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_mention(node: Tag) -> bool:
    return node.name == "bc-attachment" and (node.get("content-type") or "") == MENTION_CONTENT_TYPE


def mention_name(node: Tag) -> str:
    caption = node.find("figcaption")
    if caption is not None and caption.get_text(strip=True):
        return normalize_ws(caption.get_text(" ", strip=True))
    img = node.find("img")
    if img is not None and (img.get("alt") or "").strip():
        return img["alt"].strip()
    return normalize_ws(node.get_text(" ", strip=True)) or "Unknown"


def _as_nodes(nodes: NodeInput) -> List[Union[Tag, NavigableString]]:
    if nodes is None:
        return []
    if isinstance(nodes, str) and not isinstance(nodes, NavigableString):
        soup = BeautifulSoup(nodes, "html.parser")
        return list(soup.children)
    if isinstance(nodes, (Tag, NavigableString)):
        return [nodes]
    return list(nodes)


def tag_style(tag: Tag, annotations: Annotations, link: Optional[str]) -> Tuple[Annotations, Optional[str]]:
    """Annotations and link that ``tag`` passes on to its descendants."""
    name = (tag.name or "").lower()
    flag = FORMAT_TAGS.get(name)
    if flag:
        annotations = annotations.with_flag(flag)
    if name == "a":
        href = clean_url(tag.get("href"))
        if href:
            link = href
    return annotations, link


def _walk(node, annotations: Annotations, link: Optional[str], out: List[Span]) -> None:
    if isinstance(node, NavigableString):
        if isinstance(node, PreformattedString):
            # comments, CDATA, doctypes
            return
        text = normalize_ws(str(node))
        if text:
            out.append(Span(text=text, annotations=annotations, link=link))
        return
    if not isinstance(node, Tag):
        return

    name = (node.name or "").lower()
    if name in SKIP_TAGS:
        return
    if name == "br":
        out.append(Span(text=" ", annotations=annotations, link=link))
        return
    if is_mention(node):
        out.append(Span(text=f"👤 {mention_name(node)}", annotations=annotations, link=link))
        return

    annotations, link = tag_style(node, annotations, link)
    for child in node.children:
        _walk(child, annotations, link, out)


def merge_spans(spans: List[Span], max_text_length: int = MAX_TEXT_LENGTH) -> List[Span]:
    merged: List[Span] = []
    for span in spans:
        if not span.text:
            continue
        prev = merged[-1] if merged else None
        if prev is not None and prev.same_format(span) and prev.length + span.length <= max_text_length:
            merged[-1] = prev.model_copy(update={"text": prev.text + span.text})
        else:
            merged.append(span)
    return merged


def trim_trailing_blank(spans: List[Span]) -> List[Span]:
    out = list(spans)
    while out and out[-1].is_blank() and not out[-1].link:
        out.pop()
    return out


def split_text(text: str, max_units: int) -> List[str]:
    """Split ``text`` into pieces of at most ``max_units`` UTF-16 code units."""
    if utf16_len(text) <= max_units:
        return [text]
    pieces: List[str] = []
    current: List[str] = []
    units = 0
    for ch in text:
        w = 2 if ord(ch) > 0xFFFF else 1
        if units + w > max_units and current:
            pieces.append("".join(current))
            current, units = [], 0
        current.append(ch)
        units += w
    if current:
        pieces.append("".join(current))
    return pieces


def split_long_spans(spans: List[Span], max_text_length: int = MAX_TEXT_LENGTH) -> List[Span]:
    out: List[Span] = []
    for span in spans:
        if span.length <= max_text_length:
            out.append(span)
            continue
        for piece in split_text(span.text, max_text_length):
            out.append(span.model_copy(update={"text": piece}))
    return out


def demote_invalid_links(spans: List[Span], max_text_length: int = MAX_TEXT_LENGTH) -> List[Span]:
    out: List[Span] = []
    for span in spans:
        if span.link is None or valid_link(span.link):
            out.append(span)
            continue
        url = span.link
        content = span.text.strip()
        text = url if not content or content == url else f"{span.text} ({url})"
        log_message(f"Invalid link demoted to plain text: {url!r}", "WARNING")
        out.extend(split_long_spans([span.model_copy(update={"text": text, "link": None})], max_text_length))
    return out


def extract_spans(
    nodes: NodeInput,
    *,
    max_text_length: int = MAX_TEXT_LENGTH,
    annotations: Optional[Annotations] = None,
    link: Optional[str] = None,
) -> List[Span]:
    """
    Convert an HTML fragment (string, tag or node list) into post-processed spans.

    ``annotations`` and ``link`` are inherited from ancestors outside the
    fragment, e.g. a ``<b>`` wrapper that was split around an image.
    """
    raw: List[Span] = []
    for node in _as_nodes(nodes):
        _walk(node, annotations or Annotations(), link, raw)

    # leading whitespace of a block is not content
    while raw and not raw[0].link and not raw[0].text.strip():
        raw.pop(0)
    if raw and not raw[0].link:
        raw[0] = raw[0].model_copy(update={"text": raw[0].text.lstrip()})

    spans = merge_spans(raw, max_text_length)
    spans = trim_trailing_blank(spans)
    spans = split_long_spans(spans, max_text_length)
    return demote_invalid_links(spans, max_text_length)


def chunk_spans(
    spans: List[Span],
    max_text_length: int = MAX_TEXT_LENGTH,
    max_items: int = MAX_RICH_TEXT_ITEMS,
) -> List[List[Span]]:
    """Group spans into rich text arrays that each fit in one block."""
    chunks: List[List[Span]] = []
    current: List[Span] = []
    total = 0
    for span in spans:
        if current and (total + span.length > max_text_length or len(current) >= max_items):
            chunks.append(current)
            current, total = [], 0
        current.append(span)
        total += span.length
    if current:
        chunks.append(current)
    return chunks


def spans_text(spans: Iterable[Span]) -> str:
    return "".join(s.text for s in spans)
