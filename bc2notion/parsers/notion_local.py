from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

from bc2notion.assets.urls import (
    filename_from_url,
    guess_mime,
    is_embeddable,
    is_private_asset,
    media_kind,
)
from bc2notion.models.asset import AssetState
from bc2notion.models.notion_span import Annotations, Span
from bc2notion.parsers.notion_schema import (
    MAX_NESTING_DEPTH,
    MAX_TEXT_LENGTH,
    asset_fallback_callout,
    callout,
    children_of,
    code_block,
    divider,
    embed,
    heading,
    list_item,
    media_block,
    paragraph,
    quote,
    set_children,
    text_item,
    to_do,
    toggle,
)
from bc2notion.parsers.rich_text import (
    chunk_spans,
    clean_url,
    extract_spans,
    is_mention,
    normalize_ws,
    split_text,
    tag_style,
    valid_link,
)
from bc2notion.utils.errors import report_error
from bc2notion.utils.logs import log_message, preview

Block = Dict[str, Any]
Style = Tuple[Annotations, Optional[str]]

INLINE_TAGS = {
    "a", "abbr", "b", "strong", "i", "em", "u", "ins", "s", "strike", "del", "code", "kbd",
    "samp", "tt", "span", "small", "big", "sub", "sup", "mark", "font", "label", "cite", "q",
    "time", "br", "input", "var", "dfn", "bdi", "bdo", "wbr",
}
BLOCK_TAGS = {
    "p", "div", "section", "article", "main", "header", "footer", "aside", "nav",
    "h1", "h2", "h3", "h4", "h5", "h6", "ul", "ol", "li", "table", "pre", "blockquote",
    "details", "hr", "iframe", "figure", "img", "video", "audio", "figcaption",
}
CONTAINER_TAGS = {"p", "div", "section", "article", "main", "header", "footer", "aside", "nav", "body", "center"}
ATTACHMENT_TAGS = {"bc-attachment", "figure", "img", "video", "audio"}
LAZY_ATTRS = ("data-src", "data-original", "data-lazy-src", "data-url")
FIGURE_ATTRS = ("data-href", "data-image", "data-file-url", "data-download-url")


class Consumed:
    """The node was converted; ``blocks`` replaces it in the output."""

    __slots__ = ("blocks",)

    def __init__(self, blocks: List[Block]) -> None:
        self.blocks = blocks


class PassThrough:
    """The node has no handler; its children are visited in its place."""


PASS_THROUGH = PassThrough()
VisitResult = Union[Consumed, PassThrough]


def _attr(tag: Tag, name: str) -> Optional[str]:
    value = tag.get(name)
    if isinstance(value, list):
        value = value[0] if value else None
    return value.strip() if isinstance(value, str) and value.strip() else None


def _is_blockish(tag: Tag) -> bool:
    if tag.name == "bc-attachment":
        return not is_mention(tag)
    return tag.name in BLOCK_TAGS


def _is_inline(node: Any) -> bool:
    if isinstance(node, NavigableString):
        return not isinstance(node, PreformattedString)
    if not isinstance(node, Tag):
        return False
    if is_mention(node):
        return True
    if (node.name or "").lower() not in INLINE_TAGS:
        return False
    return not any(_is_blockish(d) for d in node.find_all(True))


def _code_language(tag: Tag) -> str:
    candidates: List[Tag] = [tag]
    inner = tag.find("code")
    if isinstance(inner, Tag):
        candidates.append(inner)
    for t in candidates:
        for key in ("data-language", "data-lang", "lang"):
            value = _attr(t, key)
            if value:
                return value
        for cls in t.get("class") or []:
            m = re.match(r"^(?:language|lang)-(.+)$", cls)
            if m:
                return m.group(1)
    return "plain text"


def limit_nesting(blocks: List[Block], max_depth: int = MAX_NESTING_DEPTH, depth: int = 1) -> List[Block]:
    """Promote children below ``max_depth`` to siblings of their parent."""
    out: List[Block] = []
    for b in blocks:
        children = children_of(b)
        if not children:
            out.append(b)
            continue
        if depth >= max_depth:
            set_children(b, [])
            out.append(b)
            out.extend(limit_nesting(children, max_depth, depth))
        else:
            set_children(b, limit_nesting(children, max_depth, depth + 1))
            out.append(b)
    return out


class BlockBuilder:
    """
    Converts one Basecamp HTML fragment into Notion blocks.

    Every element is visited exactly once.  A handler either consumes the
    element (returning its blocks) or passes it through, in which case its
    children are visited in its place so unknown wrappers never hide
    content.  Media nodes are routed to the asset resolver; when none is
    configured, public URLs are embedded as-is and private ones fall back
    to a link callout.
    """

    def __init__(
        self,
        *,
        asset_resolver: Any = None,
        run_context: Any = None,
        page_id: Optional[str] = None,
        context: str = "",
        max_text_length: int = MAX_TEXT_LENGTH,
        max_depth: int = MAX_NESTING_DEPTH,
    ) -> None:
        self.asset_resolver = asset_resolver
        self.run_context = run_context
        self.page_id = page_id
        self.context = context
        self.max_text_length = max_text_length
        self.max_depth = max_depth

    # --- entry point ---

    def build(self, html: Optional[str]) -> List[Block]:
        if not html or not html.strip():
            return []
        soup = BeautifulSoup(html, "html.parser")
        for bad in soup.find_all(["script", "style"]):
            bad.decompose()
        container = soup.body if soup.body else soup
        blocks = self.visit_children(container.children)
        return limit_nesting(blocks, self.max_depth)

    # --- traversal ---

    def visit_children(self, nodes: Iterable[Any], style: Optional[Style] = None) -> List[Block]:
        """
        Interleave inline runs (as paragraphs) with block children, in order.

        ``style`` carries the annotations and link of inline wrappers that
        were passed through because they hold block content.
        """
        blocks: List[Block] = []
        inline_run: List[Any] = []
        pending_br: List[Tag] = []

        def flush() -> None:
            if inline_run:
                blocks.extend(self.paragraphs(inline_run, style))
                inline_run.clear()

        for child in list(nodes):
            if isinstance(child, Tag) and child.name == "br":
                pending_br.append(child)
                continue
            if pending_br:
                if isinstance(child, NavigableString) and not str(child).strip():
                    continue
                if len(pending_br) >= 2:
                    flush()
                else:
                    inline_run.append(pending_br[0])
                pending_br.clear()

            if _is_inline(child):
                inline_run.append(child)
                continue
            if not isinstance(child, Tag):
                continue
            flush()
            result = self.visit(child)
            if isinstance(result, Consumed):
                blocks.extend(result.blocks)
            else:
                inherited = tag_style(child, *(style or (Annotations(), None)))
                blocks.extend(self.visit_children(child.children, inherited))
        flush()
        return blocks

    def visit(self, tag: Tag) -> VisitResult:
        name = (tag.name or "").lower()
        if name in CONTAINER_TAGS:
            return Consumed(self.visit_children(tag.children))
        if name in {"h1", "h2", "h3", "h4", "h5", "h6"}:
            return Consumed(self.handle_heading(tag, min(3, int(name[1]))))
        if name in {"ul", "ol"}:
            return Consumed(self.handle_list(tag, ordered=name == "ol"))
        if name == "li":
            return Consumed(self.handle_list_item(tag, ordered=False))
        if name == "table":
            return Consumed(self.handle_table(tag))
        if name == "pre":
            return Consumed(self.handle_code(tag))
        if name == "blockquote":
            return Consumed(self.handle_quote(tag))
        if name == "details":
            return Consumed(self.handle_toggle(tag))
        if name == "hr":
            return Consumed([divider()])
        if name == "iframe":
            return Consumed(self.handle_iframe(tag))
        if name == "figcaption":
            return Consumed(self.paragraphs([tag]))
        if name in ATTACHMENT_TAGS or (name == "a" and self._wraps_only_media(tag)):
            return Consumed(self.handle_attachment(tag))
        if name in {"script", "style", "input"}:
            return Consumed([])
        log_message(f"[BlockBuilder] Unhandled <{name}>, visiting children ({self.context})", "DEBUG")
        return PASS_THROUGH

    # --- text helpers ---

    def spans(self, nodes: Any, style: Optional[Style] = None) -> List[Span]:
        annotations, link = style or (None, None)
        return extract_spans(nodes, max_text_length=self.max_text_length, annotations=annotations, link=link)

    def paragraphs(self, nodes: Any, style: Optional[Style] = None) -> List[Block]:
        return [paragraph(chunk) for chunk in chunk_spans(self.spans(nodes, style), self.max_text_length)]

    # --- handlers ---

    def handle_heading(self, tag: Tag, level: int) -> List[Block]:
        return [heading(level, chunk) for chunk in chunk_spans(self.spans(tag), self.max_text_length)]

    def handle_list(self, tag: Tag, ordered: bool) -> List[Block]:
        items: List[Block] = []
        for child in tag.children:
            if not isinstance(child, Tag):
                continue
            if child.name == "li":
                items.extend(self.handle_list_item(child, ordered))
            elif child.name in {"ul", "ol"}:
                # a list nested directly in a list belongs to the previous item
                nested = self.handle_list(child, ordered=child.name == "ol")
                if items:
                    set_children(items[-1], children_of(items[-1]) + nested)
                else:
                    items.extend(nested)
            else:
                items.extend(self.visit_children([child]))
        return items

    def _own_checkbox(self, li: Tag) -> Optional[Tag]:
        for inp in li.find_all("input"):
            if (_attr(inp, "type") or "").lower() != "checkbox":
                continue
            if inp.find_parent("li") is li:
                return inp
        return None

    def handle_list_item(self, li: Tag, ordered: bool) -> List[Block]:
        checkbox = self._own_checkbox(li)
        checked = False
        if checkbox is not None:
            checked = checkbox.has_attr("checked")
            checkbox.extract()

        body = self.visit_children(li.children)
        if not body or body[0].get("type") != "paragraph":
            # no leading text: nothing to hang children on
            if checkbox is not None:
                state = "checked" if checked else "unchecked"
                log_message(
                    f"[BlockBuilder] {state.capitalize()} to-do without text; "
                    f"{len(body)} block(s) kept without the checkbox ({self.context})",
                    "WARNING",
                )
            return body

        label = body[0]["paragraph"]["rich_text"]
        children = body[1:]
        if checkbox is not None:
            return [to_do(label, checked=checked, children=children)]
        return [list_item(ordered, label, children=children)]

    def handle_table(self, table: Tag) -> List[Block]:
        blocks: List[Block] = []
        for tr in table.find_all("tr"):
            if tr.find_parent("table") is not table:
                continue
            cells = [
                normalize_ws(cell.get_text(" ", strip=True)).strip()
                for cell in tr.find_all(["td", "th"], recursive=False)
            ]
            if not any(cells):
                continue
            row = "\t|\t".join(cells)
            spans = [Span(text=piece) for piece in split_text(row, self.max_text_length)]
            for chunk in chunk_spans(spans, self.max_text_length):
                blocks.append(code_block(chunk, "plain text"))
        return blocks

    def handle_code(self, pre: Tag) -> List[Block]:
        text = pre.get_text()
        if not text.strip():
            return []
        language = _code_language(pre)
        spans = [Span(text=piece) for piece in split_text(text, self.max_text_length)]
        return [code_block(chunk, language) for chunk in chunk_spans(spans, self.max_text_length)]

    def handle_quote(self, tag: Tag) -> List[Block]:
        body = self.visit_children(tag.children)
        if not body or body[0].get("type") != "paragraph":
            return body
        return [quote(body[0]["paragraph"]["rich_text"], children=body[1:])]

    def handle_toggle(self, details: Tag) -> List[Block]:
        summary = details.find("summary", recursive=False)
        chunks: List[List[Span]] = []
        if isinstance(summary, Tag):
            summary.extract()
            chunks = chunk_spans(self.spans(summary), self.max_text_length)
        label: Any = chunks[0] if chunks else "Details"
        extra = [paragraph(chunk) for chunk in chunks[1:]]
        body = extra + self.visit_children(details.children)
        return [toggle(label, children=body)]

    def handle_iframe(self, tag: Tag) -> List[Block]:
        src = clean_url(_attr(tag, "src"))
        if src and valid_link(src):
            return [embed(src)]
        log_message(f"[BlockBuilder] iframe without usable src: {src!r} ({self.context})", "WARNING")
        return []

    # --- attachments ---

    def _wraps_only_media(self, anchor: Tag) -> bool:
        if anchor.find(["img", "video", "audio"]) is None:
            return False
        return not normalize_ws(anchor.get_text(" ", strip=True)).strip()

    def discover_url(self, tag: Tag) -> Optional[str]:
        """Candidate asset URL in fixed priority order."""
        # direct attribute
        for key in ("href", "src", "url"):
            value = _attr(tag, key)
            if value:
                return clean_url(value)
        # wrapping anchor
        anchor = tag.find("a", href=True) or tag.find_parent("a", href=True)
        if isinstance(anchor, Tag) and _attr(anchor, "href"):
            return clean_url(_attr(anchor, "href"))
        # nested image / media
        for nested in tag.find_all(["img", "video", "audio", "source"]):
            value = _attr(nested, "src")
            if value:
                return clean_url(value)
        # lazy-load attributes
        for t in [tag] + tag.find_all(["img", "video"]):
            for key in LAZY_ATTRS:
                value = _attr(t, key)
                if value:
                    return clean_url(value)
        # figure-level fallback
        figure = tag if tag.name == "figure" else tag.find_parent("figure")
        if isinstance(figure, Tag):
            for key in FIGURE_ATTRS:
                value = _attr(figure, key)
                if value:
                    return clean_url(value)
            for t in figure.find_all(["img", "source"]):
                srcset = _attr(t, "srcset")
                if srcset:
                    return clean_url(srcset.split(",")[0].strip().split(" ")[0])
        return None

    def handle_attachment(self, tag: Tag) -> List[Block]:
        caption = ""
        caption_node = tag.find("figcaption")
        if isinstance(caption_node, Tag):
            caption = normalize_ws(caption_node.get_text(" ", strip=True)).strip()
            caption_node.extract()
        if not caption:
            caption = normalize_ws(_attr(tag, "caption") or "").strip()

        url = self.discover_url(tag)
        if not url:
            log_message(f"[BlockBuilder] <{tag.name}> without a usable URL ({self.context})", "WARNING")
            return self.paragraphs([NavigableString(caption)]) if caption else []

        filename = _attr(tag, "filename") or filename_from_url(url)
        mime = _attr(tag, "content-type") or guess_mime(filename)
        if not mime and tag.name == "img":
            mime = "image/*"
        label = caption or filename

        if is_embeddable(url):
            return [embed(url, caption or None)]
        return self.media_blocks(url, mime=mime, label=label, filename=filename)

    def media_blocks(self, url: str, *, mime: Optional[str], label: Optional[str], filename: Optional[str]) -> List[Block]:
        kind = media_kind(mime)
        if self.asset_resolver is None:
            if valid_link(url) and not is_private_asset(url):
                return [media_block(kind, url=url, caption=label, name=filename)]
            return self.fallback(url, label)

        ref = self.asset_resolver.resolve(url, page_id=self.page_id, context=self.context, filename=filename)
        upload = ref.upload
        if upload is not None and upload.success and upload.file_upload_id:
            uploaded_kind = media_kind(upload.mime_type or mime)
            return [media_block(uploaded_kind, file_upload_id=upload.file_upload_id,
                                caption=label, name=upload.filename or filename)]
        if ref.state == AssetState.PUBLIC and valid_link(ref.resolved_url) and not is_private_asset(ref.resolved_url):
            return [media_block(kind, url=ref.resolved_url, caption=label, name=filename)]
        if ref.state != AssetState.MISSING and kind == "image" and valid_link(url) and not is_private_asset(url):
            return [media_block("image", url=url, caption=label)]
        return self.fallback(ref.best_url, label)

    def fallback(self, url: str, label: Optional[str]) -> List[Block]:
        first_seen = True
        if self.run_context is not None:
            first_seen = self.run_context.record_manual_upload(url, self.page_id, self.context)
            self.run_context.increment("asset_fallbacks")
        if first_seen:
            report_error("ASSET_FALLBACK", {"id": url, "title": f"{preview(url, 120)} ({self.context})"})
        else:
            log_message(f"[BlockBuilder] Fallback link for {preview(url, 120)} ({self.context})", "WARNING")
        if valid_link(url):
            return [asset_fallback_callout(url, label)]
        items = [text_item("Basecamp asset (link unavailable)")]
        if label:
            items.append(text_item(f" – {label}"[: self.max_text_length]))
        return [callout(items, emoji="🔗", color="yellow_background")]


def convert_html_to_blocks(html: Optional[str], **kwargs: Any) -> List[Block]:
    """
    Convert a Basecamp HTML fragment into a list of Notion blocks.

    Covered:
    - Paragraphs and containers (inline runs interleaved with block
      children), headings, inline emphasis and links, mentions.
    - Bulleted, numbered and to-do lists, nested up to three levels.
    - Tables (one code block per row), code, quotes, toggles, dividers,
      iframes and attachments/figures/images through the asset resolver.
    """
    return BlockBuilder(**kwargs).build(html)
