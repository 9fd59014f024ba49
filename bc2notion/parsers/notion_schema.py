from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from bc2notion.models.notion_span import Span


# --- Notion API limits ---

MAX_TEXT_LENGTH = 2000
MAX_RICH_TEXT_ITEMS = 100
MAX_URL_LENGTH = 2000
MAX_BLOCKS_PER_REQUEST = 100
MAX_PAYLOAD_BYTES = 700_000
MAX_CHILDREN_PER_BLOCK = 50
MAX_NESTING_DEPTH = 3

RICH_TEXT_TYPES = {
    "paragraph",
    "heading_1",
    "heading_2",
    "heading_3",
    "bulleted_list_item",
    "numbered_list_item",
    "to_do",
    "quote",
    "callout",
    "toggle",
    "code",
}
MEDIA_TYPES = {"image", "file", "video", "audio", "pdf"}
BLOCK_TYPES = RICH_TEXT_TYPES | MEDIA_TYPES | {"divider", "embed"}

CODE_LANGUAGES = {
    "abap", "arduino", "bash", "basic", "c", "clojure", "coffeescript", "c++", "c#", "css",
    "dart", "diff", "docker", "elixir", "elm", "erlang", "flow", "fortran", "f#", "gherkin",
    "glsl", "go", "graphql", "groovy", "haskell", "html", "java", "javascript", "json",
    "julia", "kotlin", "latex", "less", "lisp", "livescript", "lua", "makefile", "markdown",
    "markup", "matlab", "mermaid", "nix", "objective-c", "ocaml", "pascal", "perl", "php",
    "plain text", "powershell", "prolog", "protobuf", "python", "r", "reason", "ruby", "rust",
    "sass", "scala", "scheme", "scss", "shell", "sql", "swift", "typescript", "vb.net",
    "verilog", "vhdl", "visual basic", "webassembly", "xml", "yaml",
}
CODE_LANGUAGE_ALIASES = {
    "js": "javascript",
    "ts": "typescript",
    "py": "python",
    "rb": "ruby",
    "sh": "shell",
    "zsh": "shell",
    "yml": "yaml",
    "cpp": "c++",
    "csharp": "c#",
    "cs": "c#",
    "golang": "go",
    "text": "plain text",
    "plaintext": "plain text",
    "txt": "plain text",
    "dockerfile": "docker",
    "objc": "objective-c",
    "md": "markdown",
}

RichText = List[Dict[str, Any]]
TextInput = Union[str, Sequence[Span], RichText, None]


# --- Rich text helpers ---

def text_item(content: str, link: Optional[str] = None, **annotations: bool) -> Dict[str, Any]:
    return Span(text=content or "", link=link, annotations=annotations).to_rich_text()


def rich_text(value: TextInput) -> RichText:
    """Accept a plain string, a list of spans or an already built rich text list."""
    if value is None:
        return []
    if isinstance(value, str):
        return [text_item(value)] if value else []
    items: RichText = []
    for v in value:
        if isinstance(v, Span):
            items.append(v.to_rich_text())
        elif isinstance(v, dict):
            items.append(v)
    return items


def plain_text(items: Iterable[Dict[str, Any]]) -> str:
    return "".join(((i.get("text") or {}).get("content") or "") for i in items or [])


# --- Block builders ---

def block(block_type: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"object": "block", "type": block_type, block_type: payload if payload is not None else {}}


def _text_block(block_type: str, text: TextInput, children: Optional[List[Dict[str, Any]]] = None, **extra: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"rich_text": rich_text(text)}
    payload.update({k: v for k, v in extra.items() if v is not None})
    if children:
        payload["children"] = children
    return block(block_type, payload)


def paragraph(text: TextInput, children: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return _text_block("paragraph", text, children)


def heading(level: int, text: TextInput) -> Dict[str, Any]:
    lvl = max(1, min(3, int(level or 1)))
    return _text_block(f"heading_{lvl}", text)


def list_item(ordered: bool, text: TextInput, children: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return _text_block("numbered_list_item" if ordered else "bulleted_list_item", text, children)


def to_do(text: TextInput, checked: bool = False, children: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return _text_block("to_do", text, children, checked=bool(checked))


def quote(text: TextInput, children: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return _text_block("quote", text, children)


def toggle(text: TextInput, children: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return _text_block("toggle", text, children)


def callout(text: TextInput, emoji: str = "💬", color: Optional[str] = None,
            children: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return _text_block("callout", text, children, icon={"type": "emoji", "emoji": emoji}, color=color)


def code_block(text: TextInput, language: str = "plain text") -> Dict[str, Any]:
    return _text_block("code", text, None, language=normalize_language(language))


def divider() -> Dict[str, Any]:
    return block("divider", {})


def embed(url: str, caption: Optional[str] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"url": url}
    if caption:
        payload["caption"] = rich_text(caption)
    return block("embed", payload)


def media_block(kind: str, *, url: Optional[str] = None, file_upload_id: Optional[str] = None,
                caption: Optional[str] = None, name: Optional[str] = None) -> Dict[str, Any]:
    """image/file/video/audio/pdf block pointing at an uploaded file or an external URL."""
    if kind not in MEDIA_TYPES:
        kind = "file"
    if file_upload_id:
        payload: Dict[str, Any] = {"type": "file_upload", "file_upload": {"id": file_upload_id}}
    else:
        payload = {"type": "external", "external": {"url": url or ""}}
    if caption and caption.strip():
        payload["caption"] = rich_text(caption.strip()[:MAX_TEXT_LENGTH])
    if kind == "file" and name and name.strip():
        payload["name"] = name.strip()
    return block(kind, payload)


def asset_fallback_callout(url: str, caption: Optional[str] = None) -> Dict[str, Any]:
    """Yellow callout linking to an asset that could not be embedded."""
    items = [text_item("Basecamp asset", link=url)]
    if caption and caption.strip():
        items.append(text_item(f" – {caption.strip()}"[:MAX_TEXT_LENGTH]))
    return callout(items, emoji="🔗", color="yellow_background")


def children_of(b: Dict[str, Any]) -> List[Dict[str, Any]]:
    payload = b.get(b.get("type") or "")
    if isinstance(payload, dict):
        children = payload.get("children")
        if isinstance(children, list):
            return children
    return []


def set_children(b: Dict[str, Any], children: List[Dict[str, Any]]) -> Dict[str, Any]:
    payload = b.setdefault(b["type"], {})
    if children:
        payload["children"] = children
    else:
        payload.pop("children", None)
    return b


def normalize_language(language: Optional[str]) -> str:
    lang = (language or "").strip().lower()
    lang = CODE_LANGUAGE_ALIASES.get(lang, lang)
    return lang if lang in CODE_LANGUAGES else "plain text"
