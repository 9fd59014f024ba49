from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


def utf16_len(text: str) -> int:
    """Length of ``text`` as counted by the Notion API (UTF-16 code units)."""
    return len((text or "").encode("utf-16-le")) // 2


class Annotations(BaseModel):
    model_config = ConfigDict(frozen=True)

    bold: bool = False
    italic: bool = False
    underline: bool = False
    strikethrough: bool = False
    code: bool = False

    def with_flag(self, name: str) -> "Annotations":
        return self.model_copy(update={name: True})

    def is_plain(self) -> bool:
        return not any((self.bold, self.italic, self.underline, self.strikethrough, self.code))


class Span(BaseModel):
    """A run of text sharing one formatting and link state."""

    model_config = ConfigDict(validate_assignment=True)

    text: str = ""
    annotations: Annotations = Field(default_factory=Annotations)
    link: Optional[str] = None

    @property
    def length(self) -> int:
        return utf16_len(self.text)

    def same_format(self, other: "Span") -> bool:
        return self.annotations == other.annotations and self.link == other.link

    def is_blank(self) -> bool:
        return not self.text.strip()

    def to_rich_text(self) -> Dict[str, Any]:
        text: Dict[str, Any] = {"content": self.text}
        if self.link:
            text["link"] = {"url": self.link}
        item: Dict[str, Any] = {"type": "text", "text": text}
        if not self.annotations.is_plain():
            item["annotations"] = {k: v for k, v in self.annotations.model_dump().items() if v}
        return item
