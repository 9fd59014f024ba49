"""
Parsers and converters used by the migration pipeline.

This subpackage exposes ``extract_spans`` (HTML → rich text spans),
``convert_html_to_blocks`` (HTML → Notion blocks) and
``sanitize_blocks`` (drop blocks Notion would reject).
"""

from .notion_local import BlockBuilder, convert_html_to_blocks
from .rich_text import chunk_spans, extract_spans
from .sanitizer import sanitize_blocks

__all__ = ["BlockBuilder", "convert_html_to_blocks", "chunk_spans", "extract_spans", "sanitize_blocks"]
