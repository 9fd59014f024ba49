from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Batch(BaseModel):
    """Ordered group of blocks sent to Notion in one append call."""

    index: int
    blocks: List[Dict[str, Any]] = Field(default_factory=list)
    target_id: Optional[str] = None
    estimated_bytes: int = 0
    oversized: bool = False

    @property
    def size(self) -> int:
        return len(self.blocks)
