from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Status(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class ProgressRecord(BaseModel):
    model_config = ConfigDict(use_enum_values=False)

    level: str
    source_id: str
    parent_id: Optional[str] = None
    content_type: Optional[str] = None
    status: Status = Status.PENDING
    notion_page_id: Optional[str] = None
    name: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.status == Status.DONE
