from __future__ import annotations

import time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AssetState(str, Enum):
    UNRESOLVED = "unresolved"
    PUBLIC = "public"
    NEEDS_AUTH = "needs_auth"
    MISSING = "missing"


class UploadOutcome(BaseModel):
    success: bool = False
    file_upload_id: Optional[str] = None
    hosted_url: Optional[str] = None
    mime_type: Optional[str] = None
    filename: Optional[str] = None
    error: Optional[str] = None


class AssetReference(BaseModel):
    model_config = ConfigDict(extra="ignore")

    raw_url: str
    resolved_url: Optional[str] = None
    state: AssetState = AssetState.UNRESOLVED
    upload: Optional[UploadOutcome] = None
    resolved_at: float = Field(default_factory=time.time)

    @property
    def best_url(self) -> str:
        return self.resolved_url or self.raw_url

    def expired(self, ttl_seconds: float, now: Optional[float] = None) -> bool:
        return ((now if now is not None else time.time()) - self.resolved_at) > ttl_seconds


class DownloadedAsset(BaseModel):
    content: bytes
    filename: str = "asset"
    mime_type: Optional[str] = None
    source: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)
