"""
Tidings Core Types
------------------
Pydantic models and value objects shared by ingestion, classification and search.

Timestamps are Unix seconds (float) throughout.
"""

import uuid
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, List

from pydantic import BaseModel, Field

from tidings.errors import InvalidQueryError


class RecordSource(str, Enum):
    EMAIL = "email"
    OCR = "ocr"
    PUSH = "push"
    SMS = "sms"


def make_record_id(source: str, external_id: Optional[str]) -> str:
    """Source-scoped id when the source supplies one, otherwise a random uuid."""
    if external_id:
        return f"{source}:{external_id}"
    return str(uuid.uuid4())


class Record(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source: str
    external_id: Optional[str] = None
    title: str = ""
    body: str = ""

    # Original message time; ingested_at is when this store first saw it
    created_at: float = Field(default_factory=time.time)
    ingested_at: float = Field(default_factory=time.time)

    # Derived by enrichment
    due_at: Optional[float] = None
    confidence: Optional[float] = None

    # Provenance (sender, labels, connector-specific fields)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def text(self) -> str:
        return f"{self.title} {self.body}".strip()


class EventStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Contact(BaseModel):
    id: Optional[int] = None
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    source_record_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class EventType(BaseModel):
    id: Optional[int] = None
    type_name: str


class Event(BaseModel):
    id: Optional[int] = None
    type_id: int
    title: str
    body: Optional[str] = None
    start_at: Optional[float] = None
    end_at: Optional[float] = None
    location: Optional[str] = None
    status: EventStatus = EventStatus.PENDING
    source_type: Optional[str] = None
    source_record_id: Optional[str] = None
    confidence: Optional[float] = None


class Note(BaseModel):
    id: Optional[int] = None
    title: str
    body: str = ""
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)
    source_record_id: Optional[str] = None


@dataclass(frozen=True)
class QueryFilter:
    """Structured constraints derived from a free-text question. Never persisted."""

    start: Optional[float] = None
    end: Optional[float] = None
    source: Optional[str] = None
    keywords: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.start is not None and self.end is not None and self.start > self.end:
            raise InvalidQueryError(
                f"QueryFilter start ({self.start}) must be <= end ({self.end})"
            )

    @property
    def has_window(self) -> bool:
        return self.start is not None and self.end is not None

    @property
    def is_empty(self) -> bool:
        return self.start is None and self.end is None and self.source is None and not self.keywords


class ContextItem(BaseModel):
    """A ranked search hit handed to answer generation."""
    id: str
    title: str = ""
    body: str = ""
    source: str
    timestamp: float
    score: float
    position: int


@dataclass(frozen=True)
class SyncCursor:
    """Per-source incremental sync watermark."""

    last_sync_at: Optional[float] = None
    last_external_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.last_sync_at is None and self.last_external_id is None

    def advanced_to(self, external_id: str) -> "SyncCursor":
        return SyncCursor(last_sync_at=self.last_sync_at, last_external_id=external_id)

    def synced_at(self, timestamp: float) -> "SyncCursor":
        return SyncCursor(last_sync_at=timestamp, last_external_id=self.last_external_id)

    def to_dict(self) -> Dict[str, Any]:
        return {"last_sync_at": self.last_sync_at, "last_external_id": self.last_external_id}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SyncCursor":
        if not data:
            return cls()
        last_sync_at = data.get("last_sync_at")
        return cls(
            last_sync_at=float(last_sync_at) if last_sync_at is not None else None,
            last_external_id=data.get("last_external_id") or None,
        )
