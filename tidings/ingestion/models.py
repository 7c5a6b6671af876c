"""
Data models for incremental ingestion.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass
class RawMessage:
    """One item as delivered by a source connector or capture hook."""
    title: str = ""
    body: str = ""
    external_id: Optional[str] = None
    timestamp: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class IngestStatus(str, Enum):
    NEW = "new"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass
class IngestOutcome:
    status: IngestStatus
    record_id: Optional[str] = None
    kind: Optional[str] = None
    classifier_failed: bool = False
    error: str = ""

    @property
    def new_count(self) -> int:
        return 1 if self.status is IngestStatus.NEW else 0

    @property
    def duplicate_count(self) -> int:
        return 1 if self.status is IngestStatus.DUPLICATE else 0


class SyncStatus(str, Enum):
    SUCCESS = "success"
    UNAUTHORIZED = "unauthorized"
    NETWORK_ERROR = "network_error"
    CANCELLED = "cancelled"


@dataclass
class SyncReport:
    source: str
    status: SyncStatus = SyncStatus.SUCCESS
    new_count: int = 0
    duplicate_count: int = 0
    failed_count: int = 0
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    error: str = ""
    failures: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is SyncStatus.SUCCESS
