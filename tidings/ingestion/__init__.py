"""
Incremental multi-source ingestion package.
"""

from tidings.ingestion.connectors import SourceConnector
from tidings.ingestion.coordinator import IngestionCoordinator
from tidings.ingestion.gmail import GmailConnector
from tidings.ingestion.models import (
    IngestOutcome,
    IngestStatus,
    RawMessage,
    SyncReport,
    SyncStatus,
)

__all__ = [
    "RawMessage",
    "IngestStatus",
    "IngestOutcome",
    "SyncStatus",
    "SyncReport",
    "SourceConnector",
    "IngestionCoordinator",
    "GmailConnector",
]
