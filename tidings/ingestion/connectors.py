"""
Source connector interface.

A connector lists candidate external ids newer than a cursor and fetches one
message in detail. Ids are processed in ``sort_key`` order, which must match
the source's native ordering so the cursor watermark stays monotonic.
"""

from __future__ import annotations

from typing import Any, List

from tidings.core.types import SyncCursor
from tidings.ingestion.models import RawMessage


class SourceConnector:
    """Base class for source connectors. Subclasses set ``source`` and implement the fetches."""

    source: str = ""

    async def list_since(self, cursor: SyncCursor) -> List[str]:
        """
        External ids available since ``cursor`` (everything when the cursor is empty).

        Raises:
            ConnectorAuthError: credentials missing or rejected.
            ConnectorError: any other listing failure.
        """
        raise NotImplementedError

    async def fetch_detail(self, external_id: str, full: bool = True) -> RawMessage:
        """
        Fetch one message. ``full=False`` requests headers/metadata only.

        Raises:
            ConnectorAuthError: credentials missing or rejected.
            ConnectorError: the message could not be fetched or parsed.
        """
        raise NotImplementedError

    def sort_key(self, external_id: str) -> Any:
        return external_id

    async def aclose(self) -> None:
        return None
