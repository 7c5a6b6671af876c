"""
Tidings exceptions.
"""

from __future__ import annotations

from typing import Optional


class TidingsError(RuntimeError):
    """Base class for Tidings errors."""


class InvalidQueryError(TidingsError, ValueError):
    """Raised when a search request or query filter is malformed."""


class DuplicateRecordError(TidingsError):
    """Raised when a (source, external_id) pair is already stored."""

    def __init__(self, source: str, external_id: str) -> None:
        self.source = source
        self.external_id = external_id
        super().__init__(f"record already stored: {source}:{external_id}")


class LexicalQueryError(TidingsError):
    """Raised when a lexical match expression cannot be parsed."""


class ClassifierError(TidingsError):
    """Raised when the external classifier returns an unusable response."""


class ConnectorError(TidingsError):
    """Raised when a source connector cannot complete a request."""

    def __init__(
        self,
        detail: str,
        *,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.source = source
        self.status_code = status_code
        status_hint = f" (status={status_code})" if status_code is not None else ""
        source_hint = f" [{source}]" if source else ""
        super().__init__(f"{detail}{status_hint}{source_hint}")


class ConnectorAuthError(ConnectorError):
    """Raised when a connector's credentials are missing, expired or rejected."""
