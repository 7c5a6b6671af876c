"""
Tidings Call Results
--------------------
Explicit success/failure values for calls that leave the process
(AI classifier, source connectors). Call sites inspect the result and pick
their own fallback instead of relying on exceptions falling through.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Generic, Optional, TypeVar, Union

logger = logging.getLogger("Tidings.Calls")

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failed:
    reason: str
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return False

    @property
    def timed_out(self) -> bool:
        return isinstance(self.error, (asyncio.TimeoutError, TimeoutError))


CallResult = Union[Ok[T], Failed]


async def call_external(
    awaitable: Awaitable[T],
    *,
    timeout: Optional[float] = None,
    label: str = "external call",
) -> "CallResult[T]":
    """
    Await an external call and capture its outcome.

    Timeouts and ordinary exceptions become ``Failed``; task cancellation
    still propagates so callers can abort between records.
    """
    try:
        if timeout is not None:
            value = await asyncio.wait_for(awaitable, timeout=timeout)
        else:
            value = await awaitable
        return Ok(value)
    except asyncio.TimeoutError as e:
        logger.warning("%s timed out after %ss", label, timeout)
        return Failed(reason="timeout", error=e)
    except Exception as e:
        logger.warning("%s failed: %s", label, e)
        return Failed(reason=str(e) or type(e).__name__, error=e)

