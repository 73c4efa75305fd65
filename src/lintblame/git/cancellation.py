"""Cancellation-token support for awaiting shared work."""

import asyncio
from typing import TypeVar

from .base import BlameCancelledError

T = TypeVar("T")


async def wait_or_cancel(
    future: "asyncio.Future[T]", cancel: asyncio.Event | None
) -> T:
    """Wait for *future*, or raise BlameCancelledError once *cancel* is set.

    *future* itself is never cancelled here, so several callers can wait on
    the same future with their own tokens. A future that ends up cancelled
    is also reported as BlameCancelledError.
    """
    if cancel is not None and cancel.is_set():
        raise BlameCancelledError("Lookup cancelled")

    pending: set[asyncio.Future] = {future}
    cancel_wait: asyncio.Future | None = None
    if cancel is not None:
        cancel_wait = asyncio.ensure_future(cancel.wait())
        pending.add(cancel_wait)

    try:
        await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
    finally:
        if cancel_wait is not None:
            cancel_wait.cancel()

    if not future.done() or future.cancelled():
        raise BlameCancelledError("Lookup cancelled")
    return future.result()
