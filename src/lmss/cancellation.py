"""Racing in-flight work against a caller-supplied cancellation event."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Optional


async def wait_unless_cancelled(
    awaitable: Awaitable[Any], cancel_event: Optional[asyncio.Event]
) -> tuple[bool, Any]:
    """Await *awaitable* unless *cancel_event* is set first.

    Returns ``(cancelled, result)``. When the event wins, the pending work is
    cancelled and awaited before returning ``(True, None)``; exceptions raised
    by the work itself propagate unchanged.
    """
    if cancel_event is None:
        return False, await awaitable
    if cancel_event.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        return True, None

    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not work.done():
            work.cancel()
            await asyncio.gather(work, return_exceptions=True)

    if work.cancelled():
        return True, None
    return False, work.result()
