"""
api/timeouts.py -- Deadlines for use-case calls that reach external ports.

The core has no timeouts of its own; the HTTP boundary bounds each call with
asyncio.wait_for and turns an expired deadline into GatewayError (502).
Cancellation reaches the port through the awaiting task.

Only awaits are bounded. UserStore and SQLSessionStore run their SQLAlchemy
statements synchronously inside the coroutine, so a slow query blocks the
event loop and finishes before wait_for can fire. The deadline covers the
gateway ports, which await real I/O.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from core.errors import GatewayError

T = TypeVar("T")


async def bounded(awaitable: Awaitable[T], seconds: float, what: str) -> T:
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as exc:
        raise GatewayError(f"{what} timed out after {seconds:g}s") from exc
