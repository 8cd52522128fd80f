from __future__ import annotations

from typing import Awaitable, TypeVar

import anyio

T = TypeVar("T")


async def await_with_timeout(awaitable: Awaitable[T], timeout: float | None) -> T:
    """
    Await with a bounded timeout.

    Raises TimeoutError when the deadline passes; callers decide whether that
    means "no data" or a failure.
    """
    if timeout is None:
        return await awaitable
    with anyio.fail_after(timeout):
        return await awaitable
