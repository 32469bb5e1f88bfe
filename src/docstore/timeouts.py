"""Fixed-ceiling timeout for blocking storage calls made from async handlers."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, TypeVar

from .errors import OperationTimeoutError

R = TypeVar("R")

DEFAULT_TIMEOUT = 15.0


async def with_timeout(
    func: Callable[..., R], *args: Any, seconds: float = DEFAULT_TIMEOUT, **kwargs: Any
) -> R:
    """
    Run ``func`` in a worker thread; raise OperationTimeoutError after
    ``seconds``. The call itself keeps running and is not rolled back.
    """
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(func, *args, **kwargs), timeout=seconds
        )
    except asyncio.TimeoutError as exc:
        raise OperationTimeoutError(seconds) from exc
