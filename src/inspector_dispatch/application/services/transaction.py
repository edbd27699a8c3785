"""Helpers for running storage transactions to completion."""

import asyncio
from typing import Awaitable, TypeVar

from src.inspector_dispatch.infrastructure.logging import get_logger


T = TypeVar("T")

logger = get_logger(__name__)


async def run_to_completion(operation: Awaitable[T]) -> T:
    """Await an operation that must not be interrupted half way.

    If the caller is cancelled the operation keeps running until it has
    committed or rolled back, then the cancellation is re-raised. A failure
    of the operation at that point is logged, since nobody awaits it.
    """
    task = asyncio.ensure_future(operation)
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            error = task.exception()
            logger.error(
                "Transaction failed after caller was cancelled",
                exc_info=(type(error), error, error.__traceback__),
                extra={"error_type": type(error).__name__}
            )
        raise
