from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from tague_api.core.config import Settings
from tague_api.docstore import TransientStoreError
from tague_api.logs import log_event

T = TypeVar("T")


async def with_io_retry(
    op: Callable[[], Awaitable[T]],
    *,
    action: str,
    settings: Settings | None = None,
) -> T:
    """Run ``op`` again on ``TransientStoreError``, up to the configured budget.

    ``op`` must be safe to re-run: every engine mutation passed here is a
    single store transaction, so a failed attempt left nothing behind.
    """
    settings = settings or Settings()
    attempts = int(settings.store_io_max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await op()
        except TransientStoreError as exc:
            if attempt >= attempts:
                raise
            log_event(
                logging.INFO,
                "store_io_retry",
                action=action,
                attempt=attempt,
                error=str(exc)[:200],
            )
            await asyncio.sleep(settings.store_retry_backoff_ms / 1000.0 * attempt)
    raise AssertionError("unreachable")
