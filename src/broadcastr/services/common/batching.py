"""Batched, cancellable execution of per-relay workers.

Both coordinators share the same skeleton: split the relays into batches,
run each batch as an ``asyncio.TaskGroup`` and only start batch ``N+1`` once
every task of batch ``N`` has settled. At most ``batch_size`` workers (and so
at most ``batch_size`` open connections) exist at any moment.

Workers are expected to absorb their own relay faults. Anything that still
escapes is logged here and dropped so that it cannot cancel the sibling tasks
of its batch.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

from broadcastr.core.exceptions import PassCancelledError
from broadcastr.core.logger import format_kv_pairs


T = TypeVar("T")

_logger = logging.getLogger(__name__)


def _log(level: str, message: str, **kwargs: Any) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    if _logger.isEnabledFor(log_level):
        _logger.log(log_level, message + format_kv_pairs(kwargs, max_value_length=None))


def split_batches(items: Sequence[T], batch_size: int) -> list[list[T]]:
    """Split ``items`` into consecutive chunks of at most ``batch_size``."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    return [list(items[i : i + batch_size]) for i in range(0, len(items), batch_size)]


async def _guarded(worker: Callable[[T], Awaitable[None]], item: T) -> None:
    try:
        await worker(item)
    except Exception as e:  # Intentionally broad: one worker must not cancel its batch
        _log("error", "worker_unexpected_exception", item=item, error=str(e), error_type=type(e).__name__)


async def _run_batch(batch: list[T], worker: Callable[[T], Awaitable[None]]) -> None:
    async with asyncio.TaskGroup() as tg:
        for item in batch:
            tg.create_task(_guarded(worker, item))


async def run_in_batches(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[None]],
    *,
    batch_size: int = 10,
    cancel: asyncio.Event | None = None,
) -> None:
    """Run ``worker`` over ``items`` in sequential, internally concurrent batches.

    Args:
        items: Work items, typically [Relay][broadcastr.models.relay.Relay] objects.
        worker: Coroutine function handling one item.
        batch_size: Maximum number of concurrent workers.
        cancel: Optional cancel token. Setting it cancels the running batch
            (so workers can close their connections in ``finally`` blocks)
            and skips the remaining ones.

    Raises:
        PassCancelledError: If ``cancel`` was set before every batch finished.
    """
    batches = split_batches(items, batch_size)

    for index, batch in enumerate(batches):
        if cancel is not None and cancel.is_set():
            raise PassCancelledError(f"pass cancelled before batch {index + 1}/{len(batches)}")

        _log("debug", "batch_started", batch=index + 1, of=len(batches), size=len(batch))
        batch_task = asyncio.ensure_future(_run_batch(batch, worker))

        if cancel is None:
            await batch_task
            continue

        cancel_task = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait(
                {batch_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            batch_task.cancel()
            await asyncio.gather(batch_task, return_exceptions=True)
            raise
        finally:
            cancel_task.cancel()

        if batch_task not in done:
            batch_task.cancel()
            await asyncio.gather(batch_task, return_exceptions=True)
            raise PassCancelledError(f"pass cancelled during batch {index + 1}/{len(batches)}")

        batch_task.result()
