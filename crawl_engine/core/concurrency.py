"""
Bounded parallel execution in fixed-size batches.
"""
import asyncio
from typing import Any, Awaitable, Callable, List, Sequence

from loguru import logger

DEFAULT_BATCH_SIZE = 2

TaskFactory = Callable[[], Awaitable[Any]]


async def run_in_batches(task_factories: Sequence[TaskFactory],
                         batch_size: int = DEFAULT_BATCH_SIZE) -> List[Any]:
    """
    Run tasks concurrently within a batch and batches one after another.

    Coroutines are created lazily, batch by batch. A failing task does not
    cancel its siblings; its exception is returned in its result slot.

    Returns:
        Results (or exceptions) in the order of ``task_factories``
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    results: List[Any] = []
    for start in range(0, len(task_factories), batch_size):
        batch = task_factories[start:start + batch_size]
        settled = await asyncio.gather(*(factory() for factory in batch), return_exceptions=True)
        for outcome in settled:
            if isinstance(outcome, Exception):
                logger.warning(f"Batch task failed: {outcome}")
        results.extend(settled)
    return results
