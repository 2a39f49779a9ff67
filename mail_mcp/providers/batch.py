"""Chunked batch processing with per-item retry."""

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from ..models import BatchFailure, BatchResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

DISPLAY_ID_LENGTH = 16


def display_id(item_id: str) -> str:
    """Shorten an ID for failure reports."""
    return f"{item_id[:DISPLAY_ID_LENGTH]}..."


async def process_batches(
    items: Sequence[str],
    batch_size: int,
    process_chunk: Callable[[list[str]], Awaitable[list[T]]],
) -> BatchResult:
    """
    Run an operation over items in fixed-size chunks.

    Each chunk is first attempted as a whole. If that call fails, every item
    in the chunk is retried on its own so one bad item cannot sink its
    siblings. Failures never stop later items or chunks.

    Args:
        items: Message or thread IDs
        batch_size: Chunk size (at least 1)
        process_chunk: Coroutine applying the operation to a list of IDs and
            returning one result per ID

    Returns:
        BatchResult partitioning the outcomes
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    result = BatchResult()
    for start in range(0, len(items), batch_size):
        chunk = list(items[start : start + batch_size])
        try:
            result.successes.extend(await process_chunk(chunk))
            continue
        except Exception as e:
            logger.warning(
                f"Batch of {len(chunk)} failed ({e}); retrying items individually"
            )

        for item in chunk:
            try:
                result.successes.extend(await process_chunk([item]))
            except Exception as e:
                result.failures.append(
                    BatchFailure(id=item, display_id=display_id(item), error=str(e))
                )

    logger.info(
        f"Batch complete: {result.success_count} succeeded, {result.failure_count} failed"
    )
    return result
