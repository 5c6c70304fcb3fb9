"""
Concurrent retrieval of a contiguous block range.

One task per height is admitted through a semaphore of ``max_concurrent``
slots. All launched tasks are joined with ``asyncio.gather`` before the
result is inspected; the first failure wins the error slot and fails the
whole range.
"""

import asyncio
import logging
import time
from typing import Optional

from blocktime.client import ChainQueryService
from blocktime.errors import FetchCancelled, InvalidRange, UpstreamFailure
from blocktime.types import BlockDelta, BlockSample

logger = logging.getLogger(__name__)

MAX_CONCURRENT = 10


class _ErrorSlot:
    """Holds the first error set; later writers are ignored."""

    def __init__(self):
        self.error: Optional[UpstreamFailure] = None

    def set(self, error: UpstreamFailure) -> None:
        if self.error is None:
            self.error = error


class RangeFetcher:
    def __init__(self, service: ChainQueryService, max_concurrent: int = MAX_CONCURRENT):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.service = service
        self.max_concurrent = max_concurrent

    async def fetch(
        self,
        start_height: int,
        end_height: int,
        cancel: Optional[asyncio.Event] = None,
    ) -> list[BlockSample]:
        """
        Fetch every block in [start_height, end_height], ascending by height.

        Args:
            start_height: First height, >= 1.
            end_height: Last height, >= start_height.
            cancel: Checked before each request is admitted. Requests already
                in flight run to completion.

        Returns:
            list[BlockSample]: One sample per height, sorted by height.

        Raises:
            InvalidRange: Bad bounds; no request is made.
            UpstreamFailure: Any block failed; no partial result is returned.
            FetchCancelled: ``cancel`` was set before all requests were admitted.
        """
        if start_height > end_height or start_height < 1 or end_height < 1:
            raise InvalidRange(start_height, end_height)

        semaphore = asyncio.Semaphore(self.max_concurrent)
        error_slot = _ErrorSlot()
        samples: list[BlockSample] = []
        tasks = []
        cancelled = False
        started = time.monotonic()

        async def fetch_one(height: int):
            try:
                sample = await self.service.get_block(height)
            except UpstreamFailure as e:
                error_slot.set(e)
            except Exception as e:
                error_slot.set(UpstreamFailure(f"failed to get block {height}: {e}", "fetch", height))
            else:
                samples.append(sample)
            finally:
                semaphore.release()

        for height in range(start_height, end_height + 1):
            await semaphore.acquire()
            if (cancel is not None and cancel.is_set()) or error_slot.error is not None:
                semaphore.release()
                cancelled = error_slot.error is None
                break
            tasks.append(asyncio.create_task(fetch_one(height)))

        await asyncio.gather(*tasks)

        logger.debug(
            f"fetched {len(samples)}/{end_height - start_height + 1} blocks "
            f"({start_height}..{end_height}) in {time.monotonic() - started:.2f}s"
        )

        if error_slot.error is not None:
            raise error_slot.error
        if cancelled:
            raise FetchCancelled(start_height, end_height, len(tasks))

        return sorted(samples, key=lambda s: s.height)


def compute_deltas(samples: list[BlockSample]) -> list[BlockDelta]:
    """Seconds between consecutive samples; non-positive gaps are skipped."""
    deltas = []
    for previous, current in zip(samples, samples[1:]):
        seconds = (current.timestamp - previous.timestamp).total_seconds()
        if seconds > 0:
            deltas.append(BlockDelta(height=current.height, seconds=seconds, proposer=current.proposer))
    return deltas
