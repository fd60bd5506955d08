import asyncio
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from depscope.core.model import Outcome

ProgressSink = Callable[[float], None]


def chunk(items: Sequence[Any], size: int) -> List[List[Any]]:
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


async def process_batches(
    items: Sequence[Any],
    batch_size: int,
    concurrency: int,
    processor: Callable[[Any], Awaitable[Outcome]],
    on_wave_progress: Optional[ProgressSink] = None,
) -> List[Outcome]:
    """
    Runs `processor` over every item, `concurrency` batches of `batch_size` at a time.

    Items inside a batch run concurrently; a wave of batches must finish before the
    next wave starts. The processor is expected to return an Outcome instead of raising.
    """
    if batch_size < 1 or concurrency < 1:
        raise ValueError(f"batch_size and concurrency must be >= 1 (got {batch_size}, {concurrency})")

    batches = chunk(items, batch_size)
    total = len(batches)
    results: List[Outcome] = []

    for wave_start in range(0, total, concurrency):
        wave = batches[wave_start:wave_start + concurrency]
        wave_results = await asyncio.gather(
            *(asyncio.gather(*(processor(item) for item in batch)) for batch in wave)
        )
        for batch_results in wave_results:
            results.extend(batch_results)

        if on_wave_progress:
            processed = min(wave_start + concurrency, total)
            on_wave_progress(processed / total * 100)

    return results


def partition(outcomes: List[Outcome]) -> Tuple[List[Outcome], List[Outcome]]:
    succeeded = [o for o in outcomes if o.ok]
    failed = [o for o in outcomes if not o.ok]
    return succeeded, failed
