import asyncio
import math
import unittest

from depscope.core.batching import chunk, partition, process_batches
from depscope.core.model import Outcome


class TestProcessBatches(unittest.IsolatedAsyncioTestCase):

    async def test_processes_every_item_and_reports_each_wave(self):
        calls = []
        progress = []

        async def processor(item):
            calls.append(item)
            await asyncio.sleep(0)
            return Outcome(item=item, value=item * 2)

        items = list(range(23))
        outcomes = await process_batches(items, 4, 2, processor, progress.append)

        self.assertEqual(sorted(calls), items)
        self.assertEqual(len(progress), math.ceil(math.ceil(23 / 4) / 2))
        self.assertEqual(progress[-1], 100)
        self.assertEqual(progress, sorted(progress))
        self.assertEqual([o.value for o in outcomes], [i * 2 for i in items])

    async def test_failures_are_kept_as_outcomes(self):
        async def processor(item):
            if item % 3 == 0:
                return Outcome(item=item, error=ValueError(f"bad {item}"))
            return Outcome(item=item, value=item)

        outcomes = await process_batches(list(range(10)), 3, 5, processor)
        succeeded, failed = partition(outcomes)

        self.assertEqual([o.item for o in failed], [0, 3, 6, 9])
        self.assertEqual(len(succeeded), 6)

    async def test_waves_wait_for_each_other(self):
        running = 0
        peak = 0

        async def processor(item):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.001)
            running -= 1
            return Outcome(item=item, value=item)

        await process_batches(list(range(30)), 5, 2, processor)

        self.assertLessEqual(peak, 10)

    async def test_empty_input(self):
        progress = []

        async def processor(item):
            return Outcome(item=item, value=item)

        self.assertEqual(await process_batches([], 10, 2, processor, progress.append), [])
        self.assertEqual(progress, [])

    async def test_invalid_budgets_are_rejected(self):
        async def processor(item):
            return Outcome(item=item, value=item)

        with self.assertRaises(ValueError):
            await process_batches([1], 0, 1, processor)
        with self.assertRaises(ValueError):
            await process_batches([1], 1, 0, processor)


class TestChunk(unittest.TestCase):

    def test_chunk_keeps_order(self):
        self.assertEqual(chunk([1, 2, 3, 4, 5], 2), [[1, 2], [3, 4], [5]])
