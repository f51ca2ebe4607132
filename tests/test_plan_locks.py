from __future__ import annotations

import asyncio
import datetime as dt
from unittest import IsolatedAsyncioTestCase

from larder.services.plan_locks import PlanMutationQueue

WEEK = dt.date(2025, 3, 2)


class PlanMutationQueueTest(IsolatedAsyncioTestCase):
    async def test_writers_on_same_plan_are_serialised(self):
        queue = PlanMutationQueue()
        events: list[str] = []

        async def writer(name: str):
            async with queue.hold("user-1", WEEK):
                events.append(f"{name}:start")
                await asyncio.sleep(0.01)
                events.append(f"{name}:end")

        await asyncio.gather(writer("a"), writer("b"))
        self.assertEqual(events, ["a:start", "a:end", "b:start", "b:end"])

    async def test_different_plans_do_not_block_each_other(self):
        queue = PlanMutationQueue()
        entered = asyncio.Event()

        async def holder():
            async with queue.hold("user-1", WEEK):
                await entered.wait()

        task = asyncio.create_task(holder())
        await asyncio.sleep(0)
        async with queue.hold("user-1", WEEK + dt.timedelta(weeks=1)):
            entered.set()
        await task

    async def test_locks_are_dropped_when_idle(self):
        queue = PlanMutationQueue()
        async with queue.hold("user-1", WEEK):
            self.assertEqual(queue.pending("user-1", WEEK), 1)
        self.assertEqual(queue.pending("user-1", WEEK), 0)
        self.assertEqual(queue._locks, {})

    async def test_lock_released_when_body_raises(self):
        queue = PlanMutationQueue()
        with self.assertRaises(RuntimeError):
            async with queue.hold("user-1", WEEK):
                raise RuntimeError("boom")
        async with queue.hold("user-1", WEEK):
            pass
