"""Completion barrier for per-frame callback tasks."""

from __future__ import annotations

import asyncio


class WaitGroup:
    """Counter of outstanding tasks with an awaitable zero point.

    ``add()`` must be called before the task it accounts for is created;
    ``done()`` is called once when that task finishes.

    Usage::

        wg = WaitGroup()
        wg.add()
        asyncio.create_task(work(wg))  # calls wg.done() in a finally
        await wg.wait()
    """

    def __init__(self) -> None:
        self._count = 0
        self._zero = asyncio.Event()
        self._zero.set()

    @property
    def count(self) -> int:
        return self._count

    def add(self, n: int = 1) -> None:
        if self._count + n < 0:
            raise ValueError("WaitGroup counter cannot go negative")
        self._count += n
        if self._count == 0:
            self._zero.set()
        else:
            self._zero.clear()

    def done(self) -> None:
        self.add(-1)

    async def wait(self) -> None:
        await self._zero.wait()
