import asyncio
import logging
from typing import Awaitable, Callable, Dict, Iterable, Optional

from core.debounce import DebounceGate

log = logging.getLogger(__name__)


class RefreshWorkerPool:
    """Bounded concurrent refresh of subjects.

    Each ``submit`` batch gets its own queue drained by ``min(max_workers, len(batch))``
    workers. A pool-wide semaphore caps concurrent fetches at ``max_workers`` even
    when batches overlap. A subject that is already in flight is never fetched
    twice; the later submission waits on the running fetch instead.

    The pool knows nothing about UI state. Callers reconcile views once the
    future returned by ``submit`` resolves.
    """

    def __init__(self, refresh_fn: Callable[[object], Awaitable[object]],
                 gate: Optional[DebounceGate] = None, max_workers: int = 3):
        self._refresh_fn = refresh_fn
        self.gate = gate
        self.max_workers = max(1, int(max_workers or 1))
        self._slots = asyncio.Semaphore(self.max_workers)
        self._in_flight: Dict[object, asyncio.Future] = {}
        self._batches = set()
        self.active = 0
        self.peak_active = 0

    @property
    def in_flight(self) -> frozenset:
        return frozenset(self._in_flight)

    def is_in_flight(self, subject) -> bool:
        return subject in self._in_flight

    def submit(self, subjects: Iterable) -> "asyncio.Future[Dict[object, bool]]":
        """Queue subjects for refresh.

        Returns a future resolving to ``{subject: succeeded}`` for every unique
        subject passed in, including ones that were already in flight.
        """
        loop = asyncio.get_running_loop()
        waiting = {}
        batch = {}
        in_flight = dict(self._in_flight)
        for subject in dict.fromkeys(subjects):
            fut = in_flight.get(subject)
            if fut is None:
                fut = loop.create_future()
                in_flight[subject] = fut
                batch[subject] = fut
            waiting[subject] = fut
        self._in_flight = in_flight

        if batch:
            log.info(f"Refreshing {len(batch)} subject(s) with up to {min(self.max_workers, len(batch))} worker(s)")
            task = loop.create_task(self._run_batch(batch))
            self._batches.add(task)
            task.add_done_callback(self._batches.discard)
        elif waiting:
            log.debug(f"All {len(waiting)} subject(s) already in flight")

        return asyncio.ensure_future(self._collect(waiting))

    async def _collect(self, waiting):
        if not waiting:
            return {}
        results = await asyncio.gather(*(asyncio.shield(f) for f in waiting.values()))
        return dict(zip(waiting.keys(), results))

    async def _run_batch(self, batch):
        queue = asyncio.Queue()
        for item in batch.items():
            queue.put_nowait(item)

        workers = [asyncio.create_task(self._worker(queue)) for _ in range(min(self.max_workers, len(batch)))]
        try:
            await asyncio.gather(*workers)
        finally:
            for w in workers:
                if not w.done():
                    w.cancel()
            # Anything still unsettled was abandoned by a cancelled batch.
            for subject, fut in batch.items():
                self._settle(subject, fut, False)

    async def _worker(self, queue):
        while True:
            try:
                subject, fut = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            ok = await self._refresh_one(subject)
            self._settle(subject, fut, ok)

    async def _refresh_one(self, subject) -> bool:
        async with self._slots:
            self.active += 1
            self.peak_active = max(self.peak_active, self.active)
            try:
                await self._refresh_fn(subject)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.error(f"Refresh failed for {subject!r}: {e}")
                return False
            finally:
                self.active -= 1

        if self.gate is not None:
            self.gate.mark_refreshed(subject)
        return True

    def _settle(self, subject, fut: asyncio.Future, ok: bool):
        if self._in_flight.get(subject) is fut:
            remaining = dict(self._in_flight)
            del remaining[subject]
            self._in_flight = remaining
        if not fut.done():
            fut.set_result(ok)

    async def wait(self):
        """Wait until every batch submitted so far has drained."""
        while self._batches:
            await asyncio.gather(*list(self._batches), return_exceptions=True)

    async def close(self):
        for task in list(self._batches):
            task.cancel()
        await self.wait()
