"""
Concurrent probe dispatch with per-probe timeout and retries
"""

import asyncio
import itertools
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from ..errors import ProbeTimeout, SendError, SocketError
from ..models import HopResult
from ..probe.base import BaseProbeSocket
from .correlator import ResponseCorrelator
from .tracker import HopTracker

logger = logging.getLogger(__name__)


class ProbeScheduler:
    """
    Probe TTLs 1..max_hops with at most `concurrency` TTLs in flight.

    Each TTL is sent up to max_retries + 1 times; a probe waits at most
    per_probe_timeout for its TTL to resolve before the next attempt.
    A TTL that never answers is marked unreachable and the run goes on.

    A reader task drains the socket independently of probe issuance, so
    a far hop may resolve before a near one. The run ends when every TTL
    up to the destination (or max_hops) is final. A SendError aborts it.
    """

    def __init__(
        self,
        probe_socket: BaseProbeSocket,
        tracker: HopTracker,
        destination: str,
        max_hops: int = 30,
        concurrency: int = 4,
        per_probe_timeout: float = 2.0,
        max_retries: int = 2,
        poll_interval: float = 0.25,
        on_hop: Optional[Callable[[HopResult], None]] = None
    ):
        needed = max_hops * (max_retries + 1)
        if needed > probe_socket.max_identifier:
            raise ValueError(
                f"{max_hops} hops x {max_retries + 1} attempts needs {needed} probe "
                f"identifiers, the socket only carries {probe_socket.max_identifier}"
            )

        self.probe_socket = probe_socket
        self.tracker = tracker
        self.destination = destination
        self.max_hops = max_hops
        self.concurrency = max(1, concurrency)
        self.per_probe_timeout = per_probe_timeout
        self.max_retries = max_retries
        self.poll_interval = poll_interval
        self.on_hop = on_hop
        self.correlator = ResponseCorrelator(tracker, probe_socket, on_resolved=self._on_resolved)

        self.destination_ttl: Optional[int] = None
        self.probes_sent = 0
        self.receive_errors = 0
        self._identifiers = itertools.count(1)
        self._events: dict[int, asyncio.Event] = {}
        self._tasks: dict[int, asyncio.Task] = {}
        self._fatal: Optional[SendError] = None
        self._slots: Optional[asyncio.Semaphore] = None

    @property
    def reached_destination(self) -> bool:
        return self.destination_ttl is not None

    @property
    def highest_ttl(self) -> int:
        """Highest TTL a probe task was started for"""
        return max(self._tasks, default=0)

    def _past_destination(self, ttl: int) -> bool:
        return self.destination_ttl is not None and ttl > self.destination_ttl

    async def run(self):
        """Probe until termination. Raises SendError if sending becomes impossible."""
        self._slots = asyncio.Semaphore(self.concurrency)
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='traas-recv')
        reader = asyncio.create_task(self._receive_loop(executor))
        try:
            await self._dispatch()
        finally:
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)
            executor.shutdown(wait=False)

    async def _dispatch(self):
        try:
            for ttl in range(1, self.max_hops + 1):
                await self._slots.acquire()
                if self._fatal is not None or self._past_destination(ttl):
                    self._slots.release()
                    break
                self._events[ttl] = asyncio.Event()
                task = asyncio.create_task(self._probe_ttl(ttl))
                # released on completion, even when cancelled before starting
                task.add_done_callback(self._release_slot)
                self._tasks[ttl] = task

            results = await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        finally:
            unfinished = [task for task in self._tasks.values() if not task.done()]
            for task in unfinished:
                task.cancel()
            if unfinished:
                await asyncio.gather(*unfinished, return_exceptions=True)

        if self._fatal is not None:
            raise self._fatal
        for result in results:
            if isinstance(result, Exception):
                raise result

    def _release_slot(self, _task: asyncio.Task):
        self._slots.release()

    async def _probe_ttl(self, ttl: int):
        for attempt in range(self.max_retries + 1):
            if self._past_destination(ttl):
                return
            if attempt and not self.tracker.is_pending(ttl):
                return

            identifier = next(self._identifiers)
            self.tracker.register(ttl, identifier, attempt=attempt)
            self._send(ttl, identifier)

            try:
                await asyncio.wait_for(self._events[ttl].wait(), self.per_probe_timeout)
                return
            except asyncio.TimeoutError:
                logger.debug("ttl %d: no answer to probe %d (attempt %d of %d)",
                             ttl, identifier, attempt + 1, self.max_retries + 1)

        if self.tracker.mark_unreachable(ttl):
            logger.info("ttl %d: no response after %d probes", ttl, self.max_retries + 1)
            if self.on_hop:
                self.on_hop(self.tracker.get(ttl))

    def _send(self, ttl: int, identifier: int):
        try:
            self.probe_socket.send(self.destination, ttl, identifier)
        except SendError as e:
            if self._fatal is None:
                self._fatal = e
                logger.error("Aborting traceroute to %s: %s", self.destination, e)
                current = asyncio.current_task()
                for task in self._tasks.values():
                    if task is not current:
                        task.cancel()
            raise
        self.probes_sent += 1

    def _on_resolved(self, hop: HopResult):
        event = self._events.get(hop.ttl)
        if event is not None:
            event.set()
        if self._past_destination(hop.ttl):
            return
        if self.on_hop:
            self.on_hop(hop)

        if hop.address != self.destination:
            return
        if self.destination_ttl is not None and hop.ttl >= self.destination_ttl:
            return

        self.destination_ttl = hop.ttl
        logger.info("Destination %s reached at ttl %d", self.destination, hop.ttl)
        for ttl, task in self._tasks.items():
            if ttl > hop.ttl:
                task.cancel()

    async def _receive_loop(self, executor: ThreadPoolExecutor):
        loop = asyncio.get_running_loop()
        while True:
            try:
                result = await loop.run_in_executor(
                    executor, self.probe_socket.receive, self.poll_interval
                )
            except ProbeTimeout:
                continue
            except SocketError as e:
                self.receive_errors += 1
                logger.warning("Receive failed, continuing: %s", e)
                await asyncio.sleep(self.poll_interval)
                continue

            self.correlator.handle(result)
