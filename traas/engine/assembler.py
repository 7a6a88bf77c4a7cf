"""
Drive one traceroute run and assemble the final route
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from ..errors import RunTimeout
from ..models import HopResult, HopStatus, RouteRun
from ..probe.base import BaseProbeSocket
from .scheduler import ProbeScheduler
from .tracker import HopTracker

logger = logging.getLogger(__name__)


class RouteAssembler:
    """
    Orchestrates a single run.

    Drives a ProbeScheduler until it terminates or overall_timeout
    elapses, then builds the RouteRun: hops ordered by TTL from 1 with
    no gaps (unprobed TTLs become unreachable). A run that hits the
    overall timeout is returned as a partial route, not raised. Once the
    destination has answered the route counts as reached even if lower
    TTLs were still being retried when the timeout fired.
    """

    def __init__(
        self,
        probe_socket: BaseProbeSocket,
        destination: str,
        target: Optional[str] = None,
        max_hops: int = 30,
        concurrency: int = 4,
        per_probe_timeout: float = 2.0,
        max_retries: int = 2,
        overall_timeout: float = 30.0,
        poll_interval: float = 0.25,
        on_hop: Optional[Callable[[HopResult], None]] = None
    ):
        self.probe_socket = probe_socket
        self.destination = destination
        self.target = target or destination
        self.max_hops = max_hops
        self.concurrency = concurrency
        self.per_probe_timeout = per_probe_timeout
        self.max_retries = max_retries
        self.overall_timeout = overall_timeout
        self.poll_interval = poll_interval
        self.on_hop = on_hop
        self.tracker: Optional[HopTracker] = None
        self.scheduler: Optional[ProbeScheduler] = None

    async def run(self) -> RouteRun:
        """
        Execute the traceroute.

        Returns:
            Finalized RouteRun (partial if the overall timeout elapsed)

        Raises:
            SendError: probes could not be sent at all
        """
        started_at = datetime.now()
        self.tracker = HopTracker()
        self.scheduler = ProbeScheduler(
            self.probe_socket,
            self.tracker,
            self.destination,
            max_hops=self.max_hops,
            concurrency=self.concurrency,
            per_probe_timeout=self.per_probe_timeout,
            max_retries=self.max_retries,
            poll_interval=self.poll_interval,
            on_hop=self.on_hop
        )

        timed_out = False
        try:
            await self._drive()
        except RunTimeout as e:
            timed_out = True
            logger.warning("%s, returning partial route to %s", e, self.destination)

        for ttl in self.tracker.pending_ttls():
            self.tracker.mark_timed_out(ttl)

        hops = self._assemble_hops(timed_out)
        run = RouteRun(
            target=self.target,
            destination=self.destination,
            hops=hops,
            reached_destination=self.scheduler.reached_destination,
            timed_out=timed_out,
            started_at=started_at,
            finished_at=datetime.now()
        )
        logger.info(
            "Trace to %s finished: %d hops, %d responded, reached=%s, %d probes sent, %d responses discarded",
            self.destination, run.total_hops, run.responding_hops, run.reached_destination,
            self.scheduler.probes_sent, self.scheduler.correlator.discarded
        )
        return run

    async def _drive(self):
        try:
            await asyncio.wait_for(self.scheduler.run(), timeout=self.overall_timeout)
        except asyncio.TimeoutError as e:
            raise RunTimeout(self.overall_timeout) from e

    def _assemble_hops(self, timed_out: bool) -> tuple[HopResult, ...]:
        known = {hop.ttl: hop for hop in self.tracker.snapshot()}

        if self.scheduler.destination_ttl is not None:
            last_ttl = self.scheduler.destination_ttl
        elif timed_out:
            last_ttl = max(known, default=0)
        else:
            last_ttl = self.max_hops

        return tuple(
            known.get(ttl) or HopResult(ttl=ttl, status=HopStatus.UNREACHABLE)
            for ttl in range(1, last_ttl + 1)
        )
