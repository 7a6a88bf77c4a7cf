"""
Per-TTL bookkeeping for a traceroute run
"""

import logging
import time
from dataclasses import replace
from typing import Optional

from ..models import HopResult, HopStatus, Probe

logger = logging.getLogger(__name__)


class HopTracker:
    """
    Tracks outstanding probes and the result of every TTL.

    Owned by the event loop thread: the scheduler registers probes and
    finalizes exhausted TTLs, the correlator resolves them. Status moves
    from PENDING to a final status exactly once.
    """

    def __init__(self):
        self._hops: dict[int, HopResult] = {}
        self._probes: dict[int, Probe] = {}

    def register(self, ttl: int, identifier: int, sent_ns: Optional[int] = None,
                 attempt: int = 0) -> Probe:
        """
        Record a probe about to be sent.

        Args:
            ttl: TTL being probed (>= 1)
            identifier: Identifier embedded in the probe, unique per run
            sent_ns: Send time from time.perf_counter_ns(), now by default
            attempt: 0 for the first probe of a TTL, then 1, 2, ...

        Returns:
            The registered Probe
        """
        if ttl < 1:
            raise ValueError(f"TTL must be >= 1, got {ttl}")
        if identifier in self._probes:
            raise ValueError(f"Identifier {identifier} already registered")

        probe = Probe(
            ttl=ttl,
            identifier=identifier,
            sent_ns=time.perf_counter_ns() if sent_ns is None else sent_ns,
            attempt=attempt
        )
        self._probes[identifier] = probe
        self._hops.setdefault(ttl, HopResult(ttl=ttl))
        return probe

    def lookup(self, identifier: int) -> Optional[Probe]:
        return self._probes.get(identifier)

    def get(self, ttl: int) -> Optional[HopResult]:
        return self._hops.get(ttl)

    def is_pending(self, ttl: int) -> bool:
        hop = self._hops.get(ttl)
        return hop is not None and hop.status is HopStatus.PENDING

    def resolve(self, identifier: int, address: str, latency_ns: int) -> Optional[HopResult]:
        """
        Record the response to a probe.

        A response for an unknown identifier, or for a TTL that is already
        final, is dropped and None is returned.
        """
        probe = self._probes.get(identifier)
        if probe is None:
            return None

        hop = self._hops[probe.ttl]
        if hop.status.is_final:
            logger.debug("Dropping duplicate response for ttl %d from %s", probe.ttl, address)
            return None

        hop = replace(
            hop,
            address=address,
            latency_ns=max(latency_ns, 0),
            status=HopStatus.RESPONDED
        )
        self._hops[probe.ttl] = hop
        return hop

    def _finalize(self, ttl: int, status: HopStatus) -> bool:
        hop = self._hops.get(ttl)
        if hop is None or hop.status.is_final:
            return False
        self._hops[ttl] = replace(hop, status=status)
        return True

    def mark_timed_out(self, ttl: int) -> bool:
        """Mark a still-pending TTL as timed out"""
        return self._finalize(ttl, HopStatus.TIMED_OUT)

    def mark_unreachable(self, ttl: int) -> bool:
        """Mark a still-pending TTL as unreachable (retries exhausted)"""
        return self._finalize(ttl, HopStatus.UNREACHABLE)

    def pending_ttls(self) -> list[int]:
        return sorted(ttl for ttl, hop in self._hops.items() if hop.status is HopStatus.PENDING)

    def snapshot(self) -> list[HopResult]:
        """Hop results ordered by TTL"""
        return [self._hops[ttl] for ttl in sorted(self._hops)]

    def __len__(self) -> int:
        return len(self._hops)
