"""
Data models for traas
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class HopStatus(str, Enum):
    """Lifecycle of a single TTL. Only PENDING is non-final."""
    PENDING = "pending"
    RESPONDED = "responded"
    TIMED_OUT = "timed_out"
    UNREACHABLE = "unreachable"

    @property
    def is_final(self) -> bool:
        return self is not HopStatus.PENDING


@dataclass(frozen=True)
class Probe:
    """One outbound probe (first attempt or retry) for a TTL"""
    ttl: int
    identifier: int
    sent_ns: int
    attempt: int = 0


@dataclass(frozen=True)
class ProbeSocketResult:
    """Raw datagram read from a probe socket"""
    data: bytes
    source: str
    received_ns: int


@dataclass(frozen=True)
class HopResult:
    """Outcome of probing a single TTL"""
    ttl: int
    address: Optional[str] = None
    latency_ns: Optional[int] = None
    status: HopStatus = HopStatus.PENDING

    @property
    def responded(self) -> bool:
        return self.status is HopStatus.RESPONDED

    @property
    def latency_ms(self) -> Optional[float]:
        if self.latency_ns is None:
            return None
        return self.latency_ns / 1_000_000


@dataclass(frozen=True)
class RouteRun:
    """Complete (or partial) route to a destination"""
    target: str
    destination: str
    hops: tuple[HopResult, ...] = ()
    reached_destination: bool = False
    timed_out: bool = False
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    @property
    def total_hops(self) -> int:
        return len(self.hops)

    @property
    def responding_hops(self) -> int:
        return sum(1 for hop in self.hops if hop.responded)

    @property
    def duration(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def final_latency_ms(self) -> Optional[float]:
        if self.reached_destination and self.hops:
            return self.hops[-1].latency_ms
        return None
