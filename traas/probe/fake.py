"""
Scripted in-memory probe socket
"""

import queue
import struct
import threading
import time
from dataclasses import dataclass
from typing import Optional, Union

from ..errors import ProbeTimeout, SendError, SocketError
from ..models import ProbeSocketResult
from .base import BaseProbeSocket

_MAGIC = b'FAKE'


@dataclass
class FakeHop:
    """Scripted behaviour of the router answering at one TTL"""
    address: str
    delay: float = 0.0
    silent_attempts: int = 0    # probes ignored before the first answer
    duplicates: int = 0         # extra copies of every answer


def encode_reply(identifier: int) -> bytes:
    return struct.pack('!4sI', _MAGIC, identifier)


class FakeProbeSocket(BaseProbeSocket):
    """
    Probe socket driven by a script instead of the network.

    route: dict[ttl] -> FakeHop (or bare address). TTLs missing from the
    route never answer. When destination is given, every TTL beyond the
    first hop answering from the destination answers from it as well,
    like a real host does.
    """

    def __init__(self,
                 route: Optional[dict[int, Union[FakeHop, str]]] = None,
                 destination: Optional[str] = None,
                 send_error: Optional[SendError] = None,
                 receive_errors: int = 0):
        self.route: dict[int, FakeHop] = {}
        for ttl, hop in (route or {}).items():
            self.route[ttl] = hop if isinstance(hop, FakeHop) else FakeHop(address=hop)

        self.destination = destination
        self.send_error = send_error
        self.receive_errors = receive_errors
        self.sent: list[tuple[str, int, int]] = []
        self.closed = False
        self._attempts: dict[int, int] = {}
        self._inbox: queue.Queue = queue.Queue()
        self._timers: list[threading.Timer] = []
        self._lock = threading.Lock()

        self._destination_ttl: Optional[int] = None
        if destination is not None:
            ttls = [ttl for ttl, hop in self.route.items() if hop.address == destination]
            self._destination_ttl = min(ttls) if ttls else None

    @property
    def sent_ttls(self) -> list[int]:
        return [ttl for _, ttl, _ in self.sent]

    def _hop_for(self, ttl: int) -> Optional[FakeHop]:
        if self._destination_ttl is not None and ttl > self._destination_ttl:
            return self.route[self._destination_ttl]
        return self.route.get(ttl)

    def send(self, destination: str, ttl: int, identifier: int) -> None:
        if self.send_error is not None:
            raise self.send_error
        if self.closed:
            raise SendError("Probe socket is closed")

        with self._lock:
            self.sent.append((destination, ttl, identifier))
            attempt = self._attempts.get(ttl, 0)
            self._attempts[ttl] = attempt + 1

        hop = self._hop_for(ttl)
        if hop is None or attempt < hop.silent_attempts:
            return

        for _ in range(hop.duplicates + 1):
            self._schedule(encode_reply(identifier), hop.address, hop.delay)

    def inject(self, data: bytes, source: str, delay: float = 0.0):
        """Deliver an arbitrary datagram, e.g. a stray or malformed reply"""
        self._schedule(data, source, delay)

    def _schedule(self, data: bytes, source: str, delay: float):
        if delay <= 0:
            self._deliver(data, source)
            return
        timer = threading.Timer(delay, self._deliver, args=(data, source))
        timer.daemon = True
        with self._lock:
            self._timers.append(timer)
        timer.start()

    def _deliver(self, data: bytes, source: str):
        self._inbox.put(ProbeSocketResult(
            data=data,
            source=source,
            received_ns=time.perf_counter_ns()
        ))

    def receive(self, timeout: float) -> ProbeSocketResult:
        with self._lock:
            if self.receive_errors > 0:
                self.receive_errors -= 1
                raise SocketError("Scripted receive failure")
        try:
            return self._inbox.get(timeout=timeout)
        except queue.Empty:
            raise ProbeTimeout(f"No response within {timeout:g}s")

    def identify(self, result: ProbeSocketResult) -> Optional[int]:
        if len(result.data) != 8 or not result.data.startswith(_MAGIC):
            return None
        return struct.unpack('!4sI', result.data)[1]

    def close(self):
        with self._lock:
            timers, self._timers = self._timers, []
        for timer in timers:
            timer.cancel()
        self.closed = True
