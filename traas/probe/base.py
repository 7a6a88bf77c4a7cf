"""
Abstract base class for probe sockets
"""

import select
import socket
import time
from abc import ABC, abstractmethod
from typing import Optional

from ..errors import ProbeTimeout, SocketError
from ..models import ProbeSocketResult

RECV_BUFFER = 2048


class BaseProbeSocket(ABC):
    """
    Socket that emits TTL-limited probes and reads their responses.

    send() is called from the event loop thread, receive() from a single
    reader thread, so implementations must tolerate one concurrent sender
    and one concurrent receiver.
    """

    # Largest probe identifier the wire format can carry
    max_identifier: int = 0xFFFF

    @abstractmethod
    def send(self, destination: str, ttl: int, identifier: int) -> None:
        """
        Emit one probe.

        Args:
            destination: Destination IPv4 address (already resolved)
            ttl: Time-to-live for this probe
            identifier: Probe identifier to embed in the packet

        Raises:
            SendError: the probe could not be sent
        """

    @abstractmethod
    def receive(self, timeout: float) -> ProbeSocketResult:
        """
        Block until a datagram arrives or timeout elapses.

        Raises:
            ProbeTimeout: nothing arrived in time
            SocketError: the read failed
        """

    @abstractmethod
    def identify(self, result: ProbeSocketResult) -> Optional[int]:
        """Return the probe identifier embedded in a response, if it is ours"""

    @abstractmethod
    def close(self):
        """Clean up resources"""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def read_datagram(sock: socket.socket, timeout: float) -> ProbeSocketResult:
    """Wait on a raw socket with select() and read a single datagram."""
    try:
        readable, _, _ = select.select([sock], [], [], max(timeout, 0.0))
        if not readable:
            raise ProbeTimeout(f"No response within {timeout:g}s")
        data, addr = sock.recvfrom(RECV_BUFFER)
    except (OSError, ValueError) as e:
        raise SocketError(f"Receive failed: {e}") from e

    return ProbeSocketResult(
        data=data,
        source=addr[0],
        received_ns=time.perf_counter_ns()
    )
