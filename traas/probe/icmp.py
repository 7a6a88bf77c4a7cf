"""
ICMP Echo probe socket (raw sockets, Linux/macOS)
"""

import itertools
import os
import socket
from typing import Optional

from ..errors import SendError, SocketError
from ..models import ProbeSocketResult
from .base import BaseProbeSocket, read_datagram
from .packets import (
    ICMP_ECHO_REPLY, ICMP_ECHO_REQUEST,
    build_echo_request, parse_icmp_datagram, parse_quoted_packet
)

_instances = itertools.count()


def open_raw_icmp_socket() -> socket.socket:
    """Open a raw ICMP socket, translating permission failures"""
    try:
        return socket.socket(socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_ICMP)
    except PermissionError as e:
        raise SendError(
            "Root privileges required for raw ICMP sockets. Please run with sudo."
        ) from e
    except OSError as e:
        raise SendError(f"Cannot open raw ICMP socket: {e}") from e


class ICMPProbeSocket(BaseProbeSocket):
    """
    ICMP Echo Request probes over a single raw socket.

    The echo identifier is fixed per socket; the echo sequence number
    carries the probe identifier. Responses are matched by:
    - Echo Reply: identifier and sequence directly
    - Time Exceeded / Destination Unreachable: the quoted echo request
    """

    max_identifier = 0xFFFF

    def __init__(self, ident: Optional[int] = None):
        if ident is None:
            ident = (os.getpid() + next(_instances)) & 0xFFFF
        self.ident = ident
        self._sock: Optional[socket.socket] = open_raw_icmp_socket()

    def send(self, destination: str, ttl: int, identifier: int) -> None:
        """Send ICMP Echo Request with given TTL"""
        if self._sock is None:
            raise SendError("Probe socket is closed")

        packet = build_echo_request(self.ident, identifier)
        try:
            self._sock.setsockopt(socket.IPPROTO_IP, socket.IP_TTL, ttl)
            self._sock.sendto(packet, (destination, 0))
        except PermissionError as e:
            raise SendError(
                "Root privileges required. Please run with sudo."
            ) from e
        except OSError as e:
            raise SendError(f"Cannot send probe to {destination} (ttl {ttl}): {e}") from e

    def receive(self, timeout: float) -> ProbeSocketResult:
        if self._sock is None:
            raise SocketError("Probe socket is closed")
        return read_datagram(self._sock, timeout)

    def identify(self, result: ProbeSocketResult) -> Optional[int]:
        message = parse_icmp_datagram(result.data)
        if message is None:
            return None

        if message.type == ICMP_ECHO_REPLY:
            if message.ident == self.ident:
                return message.seq
            return None

        quoted = parse_quoted_packet(message)
        if quoted is None or quoted.protocol != socket.IPPROTO_ICMP:
            return None

        inner_type = quoted.transport[0]
        inner_ident = int.from_bytes(quoted.transport[4:6], 'big')
        inner_seq = int.from_bytes(quoted.transport[6:8], 'big')
        if inner_type == ICMP_ECHO_REQUEST and inner_ident == self.ident:
            return inner_seq
        return None

    def close(self):
        """Close the raw socket"""
        if self._sock is not None:
            self._sock.close()
            self._sock = None
