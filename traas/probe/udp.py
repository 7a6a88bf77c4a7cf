"""
UDP probe socket implementation
"""

import socket
import struct
import time
from typing import Optional

from ..errors import SendError, SocketError
from ..models import ProbeSocketResult
from .base import BaseProbeSocket, read_datagram
from .icmp import open_raw_icmp_socket
from .packets import parse_icmp_datagram, parse_quoted_packet

DEFAULT_BASE_PORT = 33434


class UDPProbeSocket(BaseProbeSocket):
    """
    UDP probe (Unix-style traceroute).

    Sends UDP datagrams to base_port + identifier with controlled TTL.
    Receives on a raw ICMP socket either:
    - ICMP Time Exceeded from intermediate routers
    - ICMP Port Unreachable from the destination (indicates arrival)

    The probe identifier is recovered from the destination port of the
    UDP header quoted inside the ICMP error.
    """

    def __init__(self, base_port: int = DEFAULT_BASE_PORT):
        self.base_port = base_port
        self.max_identifier = 0xFFFF - base_port
        self._destinations: set[str] = set()
        self._icmp_socket: Optional[socket.socket] = open_raw_icmp_socket()
        try:
            self._udp_socket: Optional[socket.socket] = socket.socket(
                socket.AF_INET, socket.SOCK_DGRAM
            )
            self._udp_socket.bind(('', 0))
        except OSError as e:
            self._icmp_socket.close()
            raise SendError(f"Cannot open UDP socket: {e}") from e
        self.source_port = self._udp_socket.getsockname()[1]

    def send(self, destination: str, ttl: int, identifier: int) -> None:
        """Send UDP probe with given TTL"""
        if self._udp_socket is None:
            raise SendError("Probe socket is closed")
        if not 0 < identifier <= self.max_identifier:
            raise SendError(f"Identifier {identifier} does not fit the UDP port range")

        dst_port = self.base_port + identifier
        payload = struct.pack('!HHI', identifier, ttl, int(time.time()) & 0xFFFFFFFF)
        self._destinations.add(destination)
        try:
            self._udp_socket.setsockopt(socket.IPPROTO_IP, socket.IP_TTL, ttl)
            self._udp_socket.sendto(payload, (destination, dst_port))
        except OSError as e:
            raise SendError(f"Cannot send probe to {destination} (ttl {ttl}): {e}") from e

    def receive(self, timeout: float) -> ProbeSocketResult:
        if self._icmp_socket is None:
            raise SocketError("Probe socket is closed")
        return read_datagram(self._icmp_socket, timeout)

    def identify(self, result: ProbeSocketResult) -> Optional[int]:
        message = parse_icmp_datagram(result.data)
        if message is None:
            return None

        quoted = parse_quoted_packet(message)
        if quoted is None or quoted.protocol != socket.IPPROTO_UDP:
            return None
        if quoted.destination not in self._destinations:
            return None

        src_port, dst_port = quoted.ports
        if src_port != self.source_port:
            return None

        identifier = dst_port - self.base_port
        if 0 < identifier <= self.max_identifier:
            return identifier
        return None

    def close(self):
        """Close sockets"""
        for name in ('_udp_socket', '_icmp_socket'):
            sock = getattr(self, name)
            if sock is not None:
                sock.close()
                setattr(self, name, None)
