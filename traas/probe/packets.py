"""
ICMP/IPv4 wire helpers shared by the raw-socket probes
"""

import socket
import struct
import time
from dataclasses import dataclass
from typing import Optional

ICMP_ECHO_REPLY = 0
ICMP_DEST_UNREACHABLE = 3
ICMP_ECHO_REQUEST = 8
ICMP_TIME_EXCEEDED = 11

ICMP_HEADER_LEN = 8
IPV4_MIN_HEADER_LEN = 20


def checksum(data: bytes) -> int:
    """Calculate Internet checksum (RFC 1071)"""
    if len(data) % 2:
        data += b'\x00'

    s = 0
    for i in range(0, len(data), 2):
        w = (data[i] << 8) + data[i + 1]
        s += w

    s = (s >> 16) + (s & 0xFFFF)
    s += s >> 16
    return ~s & 0xFFFF


def build_echo_request(ident: int, seq: int, payload: Optional[bytes] = None) -> bytes:
    """
    Build an ICMP Echo Request.

    Args:
        ident: Echo identifier (fixed per socket)
        seq: Echo sequence number (carries the probe identifier)
        payload: Optional payload, defaults to a send timestamp

    Returns:
        Packet bytes with a valid checksum
    """
    if payload is None:
        payload = struct.pack('!d', time.time())

    header = struct.pack('!BBHHH', ICMP_ECHO_REQUEST, 0, 0, ident & 0xFFFF, seq & 0xFFFF)
    cs = checksum(header + payload)
    header = struct.pack('!BBHHH', ICMP_ECHO_REQUEST, 0, cs, ident & 0xFFFF, seq & 0xFFFF)
    return header + payload


@dataclass(frozen=True)
class IcmpMessage:
    """ICMP message stripped of its IPv4 header"""
    type: int
    code: int
    rest: bytes
    body: bytes

    @property
    def ident(self) -> int:
        return struct.unpack('!H', self.rest[0:2])[0]

    @property
    def seq(self) -> int:
        return struct.unpack('!H', self.rest[2:4])[0]

    @property
    def is_error(self) -> bool:
        return self.type in (ICMP_TIME_EXCEEDED, ICMP_DEST_UNREACHABLE)


@dataclass(frozen=True)
class QuotedPacket:
    """Original datagram quoted inside an ICMP error"""
    protocol: int
    source: str
    destination: str
    transport: bytes

    @property
    def ports(self) -> Optional[tuple[int, int]]:
        """(source, destination) ports for UDP/TCP quotes"""
        if len(self.transport) < 4:
            return None
        return struct.unpack('!HH', self.transport[0:4])


def _ip_header_length(data: bytes) -> Optional[int]:
    if len(data) < IPV4_MIN_HEADER_LEN or data[0] >> 4 != 4:
        return None
    length = (data[0] & 0x0F) * 4
    if length < IPV4_MIN_HEADER_LEN or len(data) < length:
        return None
    return length


def parse_icmp_datagram(data: bytes) -> Optional[IcmpMessage]:
    """Parse a datagram read from a raw ICMP socket (IPv4 header included)."""
    ip_header_len = _ip_header_length(data)
    if ip_header_len is None:
        return None

    icmp_data = data[ip_header_len:]
    if len(icmp_data) < ICMP_HEADER_LEN:
        return None

    return IcmpMessage(
        type=icmp_data[0],
        code=icmp_data[1],
        rest=icmp_data[4:8],
        body=icmp_data[ICMP_HEADER_LEN:]
    )


def parse_quoted_packet(message: IcmpMessage) -> Optional[QuotedPacket]:
    """Extract the quoted IPv4 header and first transport bytes of an ICMP error."""
    if not message.is_error:
        return None

    inner = message.body
    inner_header_len = _ip_header_length(inner)
    if inner_header_len is None:
        return None

    transport = inner[inner_header_len:inner_header_len + 8]
    if len(transport) < 8:
        return None

    return QuotedPacket(
        protocol=inner[9],
        source=socket.inet_ntoa(inner[12:16]),
        destination=socket.inet_ntoa(inner[16:20]),
        transport=transport
    )
