import socket
import struct

import pytest


def ipv4_packet(src: str, dst: str, protocol: int, payload: bytes) -> bytes:
    """Minimal IPv4 header (no options) followed by payload"""
    header = struct.pack(
        '!BBHHHBBH4s4s',
        0x45, 0, 20 + len(payload), 0, 0, 64, protocol, 0,
        socket.inet_aton(src), socket.inet_aton(dst)
    )
    return header + payload


def icmp_message(icmp_type: int, code: int, rest: bytes, body: bytes) -> bytes:
    return struct.pack('!BBH', icmp_type, code, 0) + rest + body


class DummyRawSocket:
    """Stands in for a raw socket object in codec-level tests"""

    def __init__(self, send_exc=None):
        self.send_exc = send_exc
        self.options = []
        self.sent = []
        self.closed = False

    def setsockopt(self, level, option, value):
        self.options.append((level, option, value))

    def sendto(self, data, addr):
        if self.send_exc is not None:
            raise self.send_exc
        self.sent.append((data, addr))
        return len(data)

    def close(self):
        self.closed = True


@pytest.fixture
def fast_params():
    """Engine timings small enough for unit tests"""
    return {
        "max_hops": 5,
        "concurrency": 2,
        "per_probe_timeout": 0.05,
        "max_retries": 1,
        "overall_timeout": 5.0,
        "poll_interval": 0.01,
    }
