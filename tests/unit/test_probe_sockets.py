import socket
import struct

import pytest

from traas.errors import ProbeTimeout, SendError, SocketError
from traas.models import ProbeSocketResult
from traas.probe import FakeHop, FakeProbeSocket, create_probe_socket
from traas.probe import icmp as icmp_module
from traas.probe import udp as udp_module
from traas.probe.fake import encode_reply
from traas.probe.icmp import ICMPProbeSocket
from traas.probe.packets import (
    ICMP_DEST_UNREACHABLE, ICMP_ECHO_REPLY, ICMP_TIME_EXCEEDED,
    build_echo_request, checksum, parse_icmp_datagram, parse_quoted_packet
)
from traas.probe.udp import UDPProbeSocket

from conftest import DummyRawSocket, icmp_message, ipv4_packet

LOCAL = "192.168.1.10"
ROUTER = "10.0.0.1"
DEST = "9.9.9.9"


def result(data: bytes, source: str = ROUTER) -> ProbeSocketResult:
    return ProbeSocketResult(data=data, source=source, received_ns=0)


def test_echo_request_checksum_verifies():
    packet = build_echo_request(0x1234, 7, payload=b'abcdefgh')
    assert packet[0] == 8
    assert struct.unpack('!HH', packet[4:8]) == (0x1234, 7)
    assert checksum(packet) == 0


def test_parse_icmp_datagram_rejects_short_or_non_ipv4():
    assert parse_icmp_datagram(b'') is None
    assert parse_icmp_datagram(b'\x60' + b'\x00' * 40) is None
    assert parse_icmp_datagram(ipv4_packet(ROUTER, LOCAL, 1, b'\x0b\x00')) is None


def test_parse_quoted_packet_reads_inner_header():
    inner = ipv4_packet(LOCAL, DEST, socket.IPPROTO_UDP, struct.pack('!HHHH', 40000, 33441, 16, 0))
    data = ipv4_packet(ROUTER, LOCAL, 1, icmp_message(ICMP_TIME_EXCEEDED, 0, b'\x00' * 4, inner))

    message = parse_icmp_datagram(data)
    quoted = parse_quoted_packet(message)

    assert message.type == ICMP_TIME_EXCEEDED
    assert quoted.protocol == socket.IPPROTO_UDP
    assert quoted.destination == DEST
    assert quoted.ports == (40000, 33441)


@pytest.fixture
def icmp_socket(monkeypatch):
    raw = DummyRawSocket()
    monkeypatch.setattr(icmp_module, "open_raw_icmp_socket", lambda: raw)
    sock = ICMPProbeSocket(ident=0x1234)
    yield sock, raw
    sock.close()


def test_icmp_send_sets_ttl_and_sequence(icmp_socket):
    sock, raw = icmp_socket
    sock.send(DEST, 7, 42)

    assert raw.options == [(socket.IPPROTO_IP, socket.IP_TTL, 7)]
    packet, addr = raw.sent[0]
    assert addr == (DEST, 0)
    assert struct.unpack('!HH', packet[4:8]) == (0x1234, 42)


@pytest.mark.parametrize("exc", [PermissionError("denied"), OSError("network unreachable")])
def test_icmp_send_failures_raise_send_error(monkeypatch, exc):
    monkeypatch.setattr(icmp_module, "open_raw_icmp_socket", lambda: DummyRawSocket(send_exc=exc))
    sock = ICMPProbeSocket(ident=1)
    with pytest.raises(SendError):
        sock.send(DEST, 1, 1)


def test_icmp_identify_echo_reply_and_time_exceeded(icmp_socket):
    sock, _ = icmp_socket

    reply = ipv4_packet(DEST, LOCAL, 1, icmp_message(ICMP_ECHO_REPLY, 0, struct.pack('!HH', 0x1234, 5), b''))
    assert sock.identify(result(reply, DEST)) == 5

    foreign = ipv4_packet(DEST, LOCAL, 1, icmp_message(ICMP_ECHO_REPLY, 0, struct.pack('!HH', 0x9999, 5), b''))
    assert sock.identify(result(foreign, DEST)) is None

    quoted = ipv4_packet(LOCAL, DEST, 1, build_echo_request(0x1234, 9, payload=b''))
    exceeded = ipv4_packet(ROUTER, LOCAL, 1, icmp_message(ICMP_TIME_EXCEEDED, 0, b'\x00' * 4, quoted))
    assert sock.identify(result(exceeded)) == 9

    unreachable = ipv4_packet(ROUTER, LOCAL, 1, icmp_message(ICMP_DEST_UNREACHABLE, 1, b'\x00' * 4, quoted))
    assert sock.identify(result(unreachable)) == 9


def test_icmp_identify_ignores_garbage(icmp_socket):
    sock, _ = icmp_socket
    assert sock.identify(result(b'not a packet')) is None
    truncated = ipv4_packet(ROUTER, LOCAL, 1, icmp_message(ICMP_TIME_EXCEEDED, 0, b'\x00' * 4, b'\x45\x00'))
    assert sock.identify(result(truncated)) is None


def test_icmp_receive_after_close_is_socket_error(icmp_socket):
    sock, raw = icmp_socket
    sock.close()
    assert raw.closed
    with pytest.raises(SocketError):
        sock.receive(0.01)


def test_udp_identify_uses_quoted_destination_port(monkeypatch):
    monkeypatch.setattr(udp_module, "open_raw_icmp_socket", lambda: DummyRawSocket())
    sock = UDPProbeSocket(base_port=33434)
    try:
        sock._destinations.add(DEST)
        udp_header = struct.pack('!HHHH', sock.source_port, 33434 + 7, 16, 0)
        quoted = ipv4_packet(LOCAL, DEST, socket.IPPROTO_UDP, udp_header)
        exceeded = ipv4_packet(ROUTER, LOCAL, 1, icmp_message(ICMP_TIME_EXCEEDED, 0, b'\x00' * 4, quoted))
        assert sock.identify(result(exceeded)) == 7

        other_port = struct.pack('!HHHH', (sock.source_port + 1) & 0xFFFF, 33434 + 7, 16, 0)
        quoted = ipv4_packet(LOCAL, DEST, socket.IPPROTO_UDP, other_port)
        exceeded = ipv4_packet(ROUTER, LOCAL, 1, icmp_message(ICMP_TIME_EXCEEDED, 0, b'\x00' * 4, quoted))
        assert sock.identify(result(exceeded)) is None

        assert sock.max_identifier == 0xFFFF - 33434
        with pytest.raises(SendError):
            sock.send(DEST, 1, sock.max_identifier + 1)
    finally:
        sock.close()


def test_udp_send_sets_ttl_and_destination_port(monkeypatch):
    monkeypatch.setattr(udp_module, "open_raw_icmp_socket", lambda: DummyRawSocket())
    sock = UDPProbeSocket(base_port=33434)
    sock._udp_socket.close()
    sent = sock._udp_socket = DummyRawSocket()
    try:
        sock.send(DEST, 6, 11)

        assert sent.options == [(socket.IPPROTO_IP, socket.IP_TTL, 6)]
        payload, addr = sent.sent[0]
        assert addr == (DEST, 33434 + 11)
        assert struct.unpack('!HH', payload[:4]) == (11, 6)
    finally:
        sock.close()


def test_udp_identify_port_unreachable_from_destination(monkeypatch):
    monkeypatch.setattr(udp_module, "open_raw_icmp_socket", lambda: DummyRawSocket())
    sock = UDPProbeSocket(base_port=33434)
    sock._udp_socket.close()
    sock._udp_socket = DummyRawSocket()
    try:
        sock.send(DEST, 9, 23)
        udp_header = struct.pack('!HHHH', sock.source_port, 33434 + 23, 16, 0)
        quoted = ipv4_packet(LOCAL, DEST, socket.IPPROTO_UDP, udp_header)
        unreachable = ipv4_packet(DEST, LOCAL, 1, icmp_message(ICMP_DEST_UNREACHABLE, 3, b'\x00' * 4, quoted))

        assert sock.identify(result(unreachable, DEST)) == 23

        elsewhere = ipv4_packet(LOCAL, "203.0.113.9", socket.IPPROTO_UDP, udp_header)
        stray = ipv4_packet(DEST, LOCAL, 1, icmp_message(ICMP_DEST_UNREACHABLE, 3, b'\x00' * 4, elsewhere))
        assert sock.identify(result(stray, DEST)) is None
    finally:
        sock.close()


def test_create_probe_socket_rejects_unknown_protocol():
    with pytest.raises(ValueError):
        create_probe_socket('tcp')


def test_fake_socket_answers_and_times_out():
    sock = FakeProbeSocket(
        {1: ROUTER, 2: FakeHop("10.0.0.2", silent_attempts=1), 3: DEST},
        destination=DEST
    )

    sock.send(DEST, 1, 11)
    reply = sock.receive(0.1)
    assert reply.source == ROUTER
    assert sock.identify(reply) == 11

    sock.send(DEST, 2, 12)
    with pytest.raises(ProbeTimeout):
        sock.receive(0.01)

    # beyond the destination TTL the destination itself answers
    sock.send(DEST, 5, 13)
    assert sock.receive(0.1).source == DEST
    assert sock.sent_ttls == [1, 2, 5]
    assert sock.identify(result(b'junk')) is None
    assert sock.identify(result(encode_reply(99))) == 99
