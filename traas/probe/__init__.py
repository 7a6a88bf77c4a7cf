"""
Probe sockets for traas
"""

from .base import BaseProbeSocket
from .fake import FakeHop, FakeProbeSocket
from .icmp import ICMPProbeSocket
from .udp import UDPProbeSocket


def create_probe_socket(protocol: str = 'icmp', udp_base_port: int = 33434) -> BaseProbeSocket:
    """Create the probe socket for a protocol name"""
    protocol = protocol.lower()
    if protocol == 'icmp':
        return ICMPProbeSocket()
    if protocol == 'udp':
        return UDPProbeSocket(base_port=udp_base_port)
    raise ValueError(f"Unknown protocol '{protocol}'. Supported: icmp, udp")


__all__ = [
    'BaseProbeSocket', 'ICMPProbeSocket', 'UDPProbeSocket',
    'FakeHop', 'FakeProbeSocket', 'create_probe_socket'
]
