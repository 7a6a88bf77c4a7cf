"""
Error taxonomy for traas

Only socket-level failures that prevent further sending are fatal to a run.
Everything else is absorbed into hop status or a partial route.
"""


class TraceError(Exception):
    """Base class for traceroute engine errors"""


class SendError(TraceError):
    """A probe could not be emitted (socket, permission or network failure)"""


class SocketError(TraceError):
    """Transient failure while reading from the probe socket"""


class ProbeTimeout(TraceError):
    """No datagram arrived within the receive timeout"""


class RunTimeout(TraceError):
    """The overall run deadline elapsed before termination"""

    def __init__(self, timeout: float):
        super().__init__(f"Traceroute did not finish within {timeout:g}s")
        self.timeout = timeout


class ResolveError(TraceError, ValueError):
    """Destination host name could not be resolved"""
