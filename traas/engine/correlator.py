"""
Match inbound responses to outstanding probes
"""

import logging
from typing import Callable, Optional

from ..models import HopResult, ProbeSocketResult
from ..probe.base import BaseProbeSocket
from .tracker import HopTracker

logger = logging.getLogger(__name__)


class ResponseCorrelator:
    """
    Route responses read from a probe socket into a HopTracker.

    Responses that are not ours, cannot be parsed, or answer a probe whose
    TTL is already final are discarded and counted.
    """

    def __init__(self, tracker: HopTracker, probe_socket: BaseProbeSocket,
                 on_resolved: Optional[Callable[[HopResult], None]] = None):
        self.tracker = tracker
        self.probe_socket = probe_socket
        self.on_resolved = on_resolved
        self.matched = 0
        self.unparsed = 0
        self.unknown = 0
        self.duplicates = 0

    @property
    def discarded(self) -> int:
        return self.unparsed + self.unknown + self.duplicates

    def handle(self, result: ProbeSocketResult) -> Optional[HopResult]:
        """
        Correlate one response.

        Returns:
            The newly resolved HopResult, or None if the response was discarded
        """
        identifier = self.probe_socket.identify(result)
        if identifier is None:
            self.unparsed += 1
            logger.debug("Ignoring unrelated datagram from %s (%d bytes)",
                         result.source, len(result.data))
            return None

        probe = self.tracker.lookup(identifier)
        if probe is None:
            self.unknown += 1
            logger.debug("Ignoring response from %s for unknown probe %d",
                         result.source, identifier)
            return None

        hop = self.tracker.resolve(identifier, result.source, result.received_ns - probe.sent_ns)
        if hop is None:
            self.duplicates += 1
            return None

        self.matched += 1
        logger.debug("ttl %d answered by %s in %.2fms (probe %d, attempt %d)",
                     hop.ttl, hop.address, hop.latency_ms, identifier, probe.attempt)
        if self.on_resolved:
            self.on_resolved(hop)
        return hop
