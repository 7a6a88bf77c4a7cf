"""
Traceroute orchestrator
"""

import asyncio
import ipaddress
import logging
from typing import Callable, Optional

import dns.exception
import dns.resolver

from .config import TraceSettings, load_settings
from .engine import RouteAssembler
from .errors import ResolveError
from .models import HopResult, RouteRun
from .probe import BaseProbeSocket, create_probe_socket

logger = logging.getLogger(__name__)


def resolve_destination(target: str, timeout: float = 3.0) -> str:
    """
    Resolve a target to an IPv4 address.

    IP literals are returned unchanged; names are looked up as A records
    with a bounded resolver lifetime.
    """
    try:
        ip = ipaddress.ip_address(target)
    except ValueError:
        pass
    else:
        if ip.version != 4:
            raise ResolveError(f"Only IPv4 destinations are supported, got {target}")
        return str(ip)

    try:
        resolver = dns.resolver.Resolver()
        resolver.timeout = timeout
        resolver.lifetime = timeout
        answers = resolver.resolve(target, 'A')
    except dns.exception.DNSException as e:
        raise ResolveError(f"Cannot resolve hostname '{target}': {e}") from e

    for rdata in answers:
        return rdata.address
    raise ResolveError(f"Cannot resolve hostname '{target}': no A record")


class Tracer:
    """
    Traceroute orchestrator.

    Resolves the target, opens the probe socket for the configured
    protocol and runs the engine once.
    """

    def __init__(
        self,
        target: str,
        settings: Optional[TraceSettings] = None,
        probe_socket: Optional[BaseProbeSocket] = None
    ):
        self.target = target
        self.settings = (settings or TraceSettings()).validate()
        self.probe_socket = probe_socket
        self.target_ip: Optional[str] = None

    def resolve_target(self) -> str:
        """Resolve target hostname to IP"""
        self.target_ip = resolve_destination(self.target, self.settings.dns_timeout)
        return self.target_ip

    def _create_socket(self) -> BaseProbeSocket:
        return create_probe_socket(self.settings.protocol, self.settings.udp_base_port)

    async def trace(
        self,
        on_hop: Optional[Callable[[HopResult], None]] = None
    ) -> RouteRun:
        """
        Execute traceroute.

        Args:
            on_hop: Optional callback invoked as each hop becomes final

        Returns:
            RouteRun ordered by TTL
        """
        if not self.target_ip:
            self.resolve_target()

        s = self.settings
        owned = self.probe_socket is None
        probe_socket = self._create_socket() if owned else self.probe_socket
        try:
            assembler = RouteAssembler(
                probe_socket,
                self.target_ip,
                target=self.target,
                max_hops=s.max_hops,
                concurrency=s.concurrency,
                per_probe_timeout=s.per_probe_timeout,
                max_retries=s.max_retries,
                overall_timeout=s.overall_timeout,
                poll_interval=s.poll_interval,
                on_hop=on_hop
            )
            return await assembler.run()
        finally:
            if owned:
                probe_socket.close()


async def trace_route(
    destination: str,
    max_hops: Optional[int] = None,
    concurrency: Optional[int] = None,
    per_probe_timeout: Optional[float] = None,
    max_retries: Optional[int] = None,
    overall_timeout: Optional[float] = None,
    protocol: Optional[str] = None,
    probe_socket: Optional[BaseProbeSocket] = None,
    on_hop: Optional[Callable[[HopResult], None]] = None
) -> RouteRun:
    """Run a traceroute from async code. Unset parameters come from TraceSettings."""
    settings = load_settings(
        max_hops=max_hops,
        concurrency=concurrency,
        per_probe_timeout=per_probe_timeout,
        max_retries=max_retries,
        overall_timeout=overall_timeout,
        protocol=protocol
    )
    tracer = Tracer(destination, settings=settings, probe_socket=probe_socket)
    return await tracer.trace(on_hop=on_hop)


def run_traceroute(
    destination: str,
    max_hops: Optional[int] = None,
    concurrency: Optional[int] = None,
    per_probe_timeout: Optional[float] = None,
    max_retries: Optional[int] = None,
    overall_timeout: Optional[float] = None,
    **kwargs
) -> RouteRun:
    """Blocking wrapper around trace_route()"""
    return asyncio.run(trace_route(
        destination,
        max_hops=max_hops,
        concurrency=concurrency,
        per_probe_timeout=per_probe_timeout,
        max_retries=max_retries,
        overall_timeout=overall_timeout,
        **kwargs
    ))
