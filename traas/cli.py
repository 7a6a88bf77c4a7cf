import asyncio
import os
import sys
from pathlib import Path
from typing import Optional

import click

from . import __version__
from .config import PROTOCOLS, load_settings
from .display import DisplayError, Loading, fetch_route, parse_route_body
from .errors import ResolveError, SendError
from .log import setup_logging, verbosity_to_level
from .output import ConsoleOutput, JsonExporter
from .tracer import Tracer


def is_admin() -> bool:
    """Check if running as root (raw sockets need it)"""
    return os.geteuid() == 0


def _fail(output: ConsoleOutput, message: str, json_path: Optional[str] = None):
    """Report a run that could not happen at all, then exit"""
    output.print_error(message)
    if json_path:
        JsonExporter().export_error(Path(json_path))
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
def main():
    """
    traas - traceroute as a service.

    Discover the route to a host with concurrent TTL-limited probes,
    or display a route served by a traas endpoint.
    """


@main.command()
@click.argument('target')
@click.option('-p', '--protocol', default=None,
              type=click.Choice(PROTOCOLS, case_sensitive=False),
              help='Probe protocol (default: icmp)')
@click.option('-m', '--max-hops', type=int, default=None,
              help='Maximum hops (default: 30)')
@click.option('-c', '--concurrency', type=int, default=None,
              help='TTLs probed in parallel (default: 4)')
@click.option('-w', '--timeout', 'per_probe_timeout', type=float, default=None,
              help='Timeout per probe in seconds (default: 2)')
@click.option('-r', '--retries', 'max_retries', type=int, default=None,
              help='Retries per hop after the first probe (default: 2)')
@click.option('-t', '--run-timeout', 'overall_timeout', type=float, default=None,
              help='Deadline for the whole trace in seconds (default: 30)')
@click.option('--port', 'udp_base_port', type=int, default=None,
              help='Base destination port for UDP probes (default: 33434)')
@click.option('--json', 'json_path', type=click.Path(),
              help='Export the route to a JSON file')
@click.option('--trace-log', type=click.Path(),
              help='Append the completed route to a JSON-lines log')
@click.option('-v', '--verbose', count=True,
              help='Log progress (-v) or every probe (-vv)')
def trace(target: str, protocol: Optional[str], max_hops: Optional[int],
          concurrency: Optional[int], per_probe_timeout: Optional[float],
          max_retries: Optional[int], overall_timeout: Optional[float],
          udp_base_port: Optional[int], json_path: Optional[str],
          trace_log: Optional[str], verbose: int):
    """
    Trace the route to TARGET (IP address or hostname).

    Examples:

        traas trace 9.9.9.9

        traas trace example.com -p udp -c 8 --json route.json
    """
    setup_logging(verbosity_to_level(verbose))
    output = ConsoleOutput()

    try:
        settings = load_settings(
            protocol=protocol.lower() if protocol else None,
            max_hops=max_hops,
            concurrency=concurrency,
            per_probe_timeout=per_probe_timeout,
            max_retries=max_retries,
            overall_timeout=overall_timeout,
            udp_base_port=udp_base_port,
            trace_log=trace_log
        )
    except ValueError as e:
        _fail(output, str(e), json_path)

    if not is_admin():
        _fail(output, "Root privileges required. Please run with sudo.", json_path)

    tracer = Tracer(target, settings=settings)
    try:
        resolved_ip = tracer.resolve_target()
    except ResolveError as e:
        _fail(output, str(e), json_path)

    output.print_header(
        target=target,
        resolved_ip=resolved_ip,
        protocol=settings.protocol,
        max_hops=settings.max_hops,
        concurrency=settings.concurrency,
        retries=settings.max_retries
    )

    try:
        run = asyncio.run(tracer.trace())
    except (SendError, ValueError) as e:
        _fail(output, str(e), json_path)
    except KeyboardInterrupt:
        output.console.print("\n[yellow]Interrupted[/]")
        sys.exit(130)

    output.print_route(run)
    output.print_summary(run)

    exporter = JsonExporter()
    if json_path:
        json_file = Path(json_path)
        exporter.export(run, json_file)
        output.console.print(f"\n[dim]Results exported to:[/] {json_file.absolute()}")

    if settings.trace_log:
        try:
            exporter.append_trace_log(run, Path(settings.trace_log))
        except OSError as e:
            output.print_warning(f"Could not write trace log: {e}")


@main.command()
@click.argument('source')
@click.option('--timeout', default=60.0, type=float,
              help='HTTP timeout in seconds when SOURCE is a URL (default: 60)')
def show(source: str, timeout: float):
    """
    Display a route served by a traas endpoint.

    SOURCE is an http(s) URL (for example http://host:8080/start) or a
    file holding a saved route body.
    """
    output = ConsoleOutput()

    if source.startswith(('http://', 'https://')):
        output.print_display(Loading(source))
        state = asyncio.run(fetch_route(source, timeout=timeout))
    else:
        try:
            body = Path(source).read_text(encoding='utf-8')
        except OSError as e:
            _fail(output, f"Cannot read {source}: {e}")
        state = parse_route_body(body)

    output.print_display(state)
    if isinstance(state, DisplayError):
        sys.exit(1)


if __name__ == '__main__':
    main()
