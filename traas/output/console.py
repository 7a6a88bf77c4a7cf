"""
Rich console output for traas
"""

from typing import Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..display import DisplayState, describe
from ..models import HopResult, HopStatus, RouteRun

STATUS_STYLES = {
    HopStatus.RESPONDED: ('ok', 'green'),
    HopStatus.TIMED_OUT: ('timeout', 'yellow'),
    HopStatus.UNREACHABLE: ('*', 'dim'),
    HopStatus.PENDING: ('...', 'dim'),
}


class ConsoleOutput:
    """
    Rich console output for traceroute results.

    Features:
    - Header panel with run parameters
    - Route table ordered by TTL
    - Display states fetched from a remote endpoint
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def print_header(self, target: str, resolved_ip: str, protocol: str,
                     max_hops: int, concurrency: int, retries: int):
        """Print trace header"""
        content = Text()
        content.append("traas", style="bold cyan")
        content.append(" traceroute\n", style="dim")
        content.append("Target: ", style="dim")
        content.append(target, style="bold")
        if target != resolved_ip:
            content.append(f" ({resolved_ip})", style="dim")
        content.append("\n")
        content.append(f"Protocol: {protocol.upper()}", style="dim")
        content.append(f"  |  {max_hops} hops max, {concurrency} in flight, "
                       f"{retries} retries", style="dim")

        self.console.print(Panel(content, border_style="cyan", padding=(0, 1)))

    def print_route(self, run: RouteRun):
        """Print the assembled route as a table"""
        table = Table(
            show_header=True,
            header_style="bold magenta",
            box=box.ROUNDED,
            border_style="dim",
            padding=(0, 1)
        )
        table.add_column("#", style="dim", width=3, justify="right")
        table.add_column("IP", width=16)
        table.add_column("RTT (ms)", width=10, justify="right")
        table.add_column("Status", width=8)

        for hop in run.hops:
            label, style = STATUS_STYLES[hop.status]
            if hop.address and hop.address == run.destination:
                label = 'dest'
            table.add_row(
                str(hop.ttl),
                hop.address or "*",
                self._format_latency(hop),
                Text(label, style=style)
            )

        header = Text()
        header.append("Route to ", style="dim")
        header.append(run.target, style="bold")
        self.console.print(Panel(table, title=header, border_style="blue", padding=(0, 0)))

    def print_summary(self, run: RouteRun):
        """Print reachability summary"""
        content = Text()
        if run.reached_destination:
            content.append("Destination reached: ", style="bold green")
            content.append(f"{run.total_hops} hops", style="dim")
            if run.final_latency_ms is not None:
                content.append(f", {run.final_latency_ms:.2f}ms", style="dim")
        elif run.timed_out:
            content.append("Timed out: ", style="bold yellow")
            content.append(f"partial route with {run.total_hops} hops", style="dim")
        else:
            content.append("Destination not reached", style="bold red")
            content.append(f" within {run.total_hops} hops", style="dim")

        silent = run.total_hops - run.responding_hops
        if silent:
            content.append(f"\n{silent} hop(s) did not respond", style="dim")

        self.console.print(content)

    def print_display(self, state: DisplayState):
        """Print a display state fetched from an endpoint"""
        view = describe(state)
        if view.color:
            self.console.print(Text(view.title, style=f"bold {view.color}"))
            if view.raw:
                self.console.print(Text(view.raw), markup=False)
            return

        self.console.print(Text(view.title, style="bold"))
        for item in view.items:
            self.console.print(f"  {escape(item)}")

    def print_error(self, message: str):
        """Print error message"""
        self.console.print(f"[bold red]Error:[/] {escape(message)}")

    def print_warning(self, message: str):
        """Print warning message"""
        self.console.print(f"[yellow]Warning:[/] {escape(message)}")

    def _format_latency(self, hop: HopResult) -> str:
        if hop.latency_ms is None:
            return "*"
        return f"{hop.latency_ms:.2f}"
