"""
JSON serialization of routes for the route display page
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..models import HopResult, RouteRun

# Body returned when a traceroute could not run at all. It is valid JSON
# but carries no Route, so consumers fall back to their error display.
ERROR_BODY = '"Error."'


def hop_to_dict(hop: HopResult) -> dict:
    """Serialize a single hop as {TTL, IP, Latency(ns)}"""
    return {
        "TTL": hop.ttl,
        "IP": hop.address or "",
        "Latency": hop.latency_ns or 0,
    }


def route_to_dict(run: RouteRun) -> dict:
    """Serialize a route in the shape the display page consumes"""
    return {
        "To": run.destination,
        "Route": [hop_to_dict(hop) for hop in run.hops],
        "Reached": run.reached_destination,
    }


class JsonExporter:
    """
    Export routes to JSON.

    The document keeps the {To, Route} contract of the display page;
    trace logs append one document per line.
    """

    def __init__(self, indent: Optional[int] = 2):
        self.indent = indent

    def dumps(self, run: RouteRun) -> str:
        return json.dumps(route_to_dict(run), indent=self.indent)

    def export(self, run: RouteRun, output_path: Optional[Path] = None) -> dict:
        """
        Export a route to JSON.

        Args:
            run: Finished route
            output_path: Optional file path to write

        Returns:
            JSON-serializable dict
        """
        data = route_to_dict(run)
        if output_path:
            self._write_file(json.dumps(data, indent=self.indent), output_path)
        return data

    def export_error(self, output_path: Path):
        """Write the error-shaped body used when no trace could run"""
        self._write_file(ERROR_BODY, output_path)

    def append_trace_log(self, run: RouteRun, log_path: Path):
        """Append a completed run to a JSON-lines trace log"""
        record = route_to_dict(run)
        record["Target"] = run.target
        record["TimedOut"] = run.timed_out
        record["Started"] = run.started_at.isoformat()
        record["Logged"] = datetime.now().isoformat()

        path = Path(log_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'a', encoding='utf-8') as f:
            f.write(json.dumps(record) + "\n")

    def _write_file(self, content: str, path: Path):
        """Write JSON to file"""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)
