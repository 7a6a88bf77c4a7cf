"""
Route display client

Fetches a route body from a traas endpoint, validates its shape and
turns it into a display state. Rendering is a pure function of that
state, so the same logic serves the terminal and tests. Latencies are
nanoseconds; fractional values are rounded, non-finite ones rejected.
"""

import json
import math
from dataclasses import dataclass
from typing import Optional, Union

import httpx

ERROR_COLOR = "#ff0000"

PARSE_ERROR = "Could not parse response"
SHAPE_ERROR = "Response does not contain a route"
ENTRY_ERROR = "Response contains a malformed hop"
FETCH_ERROR = "Could not fetch route"


@dataclass(frozen=True)
class RouteEntry:
    """One hop as received from the endpoint"""
    ttl: int
    ip: str
    latency_ns: int

    @property
    def latency_ms(self) -> float:
        return self.latency_ns / 1_000_000

    @property
    def label(self) -> str:
        return f"{self.ttl} - {self.ip} - {self.latency_ms:.2f}ms"


@dataclass(frozen=True)
class Loading:
    """Request in flight"""
    source: str = ""


@dataclass(frozen=True)
class Rendered:
    """Route received and validated"""
    destination: str
    entries: tuple[RouteEntry, ...]


@dataclass(frozen=True)
class DisplayError:
    """Request failed or the body could not be understood"""
    message: str
    body: str = ""
    color: str = ERROR_COLOR


DisplayState = Union[Loading, Rendered, DisplayError]


@dataclass(frozen=True)
class DisplayView:
    """What to show for a state: a title, list items, and a colour"""
    title: str
    items: tuple[str, ...] = ()
    color: Optional[str] = None
    raw: str = ""


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_entry(item) -> Optional[RouteEntry]:
    if not isinstance(item, dict):
        return None
    ttl = item.get("TTL")
    ip = item.get("IP")
    latency = item.get("Latency")
    if not _is_int(ttl) or not isinstance(ip, str):
        return None
    if isinstance(latency, float) and math.isfinite(latency):
        latency = round(latency)
    if not _is_int(latency):
        return None
    return RouteEntry(ttl=ttl, ip=ip, latency_ns=latency)


def parse_route_body(body: str) -> DisplayState:
    """
    Validate a response body.

    Returns:
        Rendered for a well-formed {To, Route} document, otherwise a
        DisplayError naming what was wrong, with the raw body attached
    """
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return DisplayError(PARSE_ERROR, body=body)

    if not isinstance(data, dict) or not isinstance(data.get("Route"), list):
        return DisplayError(SHAPE_ERROR, body=body)

    entries = []
    for item in data["Route"]:
        entry = _parse_entry(item)
        if entry is None:
            return DisplayError(ENTRY_ERROR, body=body)
        entries.append(entry)

    destination = data.get("To")
    return Rendered(
        destination=destination if isinstance(destination, str) else "",
        entries=tuple(entries)
    )


def describe(state: DisplayState) -> DisplayView:
    """Map a display state to what should be shown"""
    if isinstance(state, Loading):
        return DisplayView(title="Tracing route...")
    if isinstance(state, Rendered):
        title = f"Route to {state.destination}" if state.destination else "Route"
        return DisplayView(title=title, items=tuple(e.label for e in state.entries))
    return DisplayView(title=state.message, color=state.color, raw=state.body)


async def fetch_route(url: str, client: Optional[httpx.AsyncClient] = None,
                      timeout: float = 60.0) -> DisplayState:
    """
    Request a route from an endpoint and parse it.

    Transport failures and non-2xx statuses become a DisplayError.
    """
    owned = client is None
    if owned:
        client = httpx.AsyncClient(timeout=timeout, follow_redirects=True)
    try:
        response = await client.get(url)
    except httpx.HTTPError as e:
        return DisplayError(FETCH_ERROR, body=str(e))
    finally:
        if owned:
            await client.aclose()

    if response.is_error:
        return DisplayError(f"{FETCH_ERROR} (HTTP {response.status_code})", body=response.text)
    return parse_route_body(response.text)
