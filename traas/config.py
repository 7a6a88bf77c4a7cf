"""
Run settings for traas, with environment overrides
"""

import os
from dataclasses import dataclass, field
from typing import Optional

PROTOCOLS = ('icmp', 'udp')


def _float_env(name: str, default: float) -> float:
    try:
        value = os.getenv(name)
        return float(value) if value is not None else default
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    try:
        value = os.getenv(name)
        return int(value) if value is not None else default
    except ValueError:
        return default


def _str_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


@dataclass
class TraceSettings:
    """
    Parameters of a single traceroute run.

    Defaults are read from TRAAS_* environment variables when the
    settings object is created; invalid values fall back to the
    built-in default.
    """

    max_hops: int = field(default_factory=lambda: _int_env("TRAAS_MAX_HOPS", 30))
    concurrency: int = field(default_factory=lambda: _int_env("TRAAS_CONCURRENCY", 4))
    per_probe_timeout: float = field(default_factory=lambda: _float_env("TRAAS_PROBE_TIMEOUT", 2.0))
    max_retries: int = field(default_factory=lambda: _int_env("TRAAS_MAX_RETRIES", 2))
    overall_timeout: float = field(default_factory=lambda: _float_env("TRAAS_RUN_TIMEOUT", 30.0))
    protocol: str = field(default_factory=lambda: (_str_env("TRAAS_PROTOCOL", "icmp") or "icmp").lower())
    udp_base_port: int = field(default_factory=lambda: _int_env("TRAAS_UDP_PORT", 33434))
    poll_interval: float = field(default_factory=lambda: _float_env("TRAAS_POLL_INTERVAL", 0.25))
    dns_timeout: float = field(default_factory=lambda: _float_env("TRAAS_DNS_TIMEOUT", 3.0))
    trace_log: Optional[str] = field(default_factory=lambda: _str_env("TRAAS_TRACE_LOG", None))

    @property
    def probes_per_run(self) -> int:
        """Upper bound on identifiers a run can consume"""
        return self.max_hops * (self.max_retries + 1)

    def validate(self) -> "TraceSettings":
        """Reject values the engine cannot honour."""
        if not 1 <= self.max_hops <= 255:
            raise ValueError(f"max_hops must be between 1 and 255, got {self.max_hops}")
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {self.concurrency}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries cannot be negative, got {self.max_retries}")
        if self.per_probe_timeout <= 0:
            raise ValueError("per_probe_timeout must be positive")
        if self.overall_timeout <= 0:
            raise ValueError("overall_timeout must be positive")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if self.protocol not in PROTOCOLS:
            raise ValueError(
                f"Unknown protocol '{self.protocol}'. "
                f"Supported: {', '.join(PROTOCOLS)}"
            )
        if not 1 <= self.udp_base_port <= 0xFFFF:
            raise ValueError(f"udp_base_port out of range: {self.udp_base_port}")
        return self


def load_settings(**overrides) -> TraceSettings:
    """Load settings from the environment, then apply non-None overrides."""
    settings = TraceSettings()
    for name, value in overrides.items():
        if value is None:
            continue
        if not hasattr(settings, name):
            raise TypeError(f"Unknown setting '{name}'")
        setattr(settings, name, value)
    return settings.validate()
