"""
Traceroute execution engine
"""

from .tracker import HopTracker
from .correlator import ResponseCorrelator
from .scheduler import ProbeScheduler
from .assembler import RouteAssembler

__all__ = ['HopTracker', 'ResponseCorrelator', 'ProbeScheduler', 'RouteAssembler']
