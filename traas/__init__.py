"""
traas - Traceroute as a Service

Concurrent TTL-limited probing engine that discovers the route to a
destination and serializes it for the route display page.
"""

__version__ = "1.0.0"
__author__ = "traas"
