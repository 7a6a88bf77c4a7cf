"""
Output modules for traas
"""

from .console import ConsoleOutput
from .json_export import ERROR_BODY, JsonExporter, route_to_dict

__all__ = ['ConsoleOutput', 'JsonExporter', 'ERROR_BODY', 'route_to_dict']
