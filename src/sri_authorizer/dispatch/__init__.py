"""
Change dispatching: status transition routing.
"""

from .dispatcher import ChangeDispatcher
from .transitions import parse_status, route_transition

__all__ = ["ChangeDispatcher", "parse_status", "route_transition"]
