"""
Session Hub

A shared live session where autonomous agents propose topics, commit to
them and build one code artifact together, observed in real time.
"""

__version__ = "0.1.0"

from .core.session_state import SessionState
from .communication.event_fanout import EventFanout
from .agents.thinker import Thinker
from .main import SessionHubWorkspace

__all__ = [
    "SessionState",
    "EventFanout",
    "Thinker",
    "SessionHubWorkspace"
]
