"""
Flowedit Backend - Editing session, history and HTTP/WebSocket surface.
"""

from .history import HistoryManager, RecordHistory
from .selection import Selection, SelectionKind
from .session import EditorSession, PersistedState
from .render import Renderer, RenderScheduler
from .config import Settings

__all__ = [
    "HistoryManager",
    "RecordHistory",
    "Selection",
    "SelectionKind",
    "EditorSession",
    "PersistedState",
    "Renderer",
    "RenderScheduler",
    "Settings",
]
