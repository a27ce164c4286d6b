"""
Pydantic schemas package
"""

from .common import *
from .event import *
from .state import *

__all__ = [
    "StandardResponse",
    "ErrorResponse",
    "SessionCreate",
    "EventType",
    "EventCreate",
    "Event",
    "EventDetail",
    "AuthStatus",
    "SyncStatus",
    "FormStatus",
    "GenerationStatus",
    "FormValues",
    "FormUpdate",
    "GenerationView",
    "AppStateView",
]
