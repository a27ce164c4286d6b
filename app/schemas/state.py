"""
Application state snapshots handed to the API and templates
"""

from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict

from .event import Event, EventDetail, EventType


class AuthStatus(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


class SyncStatus(str, Enum):
    IDLE = "idle"
    SUBSCRIBING = "subscribing"
    SYNCED = "synced"
    SYNC_ERROR = "sync_error"


class FormStatus(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    VALIDATION_FAILED = "validation_failed"
    WRITE_FAILED = "write_failed"


class GenerationStatus(str, Enum):
    IDLE = "idle"
    GENERATING_PLAN = "generating_plan"
    GENERATING_GIFTS = "generating_gifts"
    PERSISTING = "persisting"
    READY = "ready"
    FAILED = "failed"

    @property
    def in_flight(self) -> bool:
        return self in (
            GenerationStatus.GENERATING_PLAN,
            GenerationStatus.GENERATING_GIFTS,
            GenerationStatus.PERSISTING,
        )


class FormValues(BaseModel):
    """Raw values entered in the create-event form"""
    name: str = ""
    type: str = EventType.BIRTHDAY.value
    datetime: str = ""
    recipient: str = ""


class FormUpdate(BaseModel):
    """Partial form edit; unset fields keep their current value"""
    name: Optional[str] = None
    type: Optional[str] = None
    datetime: Optional[str] = None
    recipient: Optional[str] = None


class GenerationView(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_id: str
    status: GenerationStatus = GenerationStatus.IDLE
    plan: str = ""
    gifts: str = ""
    error: Optional[str] = None


class AppStateView(BaseModel):
    """Immutable snapshot of one controller's state"""
    model_config = ConfigDict(frozen=True)

    user_id: Optional[str] = None
    anonymous: bool = False
    auth_status: AuthStatus = AuthStatus.UNAUTHENTICATED
    sync_status: SyncStatus = SyncStatus.IDLE
    form_status: FormStatus = FormStatus.IDLE
    form: FormValues = FormValues()
    events: List[Event] = []
    reminders: List[Event] = []
    generations: Dict[str, GenerationView] = {}
    selected: Optional[EventDetail] = None
    errors: Dict[str, str] = {}

    @property
    def submit_disabled(self) -> bool:
        return self.form_status == FormStatus.SUBMITTING
