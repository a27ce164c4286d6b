"""
Event-related Pydantic schemas
"""

import datetime as dt
from enum import Enum
from typing import Optional
from pydantic import BaseModel, field_validator

DATETIME_FORMATS = ("%Y-%m-%dT%H:%M", "%Y-%m-%dT%H:%M:%S")


class EventType(str, Enum):
    """Fixed set of occasions an event can be"""
    BIRTHDAY = "Birthday"
    WEDDING = "Wedding"
    CORPORATE = "Corporate"
    ANNIVERSARY = "Anniversary"
    GRADUATION = "Graduation"
    BABY_SHOWER = "Baby Shower"
    OTHER = "Other"


def parse_event_datetime(value: str) -> dt.datetime:
    """Parse a local date-time in one of DATETIME_FORMATS.

    Date-only strings and strings carrying a UTC offset are rejected, so the
    result is always naive. Raises ValueError when nothing matches.
    """
    for fmt in DATETIME_FORMATS:
        try:
            return dt.datetime.strptime(value, fmt)
        except ValueError:
            continue
    raise ValueError(f"{value!r} is not a YYYY-MM-DDTHH:MM date-time")


def normalize_event_datetime(value: str) -> str:
    """Fixed-width YYYY-MM-DDTHH:MM form; string order then matches time order"""
    return parse_event_datetime(value).isoformat(timespec="minutes")


class EventCreate(BaseModel):
    """Schema for creating an event"""
    name: str
    type: EventType
    datetime: str
    recipient: str

    @field_validator("name", "recipient", "datetime", mode="before")
    @classmethod
    def not_blank(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError("must not be blank")
        return value.strip() if isinstance(value, str) else value

    @field_validator("datetime")
    @classmethod
    def valid_point_in_time(cls, value: str) -> str:
        try:
            return normalize_event_datetime(value)
        except ValueError as exc:
            raise ValueError("must be a valid date and time") from exc


class Event(EventCreate):
    """Event as stored, validated at the store boundary"""
    id: str
    created_at: Optional[dt.datetime] = None
    plan: str = ""
    gifts: str = ""
    ai_ready: bool = False

    class Config:
        from_attributes = True

    @property
    def scheduled_at(self) -> dt.datetime:
        return parse_event_datetime(self.datetime)

    def store_fields(self) -> dict:
        """Full field set written by a replace (id and created_at excluded)"""
        return {
            "name": self.name,
            "type": self.type.value,
            "datetime": self.datetime,
            "recipient": self.recipient,
            "plan": self.plan,
            "gifts": self.gifts,
            "ai_ready": self.ai_ready,
        }


class EventDetail(BaseModel):
    """Event shown in the detail modal with rendered AI content"""
    event: Event
    plan_html: str
    gifts_html: str
