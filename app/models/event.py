"""
Event model
"""

import uuid
from sqlalchemy import Column, String, Text, Boolean, DateTime, func

from app.core.db import Base

def _new_id() -> str:
    return uuid.uuid4().hex

class EventRecord(Base):
    __tablename__ = "events"
    
    id = Column(String(32), primary_key=True, default=_new_id)
    app_id = Column(String(100), nullable=False, index=True)
    user_id = Column(String(128), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False)
    datetime = Column(String(32), nullable=False)  # ISO "YYYY-MM-DDTHH:MM"
    recipient = Column(Text, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    plan = Column(Text, nullable=False, default="")
    gifts = Column(Text, nullable=False, default="")
    ai_ready = Column(Boolean, nullable=False, default=False)
