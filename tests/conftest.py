"""
Shared fixtures: in-memory SQLite store, fake AI client, controller factory
"""

import os

os.environ.setdefault("USE_FIREBASE", "false")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from app.core.config import AppConfig
from app.core.db import Base, build_engine
from app.core.errors import UpstreamError
from app.services.auth_service import LocalAuthService
from app.services.controller import ApplicationController
from app.services.repositories import ChangeFeed, SqlEventStore

FIXED_NOW = datetime(2025, 5, 31, 12, 0, tzinfo=timezone.utc)


class FakeAIClient:
    """Returns queued responses in order; an Exception instance is raised instead"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def generate(self, system_instruction, user_prompt, auth_token=None):
        self.calls.append((system_instruction, user_prompt, auth_token))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class RecordingStore(SqlEventStore):
    """SQL store that counts replace() calls"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.replace_calls = []

    def replace(self, event_id, event):
        self.replace_calls.append((event_id, event))
        super().replace(event_id, event)


@pytest.fixture
def session_factory():
    """Fresh in-memory database per test"""
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def stores():
    """Every store handed out by store_factory, in creation order"""
    return []


@pytest.fixture
def store_factory(session_factory, feed, stores):
    def factory(app_id, user_id):
        store = RecordingStore(session_factory, app_id, user_id, feed=feed)
        stores.append(store)
        return store
    return factory


@pytest.fixture
def app_config():
    return AppConfig(
        api_endpoint="https://ai.example.test/v1/models/test:generateContent",
        app_identifier="test-app",
        credentials={"api_key": None, "bearer_token": None},
    )


@pytest.fixture
def make_controller(app_config, store_factory):
    def make(ai_client=None, tokens=None, now=FIXED_NOW):
        return ApplicationController(
            config=app_config,
            auth_service=LocalAuthService(tokens or {"good-token": "user-1"}),
            store_factory=store_factory,
            ai_client=ai_client or FakeAIClient(),
            clock=lambda: now,
        )
    return make


@pytest.fixture
def anna_form():
    return {
        "name": "Anna's 30th",
        "type": "Birthday",
        "datetime": "2025-06-01T18:00",
        "recipient": "loves hiking",
    }


def upstream_500():
    return UpstreamError("AI request failed with HTTP status 500", status_code=500)
