"""
Registry of live application controllers keyed by session id
"""

import logging
import secrets
import threading
from typing import Callable, Dict, Tuple
from zoneinfo import ZoneInfo

from app.core.config import settings
from app.core.errors import SessionNotFoundError
from app.services.ai_client import AIContentClient
from app.services.auth_service import FirebaseAuthService, LocalAuthService
from app.services.controller import ApplicationController
from app.services.repositories import build_store_factory

logger = logging.getLogger(__name__)


def build_controller() -> ApplicationController:
    """Controller wired from application settings"""
    config = settings.app_config()
    if settings.USE_FIREBASE:
        auth_service = FirebaseAuthService()
    else:
        auth_service = LocalAuthService(settings.AUTH_TOKENS)
    return ApplicationController(
        config=config,
        auth_service=auth_service,
        store_factory=build_store_factory(),
        ai_client=AIContentClient(config, timeout=settings.AI_TIMEOUT_SECONDS),
        tz=ZoneInfo(settings.TIMEZONE),
    )


class SessionManager:
    """Creates, looks up and tears down controllers"""

    def __init__(self, controller_factory: Callable[[], ApplicationController] = build_controller):
        self.controller_factory = controller_factory
        self._sessions: Dict[str, ApplicationController] = {}
        self._lock = threading.Lock()

    def create(self) -> Tuple[str, ApplicationController]:
        session_id = secrets.token_urlsafe(16)
        controller = self.controller_factory()
        with self._lock:
            self._sessions[session_id] = controller
        logger.info(f"Session created. Active sessions: {len(self._sessions)}")
        return session_id, controller

    def get(self, session_id: str) -> ApplicationController:
        with self._lock:
            controller = self._sessions.get(session_id)
        if controller is None:
            raise SessionNotFoundError("Session not found or expired")
        return controller

    def close(self, session_id: str) -> None:
        with self._lock:
            controller = self._sessions.pop(session_id, None)
        if controller is not None:
            controller.close()
            logger.info(f"Session closed. Active sessions: {len(self._sessions)}")

    def close_all(self) -> None:
        with self._lock:
            controllers = list(self._sessions.values())
            self._sessions.clear()
        for controller in controllers:
            controller.close()

    def __len__(self) -> int:
        return len(self._sessions)


# Global session manager instance
session_manager = SessionManager()
