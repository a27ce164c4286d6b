"""
WebSocket manager for real-time state updates
"""

import asyncio
import json
import logging
from typing import Callable, Dict, List
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.core.errors import SessionNotFoundError
from app.schemas.state import AppStateView
from app.services.controller import ApplicationController
from app.services.sessions import session_manager

logger = logging.getLogger(__name__)


def state_message(view: AppStateView) -> dict:
    return {"type": "state", "state": view.model_dump(mode="json")}


class WebSocketManager:
    """Pushes controller snapshots to every socket opened for a session"""

    def __init__(self):
        # session_id -> list of websockets
        self.active_connections: Dict[str, List[WebSocket]] = {}
        # session_id -> callable removing the controller listener
        self._listener_removers: Dict[str, Callable[[], None]] = {}

    async def connect(self, websocket: WebSocket, session_id: str, controller: ApplicationController):
        """Accept WebSocket connection and attach it to the session's controller"""
        await websocket.accept()

        if session_id not in self.active_connections:
            self.active_connections[session_id] = []
            loop = asyncio.get_running_loop()

            # Feed callbacks may arrive on a store thread
            def on_state(view: AppStateView):
                loop.call_soon_threadsafe(
                    lambda: asyncio.ensure_future(self.broadcast_to_session(session_id, state_message(view)))
                )

            self._listener_removers[session_id] = controller.add_listener(on_state)

        self.active_connections[session_id].append(websocket)
        logger.info(f"WebSocket connected to session. Total connections: {len(self.active_connections[session_id])}")

    def disconnect(self, websocket: WebSocket, session_id: str):
        """Remove WebSocket connection; detach the listener with the last one"""
        if session_id in self.active_connections:
            try:
                self.active_connections[session_id].remove(websocket)
            except ValueError:
                return
            logger.info(f"WebSocket disconnected. Remaining connections: {len(self.active_connections[session_id])}")

            if not self.active_connections[session_id]:
                del self.active_connections[session_id]
                remove = self._listener_removers.pop(session_id, None)
                if remove:
                    remove()

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        """Send message to specific WebSocket"""
        try:
            await websocket.send_text(json.dumps(message))
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.error(f"Error sending personal message: {e}")

    async def broadcast_to_session(self, session_id: str, message: dict):
        """Broadcast message to all WebSockets connected to a session"""
        if session_id not in self.active_connections:
            return

        # Create list copy to avoid modification during iteration
        connections = self.active_connections[session_id].copy()

        disconnected = []
        for websocket in connections:
            try:
                await websocket.send_text(json.dumps(message))
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.error(f"Error broadcasting to websocket: {e}")
                disconnected.append(websocket)

        for websocket in disconnected:
            self.disconnect(websocket, session_id)

    def get_connection_count(self, session_id: str) -> int:
        return len(self.active_connections.get(session_id, []))

# Global WebSocket manager instance
websocket_manager = WebSocketManager()

# Router for WebSocket endpoints
router = APIRouter()

@router.websocket("/session/{session_id}")
async def websocket_endpoint(websocket: WebSocket, session_id: str):
    """Stream state snapshots for a session"""
    try:
        controller = session_manager.get(session_id)
    except SessionNotFoundError:
        await websocket.close(code=4004, reason="Session not found")
        return

    await websocket_manager.connect(websocket, session_id, controller)

    try:
        await websocket_manager.send_personal_message(state_message(controller.snapshot()), websocket)

        while True:
            data = await websocket.receive_text()
            try:
                client_message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON received from WebSocket: {data}")
                continue

            # Handle heartbeat/ping
            if isinstance(client_message, dict) and client_message.get("type") == "ping":
                pong_message = {
                    "type": "pong",
                    "timestamp": client_message.get("timestamp")
                }
                await websocket_manager.send_personal_message(pong_message, websocket)

    except WebSocketDisconnect:
        pass
    finally:
        websocket_manager.disconnect(websocket, session_id)
