"""
EventFlow AI - FastAPI Backend
Main application entry point
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
import uvicorn

from app.core.config import settings
from app.core.db import engine, Base
from app.core.errors import EventFlowError, SessionNotFoundError
from app.api import routes_events, routes_public, ws
from app.schemas.event import EventType
from app.services.markdown import render_markdown
from app.services.sessions import session_manager
from app.utils.responses import app_error_response
from app.utils.security import SESSION_COOKIE

# Configure logging
logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    if not settings.USE_FIREBASE:
        # Create database tables
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created")
    yield
    session_manager.close_all()
    logger.info("Application shutdown")

# Create FastAPI application
app = FastAPI(
    title="EventFlow AI",
    description="Personal event planner with AI-generated plans and gift ideas",
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(EventFlowError)
async def eventflow_error_handler(request: Request, exc: EventFlowError):
    return app_error_response(exc)

# Setup templates
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))
templates.env.filters["markdown"] = render_markdown

# Include routers
app.include_router(routes_public.router, tags=["public"])
app.include_router(routes_events.router, tags=["events"])
app.include_router(ws.router, prefix="/ws", tags=["websocket"])

@app.get("/", response_class=HTMLResponse)
async def root(request: Request, session: Optional[str] = None):
    """Dashboard: event list, reminders and the detail modal"""
    session_id = session or request.cookies.get(SESSION_COOKIE)
    state = None
    if session_id:
        try:
            state = session_manager.get(session_id).snapshot()
        except SessionNotFoundError:
            session_id = None
    return templates.TemplateResponse(request, "index.html", {
        "title": "EventFlow AI",
        "session_id": session_id,
        "state": state,
        "event_types": [t.value for t in EventType],
    })

# Note: Run this ASGI app directly with Uvicorn or Hypercorn. For Gunicorn,
# use `uvicorn.workers.UvicornWorker` instead of wrapping the app.

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="127.0.0.1",
        port=8000,
        reload=True
    )
