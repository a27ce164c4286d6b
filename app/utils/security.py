"""
Session lookup and rate limiting
"""

from fastapi import Header, Cookie
from typing import Optional
import time
from collections import defaultdict

from app.core.config import settings
from app.core.errors import SessionNotFoundError
from app.services.controller import ApplicationController
from app.services.sessions import session_manager

SESSION_HEADER = "X-Session-Id"
SESSION_COOKIE = "session"

# Simple in-memory rate limiter
rate_limiter = defaultdict(list)

def get_session_id(
    x_session_id: Optional[str] = Header(None, alias=SESSION_HEADER),
    session: Optional[str] = Cookie(None, alias=SESSION_COOKIE),
) -> str:
    """Session id from the header, falling back to the cookie"""
    session_id = x_session_id or session
    if not session_id:
        raise SessionNotFoundError("Missing session id")
    return session_id

def get_controller(
    x_session_id: Optional[str] = Header(None, alias=SESSION_HEADER),
    session: Optional[str] = Cookie(None, alias=SESSION_COOKIE),
) -> ApplicationController:
    """Resolve the controller for the calling session"""
    return session_manager.get(get_session_id(x_session_id, session))

def rate_limit_check(client_ip: str, limit: int = None) -> bool:
    """Simple rate limiting by IP address"""
    if limit is None:
        limit = settings.RATE_LIMIT_PER_MINUTE
    
    current_time = time.time()
    minute_ago = current_time - 60
    
    # Clean old requests
    rate_limiter[client_ip] = [
        req_time for req_time in rate_limiter[client_ip] 
        if req_time > minute_ago
    ]
    
    # Check limit
    if len(rate_limiter[client_ip]) >= limit:
        return False
    
    # Add current request
    rate_limiter[client_ip].append(current_time)
    return True

def get_client_ip(request) -> str:
    """Extract client IP from request"""
    # Check for forwarded IP first (for reverse proxy setups)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    
    # Check for real IP header
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    
    # Fall back to direct client IP
    return request.client.host
