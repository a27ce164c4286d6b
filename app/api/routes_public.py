"""
Public API routes - no session required
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import RateLimitError
from app.schemas.event import EventCreate
from app.services.ai_client import AIContentClient
from app.services.prompts import PLAN_SYSTEM_INSTRUCTION, build_event_prompt
from app.utils.security import rate_limit_check, get_client_ip

router = APIRouter()

def get_ai_client() -> AIContentClient:
    return AIContentClient(settings.app_config(), timeout=settings.AI_TIMEOUT_SECONDS)

@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "ok"}

@router.post("/generate-plan")
async def generate_plan(
    context: EventCreate,
    request: Request,
    client: AIContentClient = Depends(get_ai_client)
):
    """Accept event context and return generated plan text"""
    client_ip = get_client_ip(request)
    if not rate_limit_check(client_ip):
        raise RateLimitError("Rate limit exceeded. Please try again later.")

    text = await client.generate(PLAN_SYSTEM_INSTRUCTION, build_event_prompt(context))
    return JSONResponse(content=text)
