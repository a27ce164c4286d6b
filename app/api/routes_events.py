"""
Session and event routes for the signed-in user
"""

from typing import Optional
from fastapi import APIRouter, Depends, Request, Body

from app.core.errors import AuthError, RateLimitError
from app.schemas.common import SessionCreate
from app.schemas.state import FormUpdate
from app.services.controller import ApplicationController
from app.services.sessions import session_manager
from app.utils.responses import success_response
from app.utils.security import SESSION_COOKIE, get_controller, get_session_id, rate_limit_check, get_client_ip

router = APIRouter()

def _state(controller: ApplicationController) -> dict:
    return controller.snapshot().model_dump(mode="json")

@router.post("/session")
async def create_session(payload: Optional[SessionCreate] = Body(None)):
    """Sign in (falling back to an anonymous identity) and start the event feed"""
    session_id, controller = session_manager.create()
    try:
        identity = controller.authenticate(payload.id_token if payload else None)
    except AuthError:
        session_manager.close(session_id)
        raise

    response = success_response(
        message="Signed in",
        data={
            "session_id": session_id,
            "user_id": identity.user_id,
            "anonymous": identity.anonymous,
            "state": _state(controller),
        },
        status_code=201
    )
    response.set_cookie(SESSION_COOKIE, session_id, httponly=True, samesite="lax")
    return response

@router.get("/session/state")
async def get_state(controller: ApplicationController = Depends(get_controller)):
    """Current application state snapshot"""
    return success_response(message="State retrieved", data=_state(controller))

@router.post("/session/resubscribe")
async def resubscribe(controller: ApplicationController = Depends(get_controller)):
    """Retry the event feed after a sync error"""
    controller.subscribe()
    return success_response(message="Subscribed to events", data=_state(controller))

@router.delete("/session")
async def end_session(session_id: str = Depends(get_session_id)):
    """Sign out and tear down the event feed"""
    session_manager.close(session_id)
    response = success_response(message="Signed out")
    response.delete_cookie(SESSION_COOKIE)
    return response

@router.put("/session/form")
async def update_form(
    update: FormUpdate,
    controller: ApplicationController = Depends(get_controller)
):
    """Store values typed into the create-event form"""
    form = controller.update_form(**update.model_dump(exclude_none=True))
    return success_response(message="Form updated", data=form.model_dump())

@router.post("/session/form/reset")
async def reset_form(controller: ApplicationController = Depends(get_controller)):
    controller.reset_form()
    return success_response(message="Form reset", data=_state(controller))

@router.delete("/session/details")
async def close_details(controller: ApplicationController = Depends(get_controller)):
    """Close the event detail modal"""
    controller.close_details()
    return success_response(message="Details closed")

@router.delete("/session/errors/{kind}")
async def dismiss_error(
    kind: str,
    controller: ApplicationController = Depends(get_controller)
):
    controller.dismiss_error(kind)
    return success_response(message="Error dismissed")

@router.post("/events")
async def create_event(
    update: Optional[FormUpdate] = Body(None),
    controller: ApplicationController = Depends(get_controller)
):
    """Create an event from the request body or the stored form values"""
    values = update.model_dump(exclude_none=True) if update else None
    event_id = controller.create_event(values)
    return success_response(
        message="Event created successfully",
        data={"id": event_id},
        status_code=201
    )

@router.get("/events/{event_id}")
async def get_event_details(
    event_id: str,
    controller: ApplicationController = Depends(get_controller)
):
    """Open the detail view for an event"""
    detail = controller.open_details(event_id)
    return success_response(message="Event details retrieved", data=detail.model_dump(mode="json"))

@router.delete("/events/{event_id}")
async def delete_event(
    event_id: str,
    controller: ApplicationController = Depends(get_controller)
):
    """Delete an event"""
    controller.delete_event(event_id)
    return success_response(message="Event deleted successfully", data={"id": event_id})

@router.post("/events/{event_id}/generate")
async def generate_ai_content(
    event_id: str,
    request: Request,
    controller: ApplicationController = Depends(get_controller)
):
    """Generate and save a plan and gift suggestions for an event"""
    if not rate_limit_check(get_client_ip(request)):
        raise RateLimitError("Rate limit exceeded. Please try again later.")

    event = await controller.generate_ai_content(event_id)
    return success_response(
        message="AI plan and gift ideas generated",
        data=event.model_dump(mode="json")
    )
