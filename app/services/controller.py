"""
Application controller: owns one signed-in user's state and runs the
authenticate/subscribe, create-event and generate-AI-content workflows.

State only changes inside the workflow methods below. Callers read it through
``snapshot()``, which returns a frozen ``AppStateView``; listeners registered
with ``add_listener`` receive a fresh snapshot after every transition.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone, tzinfo
from functools import partial
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError as SchemaValidationError

from app.core.config import AppConfig
from app.core.errors import (
    AuthError,
    EventFlowError,
    EventNotFoundError,
    GenerationInProgressError,
    SubmissionInProgressError,
    SyncError,
    UpstreamError,
    ValidationError,
    WriteError,
)
from app.schemas.event import Event, EventCreate, EventDetail
from app.schemas.state import (
    AppStateView,
    AuthStatus,
    FormStatus,
    FormValues,
    GenerationStatus,
    GenerationView,
    SyncStatus,
)
from app.services.ai_client import AIContentClient
from app.services.auth_service import AuthService, Identity
from app.services.markdown import render_markdown
from app.services.prompts import GIFTS_SYSTEM_INSTRUCTION, PLAN_SYSTEM_INSTRUCTION, build_event_prompt
from app.services.reminders import due_soon
from app.services.repositories import EventStore, StoreFactory, Subscription

logger = logging.getLogger(__name__)

Listener = Callable[[AppStateView], None]

MISSING_FIELDS_MESSAGE = "Please fill in all required fields."


def validate_form(values: FormValues) -> EventCreate:
    """Turn raw form values into EventCreate or raise ValidationError"""
    try:
        return EventCreate(**values.model_dump())
    except SchemaValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        blank = [
            name for name in ("name", "type", "datetime", "recipient")
            if not str(getattr(values, name) or "").strip()
        ]
        if blank:
            message = MISSING_FIELDS_MESSAGE
        elif "datetime" in fields:
            message = "Please enter a valid date and time."
        else:
            message = "Please choose a valid event type."
        raise ValidationError(message, fields=blank or fields) from e


class ApplicationController:
    def __init__(
        self,
        config: AppConfig,
        auth_service: AuthService,
        store_factory: StoreFactory,
        ai_client: AIContentClient,
        clock: Optional[Callable[[], datetime]] = None,
        tz: Optional[tzinfo] = None,
    ):
        self.config = config
        self.auth_service = auth_service
        self.store_factory = store_factory
        self.ai_client = ai_client
        self.tz = tz or timezone.utc
        self.clock = clock or (lambda: datetime.now(self.tz))

        self._lock = threading.RLock()
        self._listeners: List[Listener] = []
        self._closed = False

        self._identity: Optional[Identity] = None
        self._store: Optional[EventStore] = None
        self._subscription: Optional[Subscription] = None
        self._feed_id = 0

        self._auth_status = AuthStatus.UNAUTHENTICATED
        self._sync_status = SyncStatus.IDLE
        self._form_status = FormStatus.IDLE
        self._form = FormValues()
        self._events: List[Event] = []
        self._generations: Dict[str, GenerationView] = {}
        self._selected_id: Optional[str] = None
        self._errors: Dict[str, str] = {}

    # -------- observation --------

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def store(self) -> Optional[EventStore]:
        return self._store

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def remove():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        if not listeners:
            return
        view = self.snapshot()
        for listener in listeners:
            listener(view)

    def snapshot(self, now: Optional[datetime] = None) -> AppStateView:
        with self._lock:
            now = now or self.clock()
            events = list(self._events)
            return AppStateView(
                user_id=self._identity.user_id if self._identity else None,
                anonymous=self._identity.anonymous if self._identity else False,
                auth_status=self._auth_status,
                sync_status=self._sync_status,
                form_status=self._form_status,
                form=self._form.model_copy(),
                events=events,
                reminders=due_soon(events, now, tz=self.tz),
                generations=dict(self._generations),
                selected=self._detail(self._selected_id) if self._selected_id else None,
                errors=dict(self._errors),
            )

    def _find_event(self, event_id: str) -> Optional[Event]:
        for event in self._events:
            if event.id == event_id:
                return event
        return None

    def _detail(self, event_id: str) -> Optional[EventDetail]:
        event = self._find_event(event_id)
        if event is None:
            return None
        return EventDetail(
            event=event,
            plan_html=render_markdown(event.plan),
            gifts_html=render_markdown(event.gifts),
        )

    def _require_store(self) -> EventStore:
        if self._store is None or self._auth_status != AuthStatus.AUTHENTICATED:
            raise AuthError("Not signed in")
        return self._store

    # -------- authenticate and subscribe --------

    def authenticate(self, id_token: Optional[str] = None) -> Identity:
        with self._lock:
            self._auth_status = AuthStatus.AUTHENTICATING
        self._notify()

        try:
            identity = self.auth_service.sign_in(id_token)
        except AuthError as e:
            logger.warning(f"Primary sign-in failed, using anonymous identity: {e.message}")
            try:
                identity = self.auth_service.sign_in_anonymously()
            except AuthError as fallback_error:
                logger.error(f"Anonymous sign-in failed: {fallback_error.message}")
                with self._lock:
                    self._auth_status = AuthStatus.FAILED
                    self._errors["auth"] = fallback_error.message
                self._notify()
                raise

        with self._lock:
            self._identity = identity
            self._store = self.store_factory(self.config.app_identifier, identity.user_id)
            self._auth_status = AuthStatus.AUTHENTICATED
            self._events = []
            self._generations = {}
            self._selected_id = None
            self._errors.pop("auth", None)
        logger.info(f"Signed in as {identity.user_id} (anonymous={identity.anonymous})")
        self._notify()

        try:
            self.subscribe()
        except SyncError:
            # Left in SYNC_ERROR; subscribe() can be retried
            pass
        return identity

    def subscribe(self) -> None:
        with self._lock:
            store = self._require_store()
            previous, self._subscription = self._subscription, None
            self._feed_id += 1
            feed_id = self._feed_id
            self._sync_status = SyncStatus.SUBSCRIBING
        if previous is not None:
            previous.unsubscribe()
        self._notify()

        try:
            subscription = store.subscribe(
                on_change=partial(self._on_events, feed_id),
                on_error=partial(self._on_feed_error, feed_id),
            )
        except SyncError as e:
            logger.error(f"Subscribing to events failed: {e.message}")
            with self._lock:
                self._sync_status = SyncStatus.SYNC_ERROR
                self._errors["sync"] = e.message
            self._notify()
            raise

        with self._lock:
            stale = self._closed or feed_id != self._feed_id
            if not stale:
                self._subscription = subscription
        if stale:
            subscription.unsubscribe()

    def _on_events(self, feed_id: int, events: List[Event]) -> None:
        with self._lock:
            if self._closed or feed_id != self._feed_id:
                return
            self._events = list(events)
            self._sync_status = SyncStatus.SYNCED
            self._errors.pop("sync", None)
        self._notify()

    def _on_feed_error(self, feed_id: int, error: SyncError) -> None:
        with self._lock:
            if self._closed or feed_id != self._feed_id:
                return
            self._sync_status = SyncStatus.SYNC_ERROR
            self._errors["sync"] = error.message
        logger.error(f"Event feed error: {error.message}")
        self._notify()

    # -------- create-event workflow --------

    def update_form(self, **values) -> FormValues:
        allowed = {k: v for k, v in values.items() if k in FormValues.model_fields and v is not None}
        with self._lock:
            self._form = self._form.model_copy(update=allowed)
            form = self._form
        self._notify()
        return form

    def reset_form(self) -> None:
        with self._lock:
            self._form = FormValues()
            self._form_status = FormStatus.IDLE
            self._errors.pop("form", None)
        self._notify()

    def create_event(self, values: Optional[dict] = None) -> str:
        with self._lock:
            if self._form_status == FormStatus.SUBMITTING:
                raise SubmissionInProgressError("An event is already being saved")
            store = self._require_store()
            if values:
                allowed = {k: v for k, v in values.items() if k in FormValues.model_fields and v is not None}
                self._form = self._form.model_copy(update=allowed)
            self._form_status = FormStatus.VALIDATING
            form = self._form

        try:
            fields = validate_form(form)
        except ValidationError as e:
            with self._lock:
                self._form_status = FormStatus.VALIDATION_FAILED
                self._errors["form"] = e.message
            self._notify()
            raise

        with self._lock:
            self._form_status = FormStatus.SUBMITTING
            self._errors.pop("form", None)
        self._notify()

        try:
            event_id = store.create(fields)
        except Exception as e:
            # Any failure ends the submission so the form can be resubmitted
            message = e.message if isinstance(e, EventFlowError) else f"Could not save event: {e}"
            logger.error(f"Creating event failed: {message}")
            with self._lock:
                self._form_status = FormStatus.WRITE_FAILED
                self._errors["form"] = message
            self._notify()
            raise

        with self._lock:
            self._form = FormValues()
            self._form_status = FormStatus.IDLE
        self._notify()
        return event_id

    # -------- generate-AI-content workflow --------

    def _set_generation(self, event_id: str, **changes) -> None:
        with self._lock:
            current = self._generations.get(event_id) or GenerationView(event_id=event_id)
            self._generations[event_id] = current.model_copy(update=changes)
        self._notify()

    async def generate_ai_content(self, event_id: str) -> Event:
        """Plan call, then gift call, then one combined write.

        Nothing is persisted unless both calls succeed.
        """
        with self._lock:
            store = self._require_store()
            current = self._generations.get(event_id)
            if current is not None and current.status.in_flight:
                raise GenerationInProgressError(f"Content for event {event_id} is already being generated")
            event = self._find_event(event_id)
            if event is None:
                event = store.get(event_id)
            if event is None:
                raise EventNotFoundError(f"Event {event_id} not found")
            self._generations[event_id] = GenerationView(
                event_id=event_id, status=GenerationStatus.GENERATING_PLAN
            )
            self._errors.pop("generation", None)
        self._notify()

        prompt = build_event_prompt(event)
        bearer = self.config.credentials.get("bearer_token")
        try:
            plan = await self.ai_client.generate(PLAN_SYSTEM_INSTRUCTION, prompt, bearer)
            if not plan.strip():
                raise UpstreamError("The AI returned an empty plan")
            self._set_generation(event_id, status=GenerationStatus.GENERATING_GIFTS, plan=plan)

            gifts = await self.ai_client.generate(GIFTS_SYSTEM_INSTRUCTION, prompt, bearer)
            if not gifts.strip():
                raise UpstreamError("The AI returned no gift suggestions")
            self._set_generation(event_id, status=GenerationStatus.PERSISTING, gifts=gifts)

            updated = event.model_copy(update={"plan": plan, "gifts": gifts, "ai_ready": True})
            store.replace(event_id, updated)
        except Exception as e:
            # Every failure is terminal for this run; a new run may be started
            message = e.message if isinstance(e, EventFlowError) else f"AI content generation failed: {e}"
            logger.error(f"AI content generation failed for event {event_id}: {message}")
            with self._lock:
                self._errors["generation"] = message
            self._set_generation(event_id, status=GenerationStatus.FAILED, error=message)
            raise

        self._set_generation(event_id, status=GenerationStatus.READY)
        logger.info(f"AI content saved for event {event_id}")
        return updated

    # -------- delete --------

    def delete_event(self, event_id: str) -> None:
        """Remove an event; the feed delivers the shortened list"""
        with self._lock:
            store = self._require_store()
            current = self._generations.get(event_id)
            if current is not None and current.status.in_flight:
                raise GenerationInProgressError(f"Content for event {event_id} is still being generated")
            known = self._find_event(event_id) is not None
        if not known and store.get(event_id) is None:
            raise EventNotFoundError(f"Event {event_id} not found")

        try:
            store.delete(event_id)
        except WriteError as e:
            logger.error(f"Deleting event {event_id} failed: {e.message}")
            with self._lock:
                self._errors["delete"] = e.message
            self._notify()
            raise

        with self._lock:
            self._generations.pop(event_id, None)
            if self._selected_id == event_id:
                self._selected_id = None
            self._errors.pop("delete", None)
        logger.info(f"Deleted event {event_id}")
        self._notify()

    # -------- detail view and errors --------

    def open_details(self, event_id: str) -> EventDetail:
        with self._lock:
            detail = self._detail(event_id)
            if detail is None:
                raise EventNotFoundError(f"Event {event_id} not found")
            self._selected_id = event_id
        self._notify()
        return detail

    def close_details(self) -> None:
        with self._lock:
            self._selected_id = None
        self._notify()

    def dismiss_error(self, kind: str) -> None:
        with self._lock:
            self._errors.pop(kind, None)
        self._notify()

    def close(self) -> None:
        """Tear down the feed; later deliveries are ignored"""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subscription, self._subscription = self._subscription, None
            self._listeners.clear()
        if subscription is not None:
            subscription.unsubscribe()
        logger.info("Controller closed")
