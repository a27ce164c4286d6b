"""
Tests for the application controller workflows
"""

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import (
    AuthError,
    EventNotFoundError,
    GenerationInProgressError,
    SubmissionInProgressError,
    SyncError,
    UpstreamError,
    ValidationError,
    WriteError,
)
from app.schemas.event import EventCreate
from app.schemas.state import AuthStatus, FormStatus, GenerationStatus, SyncStatus
from app.services.auth_service import AuthService
from app.services.prompts import GIFTS_SYSTEM_INSTRUCTION, PLAN_SYSTEM_INSTRUCTION
from conftest import FakeAIClient, upstream_500


@pytest.fixture
def controller(make_controller):
    ctrl = make_controller()
    ctrl.authenticate("good-token")
    yield ctrl
    ctrl.close()


# -------- authenticate and subscribe --------

def test_primary_sign_in_then_synced(make_controller):
    ctrl = make_controller()
    identity = ctrl.authenticate("good-token")

    state = ctrl.snapshot()
    assert identity.user_id == "user-1"
    assert identity.anonymous is False
    assert state.auth_status == AuthStatus.AUTHENTICATED
    assert state.sync_status == SyncStatus.SYNCED
    assert state.events == []

def test_failed_sign_in_falls_back_to_anonymous(make_controller):
    ctrl = make_controller()
    identity = ctrl.authenticate("wrong-token")

    state = ctrl.snapshot()
    assert identity.anonymous is True
    assert state.anonymous is True
    assert state.auth_status == AuthStatus.AUTHENTICATED
    assert state.sync_status == SyncStatus.SYNCED
    assert "auth" not in state.errors

def test_total_auth_failure(make_controller):
    class NoAuth(AuthService):
        def sign_in(self, id_token):
            raise AuthError("bad token")

        def sign_in_anonymously(self):
            raise AuthError("anonymous sign-in disabled")

    ctrl = make_controller()
    ctrl.auth_service = NoAuth()

    with pytest.raises(AuthError):
        ctrl.authenticate("x")
    state = ctrl.snapshot()
    assert state.auth_status == AuthStatus.FAILED
    assert state.errors["auth"] == "anonymous sign-in disabled"

def test_state_transitions_are_published(make_controller):
    ctrl = make_controller()
    seen = []
    ctrl.add_listener(lambda view: seen.append((view.auth_status, view.sync_status)))

    ctrl.authenticate("good-token")

    assert seen[0] == (AuthStatus.AUTHENTICATING, SyncStatus.IDLE)
    assert (AuthStatus.AUTHENTICATED, SyncStatus.SUBSCRIBING) in seen
    assert seen[-1] == (AuthStatus.AUTHENTICATED, SyncStatus.SYNCED)

def test_subscribe_failure_is_retryable(controller, stores, monkeypatch):
    store = stores[-1]
    original = store.subscribe

    def failing(on_change, on_error):
        raise SyncError("feed unavailable")

    monkeypatch.setattr(store, "subscribe", failing)
    with pytest.raises(SyncError):
        controller.subscribe()
    assert controller.snapshot().sync_status == SyncStatus.SYNC_ERROR
    assert controller.snapshot().errors["sync"] == "feed unavailable"

    monkeypatch.setattr(store, "subscribe", original)
    controller.subscribe()
    assert controller.snapshot().sync_status == SyncStatus.SYNCED
    assert "sync" not in controller.snapshot().errors

def test_feed_error_keeps_subscription(controller, stores, feed, monkeypatch):
    store = stores[-1]

    def broken(db):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(store, "_query", broken)
    feed.publish(store.key)
    state = controller.snapshot()
    assert state.sync_status == SyncStatus.SYNC_ERROR
    assert "database is locked" in state.errors["sync"]
    assert feed.listener_count(store.key) == 1

    monkeypatch.undo()
    feed.publish(store.key)
    assert controller.snapshot().sync_status == SyncStatus.SYNCED

def test_resubscribe_tears_down_previous_feed(controller, stores, feed):
    store = stores[-1]
    assert feed.listener_count(store.key) == 1
    controller.subscribe()
    assert feed.listener_count(store.key) == 1

def test_close_unsubscribes_and_ignores_late_deliveries(make_controller, stores, feed, anna_form):
    ctrl = make_controller()
    ctrl.authenticate("good-token")
    store = stores[-1]

    ctrl.close()
    assert feed.listener_count(store.key) == 0

    store.create(EventCreate(**anna_form))
    assert ctrl.snapshot().events == []


# -------- create-event workflow --------

def test_create_event_resets_form(controller, anna_form):
    controller.update_form(**anna_form)
    event_id = controller.create_event()

    state = controller.snapshot()
    assert state.form_status == FormStatus.IDLE
    assert state.form.name == ""
    assert state.form.type == "Birthday"
    assert [e.id for e in state.events] == [event_id]
    assert state.events[0].ai_ready is False

@pytest.mark.parametrize("blank_field", ["name", "type", "datetime", "recipient"])
def test_blank_field_fails_validation_without_store_call(controller, stores, anna_form, blank_field):
    anna_form[blank_field] = "   "
    controller.update_form(**anna_form)

    with pytest.raises(ValidationError) as exc_info:
        controller.create_event()

    state = controller.snapshot()
    assert state.form_status == FormStatus.VALIDATION_FAILED
    assert state.form.name == anna_form["name"]
    assert state.errors["form"] == "Please fill in all required fields."
    assert blank_field in exc_info.value.fields
    assert stores[-1].list() == []

def test_invalid_datetime_fails_validation(controller, anna_form):
    anna_form["datetime"] = "2025-13-45T99:00"
    with pytest.raises(ValidationError) as exc_info:
        controller.create_event(anna_form)
    assert "date" in exc_info.value.message
    assert controller.snapshot().events == []

def test_unknown_event_type_fails_validation(controller, anna_form):
    anna_form["type"] = "Picnic"
    with pytest.raises(ValidationError):
        controller.create_event(anna_form)

def test_submission_in_progress_is_rejected(controller, stores, anna_form, monkeypatch):
    store = stores[-1]
    attempts = []

    def slow_create(fields):
        attempts.append(fields)
        assert controller.snapshot().submit_disabled
        with pytest.raises(SubmissionInProgressError):
            controller.create_event(anna_form)
        return "id-1"

    monkeypatch.setattr(store, "create", slow_create)
    assert controller.create_event(anna_form) == "id-1"
    assert len(attempts) == 1

def test_write_failure_keeps_form_values(controller, stores, anna_form, monkeypatch):
    def broken(fields):
        raise WriteError("permission denied")

    monkeypatch.setattr(stores[-1], "create", broken)
    with pytest.raises(WriteError):
        controller.create_event(anna_form)

    state = controller.snapshot()
    assert state.form_status == FormStatus.WRITE_FAILED
    assert state.form.recipient == "loves hiking"
    assert state.errors["form"] == "permission denied"

def test_create_requires_sign_in(make_controller, anna_form):
    ctrl = make_controller()
    with pytest.raises(AuthError):
        ctrl.create_event(anna_form)


# -------- generate-AI-content workflow --------

@pytest.mark.asyncio
async def test_generation_scenario_persists_in_one_write(make_controller, stores, anna_form):
    ai = FakeAIClient("Step 1...", "- Tent\n- Boots")
    ctrl = make_controller(ai_client=ai)
    ctrl.authenticate("good-token")
    store = stores[-1]

    event_id = ctrl.create_event(anna_form)
    assert store.get(event_id).ai_ready is False

    await ctrl.generate_ai_content(event_id)

    stored = store.get(event_id)
    assert stored.ai_ready is True
    assert stored.plan == "Step 1..."
    assert stored.gifts == "- Tent\n- Boots"
    assert len(store.replace_calls) == 1
    assert ctrl.snapshot().generations[event_id].status == GenerationStatus.READY
    ctrl.close()

@pytest.mark.asyncio
async def test_plan_then_gifts_share_prompt(make_controller, anna_form):
    ai = FakeAIClient("Step 1...", "- Tent")
    ctrl = make_controller(ai_client=ai)
    ctrl.authenticate("good-token")
    event_id = ctrl.create_event(anna_form)

    await ctrl.generate_ai_content(event_id)

    (plan_sys, plan_prompt, _), (gift_sys, gift_prompt, _) = ai.calls
    assert plan_sys == PLAN_SYSTEM_INSTRUCTION
    assert gift_sys == GIFTS_SYSTEM_INSTRUCTION
    assert plan_prompt == gift_prompt
    assert "Anna's 30th" in plan_prompt
    assert "Birthday" in plan_prompt
    assert "Sunday, June 1, 2025 at 6:00 PM" in plan_prompt
    assert "loves hiking" in plan_prompt

@pytest.mark.asyncio
async def test_plan_visible_before_gift_call(make_controller, anna_form):
    observed = {}

    class WatchingAI(FakeAIClient):
        async def generate(self, system_instruction, user_prompt, auth_token=None):
            if system_instruction == GIFTS_SYSTEM_INSTRUCTION:
                observed["view"] = ctrl.snapshot().generations[event_id]
            return await super().generate(system_instruction, user_prompt, auth_token)

    ai = WatchingAI("Step 1...", "- Tent")
    ctrl = make_controller(ai_client=ai)
    ctrl.authenticate("good-token")
    event_id = ctrl.create_event(anna_form)

    await ctrl.generate_ai_content(event_id)

    assert observed["view"].status == GenerationStatus.GENERATING_GIFTS
    assert observed["view"].plan == "Step 1..."

@pytest.mark.asyncio
async def test_plan_failure_writes_nothing(make_controller, stores, anna_form):
    ai = FakeAIClient(upstream_500())
    ctrl = make_controller(ai_client=ai)
    ctrl.authenticate("good-token")
    store = stores[-1]
    event_id = ctrl.create_event(anna_form)

    with pytest.raises(UpstreamError):
        await ctrl.generate_ai_content(event_id)

    state = ctrl.snapshot()
    assert store.replace_calls == []
    assert store.get(event_id).ai_ready is False
    assert state.generations[event_id].status == GenerationStatus.FAILED
    assert "500" in state.generations[event_id].error
    assert "500" in state.errors["generation"]
    assert len(ai.calls) == 1

@pytest.mark.asyncio
async def test_gift_failure_leaves_event_unchanged(make_controller, stores, anna_form):
    ai = FakeAIClient("Step 1...", upstream_500())
    ctrl = make_controller(ai_client=ai)
    ctrl.authenticate("good-token")
    store = stores[-1]
    event_id = ctrl.create_event(anna_form)
    before = store.get(event_id)

    with pytest.raises(UpstreamError):
        await ctrl.generate_ai_content(event_id)

    assert store.get(event_id) == before
    assert store.replace_calls == []

@pytest.mark.asyncio
async def test_empty_ai_text_is_a_failure(make_controller, stores, anna_form):
    ai = FakeAIClient("Step 1...", "")
    ctrl = make_controller(ai_client=ai)
    ctrl.authenticate("good-token")
    event_id = ctrl.create_event(anna_form)

    with pytest.raises(UpstreamError):
        await ctrl.generate_ai_content(event_id)
    assert stores[-1].get(event_id).ai_ready is False

@pytest.mark.asyncio
async def test_persist_failure_marks_failed(make_controller, stores, anna_form, monkeypatch):
    ai = FakeAIClient("Step 1...", "- Tent")
    ctrl = make_controller(ai_client=ai)
    ctrl.authenticate("good-token")
    event_id = ctrl.create_event(anna_form)

    def broken(event_id, event):
        raise WriteError("quota exceeded")

    monkeypatch.setattr(stores[-1], "replace", broken)
    with pytest.raises(WriteError):
        await ctrl.generate_ai_content(event_id)
    assert ctrl.snapshot().generations[event_id].status == GenerationStatus.FAILED

@pytest.mark.asyncio
async def test_reentry_for_same_event_is_rejected(make_controller, anna_form):
    class ReentrantAI(FakeAIClient):
        async def generate(self, system_instruction, user_prompt, auth_token=None):
            if system_instruction == PLAN_SYSTEM_INSTRUCTION:
                with pytest.raises(GenerationInProgressError):
                    await ctrl.generate_ai_content(event_id)
            return await super().generate(system_instruction, user_prompt, auth_token)

    ai = ReentrantAI("Step 1...", "- Tent")
    ctrl = make_controller(ai_client=ai)
    ctrl.authenticate("good-token")
    event_id = ctrl.create_event(anna_form)

    await ctrl.generate_ai_content(event_id)
    assert len(ai.calls) == 2

@pytest.mark.asyncio
async def test_retry_after_failure_is_allowed(make_controller, anna_form):
    ai = FakeAIClient(upstream_500(), "Step 1...", "- Tent")
    ctrl = make_controller(ai_client=ai)
    ctrl.authenticate("good-token")
    event_id = ctrl.create_event(anna_form)

    with pytest.raises(UpstreamError):
        await ctrl.generate_ai_content(event_id)
    event = await ctrl.generate_ai_content(event_id)

    assert event.ai_ready is True
    assert "generation" not in ctrl.snapshot().errors

@pytest.mark.asyncio
async def test_generate_unknown_event(controller):
    with pytest.raises(EventNotFoundError):
        await controller.generate_ai_content("nope")


# -------- reminders and detail view --------

def test_reminders_follow_clock(controller, anna_form):
    controller.create_event(anna_form)
    controller.create_event({**anna_form, "name": "Later", "datetime": "2025-07-01T18:00"})

    state = controller.snapshot()
    assert [e.name for e in state.events] == ["Anna's 30th", "Later"]
    assert [e.name for e in state.reminders] == ["Anna's 30th"]

@pytest.mark.asyncio
async def test_details_render_markdown(make_controller, anna_form):
    ai = FakeAIClient("# Plan\n**Book** venue", "- Tent\n- Boots")
    ctrl = make_controller(ai_client=ai)
    ctrl.authenticate("good-token")
    event_id = ctrl.create_event(anna_form)
    await ctrl.generate_ai_content(event_id)

    detail = ctrl.open_details(event_id)

    assert "<h1>Plan</h1>" in detail.plan_html
    assert "<strong>Book</strong>" in detail.plan_html
    assert detail.gifts_html.count("<li>") == 2
    assert ctrl.snapshot().selected.event.id == event_id

    ctrl.close_details()
    assert ctrl.snapshot().selected is None

def test_open_details_unknown_event(controller):
    with pytest.raises(EventNotFoundError):
        controller.open_details("nope")

def test_dismiss_error(controller, anna_form):
    anna_form["name"] = ""
    with pytest.raises(ValidationError):
        controller.create_event(anna_form)
    controller.dismiss_error("form")
    assert "form" not in controller.snapshot().errors

@pytest.mark.parametrize("when", ["2025-06-01", "2025-06-01T18:00:00+05:00"])
def test_date_only_or_offset_datetime_fails_validation(controller, anna_form, when):
    anna_form["datetime"] = when
    with pytest.raises(ValidationError):
        controller.create_event(anna_form)
    assert controller.snapshot().errors["form"] == "Please enter a valid date and time."

def test_datetime_with_seconds_is_stored_to_the_minute(controller, anna_form):
    anna_form["datetime"] = "2025-06-01T18:00:45"
    controller.create_event(anna_form)
    assert controller.snapshot().events[0].datetime == "2025-06-01T18:00"


# -------- unexpected failures end the workflow --------

def test_unexpected_create_failure_allows_resubmission(controller, stores, anna_form, monkeypatch):
    store = stores[-1]
    original = store.create

    def broken(fields):
        raise ConnectionResetError("connection reset by peer")

    monkeypatch.setattr(store, "create", broken)
    with pytest.raises(ConnectionResetError):
        controller.create_event(anna_form)
    state = controller.snapshot()
    assert state.form_status == FormStatus.WRITE_FAILED
    assert "connection reset by peer" in state.errors["form"]
    assert not state.submit_disabled

    monkeypatch.setattr(store, "create", original)
    event_id = controller.create_event()
    assert [e.id for e in controller.snapshot().events] == [event_id]

@pytest.mark.asyncio
async def test_unexpected_persist_failure_allows_retry(make_controller, stores, anna_form, monkeypatch):
    ai = FakeAIClient("Step 1...", "- Tent", "Step 1...", "- Tent")
    ctrl = make_controller(ai_client=ai)
    ctrl.authenticate("good-token")
    event_id = ctrl.create_event(anna_form)
    store = stores[-1]
    original = store.replace

    def broken(event_id, event):
        raise TimeoutError("deadline exceeded")

    monkeypatch.setattr(store, "replace", broken)
    with pytest.raises(TimeoutError):
        await ctrl.generate_ai_content(event_id)
    generation = ctrl.snapshot().generations[event_id]
    assert generation.status == GenerationStatus.FAILED
    assert "deadline exceeded" in generation.error

    monkeypatch.setattr(store, "replace", original)
    event = await ctrl.generate_ai_content(event_id)
    assert event.ai_ready is True

@pytest.mark.asyncio
async def test_unexpected_ai_failure_marks_failed(make_controller, anna_form):
    ai = FakeAIClient(RuntimeError("client closed"))
    ctrl = make_controller(ai_client=ai)
    ctrl.authenticate("good-token")
    event_id = ctrl.create_event(anna_form)

    with pytest.raises(RuntimeError):
        await ctrl.generate_ai_content(event_id)
    assert ctrl.snapshot().generations[event_id].status == GenerationStatus.FAILED
    assert "client closed" in ctrl.snapshot().errors["generation"]


# -------- delete --------

def test_delete_event_removes_it_from_state(controller, anna_form):
    keep = controller.create_event(anna_form)
    gone = controller.create_event({**anna_form, "name": "Cancelled"})
    controller.open_details(gone)

    controller.delete_event(gone)

    state = controller.snapshot()
    assert [e.id for e in state.events] == [keep]
    assert state.selected is None

def test_delete_unknown_event(controller):
    with pytest.raises(EventNotFoundError):
        controller.delete_event("nope")

def test_delete_write_failure_is_surfaced(controller, stores, anna_form, monkeypatch):
    event_id = controller.create_event(anna_form)

    def broken(event_id):
        raise WriteError("permission denied")

    monkeypatch.setattr(stores[-1], "delete", broken)
    with pytest.raises(WriteError):
        controller.delete_event(event_id)
    state = controller.snapshot()
    assert state.errors["delete"] == "permission denied"
    assert [e.id for e in state.events] == [event_id]

@pytest.mark.asyncio
async def test_delete_rejected_while_generating(make_controller, anna_form):
    class DeletingAI(FakeAIClient):
        async def generate(self, system_instruction, user_prompt, auth_token=None):
            if system_instruction == PLAN_SYSTEM_INSTRUCTION:
                with pytest.raises(GenerationInProgressError):
                    ctrl.delete_event(event_id)
            return await super().generate(system_instruction, user_prompt, auth_token)

    ai = DeletingAI("Step 1...", "- Tent")
    ctrl = make_controller(ai_client=ai)
    ctrl.authenticate("good-token")
    event_id = ctrl.create_event(anna_form)

    await ctrl.generate_ai_content(event_id)
    ctrl.delete_event(event_id)
    assert ctrl.snapshot().events == []
