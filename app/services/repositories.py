"""
Repository layer abstracting event storage (SQLAlchemy vs Firebase Firestore).

Every store instance is scoped to one application id and one user id; there
is no way to read or write another user's events through it.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings
from app.core.errors import SyncError, WriteError
from app.models import EventRecord
from app.schemas.event import Event, EventCreate
from app.services.firebase_client import get_firestore_client

logger = logging.getLogger(__name__)

OnChange = Callable[[List[Event]], None]
OnError = Callable[[SyncError], None]


def use_firestore() -> bool:
    return settings.USE_FIREBASE is True


def sort_events(events: Iterable[Event]) -> List[Event]:
    """Ascending by scheduled date-time; the ISO string is fixed width"""
    return sorted(events, key=lambda e: e.datetime)


def parse_documents(rows: Iterable[Tuple[str, Dict[str, Any]]]) -> List[Event]:
    """Validate raw (id, fields) pairs, dropping any that do not form an Event"""
    events = []
    for event_id, data in rows:
        try:
            events.append(Event.model_validate({**data, "id": event_id}))
        except SchemaValidationError as e:
            logger.warning(f"Skipping invalid event document {event_id}: {e.error_count()} errors")
    return events


class Subscription:
    """Handle for a live feed; unsubscribe() is safe to call more than once"""

    def __init__(self, teardown: Callable[[], None]):
        self._teardown = teardown
        self._lock = threading.Lock()
        self.active = True

    def unsubscribe(self) -> None:
        with self._lock:
            if not self.active:
                return
            self.active = False
        self._teardown()


class ChangeFeed:
    """In-process fan-out of "collection changed" notifications per (app, user)"""

    def __init__(self):
        self._listeners: Dict[Tuple[str, str], List[Callable[[], None]]] = defaultdict(list)
        self._lock = threading.Lock()

    def listen(self, key: Tuple[str, str], callback: Callable[[], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners[key].append(callback)

        def remove():
            with self._lock:
                try:
                    self._listeners[key].remove(callback)
                except ValueError:
                    pass
                if not self._listeners[key]:
                    del self._listeners[key]

        return remove

    def publish(self, key: Tuple[str, str]) -> None:
        with self._lock:
            callbacks = list(self._listeners.get(key, []))
        for callback in callbacks:
            callback()

    def listener_count(self, key: Tuple[str, str]) -> int:
        with self._lock:
            return len(self._listeners.get(key, []))


# Global change feed shared by all SQL-backed stores in this process
change_feed = ChangeFeed()


class EventStore:
    """Per-user event collection"""

    def __init__(self, app_id: str, user_id: str):
        self.app_id = app_id
        self.user_id = user_id

    def create(self, fields: EventCreate) -> str:
        raise NotImplementedError

    def replace(self, event_id: str, event: Event) -> None:
        raise NotImplementedError

    def delete(self, event_id: str) -> None:
        raise NotImplementedError

    def list(self) -> List[Event]:
        raise NotImplementedError

    def get(self, event_id: str) -> Optional[Event]:
        raise NotImplementedError

    def subscribe(self, on_change: OnChange, on_error: OnError) -> Subscription:
        raise NotImplementedError


# -------- SQLAlchemy store --------

class SqlEventStore(EventStore):
    def __init__(self, session_factory: sessionmaker, app_id: str, user_id: str, feed: ChangeFeed = change_feed):
        super().__init__(app_id, user_id)
        self.session_factory = session_factory
        self.feed = feed

    @property
    def key(self) -> Tuple[str, str]:
        return (self.app_id, self.user_id)

    def _query(self, db: Session):
        return db.query(EventRecord).filter(
            EventRecord.app_id == self.app_id,
            EventRecord.user_id == self.user_id,
        )

    @staticmethod
    def _row(record: EventRecord) -> Tuple[str, Dict[str, Any]]:
        return record.id, {
            "name": record.name,
            "type": record.type,
            "datetime": record.datetime,
            "recipient": record.recipient,
            "created_at": record.created_at,
            "plan": record.plan or "",
            "gifts": record.gifts or "",
            "ai_ready": bool(record.ai_ready),
        }

    def create(self, fields: EventCreate) -> str:
        db = self.session_factory()
        try:
            record = EventRecord(
                app_id=self.app_id,
                user_id=self.user_id,
                name=fields.name,
                type=fields.type.value,
                datetime=fields.datetime,
                recipient=fields.recipient,
                plan="",
                gifts="",
                ai_ready=False,
            )
            db.add(record)
            db.commit()
            event_id = record.id
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to create event for user {self.user_id}: {e}")
            raise WriteError(f"Could not save event: {e}") from e
        finally:
            db.close()

        logger.info(f"Created event {event_id} for user {self.user_id}")
        self.feed.publish(self.key)
        return event_id

    def replace(self, event_id: str, event: Event) -> None:
        db = self.session_factory()
        try:
            record = self._query(db).filter(EventRecord.id == event_id).first()
            if record is None:
                raise WriteError(f"Event {event_id} not found")
            for column, value in event.store_fields().items():
                setattr(record, column, value)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to update event {event_id}: {e}")
            raise WriteError(f"Could not update event: {e}") from e
        finally:
            db.close()

        logger.info(f"Replaced event {event_id} for user {self.user_id}")
        self.feed.publish(self.key)

    def delete(self, event_id: str) -> None:
        db = self.session_factory()
        try:
            deleted = self._query(db).filter(EventRecord.id == event_id).delete(synchronize_session=False)
            if not deleted:
                raise WriteError(f"Event {event_id} not found")
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to delete event {event_id}: {e}")
            raise WriteError(f"Could not delete event: {e}") from e
        finally:
            db.close()

        logger.info(f"Deleted event {event_id} for user {self.user_id}")
        self.feed.publish(self.key)

    def list(self) -> List[Event]:
        db = self.session_factory()
        try:
            records = self._query(db).order_by(EventRecord.datetime.asc()).all()
            return sort_events(parse_documents(self._row(r) for r in records))
        except SQLAlchemyError as e:
            raise SyncError(f"Could not load events: {e}") from e
        finally:
            db.close()

    def get(self, event_id: str) -> Optional[Event]:
        db = self.session_factory()
        try:
            record = self._query(db).filter(EventRecord.id == event_id).first()
            if record is None:
                return None
            found = parse_documents([self._row(record)])
            return found[0] if found else None
        except SQLAlchemyError as e:
            raise SyncError(f"Could not load event {event_id}: {e}") from e
        finally:
            db.close()

    def subscribe(self, on_change: OnChange, on_error: OnError) -> Subscription:
        def deliver():
            try:
                events = self.list()
            except SyncError as e:
                logger.error(f"Event feed read failed for user {self.user_id}: {e.message}")
                on_error(e)
                return
            on_change(events)

        remove = self.feed.listen(self.key, deliver)
        subscription = Subscription(remove)
        deliver()
        return subscription


# -------- Firestore store --------

class FirestoreEventStore(EventStore):
    """Events live under artifacts/{app_id}/users/{user_id}/events"""

    def __init__(self, client, app_id: str, user_id: str):
        super().__init__(app_id, user_id)
        self.client = client

    def collection(self):
        return (
            self.client.collection("artifacts").document(self.app_id)
            .collection("users").document(self.user_id)
            .collection("events")
        )

    def create(self, fields: EventCreate) -> str:
        data = {
            "name": fields.name,
            "type": fields.type.value,
            "datetime": fields.datetime,
            "recipient": fields.recipient,
            "created_at": firestore.SERVER_TIMESTAMP,
            "plan": "",
            "gifts": "",
            "ai_ready": False,
        }
        try:
            _, doc_ref = self.collection().add(data)
        except google_exceptions.GoogleAPIError as e:
            logger.error(f"Failed to create event for user {self.user_id}: {e}")
            raise WriteError(f"Could not save event: {e}") from e
        logger.info(f"Created event {doc_ref.id} for user {self.user_id}")
        return doc_ref.id

    def replace(self, event_id: str, event: Event) -> None:
        try:
            self.collection().document(event_id).update(event.store_fields())
        except google_exceptions.NotFound as e:
            raise WriteError(f"Event {event_id} not found") from e
        except google_exceptions.GoogleAPIError as e:
            logger.error(f"Failed to update event {event_id}: {e}")
            raise WriteError(f"Could not update event: {e}") from e
        logger.info(f"Replaced event {event_id} for user {self.user_id}")

    def delete(self, event_id: str) -> None:
        try:
            self.collection().document(event_id).delete()
        except google_exceptions.GoogleAPIError as e:
            logger.error(f"Failed to delete event {event_id}: {e}")
            raise WriteError(f"Could not delete event: {e}") from e
        logger.info(f"Deleted event {event_id} for user {self.user_id}")

    def list(self) -> List[Event]:
        try:
            docs = list(self.collection().order_by("datetime").stream())
        except google_exceptions.GoogleAPIError as e:
            logger.error(f"Failed to list events for user {self.user_id}: {e}")
            raise SyncError(f"Could not load events: {e}") from e
        return sort_events(parse_documents((d.id, d.to_dict()) for d in docs))

    def get(self, event_id: str) -> Optional[Event]:
        try:
            doc = self.collection().document(event_id).get()
        except google_exceptions.GoogleAPIError as e:
            logger.error(f"Failed to read event {event_id}: {e}")
            raise SyncError(f"Could not load event {event_id}: {e}") from e
        if not doc.exists:
            return None
        found = parse_documents([(doc.id, doc.to_dict())])
        return found[0] if found else None

    def subscribe(self, on_change: OnChange, on_error: OnError) -> Subscription:
        def on_snapshot(col_snapshot, changes, read_time):
            try:
                events = sort_events(parse_documents((d.id, d.to_dict()) for d in col_snapshot))
            except Exception as e:
                logger.error(f"Event feed delivery failed for user {self.user_id}: {e}")
                on_error(SyncError(f"Could not load events: {e}"))
                return
            on_change(events)

        try:
            watch = self.collection().on_snapshot(on_snapshot)
        except google_exceptions.GoogleAPIError as e:
            raise SyncError(f"Could not subscribe to events: {e}") from e
        return Subscription(watch.unsubscribe)


# -------- Factory --------

StoreFactory = Callable[[str, str], EventStore]


def build_store_factory(session_factory: Optional[sessionmaker] = None) -> StoreFactory:
    """Pick the backend the way the rest of the app does: Firestore when enabled"""
    if use_firestore():
        def firestore_store(app_id: str, user_id: str) -> EventStore:
            return FirestoreEventStore(get_firestore_client(), app_id, user_id)
        return firestore_store

    if session_factory is None:
        from app.core.db import SessionLocal
        session_factory = SessionLocal

    def sql_store(app_id: str, user_id: str) -> EventStore:
        return SqlEventStore(session_factory, app_id, user_id)
    return sql_store
