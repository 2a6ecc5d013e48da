# Overview: Transactional outbox; post-commit work recorded next to the state change and dispatched after commit.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta

from flask import current_app
from sqlalchemy import and_, or_, update

from ..cache import UserViewCache
from ..extensions import db
from ..models import OutboxEvent
from ..notifications import NotificationBus, NullNotificationBus
from ..time_utils import utcnow
from .concurrency import independent_session
from .constants import (
    OUTBOX_DONE,
    OUTBOX_EVENT_RETURN_RESTOCK,
    OUTBOX_FAILED,
    OUTBOX_PENDING,
    OUTBOX_PROCESSING,
)
from .restock_service import RestockReport, restock_returns

logger = logging.getLogger(__name__)


@dataclass
class DispatchOutcome:
    done: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)
    skipped: list[int] = field(default_factory=list)
    reports: dict[int, RestockReport] = field(default_factory=dict)

    @property
    def restocked_count(self) -> int:
        return sum(len(r.restocked) for r in self.reports.values())

    def error_message(self) -> str | None:
        if not self.failed:
            return None
        return "; ".join(self.failed[event_id] for event_id in sorted(self.failed))


def enqueue(event_type: str, payload: dict) -> OutboxEvent:
    """Add an event to the caller's (uncommitted) transaction."""
    event = OutboxEvent(event_type=event_type, payload=payload, status=OUTBOX_PENDING, attempts=0)
    db.session.add(event)
    db.session.flush()
    return event


def _handle_restock(session, payload: dict, bus: NotificationBus, cache) -> RestockReport:
    return restock_returns(
        session,
        list(payload.get("return_ids") or []),
        payload["merchant_id"],
        payload.get("actor_id"),
        bus,
        cache,
    )


HANDLERS = {
    OUTBOX_EVENT_RETURN_RESTOCK: _handle_restock,
}


def _stale_before(now):
    return now - timedelta(seconds=int(current_app.config.get("OUTBOX_CLAIM_TIMEOUT_SECONDS", 300)))


def _claim(event_id: int) -> bool:
    """
    Move the event to PROCESSING in one conditional UPDATE.

    True only for the dispatcher whose UPDATE matched the row; a concurrent
    dispatcher sees rowcount 0 and leaves the event alone.
    """
    now = utcnow()
    stale_before = _stale_before(now)
    with independent_session() as session:
        result = session.execute(
            update(OutboxEvent)
            .where(
                OutboxEvent.id == event_id,
                or_(
                    OutboxEvent.status.in_([OUTBOX_PENDING, OUTBOX_FAILED]),
                    and_(OutboxEvent.status == OUTBOX_PROCESSING, OutboxEvent.claimed_at < stale_before),
                ),
            )
            .values(
                status=OUTBOX_PROCESSING,
                claimed_at=now,
                attempts=OutboxEvent.attempts + 1,
            )
            .execution_options(synchronize_session=False)
        )
        session.commit()
        return result.rowcount == 1


def _record(event_id: int, *, status: str, error: str | None) -> None:
    with independent_session() as session:
        event = session.get(OutboxEvent, event_id)
        if event is None:
            return
        event.status = status
        event.last_error = error
        event.processed_at = utcnow()
        session.commit()


def _dispatch_one(event_id: int, bus: NotificationBus, cache, outcome: DispatchOutcome) -> None:
    """Run a claimed event; raises on handler errors (the caller records FAILED)."""
    with independent_session() as session:
        event = session.get(OutboxEvent, event_id)
        if event is None:
            logger.warning("Outbox event %s not found", event_id)
            return

        handler = HANDLERS.get(event.event_type)
        if handler is None:
            raise LookupError(f"No handler for outbox event type {event.event_type!r}")

        report = handler(session, dict(event.payload or {}), bus, cache)

    outcome.reports[event_id] = report
    if report.ok:
        _record(event_id, status=OUTBOX_DONE, error=None)
        outcome.done.append(event_id)
    else:
        message = report.error_message()
        _record(event_id, status=OUTBOX_FAILED, error=message)
        outcome.failed[event_id] = message


def dispatch_events(
    event_ids: list[int],
    *,
    bus: NotificationBus | None = None,
    cache: UserViewCache | None = None,
) -> DispatchOutcome:
    """
    Claim and run outbox events on independent sessions, recording DONE/FAILED.

    Events already claimed by another dispatcher (or already DONE) are
    reported as skipped. Never raises: failures are logged, written to the
    event row when this dispatcher owns it, and returned in the outcome.
    """
    bus = bus or NullNotificationBus()
    outcome = DispatchOutcome()

    for event_id in event_ids:
        try:
            claimed = _claim(event_id)
        except Exception as exc:
            logger.exception("Could not claim outbox event %s", event_id)
            outcome.failed[event_id] = str(exc)
            continue
        if not claimed:
            logger.info("Outbox event %s is done or claimed elsewhere; skipping", event_id)
            outcome.skipped.append(event_id)
            continue

        try:
            _dispatch_one(event_id, bus, cache, outcome)
        except Exception as exc:
            logger.exception("Outbox event %s failed", event_id)
            outcome.failed[event_id] = str(exc)
            try:
                _record(event_id, status=OUTBOX_FAILED, error=str(exc))
            except Exception:
                logger.exception("Could not record failure for outbox event %s", event_id)
    return outcome


def pending_event_ids(limit: int = 100) -> list[int]:
    """PENDING and FAILED events, plus PROCESSING ones whose claim went stale."""
    stale_before = _stale_before(utcnow())
    rows = (
        db.session.query(OutboxEvent.id)
        .filter(or_(
            OutboxEvent.status.in_([OUTBOX_PENDING, OUTBOX_FAILED]),
            and_(OutboxEvent.status == OUTBOX_PROCESSING, OutboxEvent.claimed_at < stale_before),
        ))
        .order_by(OutboxEvent.created_at.asc(), OutboxEvent.id.asc())
        .limit(limit)
        .all()
    )
    return [row.id for row in rows]


def dispatch_pending(
    *,
    bus: NotificationBus | None = None,
    cache: UserViewCache | None = None,
    limit: int = 100,
) -> DispatchOutcome:
    """Re-run PENDING/FAILED events and stale claims (crash recovery)."""
    return dispatch_events(pending_event_ids(limit), bus=bus, cache=cache)


def list_events(status: str | None = None, limit: int = 50) -> list[OutboxEvent]:
    query = db.session.query(OutboxEvent)
    if status:
        query = query.filter(OutboxEvent.status == status)
    return query.order_by(OutboxEvent.id.desc()).limit(limit).all()
