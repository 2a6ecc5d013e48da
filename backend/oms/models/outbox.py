from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class OutboxEvent(db.Model):
    """
    Post-commit work item.

    Written in the same transaction as the state change that needs it, then
    dispatched after commit on a separate session.

    STATUS: PENDING | FAILED -> PROCESSING -> DONE | FAILED

    A dispatcher claims a row by moving it to PROCESSING (stamping
    claimed_at); only the claimer may run it. PROCESSING rows whose claim is
    older than OUTBOX_CLAIM_TIMEOUT_SECONDS are reclaimable (crashed
    dispatcher). FAILED rows are retried by `flask outbox dispatch`.
    """
    __tablename__ = "outbox_events"
    __table_args__ = (
        db.Index("ix_outbox_events_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(64), nullable=False)
    payload = db.Column(db.JSON, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="PENDING")
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    claimed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "payload": self.payload,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": to_utc_z(self.created_at),
            "claimed_at": to_utc_z(self.claimed_at),
            "processed_at": to_utc_z(self.processed_at),
        }
