from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class AuditEvent(db.Model):
    """
    Operator action log (who did what to which record, from where).

    Written after the business change committed; a missing row never
    means the change did not happen.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_target", "target_type", "target_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    actor_email = db.Column(db.String(255), nullable=True)

    target_type = db.Column(db.String(64), nullable=False)
    target_id = db.Column(db.Integer, nullable=True)
    action_kind = db.Column(db.String(64), nullable=False, index=True)

    details = db.Column(db.JSON, nullable=True)
    reason = db.Column(db.String(255), nullable=True)
    source_address = db.Column(db.String(64), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor_user_id": self.actor_user_id,
            "actor_email": self.actor_email,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "action_kind": self.action_kind,
            "details": self.details,
            "reason": self.reason,
            "source_address": self.source_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }
