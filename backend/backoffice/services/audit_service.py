# Overview: Fire-and-forget operator audit trail.

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import AuditEvent
from backoffice.time_utils import utcnow


def record_action(
    actor,
    target_type: str,
    target_id: int | None,
    action_kind: str,
    details: dict | None = None,
    reason: str | None = None,
    source_address: str | None = None,
) -> AuditEvent | None:
    """
    Append an audit event for an action that already committed.

    WHY: Operators must be able to see who opened a drawer, cut it, or
    distributed a line. The business change never depends on this write:
    a failure is rolled back and logged, and None is returned.

    action_kind examples:
    - SALE_CREATED
    - PAYMENT_ADDED / PAYMENT_REMOVED
    - DRAWER_OPENED / DRAWER_CLOSED / DRAWER_CUT
    - LINE_DISTRIBUTED / LINES_DISTRIBUTED
    - WITHDRAWAL_CREATED
    """
    event = AuditEvent(
        actor_user_id=actor.id if actor is not None else None,
        actor_email=actor.email if actor is not None else None,
        target_type=target_type,
        target_id=target_id,
        action_kind=action_kind,
        details=details,
        reason=reason,
        source_address=source_address,
        occurred_at=utcnow(),
    )
    try:
        db.session.add(event)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to record audit event %s for %s %s", action_kind, target_type, target_id)
        return None
    return event
