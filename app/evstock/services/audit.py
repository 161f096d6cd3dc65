import logging
from dataclasses import dataclass
from datetime import datetime

from app.evstock.db.models import AuditEvent
from app.evstock.repos.audit import AuditRepository

logger = logging.getLogger(__name__)


@dataclass
class AuditEventPayload:
    company_id: str | None
    user_id: str | None
    trace_id: str | None
    action: str
    entity_type: str
    entity_id: str
    metadata: dict | None = None
    actor_role: str | None = None


class AuditService:
    """Best-effort audit logging.

    Events are written after the transition has committed; failures are logged and
    swallowed so a committed transition is never reported as failed.
    """

    def __init__(self, db):
        self.db = db
        self.repo = AuditRepository(db)

    def record_event(self, payload: AuditEventPayload) -> None:
        metadata = dict(payload.metadata or {})
        metadata.setdefault("actor_role", payload.actor_role)
        try:
            event = AuditEvent(
                company_id=payload.company_id,
                user_id=payload.user_id,
                trace_id=payload.trace_id,
                action=payload.action,
                entity_type=payload.entity_type,
                entity_id=str(payload.entity_id),
                event_metadata=metadata,
                created_at=datetime.utcnow(),
            )
            self.repo.create(event)
        except Exception:
            self.db.rollback()
            logger.exception(
                "Failed to write audit event",
                extra={
                    "action": payload.action,
                    "trace_id": payload.trace_id,
                    "company_id": payload.company_id,
                    "entity_id": payload.entity_id,
                },
            )
