# backoffice/audit/tasks.py

"""
Celery task that persists audit records emitted after payment engine commits.

RETRY CONFIGURATION:
- autoretry_for: database errors are retried automatically
- retry_backoff: exponential backoff between attempts, capped at 10 minutes
- retry_jitter: randomized timing to avoid thundering herd
"""

from celery import shared_task
from sqlalchemy.exc import SQLAlchemyError

from backoffice.audit.models import AuditLog
from backoffice.core.config import settings
from backoffice.core.db import SessionLocal
from backoffice.utils.logger import get_logger

logger = get_logger(__name__)


def persist_audit_record(db, record: dict) -> AuditLog:
    entry = AuditLog(
        actor_id=record["actor_id"],
        action=record["action"],
        entity_type=record["entity_type"],
        entity_id=str(record["entity_id"]),
        before_snapshot=record.get("before_snapshot"),
        after_snapshot=record["after_snapshot"],
        created_by=record["actor_id"],
    )
    db.add(entry)
    db.commit()
    return entry


@shared_task(
    name="audit.write_record",
    bind=True,
    autoretry_for=(SQLAlchemyError, ConnectionError),
    retry_kwargs={"max_retries": settings.audit_task_max_retries, "countdown": 5},
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
)
def write_audit_record(self, record: dict) -> int:
    """
    Writes one immutable audit log row.

    Returns:
        The id of the stored AuditLog row.
    """
    db = SessionLocal()
    try:
        entry = persist_audit_record(db, record)
        logger.info(
            "Audit record stored",
            audit_log_id=entry.id,
            action=entry.action,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            attempt=self.request.retries,
        )
        return entry.id
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Failed to store audit record, will retry", entity_id=record.get("entity_id"))
        raise
    finally:
        db.close()
