# backoffice/audit/hooks.py

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Iterable, Optional

from backoffice.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuditRecord:
    actor_id: str
    action: str  # CREATE / UPDATE
    entity_type: str
    entity_id: str
    after_snapshot: Dict[str, Any]
    before_snapshot: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


PostCommitHook = Callable[[AuditRecord], None]


def dispatch_post_commit(hooks: Iterable[PostCommitHook], record: AuditRecord) -> None:
    """
    Hands a committed record to every hook. A failing hook is logged and
    skipped; the financial transaction has already committed.
    """
    for hook in hooks:
        try:
            hook(record)
        except Exception as e:
            logger.error(
                "Post-commit hook failed",
                hook=getattr(hook, "__name__", repr(hook)),
                action=record.action,
                entity_type=record.entity_type,
                entity_id=record.entity_id,
                error=str(e),
                exc_info=True,
            )


def celery_audit_hook(record: AuditRecord) -> None:
    """Queues the record for the audit writer task."""
    from backoffice.audit.tasks import write_audit_record

    write_audit_record.delay(record.to_dict())
    logger.debug(
        "Queued audit record", entity_type=record.entity_type, entity_id=record.entity_id
    )
