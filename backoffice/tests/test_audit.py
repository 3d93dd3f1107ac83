# backoffice/tests/test_audit.py

from unittest.mock import MagicMock, patch

from sqlalchemy import select

from backoffice.audit.hooks import AuditRecord, celery_audit_hook, dispatch_post_commit
from backoffice.audit.models import AuditLog
from backoffice.audit.tasks import persist_audit_record


def _record(**overrides):
    values = dict(
        actor_id="user-1",
        action="CREATE",
        entity_type="CUSTOMER_PAYMENT",
        entity_id="17",
        after_snapshot={"total_paid": "10.00"},
    )
    values.update(overrides)
    return AuditRecord(**values)


class TestDispatchPostCommit:

    def test_calls_every_hook_even_after_a_failure(self):
        first = MagicMock(side_effect=RuntimeError("sink unavailable"))
        second = MagicMock()
        record = _record()

        dispatch_post_commit([first, second], record)

        first.assert_called_once_with(record)
        second.assert_called_once_with(record)

    def test_no_hooks(self):
        dispatch_post_commit([], _record())


class TestCeleryAuditHook:

    def test_enqueues_serialized_record(self):
        with patch("backoffice.audit.tasks.write_audit_record") as task:
            celery_audit_hook(_record(before_snapshot={"available": "5.00"}))

        task.delay.assert_called_once()
        payload = task.delay.call_args.args[0]
        assert payload["entity_id"] == "17"
        assert payload["before_snapshot"] == {"available": "5.00"}


class TestPersistAuditRecord:

    def test_writes_audit_log_row(self, db_session):
        persist_audit_record(db_session, _record().to_dict())

        row = db_session.execute(select(AuditLog)).scalar_one()
        assert row.actor_id == "user-1"
        assert row.entity_type == "CUSTOMER_PAYMENT"
        assert row.after_snapshot == {"total_paid": "10.00"}
        assert row.before_snapshot is None
