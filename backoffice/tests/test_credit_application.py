# backoffice/tests/test_credit_application.py

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from backoffice.credits.models import Credit, CreditApplication, CreditStatus
from backoffice.credits.schemas import ApplyCreditRequest
from backoffice.invoices.models import InvoiceStatus
from backoffice.ledger.exceptions import (
    CreditNotFoundError,
    InsufficientCreditError,
    InsufficientInvoiceBalanceError,
    InvalidArgumentError,
    InvalidOperationError,
    InvoiceNotFoundError,
)


@pytest.fixture
def credit_of(db_session, pay):
    """Creates an ACTIVE credit of the given amount by overpaying with no open invoices."""
    def _make(customer, amount):
        result = pay(customer, amount)
        return db_session.get(Credit, result.credit_id)
    return _make


def _apply(credit_service, actor, credit, invoice, amount):
    return credit_service.apply_credit(
        ApplyCreditRequest(credit_id=credit.id, invoice_id=invoice.id, amount=amount), actor
    )


class TestApplyCredit:

    def test_credit_reuse_until_exhausted(self, db_session, customer, make_invoice, credit_of, credit_service, actor):
        credit = credit_of(customer, "300.00")
        invoice = make_invoice(customer, "500.00")

        result = _apply(credit_service, actor, credit, invoice, "300.00")

        assert result.amount_applied == Decimal("300.00")
        assert result.credit_remaining == Decimal("0.00")
        assert result.credit_status == CreditStatus.EXHAUSTED
        assert result.invoice_new_balance == Decimal("200.00")
        assert result.invoice_status == InvoiceStatus.PARTIAL
        assert credit.status == CreditStatus.EXHAUSTED
        assert invoice.balance == Decimal("200.00")

        with pytest.raises(InvalidOperationError):
            _apply(credit_service, actor, credit, invoice, "1.00")

    def test_partial_use_keeps_credit_active(self, customer, make_invoice, credit_of, credit_service, actor):
        credit = credit_of(customer, "100.00")
        invoice = make_invoice(customer, "40.00")

        result = _apply(credit_service, actor, credit, invoice, "40.00")

        assert result.credit_remaining == Decimal("60.00")
        assert result.credit_status == CreditStatus.ACTIVE
        assert result.invoice_status == InvoiceStatus.PAID

    def test_application_row_is_dated_when_applied(self, db_session, customer, make_invoice, credit_of, credit_service, actor, today):
        credit = credit_of(customer, "50.00")
        invoice = make_invoice(customer, "50.00", invoice_date=today - timedelta(days=40))

        _apply(credit_service, actor, credit, invoice, "25.00")

        row = db_session.execute(select(CreditApplication)).scalar_one()
        assert row.applied_date == today
        assert row.applied_by == actor
        assert row.amount_applied == Decimal("25.00")

    def test_emits_audit_record_with_before_snapshot(self, customer, make_invoice, credit_of, credit_service, actor, audit_records):
        credit = credit_of(customer, "50.00")
        invoice = make_invoice(customer, "80.00")
        audit_records.clear()

        _apply(credit_service, actor, credit, invoice, "20.00")

        assert len(audit_records) == 1
        record = audit_records[0]
        assert record.action == "UPDATE"
        assert record.entity_type == "CREDIT"
        assert record.before_snapshot["credit_available"] == "50.00"
        assert record.after_snapshot["credit_remaining"] == "30.00"


class TestApplyCreditRejections:
    """Every rejection leaves the credit, the invoice and the application table untouched."""

    def _assert_untouched(self, db_session, credit, invoice, available, balance):
        db_session.refresh(credit)
        db_session.refresh(invoice)
        assert credit.available_amount == Decimal(available)
        assert invoice.balance == Decimal(balance)
        assert db_session.execute(select(func.count()).select_from(CreditApplication)).scalar() == 0

    def test_more_than_available_credit(self, db_session, customer, make_invoice, credit_of, credit_service, actor):
        credit = credit_of(customer, "30.00")
        invoice = make_invoice(customer, "100.00")

        with pytest.raises(InsufficientCreditError):
            _apply(credit_service, actor, credit, invoice, "30.01")
        self._assert_untouched(db_session, credit, invoice, "30.00", "100.00")

    def test_more_than_invoice_balance_is_not_clamped(self, db_session, customer, make_invoice, credit_of, credit_service, actor):
        credit = credit_of(customer, "100.00")
        invoice = make_invoice(customer, "40.00")

        with pytest.raises(InsufficientInvoiceBalanceError):
            _apply(credit_service, actor, credit, invoice, "50.00")
        self._assert_untouched(db_session, credit, invoice, "100.00", "40.00")

    def test_cross_customer(self, db_session, customer, make_customer, make_invoice, credit_of, credit_service, actor):
        credit = credit_of(customer, "30.00")
        invoice = make_invoice(make_customer("Someone Else"), "100.00")

        with pytest.raises(InvalidOperationError):
            _apply(credit_service, actor, credit, invoice, "10.00")
        self._assert_untouched(db_session, credit, invoice, "30.00", "100.00")

    @pytest.mark.parametrize("status", [InvoiceStatus.CANCELLED, InvoiceStatus.DRAFT])
    def test_invoice_not_payable(self, db_session, customer, make_invoice, credit_of, credit_service, actor, status):
        credit = credit_of(customer, "30.00")
        invoice = make_invoice(customer, "100.00", status=status)

        with pytest.raises(InvalidOperationError):
            _apply(credit_service, actor, credit, invoice, "10.00")
        self._assert_untouched(db_session, credit, invoice, "30.00", "100.00")

    def test_paid_invoice(self, db_session, customer, make_invoice, credit_of, credit_service, actor):
        credit = credit_of(customer, "30.00")
        invoice = make_invoice(customer, "100.00", balance="0.00")

        with pytest.raises(InvalidOperationError):
            _apply(credit_service, actor, credit, invoice, "10.00")
        self._assert_untouched(db_session, credit, invoice, "30.00", "0.00")

    def test_cancelled_credit(self, db_session, customer, make_invoice, credit_of, credit_service, actor):
        credit = credit_of(customer, "30.00")
        credit.status = CreditStatus.CANCELLED
        db_session.commit()
        invoice = make_invoice(customer, "100.00")

        with pytest.raises(InvalidOperationError):
            _apply(credit_service, actor, credit, invoice, "10.00")

    def test_unknown_ids(self, customer, make_invoice, credit_of, credit_service, actor):
        credit = credit_of(customer, "30.00")
        invoice = make_invoice(customer, "100.00")

        with pytest.raises(CreditNotFoundError):
            credit_service.apply_credit(
                ApplyCreditRequest(credit_id=9999, invoice_id=invoice.id, amount="1.00"), actor
            )
        with pytest.raises(InvoiceNotFoundError):
            credit_service.apply_credit(
                ApplyCreditRequest(credit_id=credit.id, invoice_id=9999, amount="1.00"), actor
            )

    @pytest.mark.parametrize("amount", ["0.00", "-1.00"])
    def test_non_positive_amount(self, customer, make_invoice, credit_of, credit_service, actor, amount):
        credit = credit_of(customer, "30.00")
        invoice = make_invoice(customer, "100.00")

        with pytest.raises(InvalidArgumentError):
            _apply(credit_service, actor, credit, invoice, amount)

    def test_missing_actor(self, customer, make_invoice, credit_of, credit_service):
        credit = credit_of(customer, "30.00")
        invoice = make_invoice(customer, "100.00")

        with pytest.raises(InvalidArgumentError):
            _apply(credit_service, "", credit, invoice, "5.00")


class TestCustomerCredits:

    def test_lists_active_credits_with_total(self, customer, make_invoice, credit_of, credit_service, actor):
        first = credit_of(customer, "30.00")
        credit_of(customer, "20.00")
        invoice = make_invoice(customer, "30.00")
        _apply(credit_service, actor, first, invoice, "30.00")

        active = credit_service.get_customer_credits(customer.id)
        everything = credit_service.get_customer_credits(customer.id, active_only=False)

        assert [c.available_amount for c in active.credits] == [Decimal("20.00")]
        assert active.total_available_credit == Decimal("20.00")
        assert len(everything.credits) == 2
        assert everything.total_available_credit == Decimal("20.00")
        exhausted = next(c for c in everything.credits if c.id == first.id)
        assert exhausted.status == CreditStatus.EXHAUSTED
        assert len(exhausted.applications) == 1
