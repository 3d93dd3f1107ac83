# backoffice/tests/test_payment_allocation.py

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from backoffice.credits.models import Credit, CreditStatus
from backoffice.invoices.models import InvoiceStatus
from backoffice.ledger.exceptions import (
    CustomerNotFoundError,
    InvalidArgumentError,
    InvalidOperationError,
    InvoiceNotFoundError,
    PaymentNotFoundError,
)
from backoffice.payments.models import CustomerPayment, PaymentApplication, PaymentMethod
from backoffice.payments.schemas import AllocationPreviewRequest, RecordPaymentRequest


def _count(db_session, model):
    return db_session.execute(select(func.count()).select_from(model)).scalar()


class TestAllocationBasics:
    """Payment recording splits money between invoices and credit."""

    def test_exact_split_creates_credit_for_remainder(self, db_session, customer, make_invoice, pay):
        invoice = make_invoice(customer, "700.00")

        result = pay(customer, "1000.00")

        assert result.total_paid == Decimal("1000.00")
        assert result.total_allocated == Decimal("700.00")
        assert result.total_credit == Decimal("300.00")
        assert len(result.invoices_affected) == 1
        assert result.invoices_affected[0].new_status == InvoiceStatus.PAID

        assert invoice.balance == Decimal("0.00")
        assert invoice.status == InvoiceStatus.PAID

        credit = db_session.get(Credit, result.credit_id)
        assert credit.amount == Decimal("300.00")
        assert credit.available_amount == Decimal("300.00")
        assert credit.status == CreditStatus.ACTIVE
        assert credit.source_payment_id == result.payment_id

    def test_payment_records_allocation_summary(self, db_session, customer, make_invoice, pay):
        make_invoice(customer, "400.00")

        result = pay(customer, "250.00")

        payment = db_session.get(CustomerPayment, result.payment_id)
        assert payment.allocated_amount == Decimal("250.00")
        assert payment.credit_amount == Decimal("0.00")
        assert result.credit_id is None
        assert "held as customer credit" not in result.message

    def test_partial_payment_marks_invoice_partial(self, customer, make_invoice, pay, today):
        invoice = make_invoice(customer, "500.00", due_date=today + timedelta(days=20))

        result = pay(customer, "120.00")

        assert invoice.balance == Decimal("380.00")
        assert invoice.status == InvoiceStatus.PARTIAL
        line = result.invoices_affected[0]
        assert line.previous_balance == Decimal("500.00")
        assert line.new_balance == Decimal("380.00")

    def test_overdue_invoice_stays_overdue_until_paid(self, customer, make_invoice, pay, today):
        invoice = make_invoice(customer, "500.00", due_date=today - timedelta(days=3))
        assert invoice.status == InvoiceStatus.OVERDUE

        pay(customer, "100.00")
        assert invoice.status == InvoiceStatus.OVERDUE
        assert invoice.balance == Decimal("400.00")

        pay(customer, "400.00")
        assert invoice.status == InvoiceStatus.PAID
        assert invoice.balance == Decimal("0.00")

    def test_no_open_invoices_turns_whole_payment_into_credit(self, db_session, customer, pay):
        result = pay(customer, "150.00")

        assert result.total_allocated == Decimal("0.00")
        assert result.total_credit == Decimal("150.00")
        assert result.invoices_affected == []
        assert _count(db_session, PaymentApplication) == 0
        assert db_session.get(Credit, result.credit_id).available_amount == Decimal("150.00")

    def test_draft_and_cancelled_invoices_are_not_paid(self, customer, make_invoice, pay):
        draft = make_invoice(customer, "100.00", status=InvoiceStatus.DRAFT)
        cancelled = make_invoice(customer, "100.00", status=InvoiceStatus.CANCELLED)

        result = pay(customer, "50.00")

        assert result.total_credit == Decimal("50.00")
        assert draft.balance == Decimal("100.00")
        assert cancelled.balance == Decimal("100.00")


class TestAllocationOrder:
    """Oldest obligation first: due date, then invoice date, then id."""

    def test_due_date_order_with_undated_last(self, customer, make_invoice, pay, today):
        d3 = make_invoice(customer, "100.00", due_date=today + timedelta(days=30))
        no_due = make_invoice(customer, "100.00", invoice_date=today - timedelta(days=60))
        d1 = make_invoice(customer, "100.00", due_date=today + timedelta(days=10))
        d2 = make_invoice(customer, "100.00", due_date=today + timedelta(days=20))

        result = pay(customer, "150.00")

        assert [line.invoice_id for line in result.invoices_affected] == [d1.id, d2.id]
        assert d1.balance == Decimal("0.00")
        assert d2.balance == Decimal("50.00")
        assert d3.balance == Decimal("100.00")
        assert no_due.balance == Decimal("100.00")

    def test_same_due_date_falls_back_to_invoice_date_then_id(self, customer, make_invoice, pay, today):
        due = today + timedelta(days=5)
        later = make_invoice(customer, "100.00", invoice_date=today - timedelta(days=1), due_date=due)
        first = make_invoice(customer, "100.00", invoice_date=today - timedelta(days=9), due_date=due)
        twin_a = make_invoice(customer, "100.00", invoice_date=today - timedelta(days=5), due_date=due)
        twin_b = make_invoice(customer, "100.00", invoice_date=today - timedelta(days=5), due_date=due)

        result = pay(customer, "400.00")

        assert [line.invoice_id for line in result.invoices_affected] == [
            first.id, twin_a.id, twin_b.id, later.id
        ]

    def test_explicit_invoice_ids_still_paid_in_canonical_order(self, customer, make_invoice, pay, today):
        older = make_invoice(customer, "100.00", due_date=today + timedelta(days=1))
        skipped = make_invoice(customer, "100.00", due_date=today + timedelta(days=2))
        newer = make_invoice(customer, "100.00", due_date=today + timedelta(days=3))

        result = pay(customer, "150.00", invoice_ids=[newer.id, older.id])

        assert [line.invoice_id for line in result.invoices_affected] == [older.id, newer.id]
        assert skipped.balance == Decimal("100.00")
        assert newer.balance == Decimal("50.00")


class TestConservation:

    def test_applications_and_credit_sum_to_payment(self, db_session, customer, make_invoice, pay, today):
        for days, total in ((5, "120.10"), (9, "80.45"), (12, "300.00")):
            make_invoice(customer, total, due_date=today + timedelta(days=days))

        result = pay(customer, "333.33")

        applied = db_session.execute(
            select(func.sum(PaymentApplication.amount_applied)).where(
                PaymentApplication.customer_payment_id == result.payment_id
            )
        ).scalar()
        assert Decimal(str(applied)).quantize(Decimal("0.01")) == result.total_allocated
        assert result.total_allocated + result.total_credit == Decimal("333.33")

    def test_balances_never_go_negative(self, db_session, customer, make_invoice, pay):
        invoices = [make_invoice(customer, "10.00") for _ in range(3)]

        pay(customer, "45.00")

        assert all(invoice.balance >= 0 for invoice in invoices)
        assert all(invoice.status == InvoiceStatus.PAID for invoice in invoices)
        credits = db_session.execute(select(Credit)).scalars().all()
        assert [c.amount for c in credits] == [Decimal("15.00")]

    def test_application_rows_capture_balance_movement(self, db_session, customer, make_invoice, pay):
        invoice = make_invoice(customer, "90.00")

        pay(customer, "30.00")
        pay(customer, "30.00")

        rows = db_session.execute(
            select(PaymentApplication)
            .where(PaymentApplication.invoice_id == invoice.id)
            .order_by(PaymentApplication.id)
        ).scalars().all()
        assert [(r.balance_before, r.balance_after) for r in rows] == [
            (Decimal("90.00"), Decimal("60.00")),
            (Decimal("60.00"), Decimal("30.00")),
        ]


class TestAllocationValidation:
    """Invalid requests are rejected before anything is written."""

    @pytest.mark.parametrize("amount", ["0", "-5.00"])
    def test_non_positive_amount_rejected(self, db_session, customer, pay, amount):
        with pytest.raises(InvalidArgumentError):
            pay(customer, amount)
        assert _count(db_session, CustomerPayment) == 0

    def test_unknown_customer(self, db_session, payment_service, actor):
        request = RecordPaymentRequest(
            customer_id=9999, amount="10.00", payment_method=PaymentMethod.CASH
        )
        with pytest.raises(CustomerNotFoundError):
            payment_service.allocate(request, actor)
        assert _count(db_session, CustomerPayment) == 0

    def test_empty_or_duplicate_invoice_ids_rejected(self, customer, make_invoice, pay):
        invoice = make_invoice(customer, "10.00")
        with pytest.raises(InvalidArgumentError):
            pay(customer, "5.00", invoice_ids=[])
        with pytest.raises(InvalidArgumentError):
            pay(customer, "5.00", invoice_ids=[invoice.id, invoice.id])

    def test_missing_invoice_id(self, db_session, customer, make_invoice, pay):
        make_invoice(customer, "10.00")
        with pytest.raises(InvoiceNotFoundError):
            pay(customer, "5.00", invoice_ids=[424242])
        assert _count(db_session, CustomerPayment) == 0

    def test_invoice_of_another_customer(self, db_session, customer, make_customer, make_invoice, pay):
        mine = make_invoice(customer, "10.00")
        other = make_invoice(make_customer("Other Ltd"), "10.00")

        with pytest.raises(InvalidOperationError):
            pay(customer, "15.00", invoice_ids=[mine.id, other.id])

        db_session.refresh(mine)
        assert mine.balance == Decimal("10.00")
        assert _count(db_session, CustomerPayment) == 0
        assert _count(db_session, Credit) == 0

    def test_paid_invoice_cannot_be_targeted(self, db_session, customer, make_invoice, pay):
        paid = make_invoice(customer, "10.00", balance="0.00")
        assert paid.status == InvoiceStatus.PAID

        with pytest.raises(InvalidOperationError):
            pay(customer, "5.00", invoice_ids=[paid.id])
        assert _count(db_session, CustomerPayment) == 0


class TestAuditHooks:

    def test_allocation_emits_one_audit_record(self, customer, make_invoice, pay, audit_records, actor):
        make_invoice(customer, "10.00")

        result = pay(customer, "25.00")

        assert len(audit_records) == 1
        record = audit_records[0]
        assert record.actor_id == actor
        assert record.action == "CREATE"
        assert record.entity_type == "CUSTOMER_PAYMENT"
        assert record.entity_id == str(result.payment_id)
        assert record.after_snapshot["total_credit"] == "15.00"

    def test_failing_hook_does_not_undo_the_payment(self, db_session, customer, make_invoice, actor, clock):
        from backoffice.payments.services import PaymentService

        def broken_hook(record):
            raise RuntimeError("audit sink down")

        invoice = make_invoice(customer, "10.00")
        service = PaymentService(db_session, post_commit_hooks=[broken_hook], clock=clock)
        request = RecordPaymentRequest(
            customer_id=customer.id, amount="10.00", payment_method=PaymentMethod.CARD
        )

        result = service.allocate(request, actor)

        assert result.total_allocated == Decimal("10.00")
        db_session.refresh(invoice)
        assert invoice.status == InvoiceStatus.PAID
        assert _count(db_session, CustomerPayment) == 1

    def test_rejected_payment_emits_nothing(self, customer, pay, audit_records):
        with pytest.raises(InvalidArgumentError):
            pay(customer, "0")
        assert audit_records == []


class TestAllocationPreview:

    def test_preview_matches_recorded_allocation(self, db_session, customer, make_invoice, payment_service, pay, today):
        make_invoice(customer, "100.00", due_date=today + timedelta(days=1))
        make_invoice(customer, "100.00", due_date=today + timedelta(days=2))
        make_invoice(customer, "100.00")

        preview = payment_service.preview_allocation(
            customer.id, AllocationPreviewRequest(amount="350.00")
        )
        assert _count(db_session, CustomerPayment) == 0

        result = pay(customer, "350.00")

        assert preview.total_allocated == result.total_allocated
        assert preview.total_credit == result.total_credit
        assert [
            (line.invoice_id, line.amount_applied, line.new_status) for line in preview.invoices_affected
        ] == [
            (line.invoice_id, line.amount_applied, line.new_status) for line in result.invoices_affected
        ]

    def test_preview_does_not_change_balances(self, customer, make_invoice, payment_service):
        invoice = make_invoice(customer, "80.00")

        payment_service.preview_allocation(customer.id, AllocationPreviewRequest(amount="50.00"))

        assert invoice.balance == Decimal("80.00")
        assert invoice.status == InvoiceStatus.OPEN


class TestPaymentQueries:

    def test_open_invoices_listed_in_allocation_order(self, customer, make_invoice, payment_service, today):
        late = make_invoice(customer, "40.00", due_date=today - timedelta(days=2))
        soon = make_invoice(customer, "60.00", due_date=today + timedelta(days=2))
        make_invoice(customer, "10.00", balance="0.00")

        response = payment_service.get_open_invoices(customer.id)

        assert [i.id for i in response.invoices] == [late.id, soon.id]
        assert response.total_invoices == 2
        assert response.total_outstanding == Decimal("100.00")
        assert response.invoices[0].is_overdue is True
        assert response.invoices[1].is_overdue is False

    def test_payment_history_is_paginated_newest_first(self, customer, make_invoice, payment_service, pay, today):
        make_invoice(customer, "1000.00")
        for days_ago in (3, 2, 1):
            pay(customer, "10.00", payment_date=today - timedelta(days=days_ago))

        payments, total = payment_service.get_customer_payments(customer.id, page=1, per_page=2)

        assert total == 3
        assert [p.payment_date for p in payments] == [today - timedelta(days=1), today - timedelta(days=2)]
        assert len(payments[0].applications) == 1

    def test_summary_totals(self, customer, make_invoice, payment_service, pay, today):
        make_invoice(customer, "100.00")
        pay(customer, "30.00", payment_date=today)
        pay(customer, "90.00", payment_date=today.replace(day=1))

        summary = payment_service.get_payment_summary()

        assert summary.total_payments_today == Decimal("30.00")
        assert summary.total_payments_this_month == Decimal("120.00")
        assert summary.total_outstanding == Decimal("0.00")
        assert summary.total_credits == Decimal("20.00")

    def test_payment_methods(self, payment_service):
        methods = payment_service.get_payment_methods()
        assert {m.value for m in methods} == set(PaymentMethod)

    def test_get_payment(self, customer, payment_service, pay):
        result = pay(customer, "12.00")

        assert payment_service.get_payment(result.payment_id).amount == Decimal("12.00")
        with pytest.raises(PaymentNotFoundError):
            payment_service.get_payment(98765)


class TestRecentPayments:

    def test_all_customers_newest_first(self, make_customer, make_invoice, payment_service, pay, today):
        acme = make_customer("Ada Obi")
        northwind = make_customer("Sam Reyes", company_name="Northwind Bakery")
        make_invoice(acme, "500.00")
        pay(acme, "10.00", payment_date=today - timedelta(days=2))
        pay(northwind, "20.00", payment_date=today)
        pay(acme, "30.00", payment_date=today - timedelta(days=1))

        items, total = payment_service.get_recent_payments(page=1, per_page=2)

        assert total == 3
        assert [p.amount for p in items] == [Decimal("20.00"), Decimal("30.00")]
        assert items[0].customer_name == "Northwind Bakery"
        assert items[1].customer_name == "Ada Obi"
        assert len(items[1].applications) == 1

    def test_filter_by_method_and_search(self, make_customer, payment_service, pay, actor, today):
        acme = make_customer("Ada Obi")
        northwind = make_customer("Sam Reyes", company_name="Northwind Bakery")
        pay(acme, "10.00", method=PaymentMethod.CASH)
        pay(northwind, "20.00", method=PaymentMethod.BANK_TRANSFER)
        payment_service.allocate(
            RecordPaymentRequest(
                customer_id=acme.id,
                amount="5.00",
                payment_method=PaymentMethod.CHEQUE,
                payment_date=today,
                reference_number="TRX-555",
            ),
            actor,
        )

        by_method, _ = payment_service.get_recent_payments(payment_method=PaymentMethod.BANK_TRANSFER)
        by_company, _ = payment_service.get_recent_payments(search="northwind")
        by_name, name_total = payment_service.get_recent_payments(search="ada")
        by_reference, _ = payment_service.get_recent_payments(search="trx-555")

        assert [p.customer_id for p in by_method] == [northwind.id]
        assert [p.customer_id for p in by_company] == [northwind.id]
        assert name_total == 2
        assert [p.reference_number for p in by_reference] == ["TRX-555"]


class TestOutstandingInvoices:

    def test_all_customers_in_allocation_order(self, make_customer, make_invoice, payment_service, today):
        acme = make_customer("Ada Obi")
        northwind = make_customer("Sam Reyes", company_name="Northwind Bakery")
        overdue = make_invoice(acme, "40.00", due_date=today - timedelta(days=2))
        upcoming = make_invoice(northwind, "60.00", due_date=today + timedelta(days=2))
        undated = make_invoice(acme, "10.00")
        make_invoice(northwind, "5.00", balance="0.00")
        make_invoice(acme, "7.00", status=InvoiceStatus.DRAFT)

        items, total = payment_service.get_outstanding_invoices(page=1, per_page=10)

        assert total == 3
        assert [i.id for i in items] == [overdue.id, upcoming.id, undated.id]
        assert [i.is_overdue for i in items] == [True, False, False]
        assert items[1].customer_name == "Northwind Bakery"
        assert items[0].balance == Decimal("40.00")

    def test_search_and_pages(self, make_customer, make_invoice, payment_service, today):
        acme = make_customer("Ada Obi")
        northwind = make_customer("Sam Reyes", company_name="Northwind Bakery")
        first = make_invoice(acme, "40.00", due_date=today - timedelta(days=2))
        second = make_invoice(northwind, "60.00", due_date=today + timedelta(days=2))
        third = make_invoice(acme, "10.00")

        by_company, _ = payment_service.get_outstanding_invoices(search="NORTHWIND")
        by_number, _ = payment_service.get_outstanding_invoices(search=third.invoice_number.lower())
        page_two, total = payment_service.get_outstanding_invoices(page=2, per_page=2)

        assert [i.id for i in by_company] == [second.id]
        assert [i.id for i in by_number] == [third.id]
        assert total == 3
        assert [i.id for i in page_two] == [third.id]
        assert first.id not in [i.id for i in page_two]


class TestPaymentImmutability:

    def test_payment_with_applications_cannot_be_deleted(self, db_session, customer, make_invoice, pay):
        make_invoice(customer, "100.00")
        result = pay(customer, "100.00")
        payment = db_session.get(CustomerPayment, result.payment_id)

        db_session.delete(payment)
        with pytest.raises(IntegrityError):
            db_session.flush()
        db_session.rollback()

        assert _count(db_session, CustomerPayment) == 1
        assert _count(db_session, PaymentApplication) == 1
