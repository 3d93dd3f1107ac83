# backoffice/ledger/repository.py

from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backoffice.credits.models import Credit, CreditApplication
from backoffice.invoices.models import MANUAL_STATUSES, Invoice
from backoffice.payments.models import CustomerPayment, PaymentApplication
from backoffice.utils.money import to_money

# Never posted a charge to the customer
_UNPOSTED_STATUSES = tuple(MANUAL_STATUSES)


class LedgerRepository:
    """
    Read-only queries behind ledger reconstruction. Every method takes an
    optional inclusive [start, end] window on the event's ledger date:
    invoice_date for invoices, the payment's payment_date for payment
    applications and applied_date for credit applications.
    """

    def __init__(self, db: Session):
        self.db = db

    def _invoice_window(self, stmt, start: Optional[date], end: Optional[date]):
        if start:
            stmt = stmt.where(Invoice.invoice_date >= start)
        if end:
            stmt = stmt.where(Invoice.invoice_date <= end)
        return stmt

    def _payment_window(self, stmt, start: Optional[date], end: Optional[date]):
        if start:
            stmt = stmt.where(CustomerPayment.payment_date >= start)
        if end:
            stmt = stmt.where(CustomerPayment.payment_date <= end)
        return stmt

    def _credit_window(self, stmt, start: Optional[date], end: Optional[date]):
        if start:
            stmt = stmt.where(CreditApplication.applied_date >= start)
        if end:
            stmt = stmt.where(CreditApplication.applied_date <= end)
        return stmt

    def get_invoices(
        self, customer_id: int, start: Optional[date] = None, end: Optional[date] = None
    ) -> List[Invoice]:
        """Ledger-visible invoices, excluding DRAFT and CANCELLED ones."""
        stmt = select(Invoice).where(
            Invoice.customer_id == customer_id,
            Invoice.status.notin_(_UNPOSTED_STATUSES),
        )
        stmt = self._invoice_window(stmt, start, end)
        return list(self.db.execute(stmt.order_by(Invoice.invoice_date, Invoice.id)).scalars().all())

    def get_payment_applications(
        self, customer_id: int, start: Optional[date] = None, end: Optional[date] = None
    ) -> List[Tuple[PaymentApplication, CustomerPayment, Invoice]]:
        stmt = (
            select(PaymentApplication, CustomerPayment, Invoice)
            .join(CustomerPayment, PaymentApplication.customer_payment_id == CustomerPayment.id)
            .join(Invoice, PaymentApplication.invoice_id == Invoice.id)
            .where(CustomerPayment.customer_id == customer_id)
        )
        stmt = self._payment_window(stmt, start, end)
        stmt = stmt.order_by(CustomerPayment.payment_date, PaymentApplication.id)
        return [tuple(row) for row in self.db.execute(stmt).all()]

    def get_credit_applications(
        self, customer_id: int, start: Optional[date] = None, end: Optional[date] = None
    ) -> List[Tuple[CreditApplication, Credit, Invoice]]:
        stmt = (
            select(CreditApplication, Credit, Invoice)
            .join(Credit, CreditApplication.credit_id == Credit.id)
            .join(Invoice, CreditApplication.invoice_id == Invoice.id)
            .where(Credit.customer_id == customer_id)
        )
        stmt = self._credit_window(stmt, start, end)
        stmt = stmt.order_by(CreditApplication.applied_date, CreditApplication.id)
        return [tuple(row) for row in self.db.execute(stmt).all()]

    def sum_invoices_before(self, customer_id: int, before: date) -> Decimal:
        stmt = select(func.coalesce(func.sum(Invoice.total_amount), 0)).where(
            Invoice.customer_id == customer_id,
            Invoice.status.notin_(_UNPOSTED_STATUSES),
            Invoice.invoice_date < before,
        )
        return to_money(self.db.execute(stmt).scalar())

    def sum_payment_applications_before(self, customer_id: int, before: date) -> Decimal:
        stmt = (
            select(func.coalesce(func.sum(PaymentApplication.amount_applied), 0))
            .join(CustomerPayment, PaymentApplication.customer_payment_id == CustomerPayment.id)
            .where(
                CustomerPayment.customer_id == customer_id,
                CustomerPayment.payment_date < before,
            )
        )
        return to_money(self.db.execute(stmt).scalar())

    def sum_credit_applications_before(self, customer_id: int, before: date) -> Decimal:
        stmt = (
            select(func.coalesce(func.sum(CreditApplication.amount_applied), 0))
            .join(Credit, CreditApplication.credit_id == Credit.id)
            .where(
                Credit.customer_id == customer_id,
                CreditApplication.applied_date < before,
            )
        )
        return to_money(self.db.execute(stmt).scalar())
