# backoffice/invoices/repository.py

from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backoffice.credits.models import CreditApplication
from backoffice.invoices.models import Invoice
from backoffice.payments.models import PaymentApplication
from backoffice.utils.logger import get_logger
from backoffice.utils.money import ZERO, to_money

logger = get_logger(__name__)


class InvoiceRepository:
    """
    Data Access Layer for invoices.
    The caller is responsible for committing the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, invoice_id: int) -> Optional[Invoice]:
        return self.db.get(Invoice, invoice_id)

    def get_by_number(self, invoice_number: str) -> Optional[Invoice]:
        stmt = select(Invoice).where(Invoice.invoice_number == invoice_number)
        return self.db.execute(stmt).scalar_one_or_none()

    def create(self, invoice: Invoice) -> Invoice:
        self.db.add(invoice)
        self.db.flush()
        logger.info(
            "Created Invoice",
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            customer_id=invoice.customer_id,
            total_amount=str(invoice.total_amount),
        )
        return invoice

    def list_for_customer(self, customer_id: int) -> List[Invoice]:
        stmt = (
            select(Invoice)
            .where(Invoice.customer_id == customer_id)
            .order_by(Invoice.invoice_date.desc(), Invoice.id.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def lock_all(self) -> List[Invoice]:
        """Every invoice, row-locked in id order."""
        stmt = (
            select(Invoice)
            .order_by(Invoice.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(self.db.execute(stmt).scalars().all())

    def applied_totals(self) -> Dict[int, Decimal]:
        """
        Total applied per invoice, payment applications and credit
        applications combined. Invoices with nothing applied are absent.
        """
        totals: Dict[int, Decimal] = {}

        payment_stmt = select(
            PaymentApplication.invoice_id, func.sum(PaymentApplication.amount_applied)
        ).group_by(PaymentApplication.invoice_id)
        credit_stmt = select(
            CreditApplication.invoice_id, func.sum(CreditApplication.amount_applied)
        ).group_by(CreditApplication.invoice_id)

        for stmt in (payment_stmt, credit_stmt):
            for invoice_id, amount in self.db.execute(stmt).all():
                totals[invoice_id] = totals.get(invoice_id, ZERO) + to_money(amount)
        return totals
