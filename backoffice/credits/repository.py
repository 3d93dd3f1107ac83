# backoffice/credits/repository.py

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from backoffice.credits.models import Credit, CreditApplication, CreditStatus
from backoffice.invoices.models import Invoice
from backoffice.utils.logger import get_logger
from backoffice.utils.money import to_money

logger = get_logger(__name__)


class CreditRepository:
    """
    Data Access Layer for customer credits and credit applications.
    The caller is responsible for committing the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_credit(self, credit_id: int) -> Optional[Credit]:
        stmt = select(Credit).where(Credit.id == credit_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def lock_credit(self, credit_id: int) -> Optional[Credit]:
        """Fetches the credit row-locked, reloading any stale in-session copy."""
        stmt = (
            select(Credit)
            .where(Credit.id == credit_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def lock_invoice(self, invoice_id: int) -> Optional[Invoice]:
        stmt = (
            select(Invoice)
            .where(Invoice.id == invoice_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def create_credit(self, credit: Credit) -> Credit:
        self.db.add(credit)
        self.db.flush()
        logger.info(
            "Created Credit",
            credit_id=credit.id,
            customer_id=credit.customer_id,
            amount=str(credit.amount),
            source_payment_id=credit.source_payment_id,
        )
        return credit

    def create_application(self, application: CreditApplication) -> CreditApplication:
        self.db.add(application)
        self.db.flush()
        return application

    def list_credits_for_customer(self, customer_id: int, active_only: bool = True) -> List[Credit]:
        """
        Fetches a customer's credits, newest first. active_only keeps credits
        that still have money available.
        """
        stmt = (
            select(Credit)
            .options(selectinload(Credit.applications))
            .where(Credit.customer_id == customer_id)
            .order_by(Credit.created_on.desc(), Credit.id.desc())
        )
        if active_only:
            stmt = stmt.where(Credit.status == CreditStatus.ACTIVE, Credit.available_amount > 0)
        return list(self.db.execute(stmt).scalars().all())

    def sum_available_credit(self) -> Decimal:
        stmt = select(func.coalesce(func.sum(Credit.available_amount), 0)).where(
            Credit.status == CreditStatus.ACTIVE,
            Credit.available_amount > 0,
        )
        return to_money(self.db.execute(stmt).scalar())
