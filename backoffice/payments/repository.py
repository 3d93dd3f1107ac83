# backoffice/payments/repository.py

from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from backoffice.customers.models import Customer
from backoffice.invoices.models import PAYABLE_STATUSES, Invoice
from backoffice.payments.models import CustomerPayment, PaymentApplication, PaymentMethod
from backoffice.utils.logger import get_logger
from backoffice.utils.money import to_money

logger = get_logger(__name__)


def _allocation_order():
    """SQL form of allocation_order_key: due date, undated last, then invoice date, then id."""
    return (
        Invoice.due_date.is_(None),
        Invoice.due_date.asc(),
        Invoice.invoice_date.asc(),
        Invoice.id.asc(),
    )


class PaymentRepository:
    """
    Data Access Layer for customer payments and their invoice applications.
    The caller is responsible for committing the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_customer(self, customer_id: int, for_update: bool = False) -> Optional[Customer]:
        """
        Fetches a customer. With for_update=True the row is locked until the
        transaction ends; the payment engine uses this lock to serialise
        mutations of one customer's invoices and credits.
        """
        stmt = select(Customer).where(Customer.id == customer_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_payable_invoices(
        self,
        customer_id: int,
        invoice_ids: Optional[Sequence[int]] = None,
        for_update: bool = True,
    ) -> List[Invoice]:
        """
        Fetches the customer's invoices with an outstanding balance and a
        payable status, ordered oldest obligation first. Rows are locked and
        reloaded from the database unless for_update is False (previews).
        """
        stmt = (
            select(Invoice)
            .where(
                Invoice.customer_id == customer_id,
                Invoice.status.in_(PAYABLE_STATUSES),
                Invoice.balance > 0,
            )
            .order_by(*_allocation_order())
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        if invoice_ids is not None:
            stmt = stmt.where(Invoice.id.in_(invoice_ids))
        return list(self.db.execute(stmt).scalars().all())

    def get_invoices_by_ids(self, invoice_ids: Sequence[int]) -> List[Invoice]:
        stmt = select(Invoice).where(Invoice.id.in_(invoice_ids))
        return list(self.db.execute(stmt).scalars().all())

    def create_payment(self, payment: CustomerPayment) -> CustomerPayment:
        """Adds the payment and flushes so its id is available to applications."""
        self.db.add(payment)
        self.db.flush()
        logger.info(
            "Created CustomerPayment",
            payment_id=payment.id,
            customer_id=payment.customer_id,
            amount=str(payment.amount),
        )
        return payment

    def create_application(self, application: PaymentApplication) -> PaymentApplication:
        self.db.add(application)
        self.db.flush()
        return application

    def get_payment(self, payment_id: int) -> Optional[CustomerPayment]:
        stmt = (
            select(CustomerPayment)
            .options(selectinload(CustomerPayment.applications))
            .where(CustomerPayment.id == payment_id)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_payments_for_customer(
        self, customer_id: int, page: int = 1, per_page: int = 20
    ) -> Tuple[List[CustomerPayment], int]:
        """
        Fetches a customer's payments, newest first, with their applications.
        """
        base = select(CustomerPayment).where(CustomerPayment.customer_id == customer_id)

        count_stmt = select(func.count()).select_from(base.subquery())
        total_items = self.db.execute(count_stmt).scalar() or 0

        stmt = (
            base.options(
                selectinload(CustomerPayment.applications).selectinload(
                    PaymentApplication.invoice
                )
            )
            .order_by(CustomerPayment.payment_date.desc(), CustomerPayment.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        payments = list(self.db.execute(stmt).scalars().all())
        return payments, total_items

    def list_recent_payments(
        self,
        page: int = 1,
        per_page: int = 10,
        payment_method: Optional[PaymentMethod] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[CustomerPayment], int]:
        """
        Fetches payments across all customers, newest first. search matches
        the customer name, company name or payment reference, ignoring case.
        """
        base = select(CustomerPayment).join(Customer, CustomerPayment.customer_id == Customer.id)
        if payment_method is not None:
            base = base.where(CustomerPayment.payment_method == payment_method)
        if search:
            pattern = f"%{search.strip()}%"
            base = base.where(
                or_(
                    Customer.name.ilike(pattern),
                    Customer.company_name.ilike(pattern),
                    CustomerPayment.reference_number.ilike(pattern),
                )
            )

        count_stmt = select(func.count()).select_from(base.subquery())
        total_items = self.db.execute(count_stmt).scalar() or 0

        stmt = (
            base.options(
                selectinload(CustomerPayment.customer),
                selectinload(CustomerPayment.applications),
            )
            .order_by(CustomerPayment.payment_date.desc(), CustomerPayment.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        payments = list(self.db.execute(stmt).scalars().all())
        return payments, total_items

    def list_outstanding_invoices(
        self, page: int = 1, per_page: int = 10, search: Optional[str] = None
    ) -> Tuple[List[Tuple[Invoice, Customer]], int]:
        """
        Fetches payable invoices with a balance across all customers, in the
        order a payment would settle them. search matches the customer name,
        company name or invoice number, ignoring case.
        """
        conditions = [Invoice.balance > 0, Invoice.status.in_(PAYABLE_STATUSES)]
        if search:
            pattern = f"%{search.strip()}%"
            conditions.append(
                or_(
                    Customer.name.ilike(pattern),
                    Customer.company_name.ilike(pattern),
                    Invoice.invoice_number.ilike(pattern),
                )
            )

        count_stmt = (
            select(func.count(Invoice.id))
            .join(Customer, Invoice.customer_id == Customer.id)
            .where(*conditions)
        )
        total_items = self.db.execute(count_stmt).scalar() or 0

        base = (
            select(Invoice, Customer)
            .join(Customer, Invoice.customer_id == Customer.id)
            .where(*conditions)
        )
        stmt = base.order_by(*_allocation_order()).offset((page - 1) * per_page).limit(per_page)
        rows = [(invoice, customer) for invoice, customer in self.db.execute(stmt).all()]
        return rows, total_items

    def sum_payments_between(self, start: date, end: date) -> Decimal:
        stmt = select(func.coalesce(func.sum(CustomerPayment.amount), 0)).where(
            CustomerPayment.payment_date >= start,
            CustomerPayment.payment_date <= end,
        )
        return to_money(self.db.execute(stmt).scalar())

    def sum_outstanding_invoices(self) -> Decimal:
        stmt = select(func.coalesce(func.sum(Invoice.balance), 0)).where(
            Invoice.balance > 0,
            Invoice.status.in_(PAYABLE_STATUSES),
        )
        return to_money(self.db.execute(stmt).scalar())
