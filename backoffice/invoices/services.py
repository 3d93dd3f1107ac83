# backoffice/invoices/services.py

from datetime import date
from typing import Callable, List

from sqlalchemy.orm import Session

from backoffice.invoices.models import Invoice, InvoiceStatus, derive_invoice_status
from backoffice.invoices.repository import InvoiceRepository
from backoffice.invoices.schemas import BalanceInitializationResult, InvoiceCreateRequest
from backoffice.ledger.exceptions import (
    CustomerNotFoundError,
    InvalidArgumentError,
    InvalidOperationError,
    InvoiceNotFoundError,
)
from backoffice.ledger.transactions import run_in_transaction
from backoffice.payments.repository import PaymentRepository
from backoffice.utils.logger import get_logger
from backoffice.utils.money import ZERO

logger = get_logger(__name__)

SYSTEM_ACTOR = "system"


class InvoiceService:
    """
    Invoice creation and the Balance Initialization Utility.
    """

    def __init__(self, db: Session, clock: Callable[[], date] = date.today):
        self.db = db
        self.repo = InvoiceRepository(db)
        self.payment_repo = PaymentRepository(db)
        self.clock = clock

    def create_invoice(self, request: InvoiceCreateRequest, actor_id: str = SYSTEM_ACTOR) -> Invoice:
        """
        Creates an invoice with balance equal to its total.

        Raises:
            InvalidArgumentError: Non-positive total or due date before invoice date
            CustomerNotFoundError: Customer does not exist
            InvalidOperationError: Invoice number already used
        """
        if request.total_amount <= 0:
            raise InvalidArgumentError("Invoice total must be greater than zero")
        if request.due_date and request.due_date < request.invoice_date:
            raise InvalidArgumentError("Due date cannot be before the invoice date")

        def work() -> Invoice:
            if not self.payment_repo.get_customer(request.customer_id, for_update=True):
                raise CustomerNotFoundError(request.customer_id)
            if self.repo.get_by_number(request.invoice_number):
                raise InvalidOperationError(
                    f"Invoice number '{request.invoice_number}' is already in use"
                )

            current = InvoiceStatus.DRAFT if request.draft else None
            return self.repo.create(
                Invoice(
                    invoice_number=request.invoice_number,
                    customer_id=request.customer_id,
                    invoice_date=request.invoice_date,
                    due_date=request.due_date,
                    total_amount=request.total_amount,
                    balance=request.total_amount,
                    status=derive_invoice_status(
                        request.total_amount,
                        request.total_amount,
                        request.due_date,
                        self.clock(),
                        current=current,
                    ),
                    notes=request.notes,
                    created_by=actor_id,
                )
            )

        return run_in_transaction(self.db, "create_invoice", work)

    def get_invoice(self, invoice_id: int) -> Invoice:
        invoice = self.repo.get_by_id(invoice_id)
        if not invoice:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    def list_customer_invoices(self, customer_id: int) -> List[Invoice]:
        if not self.payment_repo.get_customer(customer_id):
            raise CustomerNotFoundError(customer_id)
        return self.repo.list_for_customer(customer_id)

    def initialize_balances(self, actor_id: str = SYSTEM_ACTOR) -> BalanceInitializationResult:
        """
        Backfills every invoice balance from its applications:

            balance = total_amount - payment applications - credit applications

        and recomputes the derived status. Rows are only written when the
        balance or status actually changes, so running it twice reports
        zero updates the second time. Invoices with more applied than their
        total are left alone and reported in skipped_invoice_ids.

        Intended for operators after a migration; not part of any request flow.
        """
        result = run_in_transaction(
            self.db, "initialize_balances", lambda: self._initialize_balances(actor_id)
        )
        logger.info(
            "Invoice balances initialized",
            updated_count=result.updated_count,
            skipped=len(result.skipped_invoice_ids),
        )
        return result

    def _initialize_balances(self, actor_id: str) -> BalanceInitializationResult:
        today = self.clock()
        invoices = self.repo.lock_all()
        applied = self.repo.applied_totals()
        updated = 0
        skipped: List[int] = []

        for invoice in invoices:
            expected = invoice.total_amount - applied.get(invoice.id, ZERO)
            if expected < 0:
                logger.warning(
                    "Invoice over-applied, skipping",
                    invoice_id=invoice.id,
                    total_amount=str(invoice.total_amount),
                    applied=str(applied.get(invoice.id)),
                )
                skipped.append(invoice.id)
                continue

            status = derive_invoice_status(
                expected, invoice.total_amount, invoice.due_date, today, current=invoice.status
            )
            if invoice.balance == expected and invoice.status == status:
                continue

            logger.debug(
                "Correcting invoice balance",
                invoice_id=invoice.id,
                old_balance=str(invoice.balance),
                new_balance=str(expected),
                old_status=invoice.status.value,
                new_status=status.value,
            )
            invoice.balance = expected
            invoice.status = status
            invoice.modified_by = actor_id
            updated += 1

        self.db.flush()
        return BalanceInitializationResult(updated_count=updated, skipped_invoice_ids=skipped)
