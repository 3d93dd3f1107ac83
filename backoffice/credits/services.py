# backoffice/credits/services.py

from datetime import date
from typing import Callable, Iterable, List, Optional

from sqlalchemy.orm import Session

from backoffice.audit.hooks import AuditRecord, PostCommitHook, dispatch_post_commit
from backoffice.credits.models import CreditApplication, CreditStatus
from backoffice.credits.repository import CreditRepository
from backoffice.credits.schemas import (
    ApplyCreditRequest,
    CreditApplicationResult,
    CreditResponse,
    CustomerCreditsResponse,
)
from backoffice.invoices.models import PAYABLE_STATUSES
from backoffice.ledger.exceptions import (
    CreditNotFoundError,
    CustomerNotFoundError,
    InsufficientCreditError,
    InsufficientInvoiceBalanceError,
    InvalidOperationError,
    InvoiceNotFoundError,
    LedgerError,
)
from backoffice.ledger.transactions import run_in_transaction
from backoffice.payments.repository import PaymentRepository
from backoffice.payments.validators import PaymentValidator
from backoffice.utils.logger import get_logger
from backoffice.utils.money import ZERO

logger = get_logger(__name__)


class CreditService:
    """
    Credit Manager. Applies existing customer credits to open invoices.
    """

    def __init__(
        self,
        db: Session,
        post_commit_hooks: Optional[Iterable[PostCommitHook]] = None,
        clock: Callable[[], date] = date.today,
    ):
        self.db = db
        self.repo = CreditRepository(db)
        self.payment_repo = PaymentRepository(db)
        self.validator = PaymentValidator()
        self.post_commit_hooks: List[PostCommitHook] = list(post_commit_hooks or [])
        self.clock = clock

    def apply_credit(self, request: ApplyCreditRequest, actor_id: str) -> CreditApplicationResult:
        """
        Applies part or all of a credit's available amount to one invoice of
        the same customer. The credit, the invoice and the new application
        row change together or not at all.

        Raises:
            InvalidArgumentError: Non-positive amount or missing actor
            CreditNotFoundError / InvoiceNotFoundError: Unknown id
            InsufficientCreditError: Amount exceeds the available credit
            InsufficientInvoiceBalanceError: Amount exceeds the invoice balance
            InvalidOperationError: Credit not active, invoice not payable, or
                credit and invoice belong to different customers
            ConcurrencyConflictError: Conflicts persisted past the retry budget
        """
        self.validator.validate_apply_credit(request, actor_id)

        try:
            result, before = run_in_transaction(
                self.db,
                "apply_credit",
                lambda: self._apply_credit(request, actor_id),
            )
        except LedgerError as e:
            logger.warning(
                "Credit application rejected",
                credit_id=request.credit_id,
                invoice_id=request.invoice_id,
                amount=str(request.amount),
                error=str(e),
            )
            raise

        logger.info(
            "Credit applied",
            credit_id=result.credit_id,
            invoice_id=result.invoice_id,
            amount_applied=str(result.amount_applied),
            credit_remaining=str(result.credit_remaining),
            invoice_new_balance=str(result.invoice_new_balance),
        )

        dispatch_post_commit(
            self.post_commit_hooks,
            AuditRecord(
                actor_id=actor_id,
                action="UPDATE",
                entity_type="CREDIT",
                entity_id=str(result.credit_id),
                before_snapshot=before,
                after_snapshot=result.model_dump(mode="json"),
            ),
        )
        return result

    def _apply_credit(self, request: ApplyCreditRequest, actor_id: str):
        credit = self.repo.get_credit(request.credit_id)
        if not credit:
            raise CreditNotFoundError(request.credit_id)

        # Same lock order as payment allocation: customer, then its rows
        customer = self.payment_repo.get_customer(credit.customer_id, for_update=True)
        if not customer:
            raise CustomerNotFoundError(credit.customer_id)

        credit = self.repo.lock_credit(request.credit_id)
        invoice = self.repo.lock_invoice(request.invoice_id)
        if not invoice:
            raise InvoiceNotFoundError(request.invoice_id)

        if credit.status != CreditStatus.ACTIVE:
            raise InvalidOperationError(
                f"Credit {credit.id} is {credit.status.value} and cannot be applied"
            )
        if invoice.customer_id != credit.customer_id:
            raise InvalidOperationError(
                f"Credit {credit.id} belongs to customer {credit.customer_id} but invoice "
                f"{invoice.id} belongs to customer {invoice.customer_id}"
            )
        balance = invoice.balance if invoice.balance is not None else ZERO
        if invoice.status not in PAYABLE_STATUSES or balance <= 0:
            raise InvalidOperationError(
                f"Invoice {invoice.id} is {invoice.status.value} with balance {balance} "
                f"and cannot receive credit"
            )
        if request.amount > credit.available_amount:
            raise InsufficientCreditError(credit.id, credit.available_amount, request.amount)
        if request.amount > balance:
            raise InsufficientInvoiceBalanceError(invoice.id, balance, request.amount)

        before = {
            "credit_available": str(credit.available_amount),
            "credit_status": credit.status.value,
            "invoice_balance": str(balance),
            "invoice_status": invoice.status.value,
        }

        today = self.clock()
        self.repo.create_application(
            CreditApplication(
                credit_id=credit.id,
                invoice_id=invoice.id,
                amount_applied=request.amount,
                applied_date=today,
                applied_by=actor_id,
                notes=request.notes,
                created_by=actor_id,
            )
        )

        credit.available_amount = credit.available_amount - request.amount
        if credit.available_amount == 0:
            credit.status = CreditStatus.EXHAUSTED
        credit.modified_by = actor_id

        invoice.balance = balance - request.amount
        invoice.modified_by = actor_id
        invoice.refresh_status(today)

        self.db.flush()

        result = CreditApplicationResult(
            credit_id=credit.id,
            invoice_id=invoice.id,
            amount_applied=request.amount,
            credit_remaining=credit.available_amount,
            credit_status=credit.status,
            invoice_new_balance=invoice.balance,
            invoice_status=invoice.status,
        )
        return result, before

    def get_customer_credits(self, customer_id: int, active_only: bool = True) -> CustomerCreditsResponse:
        if not self.payment_repo.get_customer(customer_id):
            raise CustomerNotFoundError(customer_id)

        credits = self.repo.list_credits_for_customer(customer_id, active_only=active_only)
        total_available = sum(
            (c.available_amount for c in credits if c.status == CreditStatus.ACTIVE),
            ZERO,
        )
        return CustomerCreditsResponse(
            credits=[CreditResponse.model_validate(c) for c in credits],
            total_available_credit=total_available,
        )
