# backoffice/payments/services.py

from datetime import date
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from backoffice.audit.hooks import AuditRecord, PostCommitHook, dispatch_post_commit
from backoffice.credits.models import Credit, CreditReason, CreditStatus
from backoffice.credits.repository import CreditRepository
from backoffice.invoices.models import PAYABLE_STATUSES, Invoice, derive_invoice_status
from backoffice.ledger.exceptions import (
    CustomerNotFoundError,
    InvalidOperationError,
    InvoiceNotFoundError,
    LedgerError,
    PaymentNotFoundError,
)
from backoffice.ledger.transactions import run_in_transaction
from backoffice.payments.allocation import AllocationPlan, plan_allocation
from backoffice.payments.models import (
    PAYMENT_METHOD_LABELS,
    CustomerPayment,
    PaymentApplication,
    PaymentMethod,
    PaymentStatus,
)
from backoffice.payments.repository import PaymentRepository
from backoffice.payments.schemas import (
    AllocationPreview,
    AllocationPreviewRequest,
    AllocationResult,
    InvoiceAllocationResult,
    OpenInvoiceResponse,
    OpenInvoicesResponse,
    OutstandingInvoiceResponse,
    PaymentMethodOption,
    PaymentSummaryResponse,
    RecentPaymentResponse,
    RecordPaymentRequest,
)
from backoffice.payments.validators import PaymentValidator
from backoffice.utils.logger import get_logger
from backoffice.utils.money import ZERO

logger = get_logger(__name__)


class PaymentService:
    """
    Allocation Engine. Records customer payments, distributes them over the
    customer's open invoices oldest obligation first, and turns any
    remainder into a reusable credit, all in one transaction.
    """

    def __init__(
        self,
        db: Session,
        post_commit_hooks: Optional[Iterable[PostCommitHook]] = None,
        clock: Callable[[], date] = date.today,
    ):
        self.db = db
        self.repo = PaymentRepository(db)
        self.credit_repo = CreditRepository(db)
        self.validator = PaymentValidator()
        self.post_commit_hooks: List[PostCommitHook] = list(post_commit_hooks or [])
        self.clock = clock

    def allocate(self, request: RecordPaymentRequest, actor_id: str) -> AllocationResult:
        """
        Records a payment and allocates it.

        ALGORITHM:
        1. Lock the customer row (serialises all engine writes for this customer)
        2. Load the target invoices: the explicit invoice_ids, or every
           invoice with a payable status and a positive balance
        3. Plan the allocation with the canonical ordering policy
        4. Create the payment, one application per planned line, and
           decrement each invoice balance, recomputing its status
        5. If money is left over, create an ACTIVE credit for it

        ATOMIC: the payment exists if and only if its applications and credit do.

        Raises:
            InvalidArgumentError: Non-positive amount or malformed invoice_ids
            CustomerNotFoundError: Customer does not exist
            InvoiceNotFoundError / InvalidOperationError: Bad explicit invoice
            ConcurrencyConflictError: Conflicts persisted past the retry budget
            LedgerStoreError: Database failure
        """
        self.validator.validate_record_payment(request)

        try:
            result = run_in_transaction(
                self.db,
                "allocate_payment",
                lambda: self._allocate(request, actor_id),
            )
        except LedgerError as e:
            logger.warning(
                "Payment allocation rejected",
                customer_id=request.customer_id,
                amount=str(request.amount),
                error=str(e),
            )
            raise

        logger.info(
            "Payment allocated",
            payment_id=result.payment_id,
            customer_id=result.customer_id,
            total_paid=str(result.total_paid),
            total_allocated=str(result.total_allocated),
            total_credit=str(result.total_credit),
            invoices_affected=len(result.invoices_affected),
        )

        dispatch_post_commit(
            self.post_commit_hooks,
            AuditRecord(
                actor_id=actor_id,
                action="CREATE",
                entity_type="CUSTOMER_PAYMENT",
                entity_id=str(result.payment_id),
                after_snapshot=result.model_dump(mode="json"),
            ),
        )
        return result

    def _allocate(self, request: RecordPaymentRequest, actor_id: str) -> AllocationResult:
        customer = self.repo.get_customer(request.customer_id, for_update=True)
        if not customer:
            raise CustomerNotFoundError(request.customer_id)

        invoices = self._load_target_invoices(customer.id, request.invoice_ids, for_update=True)
        plan = plan_allocation(invoices, request.amount)

        payment = self.repo.create_payment(
            CustomerPayment(
                customer_id=customer.id,
                amount=request.amount,
                payment_method=request.payment_method,
                payment_date=request.payment_date,
                reference_number=request.reference_number,
                notes=request.notes,
                status=PaymentStatus.COMPLETED,
                allocated_amount=plan.total_allocated,
                credit_amount=plan.remainder,
                created_by=actor_id,
            )
        )

        today = self.clock()
        invoices_by_id = {invoice.id: invoice for invoice in invoices}
        affected: List[InvoiceAllocationResult] = []

        for line in plan.lines:
            invoice = invoices_by_id[line.invoice_id]
            if line.balance_after < 0 or line.balance_after > invoice.balance:
                raise InvalidOperationError(
                    f"Allocation would move invoice {invoice.id} balance from "
                    f"{invoice.balance} to {line.balance_after}"
                )

            self.repo.create_application(
                PaymentApplication(
                    customer_payment_id=payment.id,
                    invoice_id=invoice.id,
                    amount_applied=line.amount_applied,
                    balance_before=line.balance_before,
                    balance_after=line.balance_after,
                    notes=f"Auto-allocation from payment {payment.id}",
                    created_by=actor_id,
                )
            )

            invoice.balance = line.balance_after
            invoice.modified_by = actor_id
            new_status = invoice.refresh_status(today)

            affected.append(
                InvoiceAllocationResult(
                    invoice_id=invoice.id,
                    invoice_number=invoice.invoice_number,
                    amount_applied=line.amount_applied,
                    previous_balance=line.balance_before,
                    new_balance=line.balance_after,
                    new_status=new_status,
                )
            )

        credit_id = None
        if plan.remainder > 0:
            credit = self.credit_repo.create_credit(
                Credit(
                    customer_id=customer.id,
                    source_payment_id=payment.id,
                    amount=plan.remainder,
                    available_amount=plan.remainder,
                    reason=CreditReason.OVERPAYMENT,
                    description=f"Credit from overpayment on payment {payment.id}",
                    status=CreditStatus.ACTIVE,
                    created_by=actor_id,
                )
            )
            credit_id = credit.id

        # Flush now so version conflicts surface inside the retry loop
        self.db.flush()

        return AllocationResult(
            payment_id=payment.id,
            customer_id=customer.id,
            total_paid=plan.amount,
            total_allocated=plan.total_allocated,
            total_credit=plan.remainder,
            credit_id=credit_id,
            invoices_affected=affected,
            message=self._describe(plan, len(affected)),
        )

    def _load_target_invoices(
        self, customer_id: int, invoice_ids: Optional[Sequence[int]], for_update: bool
    ) -> List[Invoice]:
        """
        Loads the invoices a payment may be applied to. Explicit invoice ids
        must all exist, belong to the customer and still be payable.
        """
        invoices = self.repo.get_payable_invoices(customer_id, invoice_ids, for_update=for_update)
        if invoice_ids is None or len(invoices) == len(invoice_ids):
            return invoices

        found = {invoice.id for invoice in invoices}
        missing = [invoice_id for invoice_id in invoice_ids if invoice_id not in found]
        known = {invoice.id: invoice for invoice in self.repo.get_invoices_by_ids(missing)}

        for invoice_id in missing:
            invoice = known.get(invoice_id)
            if invoice is None:
                raise InvoiceNotFoundError(invoice_id)
            if invoice.customer_id != customer_id:
                raise InvalidOperationError(
                    f"Invoice {invoice_id} belongs to customer {invoice.customer_id}, "
                    f"not customer {customer_id}"
                )
            if invoice.status not in PAYABLE_STATUSES:
                raise InvalidOperationError(
                    f"Invoice {invoice_id} is {invoice.status.value} and cannot receive payments"
                )
            raise InvalidOperationError(f"Invoice {invoice_id} has no outstanding balance")

        return invoices

    @staticmethod
    def _describe(plan: AllocationPlan, invoice_count: int) -> str:
        message = f"Allocated {plan.total_allocated} to {invoice_count} invoice(s)."
        if plan.remainder > 0:
            message += f" {plan.remainder} was not needed for open invoices and is held as customer credit."
        return message

    def preview_allocation(self, customer_id: int, request: AllocationPreviewRequest) -> AllocationPreview:
        """
        Shows how an amount would be allocated right now without writing
        anything. Uses the same planner as allocate().
        """
        self.validator.validate_preview(request.amount, request.invoice_ids)

        customer = self.repo.get_customer(customer_id)
        if not customer:
            raise CustomerNotFoundError(customer_id)

        invoices = self._load_target_invoices(customer_id, request.invoice_ids, for_update=False)
        plan = plan_allocation(invoices, request.amount)
        today = self.clock()
        invoices_by_id = {invoice.id: invoice for invoice in invoices}

        affected = []
        for line in plan.lines:
            invoice = invoices_by_id[line.invoice_id]
            affected.append(
                InvoiceAllocationResult(
                    invoice_id=invoice.id,
                    invoice_number=invoice.invoice_number,
                    amount_applied=line.amount_applied,
                    previous_balance=line.balance_before,
                    new_balance=line.balance_after,
                    new_status=derive_invoice_status(
                        line.balance_after,
                        invoice.total_amount,
                        invoice.due_date,
                        today,
                        current=invoice.status,
                    ),
                )
            )

        return AllocationPreview(
            customer_id=customer_id,
            amount=plan.amount,
            total_allocated=plan.total_allocated,
            total_credit=plan.remainder,
            invoices_affected=affected,
        )

    def get_open_invoices(self, customer_id: int) -> OpenInvoicesResponse:
        """Lists the customer's payable invoices in allocation order."""
        if not self.repo.get_customer(customer_id):
            raise CustomerNotFoundError(customer_id)

        today = self.clock()
        invoices = self.repo.get_payable_invoices(customer_id, for_update=False)
        items = [
            OpenInvoiceResponse(
                id=invoice.id,
                invoice_number=invoice.invoice_number,
                invoice_date=invoice.invoice_date,
                due_date=invoice.due_date,
                total_amount=invoice.total_amount,
                balance=invoice.balance,
                status=invoice.status,
                is_overdue=invoice.is_overdue(today),
            )
            for invoice in invoices
        ]
        return OpenInvoicesResponse(
            invoices=items,
            total_invoices=len(items),
            total_outstanding=sum((item.balance for item in items), ZERO),
        )

    def get_payment(self, payment_id: int) -> CustomerPayment:
        payment = self.repo.get_payment(payment_id)
        if not payment:
            raise PaymentNotFoundError(payment_id)
        return payment

    def get_customer_payments(self, customer_id: int, page: int = 1, per_page: int = 20):
        if not self.repo.get_customer(customer_id):
            raise CustomerNotFoundError(customer_id)
        return self.repo.list_payments_for_customer(customer_id, page=page, per_page=per_page)

    def get_recent_payments(
        self,
        page: int = 1,
        per_page: int = 10,
        payment_method: Optional[PaymentMethod] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[RecentPaymentResponse], int]:
        """Payments across all customers, newest first, with their applications."""
        payments, total_items = self.repo.list_recent_payments(
            page=page, per_page=per_page, payment_method=payment_method, search=search
        )
        items = [
            RecentPaymentResponse.model_validate(payment).model_copy(
                update={"customer_name": payment.customer.company_name or payment.customer.name}
            )
            for payment in payments
        ]
        return items, total_items

    def get_outstanding_invoices(
        self, page: int = 1, per_page: int = 10, search: Optional[str] = None
    ) -> Tuple[List[OutstandingInvoiceResponse], int]:
        """
        Invoices with a balance across all customers, in allocation order.
        customer_name prefers the company name over the contact name.
        """
        today = self.clock()
        rows, total_items = self.repo.list_outstanding_invoices(
            page=page, per_page=per_page, search=search
        )
        items = [
            OutstandingInvoiceResponse(
                id=invoice.id,
                invoice_number=invoice.invoice_number,
                customer_id=customer.id,
                customer_name=customer.company_name or customer.name,
                invoice_date=invoice.invoice_date,
                due_date=invoice.due_date,
                total_amount=invoice.total_amount,
                balance=invoice.balance,
                status=invoice.status,
                is_overdue=invoice.is_overdue(today),
            )
            for invoice, customer in rows
        ]
        return items, total_items

    def get_payment_summary(self) -> PaymentSummaryResponse:
        """Totals for the payments dashboard."""
        today = self.clock()
        start_of_month = today.replace(day=1)
        return PaymentSummaryResponse(
            total_payments_today=self.repo.sum_payments_between(today, today),
            total_payments_this_month=self.repo.sum_payments_between(start_of_month, today),
            total_outstanding=self.repo.sum_outstanding_invoices(),
            total_credits=self.credit_repo.sum_available_credit(),
        )

    @staticmethod
    def get_payment_methods() -> List[PaymentMethodOption]:
        return [
            PaymentMethodOption(value=method, label=label)
            for method, label in PAYMENT_METHOD_LABELS.items()
        ]
