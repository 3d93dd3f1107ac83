# backoffice/ledger/services.py

from contextlib import contextmanager
from datetime import date
from typing import Iterator, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice.ledger.exceptions import CustomerNotFoundError, LedgerStoreError
from backoffice.ledger.repository import LedgerRepository
from backoffice.ledger.schemas import (
    ENTRY_TYPE_RANK,
    CustomerLedger,
    LedgerEntry,
    LedgerEntryType,
)
from backoffice.payments.repository import PaymentRepository
from backoffice.payments.validators import PaymentValidator
from backoffice.utils.logger import get_logger
from backoffice.utils.money import ZERO, to_money

logger = get_logger(__name__)


class LedgerService:
    """
    Ledger Reconstruction Service. Rebuilds a customer's chronological
    statement from invoices, payment applications and credit applications.
    Never writes.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = LedgerRepository(db)
        self.payment_repo = PaymentRepository(db)
        self.validator = PaymentValidator()

    @contextmanager
    def _snapshot(self) -> Iterator[None]:
        """
        Runs the reads in one transaction. On PostgreSQL the transaction is
        REPEATABLE READ so every query sees the same committed state.
        """
        owns_transaction = not self.db.in_transaction()
        if owns_transaction and self.db.get_bind().dialect.name == "postgresql":
            self.db.connection(execution_options={"isolation_level": "REPEATABLE READ"})
        try:
            yield
        finally:
            if owns_transaction:
                self.db.rollback()

    def get_ledger(
        self,
        customer_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> CustomerLedger:
        """
        Builds the ledger for the optional inclusive date range.

        Opening balance is the customer's stored baseline, plus (when a start
        date is given) every invoice minus every application dated before it.
        Entries sort by date, then invoice < payment < credit application,
        then id. The running balance starts at the opening balance.

        Raises:
            InvalidArgumentError: start_date after end_date
            CustomerNotFoundError: Customer does not exist
            LedgerStoreError: Database failure
        """
        self.validator.validate_date_range(start_date, end_date)

        try:
            with self._snapshot():
                return self._build_ledger(customer_id, start_date, end_date)
        except SQLAlchemyError as e:
            logger.error("Ledger read failed", customer_id=customer_id, error=str(e), exc_info=True)
            raise LedgerStoreError("get_ledger", str(e)) from e

    def _build_ledger(
        self, customer_id: int, start_date: Optional[date], end_date: Optional[date]
    ) -> CustomerLedger:
        customer = self.payment_repo.get_customer(customer_id)
        if not customer:
            raise CustomerNotFoundError(customer_id)

        opening = to_money(customer.opening_balance or ZERO)
        if start_date:
            opening += self.repo.sum_invoices_before(customer_id, start_date)
            opening -= self.repo.sum_payment_applications_before(customer_id, start_date)
            opening -= self.repo.sum_credit_applications_before(customer_id, start_date)

        keyed: List[Tuple[tuple, LedgerEntry]] = []

        for invoice in self.repo.get_invoices(customer_id, start_date, end_date):
            amount = to_money(invoice.total_amount)
            keyed.append((
                (invoice.invoice_date, ENTRY_TYPE_RANK[LedgerEntryType.INVOICE], invoice.id),
                LedgerEntry(
                    entry_type=LedgerEntryType.INVOICE,
                    date=invoice.invoice_date,
                    reference=invoice.invoice_number,
                    description=f"Invoice {invoice.invoice_number}",
                    debit=amount,
                    balance=ZERO,
                    invoice_id=invoice.id,
                ),
            ))

        for application, payment, invoice in self.repo.get_payment_applications(
            customer_id, start_date, end_date
        ):
            method = payment.payment_method.value.replace("_", " ").title()
            keyed.append((
                (payment.payment_date, ENTRY_TYPE_RANK[LedgerEntryType.PAYMENT], application.id),
                LedgerEntry(
                    entry_type=LedgerEntryType.PAYMENT,
                    date=payment.payment_date,
                    reference=payment.reference_number or f"PMT-{payment.id}",
                    description=f"{method} payment applied to {invoice.invoice_number}",
                    credit=to_money(application.amount_applied),
                    balance=ZERO,
                    invoice_id=invoice.id,
                    payment_id=payment.id,
                ),
            ))

        for application, credit, invoice in self.repo.get_credit_applications(
            customer_id, start_date, end_date
        ):
            keyed.append((
                (
                    application.applied_date,
                    ENTRY_TYPE_RANK[LedgerEntryType.CREDIT_APPLICATION],
                    application.id,
                ),
                LedgerEntry(
                    entry_type=LedgerEntryType.CREDIT_APPLICATION,
                    date=application.applied_date,
                    reference=f"CR-{credit.id}",
                    description=f"Credit {credit.id} applied to {invoice.invoice_number}",
                    credit=to_money(application.amount_applied),
                    balance=ZERO,
                    invoice_id=invoice.id,
                    credit_id=credit.id,
                    payment_id=credit.source_payment_id,
                ),
            ))

        keyed.sort(key=lambda item: item[0])

        running = opening
        transactions: List[LedgerEntry] = []
        total_invoiced = total_payments = total_credits = ZERO
        for _, entry in keyed:
            running = running + entry.debit - entry.credit
            transactions.append(entry.model_copy(update={"balance": running}))
            if entry.entry_type == LedgerEntryType.INVOICE:
                total_invoiced += entry.debit
            elif entry.entry_type == LedgerEntryType.PAYMENT:
                total_payments += entry.credit
            else:
                total_credits += entry.credit

        total_applied = total_payments + total_credits
        ledger = CustomerLedger(
            customer_id=customer.id,
            customer_name=customer.name,
            start_date=start_date,
            end_date=end_date,
            opening_balance=opening,
            transactions=transactions,
            closing_balance=running,
            total_invoiced=total_invoiced,
            total_payments=total_payments,
            total_credits_applied=total_credits,
            total_applied=total_applied,
            net_movement=total_invoiced - total_applied,
        )

        logger.info(
            "Built customer ledger",
            customer_id=customer_id,
            entries=len(transactions),
            opening_balance=str(opening),
            closing_balance=str(running),
        )
        return ledger
