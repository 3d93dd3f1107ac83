# backoffice/payments/validators.py

"""
Request validation for the payment engine. Runs before any transaction is
opened; checks that need ledger state (existence, ownership, balances) are
made by the services under lock, still before the first write.
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from backoffice.credits.schemas import ApplyCreditRequest
from backoffice.ledger.exceptions import InvalidArgumentError
from backoffice.payments.schemas import RecordPaymentRequest


class PaymentValidator:
    """
    Centralized validation for payment and credit requests.
    """

    def validate_record_payment(self, request: RecordPaymentRequest) -> None:
        """
        Raises:
            InvalidArgumentError: If any validation fails
        """
        self._validate_positive_amount(request.amount, "Payment amount")
        if not request.customer_id:
            raise InvalidArgumentError("Customer ID is required")
        if not request.payment_method:
            raise InvalidArgumentError("Payment method is required")
        self._validate_invoice_ids(request.invoice_ids)

    def validate_preview(self, amount: Decimal, invoice_ids: Optional[List[int]]) -> None:
        self._validate_positive_amount(amount, "Preview amount")
        self._validate_invoice_ids(invoice_ids)

    def validate_apply_credit(self, request: ApplyCreditRequest, actor_id: str) -> None:
        self._validate_positive_amount(request.amount, "Credit amount")
        if not actor_id:
            raise InvalidArgumentError("Actor ID is required to apply a credit")

    def validate_date_range(self, start_date: Optional[date], end_date: Optional[date]) -> None:
        if start_date and end_date and start_date > end_date:
            raise InvalidArgumentError(
                f"Start date {start_date.isoformat()} is after end date {end_date.isoformat()}"
            )

    def _validate_positive_amount(self, amount: Decimal, label: str) -> None:
        if amount is None or amount <= 0:
            raise InvalidArgumentError(f"{label} must be greater than zero")

    def _validate_invoice_ids(self, invoice_ids: Optional[List[int]]) -> None:
        if invoice_ids is None:
            return
        if len(invoice_ids) == 0:
            raise InvalidArgumentError("invoice_ids, when given, must name at least one invoice")
        if len(set(invoice_ids)) != len(invoice_ids):
            raise InvalidArgumentError("invoice_ids contains duplicates")
