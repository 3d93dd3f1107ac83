# backoffice/ledger/exceptions.py

from decimal import Decimal


class LedgerError(Exception):
    """Base exception for all payment allocation and ledger errors."""
    pass


class NotFoundError(LedgerError):
    """Raised when a referenced customer, invoice or credit does not exist."""
    pass


class CustomerNotFoundError(NotFoundError):
    def __init__(self, customer_id: int):
        self.customer_id = customer_id
        super().__init__(f"Customer with ID '{customer_id}' not found.")


class InvoiceNotFoundError(NotFoundError):
    def __init__(self, invoice_id: int):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice with ID '{invoice_id}' not found.")


class CreditNotFoundError(NotFoundError):
    def __init__(self, credit_id: int):
        self.credit_id = credit_id
        super().__init__(f"Credit with ID '{credit_id}' not found.")


class PaymentNotFoundError(NotFoundError):
    def __init__(self, payment_id: int):
        self.payment_id = payment_id
        super().__init__(f"Payment with ID '{payment_id}' not found.")


class InvalidArgumentError(LedgerError):
    """Raised for malformed input: non-positive amounts, inverted date ranges."""
    pass


class InvalidOperationError(LedgerError):
    """Raised when the request is well formed but the ledger state forbids it."""
    pass


class InsufficientCreditError(InvalidOperationError):
    def __init__(self, credit_id: int, available: Decimal, requested: Decimal):
        self.credit_id = credit_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Credit {credit_id} has {available} available; {requested} was requested."
        )


class InsufficientInvoiceBalanceError(InvalidOperationError):
    def __init__(self, invoice_id: int, balance: Decimal, requested: Decimal):
        self.invoice_id = invoice_id
        self.balance = balance
        self.requested = requested
        super().__init__(
            f"Invoice {invoice_id} has an outstanding balance of {balance}; "
            f"{requested} cannot be applied."
        )


class ConcurrencyConflictError(LedgerError):
    """
    Raised when a concurrent transaction changed the same invoice or credit,
    or a lock could not be obtained in time. Safe to retry.
    """

    retryable = True

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Concurrent modification conflict: {reason}")


class LedgerStoreError(LedgerError):
    """Raised when the underlying store fails for reasons other than contention."""

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Ledger store failure during {operation}: {reason}")
