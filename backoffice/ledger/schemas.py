# backoffice/ledger/schemas.py

import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class LedgerEntryType(str, Enum):
    """Kinds of ledger events, in the order they sort on a shared date."""

    INVOICE = "INVOICE"
    PAYMENT = "PAYMENT"
    CREDIT_APPLICATION = "CREDIT_APPLICATION"


# Same-day ordering: charges first, then cash received, then credits used
ENTRY_TYPE_RANK = {
    LedgerEntryType.INVOICE: 0,
    LedgerEntryType.PAYMENT: 1,
    LedgerEntryType.CREDIT_APPLICATION: 2,
}


class LedgerEntry(BaseModel):
    """
    One line of a customer ledger. debit increases what the customer owes,
    credit decreases it; balance is the running balance after this line.
    """

    entry_type: LedgerEntryType
    date: datetime.date
    reference: str
    description: str
    debit: Decimal = Decimal("0.00")
    credit: Decimal = Decimal("0.00")
    balance: Decimal
    invoice_id: Optional[int] = None
    payment_id: Optional[int] = None
    credit_id: Optional[int] = None


class CustomerLedger(BaseModel):
    """
    closing_balance always equals
    opening_balance + total_invoiced - total_applied.
    """

    customer_id: int
    customer_name: Optional[str] = None
    start_date: Optional[datetime.date] = None
    end_date: Optional[datetime.date] = None
    opening_balance: Decimal
    transactions: List[LedgerEntry] = Field(default_factory=list)
    closing_balance: Decimal
    total_invoiced: Decimal
    total_payments: Decimal
    total_credits_applied: Decimal
    total_applied: Decimal
    net_movement: Decimal
