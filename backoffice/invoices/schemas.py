# backoffice/invoices/schemas.py

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backoffice.invoices.models import InvoiceStatus
from backoffice.utils.money import to_money


class InvoiceCreateRequest(BaseModel):
    """
    Request schema for raising an invoice. The balance starts at the total
    amount; the status is derived unless the invoice is created as a draft.
    """

    model_config = ConfigDict(json_schema_extra={
        "examples": [
            {
                "customer_id": 42,
                "invoice_number": "INV-2025-0101",
                "invoice_date": "2025-10-01",
                "due_date": "2025-10-31",
                "total_amount": 700.00,
            }
        ]
    })

    customer_id: int
    invoice_number: str = Field(..., min_length=1, max_length=50)
    invoice_date: date = Field(default_factory=date.today)
    due_date: Optional[date] = None
    total_amount: Decimal
    notes: Optional[str] = None
    draft: bool = Field(False, description="Create the invoice as DRAFT (not yet payable)")

    @field_validator("total_amount", mode="before")
    @classmethod
    def _quantize_amount(cls, value):
        return to_money(value)


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_number: str
    customer_id: int
    invoice_date: date
    due_date: Optional[date] = None
    total_amount: Decimal
    balance: Optional[Decimal] = None
    status: InvoiceStatus
    notes: Optional[str] = None
    created_on: Optional[datetime] = None


class BalanceInitializationResult(BaseModel):
    """Outcome of a balance backfill run."""

    updated_count: int
    skipped_invoice_ids: List[int] = Field(
        default_factory=list,
        description="Invoices whose applications exceed their total; left untouched",
    )
