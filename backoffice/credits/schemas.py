# backoffice/credits/schemas.py

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backoffice.credits.models import CreditReason, CreditStatus
from backoffice.invoices.models import InvoiceStatus
from backoffice.utils.money import to_money


class ApplyCreditRequest(BaseModel):
    """
    Request schema for applying part of a credit to an invoice. The amount
    may not exceed the credit's available amount nor the invoice balance.
    """

    model_config = ConfigDict(json_schema_extra={
        "examples": [
            {"credit_id": 7, "invoice_id": 133, "amount": 300.00},
        ]
    })

    credit_id: int
    invoice_id: int
    amount: Decimal = Field(..., description="Amount of credit to apply (must be positive)")
    notes: Optional[str] = Field(None, max_length=255)

    @field_validator("amount", mode="before")
    @classmethod
    def _quantize_amount(cls, value):
        return to_money(value)


class CreditApplicationResult(BaseModel):
    credit_id: int
    invoice_id: int
    amount_applied: Decimal
    credit_remaining: Decimal
    credit_status: CreditStatus
    invoice_new_balance: Decimal
    invoice_status: InvoiceStatus


class CreditApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_id: int
    amount_applied: Decimal
    applied_date: date
    applied_by: str


class CreditResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    source_payment_id: Optional[int] = None
    amount: Decimal
    available_amount: Decimal
    reason: CreditReason
    description: Optional[str] = None
    status: CreditStatus
    created_on: Optional[datetime] = None
    applications: List[CreditApplicationResponse] = Field(default_factory=list)


class CustomerCreditsResponse(BaseModel):
    credits: List[CreditResponse]
    total_available_credit: Decimal
