# backoffice/payments/schemas.py

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backoffice.invoices.models import InvoiceStatus
from backoffice.payments.models import PaymentMethod, PaymentStatus
from backoffice.utils.money import to_money


class RecordPaymentRequest(BaseModel):
    """
    Request schema for recording a customer payment. The amount is
    distributed over the customer's open invoices, oldest obligation first;
    any remainder becomes a customer credit.
    """

    model_config = ConfigDict(json_schema_extra={
        "examples": [
            {
                "customer_id": 42,
                "amount": 1000.00,
                "payment_method": "BANK_TRANSFER",
                "payment_date": "2025-10-24",
                "reference_number": "TRX-88213",
                "notes": "October settlement",
            },
            {
                "customer_id": 42,
                "amount": 250.00,
                "payment_method": "CASH",
                "invoice_ids": [101, 102],
            },
        ]
    })

    customer_id: int = Field(..., description="Customer making the payment")
    # Sign is checked by PaymentValidator so direct callers get InvalidArgumentError
    amount: Decimal = Field(..., description="Amount received (must be positive)")
    payment_method: PaymentMethod = Field(..., description="Method used for the payment")
    payment_date: date = Field(default_factory=date.today, description="Date the money was received")
    reference_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=1000)
    invoice_ids: Optional[List[int]] = Field(
        None, description="Restrict allocation to these invoices (still paid oldest first)"
    )

    @field_validator("amount", mode="before")
    @classmethod
    def _quantize_amount(cls, value):
        return to_money(value)


class AllocationPreviewRequest(BaseModel):
    amount: Decimal = Field(..., description="Amount to preview")
    invoice_ids: Optional[List[int]] = None

    @field_validator("amount", mode="before")
    @classmethod
    def _quantize_amount(cls, value):
        return to_money(value)


class InvoiceAllocationResult(BaseModel):
    invoice_id: int
    invoice_number: Optional[str] = None
    amount_applied: Decimal
    previous_balance: Decimal
    new_balance: Decimal
    new_status: InvoiceStatus


class AllocationResult(BaseModel):
    """
    Outcome of recording a payment. total_allocated and total_credit always
    add up to total_paid.
    """

    payment_id: int
    customer_id: int
    total_paid: Decimal
    total_allocated: Decimal
    total_credit: Decimal
    credit_id: Optional[int] = None
    invoices_affected: List[InvoiceAllocationResult] = Field(default_factory=list)
    message: str


class AllocationPreview(BaseModel):
    customer_id: int
    amount: Decimal
    total_allocated: Decimal
    total_credit: Decimal
    invoices_affected: List[InvoiceAllocationResult] = Field(default_factory=list)


class PaymentApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_id: int
    amount_applied: Decimal
    balance_before: Optional[Decimal] = None
    balance_after: Optional[Decimal] = None


class CustomerPaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    amount: Decimal
    payment_method: PaymentMethod
    payment_date: date
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    status: PaymentStatus
    allocated_amount: Decimal
    credit_amount: Decimal
    applications: List[PaymentApplicationResponse] = Field(default_factory=list)


class PaginatedCustomerPaymentResponse(BaseModel):
    items: List[CustomerPaymentResponse]
    total_items: int
    page: int
    per_page: int
    total_pages: int


class OpenInvoiceResponse(BaseModel):
    id: int
    invoice_number: str
    invoice_date: date
    due_date: Optional[date] = None
    total_amount: Decimal
    balance: Decimal
    status: InvoiceStatus
    is_overdue: bool


class OpenInvoicesResponse(BaseModel):
    invoices: List[OpenInvoiceResponse]
    total_invoices: int
    total_outstanding: Decimal


class PaymentSummaryResponse(BaseModel):
    total_payments_today: Decimal
    total_payments_this_month: Decimal
    total_outstanding: Decimal
    total_credits: Decimal


class PaymentMethodOption(BaseModel):
    value: PaymentMethod
    label: str


class RecentPaymentResponse(CustomerPaymentResponse):
    customer_name: Optional[str] = None


class PaginatedRecentPaymentResponse(BaseModel):
    items: List[RecentPaymentResponse]
    total_items: int
    page: int
    per_page: int
    total_pages: int


class OutstandingInvoiceResponse(BaseModel):
    id: int
    invoice_number: str
    customer_id: int
    customer_name: str
    invoice_date: date
    due_date: Optional[date] = None
    total_amount: Decimal
    balance: Decimal
    status: InvoiceStatus
    is_overdue: bool


class PaginatedOutstandingInvoiceResponse(BaseModel):
    items: List[OutstandingInvoiceResponse]
    total_items: int
    page: int
    per_page: int
    total_pages: int
