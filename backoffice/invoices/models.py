# backoffice/invoices/models.py

from datetime import date
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.core.db import Base
from backoffice.users.models import AuditMixin


class InvoiceStatus(str, PyEnum):
    """Lifecycle status of an invoice."""

    DRAFT = "DRAFT"
    OPEN = "OPEN"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


# Statuses set explicitly by the invoicing workflow; balance changes never leave them.
MANUAL_STATUSES = frozenset({InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED})

# An OVERDUE invoice is an OPEN or PARTIAL one past its due date, so it stays payable.
PAYABLE_STATUSES = (InvoiceStatus.OPEN, InvoiceStatus.PARTIAL, InvoiceStatus.OVERDUE)


def derive_invoice_status(
    balance: Decimal,
    total_amount: Decimal,
    due_date: Optional[date],
    today: date,
    current: Optional[InvoiceStatus] = None,
) -> InvoiceStatus:
    """
    Pure status function. DRAFT and CANCELLED are sticky; otherwise the status
    follows from the balance and the due date.
    """
    if current in MANUAL_STATUSES:
        return current
    if balance <= 0:
        return InvoiceStatus.PAID
    if due_date is not None and due_date < today:
        return InvoiceStatus.OVERDUE
    if balance < total_amount:
        return InvoiceStatus.PARTIAL
    return InvoiceStatus.OPEN


class Invoice(Base, AuditMixin):
    """
    A charge raised against a customer. total_amount is fixed at creation;
    balance only ever decreases through payment and credit applications.
    """

    __tablename__ = "invoices"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_invoices_balance_non_negative"),
        CheckConstraint("balance <= total_amount", name="ck_invoices_balance_le_total"),
        Index("ix_invoices_customer_status", "customer_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    invoice_number: Mapped[str] = mapped_column(String(50), unique=True, index=True)

    customer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    invoice_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    balance: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Outstanding amount; NULL only for rows that predate balance tracking",
    )
    status: Mapped[InvoiceStatus] = mapped_column(
        Enum(InvoiceStatus), nullable=False, default=InvoiceStatus.OPEN, index=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)

    # Optimistic lock counter; bumped by the ORM on every UPDATE
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    # --- Relationships ---
    customer: Mapped["Customer"] = relationship(back_populates="invoices")
    payment_applications: Mapped[list["PaymentApplication"]] = relationship(
        back_populates="invoice", lazy="select"
    )
    credit_applications: Mapped[list["CreditApplication"]] = relationship(
        back_populates="invoice", lazy="select"
    )

    def refresh_status(self, today: date) -> InvoiceStatus:
        """Recomputes and stores the derived status from the current balance."""
        self.status = derive_invoice_status(
            self.balance, self.total_amount, self.due_date, today, current=self.status
        )
        return self.status

    def is_overdue(self, today: date) -> bool:
        return (
            self.due_date is not None
            and self.due_date < today
            and (self.balance or Decimal("0")) > 0
            and self.status not in MANUAL_STATUSES
        )
