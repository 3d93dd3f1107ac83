# backoffice/payments/models.py

from datetime import date
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.core.db import Base
from backoffice.users.models import AuditMixin


class PaymentMethod(str, PyEnum):
    """Enumeration for the payment method used."""

    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHEQUE = "CHEQUE"
    CARD = "CARD"
    MOBILE_MONEY = "MOBILE_MONEY"


PAYMENT_METHOD_LABELS = {
    PaymentMethod.CASH: "Cash",
    PaymentMethod.BANK_TRANSFER: "Bank Transfer",
    PaymentMethod.CHEQUE: "Cheque",
    PaymentMethod.CARD: "Card Payment",
    PaymentMethod.MOBILE_MONEY: "Mobile Money",
}


class PaymentStatus(str, PyEnum):
    """Status of a customer payment"""

    COMPLETED = "COMPLETED"


class CustomerPayment(Base, AuditMixin):
    """
    Money received from a customer. Created together with its applications
    (and optional overpayment credit) in a single transaction and never
    edited afterwards.
    """

    __tablename__ = "customer_payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_customer_payments_amount_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    customer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    # --- Payment Details ---
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    reference_number: Mapped[Optional[str]] = mapped_column(String(100))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus), nullable=False, default=PaymentStatus.COMPLETED
    )

    # --- Allocation Summary ---
    allocated_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00"),
        comment="Portion of amount applied to invoices",
    )
    credit_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00"),
        comment="Portion of amount converted into a customer credit",
    )

    # --- Relationships ---
    customer: Mapped["Customer"] = relationship(back_populates="payments")
    applications: Mapped[list["PaymentApplication"]] = relationship(
        back_populates="payment",
        passive_deletes="all",
        lazy="select",
        order_by="PaymentApplication.id",
    )
    spawned_credit: Mapped[Optional["Credit"]] = relationship(
        back_populates="source_payment", uselist=False, lazy="select"
    )


class PaymentApplication(Base, AuditMixin):
    """
    The portion of a payment applied to one invoice.
    """

    __tablename__ = "payment_applications"
    __table_args__ = (
        CheckConstraint("amount_applied > 0", name="ck_payment_applications_amount_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    customer_payment_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("customer_payments.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    invoice_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("invoices.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    amount_applied: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    balance_before: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2), comment="Invoice balance before this application"
    )
    balance_after: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2), comment="Invoice balance after this application"
    )
    notes: Mapped[Optional[str]] = mapped_column(String(255))

    # --- Relationships ---
    payment: Mapped["CustomerPayment"] = relationship(back_populates="applications")
    invoice: Mapped["Invoice"] = relationship(back_populates="payment_applications")
