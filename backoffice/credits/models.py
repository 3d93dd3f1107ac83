# backoffice/credits/models.py

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
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.core.db import Base
from backoffice.users.models import AuditMixin


class CreditStatus(str, PyEnum):
    """Status of a customer credit."""

    ACTIVE = "ACTIVE"
    EXHAUSTED = "EXHAUSTED"
    CANCELLED = "CANCELLED"


class CreditReason(str, PyEnum):
    OVERPAYMENT = "OVERPAYMENT"


class Credit(Base, AuditMixin):
    """
    Money held for a customer, spawned by the unallocated remainder of a
    payment. available_amount only decreases, through credit applications.
    """

    __tablename__ = "credits"
    __table_args__ = (
        CheckConstraint("available_amount >= 0", name="ck_credits_available_non_negative"),
        CheckConstraint("available_amount <= amount", name="ck_credits_available_le_amount"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    customer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    source_payment_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("customer_payments.id", ondelete="RESTRICT"),
        unique=True,
        nullable=True,
        comment="Payment whose remainder created this credit",
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    available_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reason: Mapped[CreditReason] = mapped_column(
        Enum(CreditReason), nullable=False, default=CreditReason.OVERPAYMENT
    )
    description: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[CreditStatus] = mapped_column(
        Enum(CreditStatus), nullable=False, default=CreditStatus.ACTIVE, index=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    # --- Relationships ---
    customer: Mapped["Customer"] = relationship(back_populates="credits")
    source_payment: Mapped[Optional["CustomerPayment"]] = relationship(
        back_populates="spawned_credit"
    )
    applications: Mapped[list["CreditApplication"]] = relationship(
        back_populates="credit", lazy="select", order_by="CreditApplication.id"
    )


class CreditApplication(Base, AuditMixin):
    """
    The portion of a credit applied to one invoice. Dated when it is applied,
    not when the originating payment was received.
    """

    __tablename__ = "credit_applications"
    __table_args__ = (
        CheckConstraint("amount_applied > 0", name="ck_credit_applications_amount_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    credit_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("credits.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    invoice_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("invoices.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    amount_applied: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    applied_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    applied_by: Mapped[str] = mapped_column(String(64), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(255))

    # --- Relationships ---
    credit: Mapped["Credit"] = relationship(back_populates="applications")
    invoice: Mapped["Invoice"] = relationship(back_populates="credit_applications")
