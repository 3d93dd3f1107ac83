# backoffice/customers/models.py

from decimal import Decimal
from typing import Optional

from sqlalchemy import Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.core.db import Base
from backoffice.users.models import AuditMixin


class Customer(Base, AuditMixin):
    """
    A billed party. The opening balance is the amount owed before any tracked
    invoice or payment existed and is never changed by the payment engine.
    """

    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    company_name: Mapped[Optional[str]] = mapped_column(String(255))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))

    opening_balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Signed baseline owed before tracked invoices/payments existed",
    )

    # --- Relationships ---
    invoices: Mapped[list["Invoice"]] = relationship(
        back_populates="customer", lazy="select"
    )
    payments: Mapped[list["CustomerPayment"]] = relationship(
        back_populates="customer", lazy="select"
    )
    credits: Mapped[list["Credit"]] = relationship(
        back_populates="customer", lazy="select"
    )
