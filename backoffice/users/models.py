# backoffice/users/models.py

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column


class AuditMixin:
    """
    Creation / modification bookkeeping shared by every table.
    Actor ids are opaque strings issued by the external identity provider.
    """

    created_on: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_on: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    created_by: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, comment="Actor who created the record"
    )
    modified_by: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, comment="Actor who last modified the record"
    )
