# backoffice/audit/models.py

from typing import Optional

from sqlalchemy import JSON, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.db import Base
from backoffice.users.models import AuditMixin


class AuditLog(Base, AuditMixin):
    """Immutable record of a committed financial action."""

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    before_snapshot: Mapped[Optional[dict]] = mapped_column(JSON)
    after_snapshot: Mapped[dict] = mapped_column(JSON, nullable=False)
