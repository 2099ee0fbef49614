"""User model used to resolve the caller's company."""
from __future__ import annotations

import datetime
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_ledger.database import Base
from expense_ledger.models.base import UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from expense_ledger.models.org import Company


class User(UUIDPrimaryKeyMixin, Base):
    """A user belonging to exactly one company."""
    __tablename__ = "users"

    company_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("companies.id"),
    )
    username: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False
    )
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(200))
    role: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="user",
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
    )

    # ------ relationships ------
    company: Mapped[Company | None] = relationship(
        "Company",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<User {self.username!r} role={self.role!r}>"
