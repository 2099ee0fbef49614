"""Employee model with the monthly salary accumulator."""
from __future__ import annotations

import datetime
import decimal
import uuid

from sqlalchemy import Boolean, ForeignKey, Numeric, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from expense_ledger.database import Base
from expense_ledger.models.base import UUIDPrimaryKeyMixin


class Employee(UUIDPrimaryKeyMixin, Base):
    """An employee. ``salary_paid_this_month`` only moves with salary expenses."""
    __tablename__ = "employees"

    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("companies.id"),
        nullable=False,
    )
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    position: Mapped[str | None] = mapped_column(String(100))
    department: Mapped[str | None] = mapped_column(String(100))
    phone_number: Mapped[str | None] = mapped_column(String(50))
    email: Mapped[str | None] = mapped_column(String(200))
    monthly_salary: Mapped[decimal.Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=decimal.Decimal("0")
    )
    salary_paid_this_month: Mapped[decimal.Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=decimal.Decimal("0")
    )
    last_payment_date: Mapped[datetime.datetime | None] = mapped_column()
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Employee {self.full_name!r} paid={self.salary_paid_this_month}>"
