"""Labor wage agreements for project and company work.

Both tables share the wage columns; ``remaining_wage`` is kept at
``max(0, agreed_wage - paid_amount)`` by the services that write them.
"""
from __future__ import annotations

import datetime
import decimal
import uuid

from sqlalchemy import ForeignKey, Numeric, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from expense_ledger.database import Base
from expense_ledger.models.base import UUIDPrimaryKeyMixin


class LaborWageMixin:
    employee_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("employees.id"),
    )
    agreed_wage: Mapped[decimal.Decimal | None] = mapped_column(Numeric(14, 2))
    paid_amount: Mapped[decimal.Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=decimal.Decimal("0")
    )
    remaining_wage: Mapped[decimal.Decimal | None] = mapped_column(Numeric(14, 2))
    description: Mapped[str | None] = mapped_column(Text)
    paid_from: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("accounts.id"),
    )
    date_worked: Mapped[datetime.datetime] = mapped_column(nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
    )


class ProjectLabor(UUIDPrimaryKeyMixin, LaborWageMixin, Base):
    """Wages owed to an employee for work on a project."""
    __tablename__ = "project_labors"

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id"),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<ProjectLabor paid={self.paid_amount} agreed={self.agreed_wage}>"


class CompanyLabor(UUIDPrimaryKeyMixin, LaborWageMixin, Base):
    """Wages owed to an employee for work done for the company itself."""
    __tablename__ = "company_labors"

    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("companies.id"),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<CompanyLabor paid={self.paid_amount} agreed={self.agreed_wage}>"
