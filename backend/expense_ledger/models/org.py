"""Tenant structure models: companies, projects and customers."""
from __future__ import annotations

import datetime
import decimal
import uuid

from sqlalchemy import ForeignKey, Numeric, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_ledger.database import Base
from expense_ledger.models.base import UUIDPrimaryKeyMixin


class Company(UUIDPrimaryKeyMixin, Base):
    """A tenant. Every ledger row is scoped to exactly one company."""
    __tablename__ = "companies"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str | None] = mapped_column(Text)
    phone: Mapped[str | None] = mapped_column(String(50))
    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Company {self.name!r}>"


class Project(UUIDPrimaryKeyMixin, Base):
    """A customer project that labor and material expenses are booked against."""
    __tablename__ = "projects"

    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("companies.id"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default="Active"
    )
    budget: Mapped[decimal.Decimal | None] = mapped_column(Numeric(14, 2))
    # Debt repayments received for the project move these two
    advance_paid: Mapped[decimal.Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=decimal.Decimal("0")
    )
    remaining_amount: Mapped[decimal.Decimal | None] = mapped_column(Numeric(14, 2))
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
    )

    # ------ relationships ------
    company: Mapped[Company] = relationship("Company")

    def __repr__(self) -> str:
        return f"<Project {self.name!r} status={self.status!r}>"


class Customer(UUIDPrimaryKeyMixin, Base):
    """A customer; expenses paid out to a customer are tracked as debt."""
    __tablename__ = "customers"

    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("companies.id"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    contact_person: Mapped[str | None] = mapped_column(String(200))
    phone_number: Mapped[str | None] = mapped_column(String(50))
    email: Mapped[str | None] = mapped_column(String(200))
    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Customer {self.name!r}>"
