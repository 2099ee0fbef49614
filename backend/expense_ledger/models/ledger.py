"""Ledger models: cash/bank accounts and the transactions posted against them."""
from __future__ import annotations

import datetime
import decimal
import enum
import uuid

from sqlalchemy import Boolean, ForeignKey, Numeric, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_ledger.database import Base
from expense_ledger.models.base import UUIDPrimaryKeyMixin


class TransactionType(str, enum.Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"  # Stored negative (money out)
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"
    DEBT_TAKEN = "DEBT_TAKEN"  # Stored positive (money lent to a customer)
    DEBT_REPAID = "DEBT_REPAID"
    OTHER = "OTHER"


class Account(UUIDPrimaryKeyMixin, Base):
    """A cash or bank account whose balance is a running accumulator.

    No negative-balance constraint exists at this layer.
    """
    __tablename__ = "accounts"

    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("companies.id"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    account_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="BANK",
    )
    balance: Mapped[decimal.Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=decimal.Decimal("0")
    )
    currency: Mapped[str] = mapped_column(
        String(3), nullable=False, default="USD"
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Account {self.name!r} balance={self.balance}>"


class Transaction(UUIDPrimaryKeyMixin, Base):
    """A ledger entry, optionally linked to the expense that produced it."""
    __tablename__ = "transactions"

    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("companies.id"),
        nullable=False,
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    amount: Mapped[decimal.Decimal] = mapped_column(
        Numeric(14, 2), nullable=False
    )
    description: Mapped[str | None] = mapped_column(Text)
    note: Mapped[str | None] = mapped_column(Text)
    transaction_date: Mapped[datetime.datetime] = mapped_column(nullable=False)
    account_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("accounts.id"),
    )
    expense_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("expenses.id"),
        index=True,
    )
    employee_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("employees.id"),
    )
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id"),
    )
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("customers.id"),
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id"),
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
    )

    # ------ relationships ------
    account: Mapped[Account | None] = relationship(
        "Account",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Transaction {self.type} amount={self.amount}>"
