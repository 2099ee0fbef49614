"""Expense model and the category names the ledger logic keys on."""
from __future__ import annotations

import datetime
import decimal
import uuid
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, Boolean, ForeignKey, Numeric, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_ledger.database import Base
from expense_ledger.models.base import UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from expense_ledger.models.employee import Employee
    from expense_ledger.models.ledger import Account
    from expense_ledger.models.org import Customer, Project

CATEGORY_LABOR = "Labor"
CATEGORY_COMPANY_LABOR = "Company Labor"
CATEGORY_COMPANY_EXPENSE = "Company Expense"
CATEGORY_MATERIAL = "Material"
CATEGORY_DEBT = "Debt"
SUBCATEGORY_SALARY = "Salary"
SUBCATEGORY_DEBT = "Debt"

PAYMENT_STATUSES = ("PAID", "UNPAID", "PARTIAL", "REPAID")
PAYMENT_REPAID = "REPAID"


class Expense(UUIDPrimaryKeyMixin, Base):
    """Money paid out of an account.

    ``amount`` and ``paid_from`` are the fields whose changes move account
    balances; salary and labor categories also move secondary records.
    """
    __tablename__ = "expenses"

    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("companies.id"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id"),
    )
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    amount: Mapped[decimal.Decimal] = mapped_column(
        Numeric(14, 2), nullable=False
    )
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    sub_category: Mapped[str | None] = mapped_column(String(100))
    paid_from: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("accounts.id"),
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
    expense_date: Mapped[datetime.datetime] = mapped_column(nullable=False)
    note: Mapped[str | None] = mapped_column(Text)
    approved: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    materials: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON)
    receipt_url: Mapped[str | None] = mapped_column(String(500))
    payment_status: Mapped[str | None] = mapped_column(String(20))
    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # ------ relationships ------
    account: Mapped[Account | None] = relationship(
        "Account",
        lazy="selectin",
    )
    employee: Mapped[Employee | None] = relationship(
        "Employee",
        lazy="selectin",
    )
    project: Mapped[Project | None] = relationship(
        "Project",
        lazy="selectin",
    )
    customer: Mapped[Customer | None] = relationship(
        "Customer",
        lazy="selectin",
    )

    @property
    def is_salary_payment(self) -> bool:
        return (
            self.category == CATEGORY_COMPANY_EXPENSE
            and self.sub_category == SUBCATEGORY_SALARY
            and self.employee_id is not None
        )

    @property
    def is_debt(self) -> bool:
        return self.category == CATEGORY_DEBT or (
            self.category == CATEGORY_COMPANY_EXPENSE and self.sub_category == SUBCATEGORY_DEBT
        )

    @property
    def is_debt_repayment(self) -> bool:
        """Money coming back in: the account gains the amount instead of losing it."""
        return self.is_debt and self.payment_status == PAYMENT_REPAID

    def __repr__(self) -> str:
        return f"<Expense {self.category!r} amount={self.amount}>"
