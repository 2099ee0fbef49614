"""Reversal and reapplication of an expense's effect on balances.

An expense deducts its amount from the ``paid_from`` account and, for salary
payments, adds it to the employee's ``salary_paid_this_month``.  A debt
repayment works the other way round: the account gains the amount and, when
the repayment is for a project, the project's ``advance_paid`` grows while
its ``remaining_amount`` shrinks.

Reversal undoes exactly that footprint; reapplication lays it down again
from the expense's current values.  Every change is a single atomic
``column = column + delta`` UPDATE scoped to the caller's company, so the
adjuster never reads a balance it is about to write.

The adjuster does not commit.  Callers decide the transaction boundary.
"""
from __future__ import annotations

import dataclasses
import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from expense_ledger.models.employee import Employee
from expense_ledger.models.expense import CATEGORY_COMPANY_LABOR, Expense
from expense_ledger.models.labor import CompanyLabor
from expense_ledger.models.ledger import Account
from expense_ledger.models.org import Project
from expense_ledger.services.amounts import to_decimal, to_number

logger = logging.getLogger(__name__)

PROJECT_ACTIVE = "Active"
PROJECT_COMPLETED = "Completed"


@dataclasses.dataclass(frozen=True)
class BalanceEffect:
    """The deltas one reversal or reapplication wrote to the store."""

    account_id: uuid.UUID | None = None
    account_delta: float = 0.0
    employee_id: uuid.UUID | None = None
    salary_delta: float = 0.0
    project_id: uuid.UUID | None = None
    project_delta: float = 0.0

    def to_dict(self) -> dict:
        return {
            "account_id": str(self.account_id) if self.account_id else None,
            "account_delta": self.account_delta,
            "employee_id": str(self.employee_id) if self.employee_id else None,
            "salary_delta": self.salary_delta,
            "project_id": str(self.project_id) if self.project_id else None,
            "project_delta": self.project_delta,
        }


class BalanceAdjuster:
    def __init__(self, db: AsyncSession, company_id: uuid.UUID):
        self.db = db
        self.company_id = company_id

    # ------------------------------------------------------------------
    # Primitive adjustments
    # ------------------------------------------------------------------

    async def adjust_account(self, account_id: uuid.UUID, delta: float) -> None:
        """Add *delta* (may be negative) to an account balance."""
        result = await self.db.execute(
            update(Account)
            .where(Account.id == account_id, Account.company_id == self.company_id)
            .values(balance=Account.balance + to_decimal(delta))
        )
        if result.rowcount == 0:
            logger.warning(
                f"Account {account_id} not found for company {self.company_id}; "
                f"balance delta {delta} not applied"
            )

    async def adjust_salary(
        self,
        employee_id: uuid.UUID,
        delta: float,
        payment_date=None,
    ) -> None:
        """Add *delta* to an employee's monthly salary accumulator."""
        values = {"salary_paid_this_month": Employee.salary_paid_this_month + to_decimal(delta)}
        if payment_date is not None:
            values["last_payment_date"] = payment_date
        result = await self.db.execute(
            update(Employee)
            .where(Employee.id == employee_id, Employee.company_id == self.company_id)
            .values(**values)
        )
        if result.rowcount == 0:
            logger.warning(
                f"Employee {employee_id} not found for company {self.company_id}; "
                f"salary delta {delta} not applied"
            )

    async def adjust_project_repayment(self, project_id: uuid.UUID, delta: float) -> None:
        """Move *delta* from a project's remaining amount into its advance paid.

        A project whose remaining amount reaches zero is marked completed; a
        negative *delta* that brings money back reopens it.
        """
        owned = (Project.id == project_id, Project.company_id == self.company_id)
        amount = to_decimal(delta)
        result = await self.db.execute(
            update(Project)
            .where(*owned)
            .values(
                advance_paid=Project.advance_paid + amount,
                remaining_amount=Project.remaining_amount - amount,
            )
        )
        if result.rowcount == 0:
            logger.warning(
                f"Project {project_id} not found for company {self.company_id}; "
                f"repayment delta {delta} not applied"
            )
            return

        if delta > 0:
            await self.db.execute(
                update(Project)
                .where(*owned, Project.remaining_amount <= 0)
                .values(status=PROJECT_COMPLETED)
            )
        else:
            await self.db.execute(
                update(Project)
                .where(*owned, Project.status == PROJECT_COMPLETED, Project.remaining_amount > 0)
                .values(status=PROJECT_ACTIVE)
            )

    # ------------------------------------------------------------------
    # Expense footprint
    # ------------------------------------------------------------------

    async def latest_company_labor(self, employee_id: uuid.UUID) -> CompanyLabor | None:
        result = await self.db.execute(
            select(CompanyLabor)
            .where(
                CompanyLabor.company_id == self.company_id,
                CompanyLabor.employee_id == employee_id,
            )
            .order_by(CompanyLabor.date_worked.desc(), CompanyLabor.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def reversal_amount(self, expense: Expense, substitute_labor: bool = True) -> float:
        """Amount that was deducted from the paying account for *expense*.

        Company Labor payments are booked against the employee's latest
        labor record, whose ``paid_amount`` is the authoritative figure
        unless *substitute_labor* is off.
        """
        amount = abs(to_number(expense.amount))
        if substitute_labor and expense.category == CATEGORY_COMPANY_LABOR and expense.employee_id:
            labor = await self.latest_company_labor(expense.employee_id)
            if labor is not None:
                amount = abs(to_number(labor.paid_amount))
        return amount

    async def reverse(self, expense: Expense, substitute_labor: bool = True) -> BalanceEffect:
        """Undo *expense*'s effect on its account, salary accumulator and project."""
        account_id = None
        account_delta = 0.0
        if expense.paid_from and expense.amount:
            amount = await self.reversal_amount(expense, substitute_labor)
            account_id = expense.paid_from
            account_delta = -amount if expense.is_debt_repayment else amount
            await self.adjust_account(account_id, account_delta)

        employee_id = None
        salary_delta = 0.0
        if expense.is_salary_payment:
            employee_id = expense.employee_id
            salary_delta = -abs(to_number(expense.amount))
            await self.adjust_salary(employee_id, salary_delta)

        project_id = None
        project_delta = 0.0
        if expense.is_debt_repayment and expense.project_id:
            project_id = expense.project_id
            project_delta = -abs(to_number(expense.amount))
            await self.adjust_project_repayment(project_id, project_delta)

        return BalanceEffect(
            account_id, account_delta, employee_id, salary_delta, project_id, project_delta
        )

    async def reapply(self, expense: Expense) -> BalanceEffect:
        """Apply *expense*'s current values to its account, salary accumulator and project."""
        amount = abs(to_number(expense.amount))

        account_id = None
        account_delta = 0.0
        if expense.paid_from and amount:
            account_id = expense.paid_from
            account_delta = amount if expense.is_debt_repayment else -amount
            await self.adjust_account(account_id, account_delta)

        employee_id = None
        salary_delta = 0.0
        if expense.is_salary_payment:
            employee_id = expense.employee_id
            salary_delta = amount
            await self.adjust_salary(employee_id, salary_delta, payment_date=expense.expense_date)

        project_id = None
        project_delta = 0.0
        if expense.is_debt_repayment and expense.project_id and amount:
            project_id = expense.project_id
            project_delta = amount
            await self.adjust_project_repayment(project_id, project_delta)

        return BalanceEffect(
            account_id, account_delta, employee_id, salary_delta, project_id, project_delta
        )
