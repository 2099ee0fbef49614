"""Expense ledger consistency engine.

Keeps an expense, the account that paid it, the employee salary accumulator,
labor records and linked transactions consistent across create, update and
delete.

Transaction boundaries
----------------------
* **create** -- insert + labor upsert + salary + transaction + balance in
  one commit.
* **update** -- reverse old effects, persist the new values, reapply, in one
  commit.  A failure anywhere rolls the account back to its prior balance.
* **delete** -- reverse, delete linked transactions and delete the expense
  row in one commit (the ``LedgerMutation``).  Labor cleanup runs afterwards
  in its own commit and only ever yields a ``ReconciliationOutcome``; its
  failure is logged and never fails the delete.
"""
from __future__ import annotations

import dataclasses
import logging
import uuid
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_ledger.models.employee import Employee
from expense_ledger.models.expense import (
    CATEGORY_COMPANY_EXPENSE,
    CATEGORY_COMPANY_LABOR,
    CATEGORY_LABOR,
    SUBCATEGORY_SALARY,
    Expense,
)
from expense_ledger.models.labor import CompanyLabor, ProjectLabor
from expense_ledger.models.ledger import Account, Transaction, TransactionType
from expense_ledger.models.org import Customer, Project
from expense_ledger.services.amounts import to_decimal, to_number
from expense_ledger.services.balance import BalanceAdjuster, BalanceEffect
from expense_ledger.services.labor_reconciler import (
    LaborMatchCriteria,
    LaborReconciler,
    ReconciliationOutcome,
)

logger = logging.getLogger(__name__)

# Expense columns a caller may change through ``update_expense``
UPDATABLE_FIELDS = frozenset({
    "description",
    "amount",
    "category",
    "sub_category",
    "paid_from",
    "employee_id",
    "project_id",
    "customer_id",
    "expense_date",
    "note",
    "approved",
    "materials",
    "receipt_url",
    "payment_status",
})

# Columns that cannot be cleared; an explicit null leaves them unchanged
REQUIRED_FIELDS = frozenset({"amount", "category", "expense_date", "approved", "description"})


class ExpenseNotFound(LookupError):
    """The expense does not exist for the caller's company."""


class InvalidReference(ValueError):
    """A referenced account, employee, project or customer is not the company's."""


@dataclasses.dataclass(frozen=True)
class LedgerMutation:
    """What the atomic core of an update or delete changed."""

    expense_id: uuid.UUID
    reversal: BalanceEffect
    reapplication: BalanceEffect | None = None
    transactions_deleted: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "expense_id": str(self.expense_id),
            "reversal": self.reversal.to_dict(),
            "reapplication": self.reapplication.to_dict() if self.reapplication else None,
            "transactions_deleted": self.transactions_deleted,
        }


@dataclasses.dataclass(frozen=True)
class DeleteResult:
    mutation: LedgerMutation
    labor: ReconciliationOutcome


def _is_labor(category: str | None) -> bool:
    return (category or "").strip().lower() == CATEGORY_LABOR.lower()


def _remaining(agreed_wage: float | None, paid: float) -> float | None:
    if agreed_wage is None:
        return None
    return max(0.0, agreed_wage - paid)


def _transaction_type(expense: Expense) -> TransactionType:
    if expense.is_debt:
        return TransactionType.DEBT_REPAID if expense.is_debt_repayment else TransactionType.DEBT_TAKEN
    if expense.customer_id and expense.paid_from:
        return TransactionType.DEBT_TAKEN
    return TransactionType.EXPENSE


def _signed_amount(tx_type: TransactionType, amount) -> float:
    # EXPENSE rows are stored negative, debt rows positive
    amount = abs(to_number(amount))
    return -amount if tx_type == TransactionType.EXPENSE else amount


class ExpenseLedgerService:
    def __init__(
        self,
        db: AsyncSession,
        company_id: uuid.UUID,
        user_id: uuid.UUID | None = None,
    ):
        self.db = db
        self.company_id = company_id
        self.user_id = user_id
        self.adjuster = BalanceAdjuster(db, company_id)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_expense(self, expense_id: uuid.UUID, refresh: bool = False) -> Expense:
        stmt = select(Expense).where(
            Expense.id == expense_id,
            Expense.company_id == self.company_id,
        )
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        expense = result.scalar_one_or_none()
        if expense is None:
            raise ExpenseNotFound(f"Expense {expense_id} not found")
        return expense

    async def _require_owned(self, model, row_id: uuid.UUID | None, label: str) -> None:
        if row_id is None:
            return
        result = await self.db.execute(
            select(model.id).where(model.id == row_id, model.company_id == self.company_id)
        )
        if result.scalar_one_or_none() is None:
            raise InvalidReference(f"{label} {row_id} not found")

    async def _check_references(self, values: dict[str, Any]) -> None:
        await self._require_owned(Account, values.get("paid_from"), "Account")
        await self._require_owned(Employee, values.get("employee_id"), "Employee")
        await self._require_owned(Project, values.get("project_id"), "Project")
        await self._require_owned(Customer, values.get("customer_id"), "Customer")

    # ------------------------------------------------------------------
    # Labor records
    # ------------------------------------------------------------------

    async def _latest_project_labor(
        self, project_id: uuid.UUID, employee_id: uuid.UUID
    ) -> ProjectLabor | None:
        result = await self.db.execute(
            select(ProjectLabor)
            .where(
                ProjectLabor.project_id == project_id,
                ProjectLabor.employee_id == employee_id,
            )
            .order_by(ProjectLabor.date_worked.desc(), ProjectLabor.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _add_labor_payment(
        self,
        values: dict[str, Any],
        agreed_wage: float | None,
        start_new_agreement: bool,
    ) -> ProjectLabor | CompanyLabor:
        """Add a new payment to the employee's latest labor record, or open one."""
        amount = abs(to_number(values["amount"]))
        employee_id = values["employee_id"]
        if values["category"] == CATEGORY_COMPANY_LABOR:
            existing = None
            if not start_new_agreement:
                existing = await self.adjuster.latest_company_labor(employee_id)
            model, owner = CompanyLabor, {"company_id": self.company_id}
        else:
            existing = None
            if not start_new_agreement:
                existing = await self._latest_project_labor(values["project_id"], employee_id)
            model, owner = ProjectLabor, {"project_id": values["project_id"]}

        if existing is not None:
            paid = to_number(existing.paid_amount) + amount
            agreed = to_number(existing.agreed_wage) if existing.agreed_wage is not None else agreed_wage
            existing.paid_amount = to_decimal(paid)
            remaining = _remaining(agreed, paid)
            if remaining is not None:
                existing.remaining_wage = to_decimal(remaining)
            if values.get("description"):
                existing.description = values["description"]
            existing.date_worked = values["expense_date"]
            return existing

        labor = model(
            employee_id=employee_id,
            agreed_wage=to_decimal(agreed_wage) if agreed_wage is not None else None,
            paid_amount=to_decimal(amount),
            remaining_wage=(
                to_decimal(_remaining(agreed_wage, amount)) if agreed_wage is not None else None
            ),
            description=values.get("description"),
            paid_from=values.get("paid_from"),
            date_worked=values["expense_date"],
            **owner,
        )
        self.db.add(labor)
        return labor

    @staticmethod
    def _set_labor_paid(labor: CompanyLabor, paid: float, agreed_wage: float | None = None) -> None:
        if agreed_wage is not None:
            labor.agreed_wage = to_decimal(agreed_wage)
        paid = max(0.0, paid)
        labor.paid_amount = to_decimal(paid)
        agreed = to_number(labor.agreed_wage) if labor.agreed_wage is not None else None
        remaining = _remaining(agreed, paid)
        labor.remaining_wage = to_decimal(remaining) if remaining is not None else None

    async def _move_company_labor_payment(
        self,
        expense: Expense,
        changes: dict[str, Any],
        agreed_wage: float | None,
    ) -> None:
        """Keep company labor records in step with an edited Company Labor payment.

        The latest record accumulates every payment made under the agreement,
        so an edit swaps this expense's share out of the total and the new
        amount in.  Moving the payment to another employee or category takes
        its share off the old record; moving it onto Company Labor opens a
        fresh record for it.
        """
        category = changes.get("category", expense.category)
        employee_id = changes.get("employee_id", expense.employee_id)
        old_amount = abs(to_number(expense.amount))
        new_amount = abs(to_number(changes.get("amount", expense.amount)))

        old_labor = None
        if expense.category == CATEGORY_COMPANY_LABOR and expense.employee_id:
            old_labor = await self.adjuster.latest_company_labor(expense.employee_id)
        entering = category == CATEGORY_COMPANY_LABOR and employee_id is not None
        same_agreement = entering and old_labor is not None and employee_id == expense.employee_id

        if old_labor is not None and not same_agreement:
            self._set_labor_paid(old_labor, to_number(old_labor.paid_amount) - old_amount)

        if not entering:
            await self.db.flush()
            return

        if same_agreement:
            labor = old_labor
            paid = to_number(labor.paid_amount) - old_amount + new_amount
        else:
            labor = CompanyLabor(
                company_id=self.company_id,
                employee_id=employee_id,
                paid_from=changes.get("paid_from", expense.paid_from),
                description=changes.get("description", expense.description),
                date_worked=changes.get("expense_date", expense.expense_date),
            )
            self.db.add(labor)
            paid = new_amount
        self._set_labor_paid(labor, paid, agreed_wage)
        if changes.get("description"):
            labor.description = changes["description"]
        if changes.get("expense_date"):
            labor.date_worked = changes["expense_date"]
        await self.db.flush()

    # ------------------------------------------------------------------
    # Linked transactions
    # ------------------------------------------------------------------

    def _transaction_for(self, expense: Expense) -> Transaction:
        tx_type = _transaction_type(expense)
        return Transaction(
            company_id=self.company_id,
            type=tx_type.value,
            amount=to_decimal(_signed_amount(tx_type, expense.amount)),
            description=expense.description,
            note=expense.note,
            transaction_date=expense.expense_date,
            account_id=expense.paid_from,
            expense_id=expense.id,
            employee_id=expense.employee_id,
            project_id=expense.project_id,
            customer_id=expense.customer_id,
            user_id=self.user_id,
        )

    async def _sync_linked_transactions(self, expense: Expense) -> None:
        result = await self.db.execute(
            select(Transaction).where(
                Transaction.expense_id == expense.id,
                Transaction.company_id == self.company_id,
            )
        )
        tx_type = _transaction_type(expense)
        for tx in result.scalars().all():
            tx.type = tx_type.value
            tx.amount = to_decimal(_signed_amount(tx_type, expense.amount))
            tx.account_id = expense.paid_from
            tx.transaction_date = expense.expense_date
            tx.description = expense.description

    async def _delete_linked_transactions(self, expense_id: uuid.UUID) -> int:
        result = await self.db.execute(
            delete(Transaction).where(
                Transaction.expense_id == expense_id,
                Transaction.company_id == self.company_id,
            )
        )
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_expense(self, data: dict[str, Any]) -> Expense:
        """Insert an expense and apply its full footprint atomically."""
        values = dict(data)
        agreed_wage = values.pop("agreed_wage", None)
        start_new_agreement = bool(values.pop("start_new_agreement", False))

        if (
            values.get("category") == CATEGORY_COMPANY_EXPENSE
            and values.get("employee_id")
            and not values.get("sub_category")
        ):
            values["sub_category"] = SUBCATEGORY_SALARY
        values["description"] = (values.get("description") or "").strip()

        try:
            await self._check_references(values)

            category = values.get("category")
            if values.get("employee_id") and (
                category == CATEGORY_COMPANY_LABOR
                or (category == CATEGORY_LABOR and values.get("project_id"))
            ):
                await self._add_labor_payment(values, agreed_wage, start_new_agreement)

            expense = Expense(
                company_id=self.company_id,
                user_id=self.user_id,
                **{k: v for k, v in values.items() if k in UPDATABLE_FIELDS},
            )
            expense.amount = to_decimal(values["amount"])
            self.db.add(expense)
            await self.db.flush()

            await self.adjuster.reapply(expense)
            self.db.add(self._transaction_for(expense))
            await self.db.commit()
        except InvalidReference as e:
            await self.db.rollback()
            logger.info(f"Create of {values.get('category')} expense rejected: {e}")
            raise
        except Exception:
            await self.db.rollback()
            logger.exception(f"Create of {values.get('category')} expense failed; ledger changes rolled back")
            raise

        logger.info(
            f"Expense {expense.id} created: {expense.category} {expense.amount} "
            f"from account {expense.paid_from}"
        )
        return await self.get_expense(expense.id, refresh=True)

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def update_expense(
        self, expense_id: uuid.UUID, changes: dict[str, Any]
    ) -> tuple[Expense, LedgerMutation]:
        """Reverse the old footprint, persist *changes*, reapply -- one commit."""
        expense = await self.get_expense(expense_id)
        changes = dict(changes)
        agreed_wage = changes.pop("agreed_wage", None)
        changes = {
            k: v for k, v in changes.items()
            if k in UPDATABLE_FIELDS and not (v is None and k in REQUIRED_FIELDS)
        }

        try:
            await self._check_references(changes)

            # Only this expense's own share comes back; the labor record keeps the rest
            reversal = await self.adjuster.reverse(expense, substitute_labor=False)

            if CATEGORY_COMPANY_LABOR in (expense.category, changes.get("category")):
                await self._move_company_labor_payment(expense, changes, agreed_wage)

            for field, value in changes.items():
                if field == "amount":
                    value = to_decimal(value)
                setattr(expense, field, value)
            await self.db.flush()

            reapplication = await self.adjuster.reapply(expense)
            await self._sync_linked_transactions(expense)
            await self.db.commit()
        except InvalidReference as e:
            await self.db.rollback()
            logger.info(f"Update of expense {expense_id} rejected: {e}")
            raise
        except Exception:
            await self.db.rollback()
            logger.exception(f"Update of expense {expense_id} failed; ledger changes rolled back")
            raise

        mutation = LedgerMutation(
            expense_id=expense_id,
            reversal=reversal,
            reapplication=reapplication,
        )
        logger.info(f"Expense {expense_id} updated: {mutation.to_dict()}")
        return await self.get_expense(expense_id, refresh=True), mutation

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete_expense(self, expense_id: uuid.UUID) -> DeleteResult:
        expense = await self.get_expense(expense_id)

        criteria = None
        if _is_labor(expense.category) and expense.project_id:
            criteria = LaborMatchCriteria(
                project_id=expense.project_id,
                amount=abs(to_number(expense.amount)),
                employee_id=expense.employee_id,
                description=expense.description,
                date=expense.expense_date,
            )

        try:
            reversal = await self.adjuster.reverse(expense)
            transactions_deleted = await self._delete_linked_transactions(expense_id)
            await self.db.execute(
                delete(Expense).where(
                    Expense.id == expense_id,
                    Expense.company_id == self.company_id,
                )
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception(f"Delete of expense {expense_id} failed; ledger changes rolled back")
            raise

        mutation = LedgerMutation(
            expense_id=expense_id,
            reversal=reversal,
            transactions_deleted=transactions_deleted,
        )
        logger.info(f"Expense {expense_id} deleted: {mutation.to_dict()}")

        if criteria is None:
            labor = ReconciliationOutcome.skipped("Not a project labor expense")
        else:
            labor = await self.reconcile_labor(criteria)
        return DeleteResult(mutation=mutation, labor=labor)

    async def reconcile_labor(self, criteria: LaborMatchCriteria) -> ReconciliationOutcome:
        """Best-effort labor cleanup; failures are logged and reported, not raised."""
        try:
            outcome = await LaborReconciler(self.db, self.company_id).reconcile(criteria)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.warning(
                f"Labor reconciliation failed for project {criteria.project_id}: {e}"
            )
            return ReconciliationOutcome.warning(str(e))
        return outcome
