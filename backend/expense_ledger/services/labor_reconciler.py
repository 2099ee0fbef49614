"""Shrink or remove the project labor record behind a deleted labor expense.

Labor expenses carry no foreign key to the labor record they paid into, so
the record is located by ranked matching strategies, tried in order:

1. ``strict_match``      -- amount, description and calendar day all agree
2. ``amount_only_match`` -- amount agrees
3. ``first_available``   -- whatever the store returned first

The last tier is a weak guess and the outcome reports which tier matched.
"""
from __future__ import annotations

import dataclasses
import datetime
import logging
import uuid
from collections.abc import Callable, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_ledger.models.labor import ProjectLabor
from expense_ledger.models.org import Project
from expense_ledger.services.amounts import amounts_match, to_decimal, to_number

logger = logging.getLogger(__name__)

# A shrunk record at or below this paid amount is removed
PAID_EPSILON = 0.0001


@dataclasses.dataclass(frozen=True)
class LaborMatchCriteria:
    project_id: uuid.UUID
    amount: float
    employee_id: uuid.UUID | None = None
    description: str | None = None
    date: datetime.date | datetime.datetime | None = None


@dataclasses.dataclass(frozen=True)
class ReconciliationOutcome:
    """Result of the best-effort labor cleanup. Never fails the request."""

    status: str  # "applied", "skipped" or "warning"
    labor_id: uuid.UUID | None = None
    action: str | None = None  # "deleted" or "shrunk"
    strategy: str | None = None
    message: str | None = None

    @classmethod
    def skipped(cls, message: str) -> ReconciliationOutcome:
        return cls(status="skipped", message=message)

    @classmethod
    def warning(cls, message: str) -> ReconciliationOutcome:
        return cls(status="warning", message=message)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "labor_id": str(self.labor_id) if self.labor_id else None,
            "action": self.action,
            "strategy": self.strategy,
            "message": self.message,
        }


# ---------------------------------------------------------------------------
# Matching strategies
# ---------------------------------------------------------------------------


def _normalise_text(value: str | None) -> str:
    return (value or "").strip().lower()


def _as_date(value) -> datetime.date | None:
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    return value


def strict_match(
    records: Sequence[ProjectLabor], criteria: LaborMatchCriteria
) -> ProjectLabor | None:
    wanted_description = _normalise_text(criteria.description)
    wanted_date = _as_date(criteria.date)
    for record in records:
        if not amounts_match(record.paid_amount, criteria.amount):
            continue
        if wanted_description and _normalise_text(record.description) != wanted_description:
            continue
        if wanted_date and _as_date(record.date_worked) != wanted_date:
            continue
        return record
    return None


def amount_only_match(
    records: Sequence[ProjectLabor], criteria: LaborMatchCriteria
) -> ProjectLabor | None:
    for record in records:
        if amounts_match(record.paid_amount, criteria.amount):
            return record
    return None


def first_available(
    records: Sequence[ProjectLabor], criteria: LaborMatchCriteria
) -> ProjectLabor | None:
    return records[0] if records else None


MatchStrategy = Callable[[Sequence[ProjectLabor], LaborMatchCriteria], ProjectLabor | None]

MATCH_STRATEGIES: list[MatchStrategy] = [strict_match, amount_only_match, first_available]


def find_labor_match(
    records: Sequence[ProjectLabor],
    criteria: LaborMatchCriteria,
    strategies: Sequence[MatchStrategy] = MATCH_STRATEGIES,
) -> tuple[ProjectLabor | None, str | None]:
    """Return the first record any strategy accepts, with that strategy's name."""
    for strategy in strategies:
        record = strategy(records, criteria)
        if record is not None:
            return record, strategy.__name__
    return None, None


def shrink_amounts(
    paid_amount, agreed_wage, expense_amount: float
) -> tuple[float, float | None]:
    """Return ``(updated_paid, updated_remaining)`` after removing a payment."""
    updated_paid = max(0.0, to_number(paid_amount) - expense_amount)
    updated_remaining = None
    if agreed_wage is not None:
        updated_remaining = max(0.0, to_number(agreed_wage) - updated_paid)
    return updated_paid, updated_remaining


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------


class LaborReconciler:
    def __init__(self, db: AsyncSession, company_id: uuid.UUID):
        self.db = db
        self.company_id = company_id

    async def fetch_candidates(self, criteria: LaborMatchCriteria) -> list[ProjectLabor]:
        stmt = (
            select(ProjectLabor)
            .join(Project, Project.id == ProjectLabor.project_id)
            .where(
                ProjectLabor.project_id == criteria.project_id,
                Project.company_id == self.company_id,
            )
        )
        if criteria.employee_id:
            stmt = stmt.where(ProjectLabor.employee_id == criteria.employee_id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def reconcile(self, criteria: LaborMatchCriteria) -> ReconciliationOutcome:
        """Remove *criteria.amount* from the best-matching labor record.

        Writes are flushed but not committed.
        """
        records = await self.fetch_candidates(criteria)
        if not records:
            return ReconciliationOutcome.skipped("No labor records for project")

        record, strategy = find_labor_match(records, criteria)
        if strategy == first_available.__name__:
            logger.warning(
                f"No labor record matched amount {criteria.amount} on project "
                f"{criteria.project_id}; falling back to record {record.id}"
            )

        labor_id = record.id
        updated_paid, updated_remaining = shrink_amounts(
            record.paid_amount, record.agreed_wage, abs(criteria.amount)
        )

        if updated_paid <= PAID_EPSILON:
            await self.db.execute(delete(ProjectLabor).where(ProjectLabor.id == labor_id))
            action = "deleted"
        else:
            record.paid_amount = to_decimal(updated_paid)
            if updated_remaining is not None:
                record.remaining_wage = to_decimal(updated_remaining)
            action = "shrunk"
        await self.db.flush()

        logger.info(f"Labor record {labor_id} {action} (matched by {strategy})")
        return ReconciliationOutcome(
            status="applied",
            labor_id=labor_id,
            action=action,
            strategy=strategy,
        )
