"""Start-of-month reset of the employee salary accumulators.

``salary_paid_this_month`` is only meaningful within one calendar month;
the scheduler in ``main`` calls ``reset_salary_accumulators`` on the 1st.
``last_payment_date`` is kept so the previous payment stays visible.
"""
from __future__ import annotations

import decimal
import logging
import uuid
from typing import Any

from sqlalchemy import update

from expense_ledger.models.employee import Employee

logger = logging.getLogger(__name__)


async def reset_salary_accumulators(
    session_factory: Any,
    company_id: uuid.UUID | None = None,
) -> dict[str, int]:
    """Zero ``salary_paid_this_month`` for every employee (or one company's).

    Parameters
    ----------
    session_factory:
        An ``async_sessionmaker`` or callable that returns an ``AsyncSession``
        context manager (e.g. ``AsyncSessionLocal``).
    company_id:
        Restrict the reset to one tenant; ``None`` resets all tenants.

    Returns a summary dict with the number of employees reset.
    """
    stmt = update(Employee).values(salary_paid_this_month=decimal.Decimal("0"))
    if company_id is not None:
        stmt = stmt.where(Employee.company_id == company_id)

    async with session_factory() as session:
        try:
            result = await session.execute(stmt)
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception("Salary accumulator reset failed")
            raise

    summary = {"employees_reset": result.rowcount or 0}
    logger.info(f"Salary accumulator reset: {summary}")
    return summary
