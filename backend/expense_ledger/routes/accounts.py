"""Account routes: balances as maintained by the expense ledger."""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_ledger.database import get_db
from expense_ledger.middleware.auth import get_current_company_id
from expense_ledger.services.amounts import to_number

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


def _account_to_dict(a) -> dict:
    return {
        "id": str(a.id),
        "name": a.name,
        "account_type": a.account_type,
        "balance": to_number(a.balance),
        "currency": a.currency,
        "is_active": a.is_active,
    }


@router.get("")
async def list_accounts(
    is_active: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    company_id: uuid.UUID = Depends(get_current_company_id),
):
    from expense_ledger.models.ledger import Account

    result = await db.execute(
        select(Account)
        .where(Account.company_id == company_id, Account.is_active == is_active)
        .order_by(Account.name)
    )
    accounts = result.scalars().all()
    return {"items": [_account_to_dict(a) for a in accounts], "total": len(accounts)}


@router.get("/{account_id}")
async def get_account(
    account_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    company_id: uuid.UUID = Depends(get_current_company_id),
):
    from expense_ledger.models.ledger import Account

    result = await db.execute(
        select(Account).where(Account.id == account_id, Account.company_id == company_id)
    )
    account = result.scalar_one_or_none()
    if not account:
        raise HTTPException(status_code=404, detail="Account not found")
    return _account_to_dict(account)
