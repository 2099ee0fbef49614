"""Expense routes: create, read, update and delete with ledger consistency."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_ledger.database import get_db
from expense_ledger.middleware.auth import get_company_scope, get_current_user
from expense_ledger.models.expense import PAYMENT_STATUSES
from expense_ledger.services.amounts import to_number
from expense_ledger.services.ledger_engine import (
    ExpenseLedgerService,
    ExpenseNotFound,
    InvalidReference,
)

router = APIRouter(prefix="/api/expenses", tags=["expenses"])

NOT_FOUND_MESSAGE = "Expense not found"
SERVER_ERROR_MESSAGE = "Server error. Please try again."


# ---------------------------------------------------------------------------
# Pydantic Schemas
# ---------------------------------------------------------------------------

def _payment_status(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip().upper()
    if v not in PAYMENT_STATUSES:
        raise ValueError(f"Payment status must be one of {', '.join(PAYMENT_STATUSES)}")
    return v


class ExpenseCreate(BaseModel):
    category: str
    amount: float
    expense_date: datetime
    sub_category: str | None = None
    description: str | None = None
    paid_from: uuid.UUID | None = None
    employee_id: uuid.UUID | None = None
    project_id: uuid.UUID | None = None
    customer_id: uuid.UUID | None = None
    note: str | None = None
    materials: list[dict[str, Any]] | None = None
    receipt_url: str | None = None
    payment_status: str | None = None
    agreed_wage: float | None = None
    start_new_agreement: bool = False

    @field_validator("category")
    @classmethod
    def validate_category(cls, v):
        if not v or not v.strip():
            raise ValueError("Category is required")
        return v.strip()

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        if v <= 0:
            raise ValueError("Amount must be a positive number")
        return v

    @field_validator("payment_status")
    @classmethod
    def validate_payment_status(cls, v):
        return _payment_status(v)


class ExpenseUpdate(BaseModel):
    category: str | None = None
    amount: float | None = None
    expense_date: datetime | None = None
    sub_category: str | None = None
    description: str | None = None
    paid_from: uuid.UUID | None = None
    employee_id: uuid.UUID | None = None
    project_id: uuid.UUID | None = None
    customer_id: uuid.UUID | None = None
    note: str | None = None
    approved: bool | None = None
    materials: list[dict[str, Any]] | None = None
    receipt_url: str | None = None
    payment_status: str | None = None
    agreed_wage: float | None = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        if v is not None and v <= 0:
            raise ValueError("Amount must be a positive number")
        return v

    @field_validator("payment_status")
    @classmethod
    def validate_payment_status(cls, v):
        return _payment_status(v)


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------

def _expense_to_dict(e) -> dict[str, Any]:
    return {
        "id": str(e.id),
        "expense_date": e.expense_date.isoformat() if e.expense_date else None,
        "category": e.category,
        "sub_category": e.sub_category,
        "description": e.description,
        "amount": to_number(e.amount),
        "paid_from": str(e.paid_from) if e.paid_from else None,
        "note": e.note,
        "approved": e.approved,
        "receipt_url": e.receipt_url,
        "payment_status": e.payment_status,
        "materials": e.materials or [],
        "account": {
            "id": str(e.account.id),
            "name": e.account.name,
            "balance": to_number(e.account.balance),
            "currency": e.account.currency,
        } if e.account else None,
        "employee": {
            "id": str(e.employee.id),
            "full_name": e.employee.full_name,
            "position": e.employee.position,
            "salary_paid_this_month": to_number(e.employee.salary_paid_this_month),
        } if e.employee else None,
        "project": {
            "id": str(e.project.id),
            "name": e.project.name,
            "status": e.project.status,
            "advance_paid": to_number(e.project.advance_paid),
            "remaining_amount": (
                to_number(e.project.remaining_amount)
                if e.project.remaining_amount is not None else None
            ),
        } if e.project else None,
        "customer": {
            "id": str(e.customer.id),
            "name": e.customer.name,
        } if e.customer else None,
        "created_at": e.created_at.isoformat() if e.created_at else None,
        "updated_at": e.updated_at.isoformat() if e.updated_at else None,
    }


def _service(db: AsyncSession, user: dict) -> ExpenseLedgerService:
    user_id = user.get("user_id")
    if user_id is not None and not isinstance(user_id, uuid.UUID):
        user_id = uuid.UUID(str(user_id))
    return ExpenseLedgerService(db, get_company_scope(user), user_id=user_id)


# ---------------------------------------------------------------------------
# EXPENSES
# ---------------------------------------------------------------------------

@router.get("")
async def list_expenses(
    category: str | None = Query(None),
    project_id: uuid.UUID | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    from expense_ledger.models.expense import Expense

    company_id = get_company_scope(user)
    count_stmt = select(func.count(Expense.id)).where(Expense.company_id == company_id)
    data_stmt = select(Expense).where(Expense.company_id == company_id)

    if category:
        count_stmt = count_stmt.where(Expense.category == category)
        data_stmt = data_stmt.where(Expense.category == category)
    if project_id:
        count_stmt = count_stmt.where(Expense.project_id == project_id)
        data_stmt = data_stmt.where(Expense.project_id == project_id)

    total = (await db.execute(count_stmt)).scalar_one()

    data_stmt = (
        data_stmt
        .order_by(Expense.expense_date.desc(), Expense.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(data_stmt)
    items = [_expense_to_dict(e) for e in result.scalars().all()]

    return {"items": items, "total": total, "page": page, "page_size": page_size}


@router.get("/{expense_id}")
async def get_expense(
    expense_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    service = _service(db, user)
    try:
        expense = await service.get_expense(expense_id)
    except ExpenseNotFound:
        raise HTTPException(status_code=404, detail=NOT_FOUND_MESSAGE)
    return {"expense": _expense_to_dict(expense)}


@router.post("", status_code=201)
async def create_expense(
    body: ExpenseCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    service = _service(db, user)
    try:
        expense = await service.create_expense(body.model_dump())
    except InvalidReference as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=SERVER_ERROR_MESSAGE,
        )

    return {"message": "Expense created", "expense": _expense_to_dict(expense)}


@router.put("/{expense_id}")
async def update_expense(
    expense_id: uuid.UUID,
    body: ExpenseUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    service = _service(db, user)
    try:
        expense, mutation = await service.update_expense(
            expense_id, body.model_dump(exclude_unset=True)
        )
    except ExpenseNotFound:
        raise HTTPException(status_code=404, detail=NOT_FOUND_MESSAGE)
    except InvalidReference as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=SERVER_ERROR_MESSAGE,
        )

    return {
        "message": "Expense updated",
        "expense": _expense_to_dict(expense),
        "ledger": mutation.to_dict(),
    }


@router.delete("/{expense_id}")
async def delete_expense(
    expense_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    service = _service(db, user)
    try:
        outcome = await service.delete_expense(expense_id)
    except ExpenseNotFound:
        raise HTTPException(status_code=404, detail=NOT_FOUND_MESSAGE)
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=SERVER_ERROR_MESSAGE,
        )

    return {
        "message": "Expense deleted",
        "ledger": outcome.mutation.to_dict(),
        "labor": outcome.labor.to_dict(),
    }
