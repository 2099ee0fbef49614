"""
Test fixtures for the expense ledger.

Tests run the FastAPI app in-process (httpx ``ASGITransport``) against a fresh
in-memory SQLite database per test. Every test gets one seeded company with a
bank and a cash account, an employee, a project and a customer, plus a second
company used to check tenant isolation.
"""
import os

# Must be set before the application modules build their engine
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SALARY_RESET_ENABLED", "false")

import uuid
from datetime import datetime
from decimal import Decimal

import httpx
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from expense_ledger.database import Base, get_db
from expense_ledger.main import app
from expense_ledger.middleware.auth import get_current_user
from expense_ledger.models import (
    Account,
    Company,
    Customer,
    Employee,
    Expense,
    Project,
    ProjectLabor,
    Transaction,
    User,
)

EXPENSE_DATE = datetime(2026, 3, 10, 9, 30)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database shared by every session of one test."""
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def ledger(session_factory):
    """Seed two companies and return the ids of the first one's rows."""
    async with session_factory() as s:
        company = Company(name="Acme Builders")
        other = Company(name="Other Co")
        s.add_all([company, other])
        await s.flush()

        user = User(company_id=company.id, username="owner", display_name="Owner", role="admin")
        bank = Account(company_id=company.id, name="Bank", balance=Decimal("1000.00"))
        cash = Account(company_id=company.id, name="Cash", balance=Decimal("500.00"))
        other_bank = Account(company_id=other.id, name="Other Bank", balance=Decimal("700.00"))
        employee = Employee(
            company_id=company.id,
            full_name="Emp One",
            monthly_salary=Decimal("1200.00"),
            salary_paid_this_month=Decimal("500.00"),
        )
        project = Project(company_id=company.id, name="Tower A")
        customer = Customer(company_id=company.id, name="Client X")
        s.add_all([user, bank, cash, other_bank, employee, project, customer])
        await s.commit()

        return {
            "company_id": company.id,
            "other_company_id": other.id,
            "user_id": user.id,
            "bank": bank.id,
            "cash": cash.id,
            "other_bank": other_bank.id,
            "employee": employee.id,
            "project": project.id,
            "customer": customer.id,
        }


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

def _override_db(session_factory):
    async def _get_db():
        async with session_factory() as session:
            yield session

    return _get_db


@pytest_asyncio.fixture
async def client(session_factory, ledger):
    """Client authenticated as the first company's owner."""
    async def _current_user():
        return {
            "user_id": ledger["user_id"],
            "username": "owner",
            "role": "admin",
            "display_name": "Owner",
            "company_id": str(ledger["company_id"]),
        }

    app.dependency_overrides[get_db] = _override_db(session_factory)
    app.dependency_overrides[get_current_user] = _current_user
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as c:
        yield c
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def anon_client(session_factory, ledger):
    """Client that goes through real JWT authentication."""
    app.dependency_overrides[get_db] = _override_db(session_factory)
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def balance_of(session_factory, account_id) -> float:
    async with session_factory() as s:
        account = await s.get(Account, account_id)
        return float(account.balance)


async def salary_of(session_factory, employee_id) -> float:
    async with session_factory() as s:
        employee = await s.get(Employee, employee_id)
        return float(employee.salary_paid_this_month)


async def seed_expense(session_factory, company_id, with_transaction=True, **fields) -> uuid.UUID:
    """Insert an expense as if its footprint had already been applied."""
    fields.setdefault("description", "Seeded expense")
    fields.setdefault("category", "Material")
    fields.setdefault("expense_date", EXPENSE_DATE)
    fields["amount"] = Decimal(str(fields.get("amount", "100")))
    async with session_factory() as s:
        expense = Expense(company_id=company_id, **fields)
        s.add(expense)
        await s.flush()
        if with_transaction:
            s.add(Transaction(
                company_id=company_id,
                type="EXPENSE",
                amount=-fields["amount"],
                description=expense.description,
                transaction_date=expense.expense_date,
                account_id=expense.paid_from,
                expense_id=expense.id,
            ))
        await s.commit()
        return expense.id


async def seed_project_labor(session_factory, project_id, **fields) -> uuid.UUID:
    fields.setdefault("date_worked", EXPENSE_DATE)
    for key in ("paid_amount", "agreed_wage", "remaining_wage"):
        if fields.get(key) is not None:
            fields[key] = Decimal(str(fields[key]))
    async with session_factory() as s:
        labor = ProjectLabor(project_id=project_id, **fields)
        s.add(labor)
        await s.commit()
        return labor.id


async def get_row(session_factory, model, row_id):
    async with session_factory() as s:
        return await s.get(model, row_id)


async def count_rows(session_factory, model, **filters) -> int:
    async with session_factory() as s:
        stmt = select(model)
        for column, value in filters.items():
            stmt = stmt.where(getattr(model, column) == value)
        return len((await s.execute(stmt)).scalars().all())
