"""
Expense update: reverse the old footprint, persist, reapply, in one commit.
Tests 401-419.
"""
import decimal
import logging
import uuid

import pytest
from sqlalchemy import select

from conftest import EXPENSE_DATE, balance_of, get_row, salary_of, seed_expense
from expense_ledger.models import CompanyLabor, Expense, Transaction
from expense_ledger.services.balance import BalanceAdjuster


async def _linked_transaction(session_factory, expense_id):
    async with session_factory() as s:
        result = await s.execute(select(Transaction).where(Transaction.expense_id == expense_id))
        return result.scalar_one()


async def _accumulated_company_labor(client, ledger, session_factory):
    """A 300 record topped up by a 100 payment: bank 900, record 400 of 1000."""
    async with session_factory() as s:
        labor = CompanyLabor(
            company_id=ledger["company_id"],
            employee_id=ledger["employee"],
            agreed_wage=decimal.Decimal("1000"),
            paid_amount=decimal.Decimal("300"),
            remaining_wage=decimal.Decimal("700"),
            date_worked=EXPENSE_DATE,
        )
        s.add(labor)
        await s.commit()
        labor_id = labor.id
    r = await client.post("/api/expenses", json={
        "category": "Company Labor",
        "amount": 100,
        "expense_date": EXPENSE_DATE.isoformat(),
        "description": "Site cleanup",
        "employee_id": str(ledger["employee"]),
        "paid_from": str(ledger["bank"]),
    })
    assert r.status_code == 201
    assert await balance_of(session_factory, ledger["bank"]) == pytest.approx(900.0)
    return r.json()["expense"]["id"], labor_id


class TestExpenseUpdate:

    async def test_401_salary_amount_change(self, client, ledger, session_factory):
        """Accumulator 500 holding a 300 payment; raising it to 450 gives 650."""
        expense_id = await seed_expense(
            session_factory,
            ledger["company_id"],
            amount=300,
            category="Company Expense",
            sub_category="Salary",
            employee_id=ledger["employee"],
        )
        r = await client.put(f"/api/expenses/{expense_id}", json={"amount": 450})
        assert r.status_code == 200
        assert await salary_of(session_factory, ledger["employee"]) == pytest.approx(650.0)

        body = r.json()
        assert body["message"] == "Expense updated"
        assert body["expense"]["amount"] == pytest.approx(450.0)
        assert body["ledger"]["reversal"]["salary_delta"] == pytest.approx(-300.0)
        assert body["ledger"]["reapplication"]["salary_delta"] == pytest.approx(450.0)

    async def test_402_amount_change_moves_balance_by_difference(self, client, ledger, session_factory):
        expense_id = await seed_expense(
            session_factory, ledger["company_id"], amount=200, paid_from=ledger["bank"]
        )
        r = await client.put(f"/api/expenses/{expense_id}", json={"amount": 250})
        assert r.status_code == 200
        assert await balance_of(session_factory, ledger["bank"]) == pytest.approx(950.0)

    async def test_403_account_change(self, client, ledger, session_factory):
        expense_id = await seed_expense(
            session_factory, ledger["company_id"], amount=200, paid_from=ledger["bank"]
        )
        r = await client.put(f"/api/expenses/{expense_id}", json={"paid_from": str(ledger["cash"])})
        assert r.status_code == 200
        assert await balance_of(session_factory, ledger["bank"]) == pytest.approx(1200.0)
        assert await balance_of(session_factory, ledger["cash"]) == pytest.approx(300.0)
        assert r.json()["expense"]["paid_from"] == str(ledger["cash"])

    async def test_404_account_cleared(self, client, ledger, session_factory):
        expense_id = await seed_expense(
            session_factory, ledger["company_id"], amount=200, paid_from=ledger["bank"]
        )
        r = await client.put(f"/api/expenses/{expense_id}", json={"paid_from": None})
        assert r.status_code == 200
        assert await balance_of(session_factory, ledger["bank"]) == pytest.approx(1200.0)
        assert r.json()["ledger"]["reapplication"]["account_id"] is None

    async def test_405_non_money_fields_leave_balance(self, client, ledger, session_factory):
        expense_id = await seed_expense(
            session_factory, ledger["company_id"], amount=200, paid_from=ledger["bank"]
        )
        r = await client.put(f"/api/expenses/{expense_id}", json={"note": "checked", "approved": True})
        assert r.status_code == 200
        assert await balance_of(session_factory, ledger["bank"]) == pytest.approx(1000.0)
        assert r.json()["expense"]["approved"] is True

    async def test_406_linked_transaction_follows_expense(self, client, ledger, session_factory):
        expense_id = await seed_expense(
            session_factory, ledger["company_id"], amount=200, paid_from=ledger["bank"]
        )
        r = await client.put(f"/api/expenses/{expense_id}", json={
            "amount": 260,
            "paid_from": str(ledger["cash"]),
            "description": "Rebar",
        })
        assert r.status_code == 200
        tx = await _linked_transaction(session_factory, expense_id)
        assert float(tx.amount) == pytest.approx(-260.0)
        assert tx.account_id == ledger["cash"]
        assert tx.description == "Rebar"

    async def test_407_explicit_null_on_required_field_ignored(self, client, ledger, session_factory):
        expense_id = await seed_expense(
            session_factory, ledger["company_id"], amount=200, paid_from=ledger["bank"],
            description="Cement",
        )
        r = await client.put(f"/api/expenses/{expense_id}", json={"description": None, "amount": 150})
        assert r.status_code == 200
        assert r.json()["expense"]["description"] == "Cement"
        assert await balance_of(session_factory, ledger["bank"]) == pytest.approx(1050.0)

    async def test_408_salary_moved_to_other_category(self, client, ledger, session_factory):
        """Leaving the Salary sub-category takes the payment out of the accumulator."""
        expense_id = await seed_expense(
            session_factory,
            ledger["company_id"],
            amount=300,
            category="Company Expense",
            sub_category="Salary",
            employee_id=ledger["employee"],
        )
        r = await client.put(f"/api/expenses/{expense_id}", json={"sub_category": "Bonus"})
        assert r.status_code == 200
        assert await salary_of(session_factory, ledger["employee"]) == pytest.approx(200.0)

    async def test_409_company_labor_update_swaps_its_share(self, client, ledger, session_factory):
        async with session_factory() as s:
            labor = CompanyLabor(
                company_id=ledger["company_id"],
                employee_id=ledger["employee"],
                agreed_wage=decimal.Decimal("1000"),
                paid_amount=decimal.Decimal("300"),
                remaining_wage=decimal.Decimal("700"),
                date_worked=EXPENSE_DATE,
            )
            s.add(labor)
            await s.commit()
            labor_id = labor.id
        expense_id = await seed_expense(
            session_factory,
            ledger["company_id"],
            amount=300,
            category="Company Labor",
            employee_id=ledger["employee"],
            paid_from=ledger["bank"],
        )

        r = await client.put(f"/api/expenses/{expense_id}", json={"amount": 400})
        assert r.status_code == 200
        assert await balance_of(session_factory, ledger["bank"]) == pytest.approx(900.0)

        record = await get_row(session_factory, CompanyLabor, labor_id)
        assert float(record.paid_amount) == pytest.approx(400.0)
        assert float(record.remaining_wage) == pytest.approx(600.0)

    async def test_410_company_labor_update_creates_missing_record(self, client, ledger, session_factory):
        expense_id = await seed_expense(
            session_factory,
            ledger["company_id"],
            amount=120,
            category="Company Labor",
            employee_id=ledger["employee"],
            paid_from=ledger["bank"],
        )
        r = await client.put(
            f"/api/expenses/{expense_id}", json={"amount": 150, "agreed_wage": 500}
        )
        assert r.status_code == 200
        assert await balance_of(session_factory, ledger["bank"]) == pytest.approx(970.0)

        async with session_factory() as s:
            record = (await s.execute(select(CompanyLabor))).scalar_one()
        assert float(record.paid_amount) == pytest.approx(150.0)
        assert float(record.remaining_wage) == pytest.approx(350.0)

    # =================================================================
    # Tests 411-415: failures
    # =================================================================

    async def test_411_unknown_expense_returns_404(self, client, ledger):
        r = await client.put(
            "/api/expenses/00000000-0000-0000-0000-000000000000", json={"amount": 10}
        )
        assert r.status_code == 404
        assert r.json() == {"message": "Expense not found"}

    async def test_412_other_company_account_rejected(self, client, ledger, session_factory):
        expense_id = await seed_expense(
            session_factory, ledger["company_id"], amount=200, paid_from=ledger["bank"]
        )
        r = await client.put(
            f"/api/expenses/{expense_id}", json={"paid_from": str(ledger["other_bank"])}
        )
        assert r.status_code == 400
        assert "Account" in r.json()["message"]
        assert await balance_of(session_factory, ledger["bank"]) == pytest.approx(1000.0)
        assert await balance_of(session_factory, ledger["other_bank"]) == pytest.approx(700.0)

    async def test_413_failed_reapply_rolls_back_reversal(
        self, client, ledger, session_factory, monkeypatch
    ):
        async def broken(self, expense):
            raise RuntimeError("store went away")

        monkeypatch.setattr(BalanceAdjuster, "reapply", broken)
        expense_id = await seed_expense(
            session_factory, ledger["company_id"], amount=200, paid_from=ledger["bank"]
        )
        r = await client.put(f"/api/expenses/{expense_id}", json={"amount": 999})
        assert r.status_code == 500
        assert r.json() == {"message": "Server error. Please try again."}
        assert await balance_of(session_factory, ledger["bank"]) == pytest.approx(1000.0)

        expense = await get_row(session_factory, Expense, expense_id)
        assert float(expense.amount) == pytest.approx(200.0)

    async def test_414_non_positive_amount_rejected(self, client, ledger, session_factory):
        expense_id = await seed_expense(
            session_factory, ledger["company_id"], amount=200, paid_from=ledger["bank"]
        )
        r = await client.put(f"/api/expenses/{expense_id}", json={"amount": 0})
        assert r.status_code == 422
        assert await balance_of(session_factory, ledger["bank"]) == pytest.approx(1000.0)

    async def test_415_other_company_expense_returns_404(self, client, ledger, session_factory):
        expense_id = await seed_expense(
            session_factory, ledger["other_company_id"], amount=50, paid_from=ledger["other_bank"]
        )
        r = await client.put(f"/api/expenses/{expense_id}", json={"amount": 10})
        assert r.status_code == 404
        assert await balance_of(session_factory, ledger["other_bank"]) == pytest.approx(700.0)

    # =================================================================
    # Tests 416-419: payments accumulated on one company labor record
    # =================================================================

    async def test_416_approving_accumulated_payment_moves_nothing(self, client, ledger, session_factory):
        expense_id, labor_id = await _accumulated_company_labor(client, ledger, session_factory)

        r = await client.put(f"/api/expenses/{expense_id}", json={"approved": True})
        assert r.status_code == 200
        assert r.json()["expense"]["approved"] is True
        assert r.json()["expense"]["amount"] == pytest.approx(100.0)
        assert await balance_of(session_factory, ledger["bank"]) == pytest.approx(900.0)

        record = await get_row(session_factory, CompanyLabor, labor_id)
        assert float(record.paid_amount) == pytest.approx(400.0)
        assert float(record.remaining_wage) == pytest.approx(600.0)

    async def test_417_accumulated_payment_amount_change(self, client, ledger, session_factory):
        expense_id, labor_id = await _accumulated_company_labor(client, ledger, session_factory)

        r = await client.put(f"/api/expenses/{expense_id}", json={"amount": 150})
        assert r.status_code == 200
        assert await balance_of(session_factory, ledger["bank"]) == pytest.approx(850.0)

        record = await get_row(session_factory, CompanyLabor, labor_id)
        assert float(record.paid_amount) == pytest.approx(450.0)
        assert float(record.remaining_wage) == pytest.approx(550.0)
        tx = await _linked_transaction(session_factory, uuid.UUID(expense_id))
        assert float(tx.amount) == pytest.approx(-150.0)

    async def test_418_payment_moved_off_company_labor(self, client, ledger, session_factory):
        expense_id, labor_id = await _accumulated_company_labor(client, ledger, session_factory)

        r = await client.put(f"/api/expenses/{expense_id}", json={"category": "Material"})
        assert r.status_code == 200
        assert await balance_of(session_factory, ledger["bank"]) == pytest.approx(900.0)

        record = await get_row(session_factory, CompanyLabor, labor_id)
        assert float(record.paid_amount) == pytest.approx(300.0)
        assert float(record.remaining_wage) == pytest.approx(700.0)

    async def test_419_rejected_reference_is_not_logged_as_error(
        self, client, ledger, session_factory, caplog
    ):
        caplog.set_level(logging.INFO, logger="expense_ledger")
        expense_id = await seed_expense(
            session_factory, ledger["company_id"], amount=200, paid_from=ledger["bank"]
        )
        r = await client.put(
            f"/api/expenses/{expense_id}", json={"customer_id": str(uuid.uuid4())}
        )
        assert r.status_code == 400
        assert not [rec for rec in caplog.records if rec.levelno >= logging.ERROR]
        assert any("rejected" in rec.getMessage() for rec in caplog.records)
