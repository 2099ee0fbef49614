from expense_ledger.models.employee import Employee
from expense_ledger.models.expense import Expense
from expense_ledger.models.labor import CompanyLabor, ProjectLabor
from expense_ledger.models.ledger import Account, Transaction, TransactionType
from expense_ledger.models.org import Company, Customer, Project
from expense_ledger.models.user import User

__all__ = [
    # Tenant structure
    "Company",
    "Project",
    "Customer",
    # Ledger
    "Account",
    "Transaction",
    "TransactionType",
    # Expenses and their secondary records
    "Expense",
    "Employee",
    "ProjectLabor",
    "CompanyLabor",
    # Users
    "User",
]
