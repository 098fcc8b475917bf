"""Модели данных Obligation Tracker."""

from obligation_tracker.models.enums import (
    TransactionType,
    LoanDeletionPolicy,
    InterestRateBand,
)
from obligation_tracker.models.models import (
    Base,
    CategoryDB,
    TransactionDB,
    BudgetDB,
    LoanDB,
    NotificationDB,
    Category,
    CategoryCreate,
    CategoryUpdate,
    Transaction,
    TransactionCreate,
    BudgetCreate,
    BudgetUpdate,
    BudgetView,
    Loan,
    LoanUpdate,
    LoanSummary,
    Notification,
    DashboardSummary,
)

__all__ = [
    "TransactionType",
    "LoanDeletionPolicy",
    "InterestRateBand",
    "Base",
    "CategoryDB",
    "TransactionDB",
    "BudgetDB",
    "LoanDB",
    "NotificationDB",
    "Category",
    "CategoryCreate",
    "CategoryUpdate",
    "Transaction",
    "TransactionCreate",
    "BudgetCreate",
    "BudgetUpdate",
    "BudgetView",
    "Loan",
    "LoanUpdate",
    "LoanSummary",
    "Notification",
    "DashboardSummary",
]
