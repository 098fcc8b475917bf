__all__ = [
    "create_transaction",
    "get_transaction",
    "get_transactions",
    "delete_transaction",
    "get_month_totals",
    "get_balance",
    "get_category",
    "get_all_categories",
    "get_fixed_expense_categories",
    "create_category",
    "update_category",
    "delete_category",
    "generate_notifications_for_fixed_expenses",
    "generate_notification_for_category",
    "mark_as_read",
    "mark_all_as_read",
    "delete_current_month_notifications",
    "clean_old_notifications",
    "get_unread_notifications",
    "get_all_notifications",
    "get_unread_count",
    "delete_notification",
    "create_loan",
    "update_loan",
    "delete_loan",
    "register_payment",
    "undo_last_payment",
    "mark_as_completed",
    "reactivate_loan",
    "get_loan",
    "get_all_loans",
    "get_active_loans",
    "exists_loan_with_title",
    "get_summary_statistics",
    "get_upcoming_payments",
    "get_average_interest_rate",
    "get_budgets_for_period",
    "get_total_spent_for_month",
    "get_total_budget_for_month",
    "get_total_available_amount",
    "validate_available_budget",
    "get_exceeded_budgets",
    "create_budget",
    "update_budget",
    "delete_budget",
    "get_budget",
    "get_all_budgets",
    "get_active_budgets",
    "copy_budgets_from_previous_month",
    "get_dashboard_summary",
]

from obligation_tracker.services.transaction_service import (
    create_transaction,
    get_transaction,
    get_transactions,
    delete_transaction,
    get_month_totals,
    get_balance
)

from obligation_tracker.services.notification_service import (
    generate_notifications_for_fixed_expenses,
    generate_notification_for_category,
    mark_as_read,
    mark_all_as_read,
    delete_current_month_notifications,
    clean_old_notifications,
    get_unread_notifications,
    get_all_notifications,
    get_unread_count,
    delete_notification
)

from obligation_tracker.services.category_service import (
    get_category,
    get_all_categories,
    get_fixed_expense_categories,
    create_category,
    update_category,
    delete_category
)

from obligation_tracker.services.loan_service import (
    create_loan,
    update_loan,
    delete_loan,
    register_payment,
    undo_last_payment,
    mark_as_completed,
    reactivate_loan,
    get_loan,
    get_all_loans,
    get_active_loans,
    exists_loan_with_title
)

from obligation_tracker.services.loan_statistics_service import (
    get_summary_statistics,
    get_upcoming_payments,
    get_average_interest_rate
)

from obligation_tracker.services.budget_service import (
    get_budgets_for_period,
    get_total_spent_for_month,
    get_total_budget_for_month,
    get_total_available_amount,
    validate_available_budget,
    get_exceeded_budgets,
    create_budget,
    update_budget,
    delete_budget,
    get_budget,
    get_all_budgets,
    get_active_budgets,
    copy_budgets_from_previous_month
)

from obligation_tracker.services.obligation_service import get_dashboard_summary
