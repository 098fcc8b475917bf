"""
Тесты сводки обязательств для дашборда.
"""

from datetime import date
from decimal import Decimal

from obligation_tracker.services.loan_service import create_loan
from obligation_tracker.services.obligation_service import get_dashboard_summary

from test_factories import create_test_budget, create_test_notification, create_test_transaction


def test_empty_dashboard(db_session, user_id):
    summary = get_dashboard_summary(db_session, user_id, today=date(2025, 3, 20))

    assert summary.month == 3
    assert summary.year == 2025
    assert summary.upcoming_payments == []
    assert summary.exceeded_budgets == []
    assert summary.unread_count == 0
    assert summary.loan_summary.active_loans_count == 0
    assert summary.total_budget == Decimal('0')
    assert summary.total_spent == Decimal('0')


def test_dashboard_collects_obligations(db_session, user_id, other_user_id, expense_category, fixed_category):
    today = date(2025, 3, 20)
    loan = create_loan(db_session, user_id, "Машина", Decimal('10000'), Decimal('1000'), 12, 22)
    create_loan(db_session, other_user_id, "Чужой", Decimal('10000'), Decimal('1000'), 12, 22)

    db_session.add_all([
        create_test_budget(category_id=expense_category.id, user_id=user_id,
                           assigned_amount=Decimal('100')),
        create_test_transaction(category_id=expense_category.id, user_id=user_id,
                                amount=Decimal('150'), transaction_date=date(2025, 3, 2)),
        create_test_notification(category_id=fixed_category.id, user_id=user_id,
                                 due_date=date(2025, 3, 5)),
    ])
    db_session.commit()

    summary = get_dashboard_summary(db_session, user_id, today=today, days_ahead=7)

    assert [item.id for item in summary.upcoming_payments] == [loan.id]
    assert summary.upcoming_payments[0].next_payment_date == date(2025, 3, 22)
    assert [view.category_id for view in summary.exceeded_budgets] == [expense_category.id]
    assert summary.unread_count == 1
    assert summary.unread_notifications[0].category_id == fixed_category.id
    assert summary.loan_summary.active_loans_count == 1
    assert summary.total_budget == Decimal('100')
    assert summary.total_spent == Decimal('150')
