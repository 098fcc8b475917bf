"""
Сводка обязательств пользователя для дашборда.

Объединяет read-модели остальных сервисов: ближайшие платежи по кредитам,
превышенные бюджеты, непрочитанные напоминания и итоги месяца.
Функции только читают данные.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from obligation_tracker.models import DashboardSummary, Loan, LoanDB, Notification
from obligation_tracker.services.budget_service import (
    get_exceeded_budgets,
    get_total_budget_for_month,
    get_total_spent_for_month
)
from obligation_tracker.services.loan_statistics_service import get_summary_statistics, get_upcoming_payments
from obligation_tracker.services.notification_service import get_unread_notifications

# Настройка логирования
logger = logging.getLogger(__name__)


def _loan_view(loan: LoanDB, today: date) -> Loan:
    """Read-модель кредита с датой платежа относительно today."""
    return Loan.model_validate(loan).model_copy(
        update={"next_payment_date": loan.get_next_payment_date(today)}
    )


def get_dashboard_summary(
    session: Session,
    user_id: str,
    today: Optional[date] = None,
    days_ahead: Optional[int] = None
) -> DashboardSummary:
    """
    Собирает сводку обязательств пользователя за текущий месяц.

    Args:
        session: Активная сессия БД
        user_id: Владелец данных
        today: Текущая дата (по умолчанию date.today())
        days_ahead: Горизонт ближайших платежей, дней

    Returns:
        DashboardSummary

    Example:
        >>> with get_db_session() as session:
        ...     summary = get_dashboard_summary(session, user_id)
        ...     print(summary.unread_count, len(summary.exceeded_budgets))
    """
    today = today or date.today()

    try:
        upcoming = get_upcoming_payments(session, user_id, days_ahead=days_ahead, today=today)
        unread = get_unread_notifications(session, user_id)

        summary = DashboardSummary(
            user_id=user_id,
            month=today.month,
            year=today.year,
            upcoming_payments=[_loan_view(loan, today) for loan in upcoming],
            exceeded_budgets=get_exceeded_budgets(session, user_id, today.month, today.year),
            unread_count=len(unread),
            unread_notifications=[Notification.model_validate(n) for n in unread],
            loan_summary=get_summary_statistics(session, user_id),
            total_budget=get_total_budget_for_month(session, user_id, today.month, today.year),
            total_spent=get_total_spent_for_month(session, user_id, today.month, today.year),
        )

        logger.debug(
            f"Сводка {today.month:02d}/{today.year} для {user_id}: "
            f"платежей {len(summary.upcoming_payments)}, напоминаний {summary.unread_count}"
        )
        return summary

    except SQLAlchemyError as e:
        logger.error(f"Ошибка при формировании сводки для {user_id}: {e}")
        raise
