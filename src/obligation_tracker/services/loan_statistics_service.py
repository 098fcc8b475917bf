"""
Сервис для расчета статистики по кредитам.

Все показатели считаются по активным кредитам пользователя:
- Сумма полученных средств, к оплате, оплачено, осталось
- Сумма ежемесячных взносов
- Средняя приблизительная ставка
- Кредиты с ближайшим платежом в пределах N дней
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from obligation_tracker.config import settings
from obligation_tracker.models import LoanDB, LoanSummary
from obligation_tracker.services.loan_service import get_active_loans

# Настройка логирования
logger = logging.getLogger(__name__)


def get_total_borrowed(session: Session, user_id: str) -> Decimal:
    return sum((loan.principal_amount for loan in get_active_loans(session, user_id)), Decimal('0'))


def get_total_to_pay(session: Session, user_id: str) -> Decimal:
    return sum((loan.total_to_pay for loan in get_active_loans(session, user_id)), Decimal('0'))


def get_total_paid(session: Session, user_id: str) -> Decimal:
    return sum((loan.total_paid for loan in get_active_loans(session, user_id)), Decimal('0'))


def get_total_remaining(session: Session, user_id: str) -> Decimal:
    return sum((loan.total_remaining for loan in get_active_loans(session, user_id)), Decimal('0'))


def get_monthly_payments_total(session: Session, user_id: str) -> Decimal:
    """Сумма ежемесячных взносов по активным кредитам."""
    return sum((loan.installment_amount for loan in get_active_loans(session, user_id)), Decimal('0'))


def get_average_interest_rate(session: Session, user_id: str) -> Decimal:
    """
    Средняя приблизительная годовая ставка по активным кредитам, %.

    Returns:
        Среднее, округлённое до 2 знаков; 0 если активных кредитов нет
    """
    loans = get_active_loans(session, user_id)
    if not loans:
        return Decimal('0')
    total = sum((loan.approximate_interest_rate for loan in loans), Decimal('0'))
    return round(total / Decimal(len(loans)), 2)


def get_upcoming_payments(
    session: Session,
    user_id: str,
    days_ahead: Optional[int] = None,
    today: Optional[date] = None
) -> List[LoanDB]:
    """
    Активные кредиты, ближайший платёж по которым наступит в течение days_ahead дней.

    Args:
        session: Активная сессия БД
        user_id: Владелец кредитов
        days_ahead: Горизонт в днях (по умолчанию settings.upcoming_payments_days)
        today: Текущая дата (по умолчанию date.today())

    Returns:
        Кредиты, отсортированные по дате ближайшего платежа
    """
    today = today or date.today()
    if days_ahead is None:
        days_ahead = settings.upcoming_payments_days
    horizon = today + timedelta(days=days_ahead)

    upcoming = []
    for loan in get_active_loans(session, user_id):
        payment_date = loan.get_next_payment_date(today)
        if payment_date is not None and today <= payment_date <= horizon:
            upcoming.append((payment_date, loan))

    upcoming.sort(key=lambda item: item[0])
    return [loan for _, loan in upcoming]


def get_summary_statistics(session: Session, user_id: str) -> LoanSummary:
    """
    Получает общую статистику по активным кредитам пользователя.

    Args:
        session: Активная сессия БД
        user_id: Владелец кредитов

    Returns:
        LoanSummary с количеством кредитов и суммами

    Raises:
        SQLAlchemyError: При ошибках работы с БД

    Example:
        >>> with get_db_session() as session:
        ...     stats = get_summary_statistics(session, user_id)
        ...     print(f"Активных кредитов: {stats.active_loans_count}")
    """
    try:
        loans = get_active_loans(session, user_id)

        summary = LoanSummary(
            active_loans_count=len(loans),
            total_borrowed=sum((loan.principal_amount for loan in loans), Decimal('0')),
            total_to_pay=sum((loan.total_to_pay for loan in loans), Decimal('0')),
            total_paid=sum((loan.total_paid for loan in loans), Decimal('0')),
            total_remaining=sum((loan.total_remaining for loan in loans), Decimal('0')),
            monthly_payments_total=sum((loan.installment_amount for loan in loans), Decimal('0')),
            average_interest_rate=(
                round(sum((loan.approximate_interest_rate for loan in loans), Decimal('0')) / len(loans), 2)
                if loans else Decimal('0')
            ),
        )

        logger.info(
            f"Статистика кредитов пользователя {user_id}: активных {summary.active_loans_count}, "
            f"осталось {summary.total_remaining}"
        )
        return summary

    except SQLAlchemyError as e:
        logger.error(f"Ошибка при расчете статистики кредитов: {e}")
        raise
