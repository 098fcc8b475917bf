"""
Календарные вычисления для ежемесячных обязательств.

Все функции чистые и работают с datetime.date:
- ограничение дня месяца длиной месяца (31 -> 28/29 февраля)
- границы календарного месяца
- перенос даты платежа на следующий месяц
"""

import calendar
from datetime import date
from typing import Optional, Tuple

from dateutil.relativedelta import relativedelta


def days_in_month(year: int, month: int) -> int:
    """Возвращает количество дней в месяце."""
    return calendar.monthrange(year, month)[1]


def clamp_day(year: int, month: int, day: int) -> date:
    """
    Строит дату, ограничивая день длиной месяца.

    Example:
        >>> clamp_day(2025, 2, 31)
        datetime.date(2025, 2, 28)
    """
    return date(year, month, min(day, days_in_month(year, month)))


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    """
    Возвращает первый и последний день месяца (включительно).

    Args:
        year: Год
        month: Месяц (1-12)

    Returns:
        Кортеж (первый день, последний день)
    """
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def next_month(year: int, month: int) -> Tuple[int, int]:
    """Возвращает (год, месяц) следующего месяца."""
    shifted = date(year, month, 1) + relativedelta(months=1)
    return shifted.year, shifted.month


def previous_month(year: int, month: int) -> Tuple[int, int]:
    """Возвращает (год, месяц) предыдущего месяца."""
    shifted = date(year, month, 1) - relativedelta(months=1)
    return shifted.year, shifted.month


def resolve_due_date(day_of_month: int, today: date) -> date:
    """
    Дата платежа в текущем месяце с учётом длины месяца.

    Args:
        day_of_month: День платежа (1-31)
        today: Текущая дата

    Returns:
        Дата платежа в месяце, которому принадлежит today
    """
    return clamp_day(today.year, today.month, day_of_month)


def next_payment_date(day_of_month: int, today: Optional[date] = None) -> date:
    """
    Ближайшая дата платежа начиная с today.

    Если дата платежа в текущем месяце уже прошла, берётся следующий месяц,
    и день снова ограничивается длиной этого месяца.

    Example:
        >>> next_payment_date(31, date(2025, 1, 31))
        datetime.date(2025, 1, 31)
        >>> next_payment_date(30, date(2025, 1, 31))
        datetime.date(2025, 2, 28)
    """
    today = today or date.today()
    candidate = resolve_due_date(day_of_month, today)
    if candidate < today:
        year, month = next_month(today.year, today.month)
        candidate = clamp_day(year, month, day_of_month)
    return candidate
