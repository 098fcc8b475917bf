"""
Модуль перечислений (enums) для Obligation Tracker.

Содержит все Enum классы, используемые в моделях данных.
"""

from enum import Enum


class TransactionType(str, Enum):
    """
    Направление записи в журнале операций.

    Attributes:
        INCOME: Доход (поступление средств)
        EXPENSE: Расход (трата средств)
    """
    INCOME = "income"
    EXPENSE = "expense"


class LoanDeletionPolicy(str, Enum):
    """
    Политика удаления кредита.

    Attributes:
        ARCHIVE: Архивирование - кредит деактивируется, история сохраняется
        PURGE: Полное удаление - кредит, категория, платежи и уведомления
    """
    ARCHIVE = "archive"
    PURGE = "purge"


class InterestRateBand(str, Enum):
    """
    Оценка приблизительной годовой ставки кредита.

    Attributes:
        FAVORABLE: Ставка до 15% включительно
        MODERATE: Ставка до 30% включительно
        HIGH: Ставка выше 30%
    """
    FAVORABLE = "favorable"
    MODERATE = "moderate"
    HIGH = "high"
