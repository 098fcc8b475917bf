"""
Модуль сервисного слоя журнала операций.

Содержит CRUD операции и запросы к журналу доходов/расходов:
- create_transaction: создание записи с валидацией
- get_transaction: получение записи по ID
- get_transactions: выборка с фильтрами (категория, период, направление)
- delete_transaction: удаление записи (с откатом взноса кредита)
- has_expense_in_period: есть ли расход по категории в периоде
- sum_expenses_by_category: суммы расходов за период по категориям
- get_month_totals, get_balance: агрегаты для дашборда

Записи журнала неизменяемы: допускается только создание и удаление.
Все функции принимают сессию БД как параметр (Dependency Injection).
"""

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from obligation_tracker.models import CategoryDB, TransactionDB, TransactionCreate, TransactionType
from obligation_tracker.utils.dates import month_bounds
from obligation_tracker.utils.exceptions import ValidationError
from obligation_tracker.utils.validation import validate_uuid_format


# Настройка логирования
logger = logging.getLogger(__name__)


def create_transaction(
    session: Session,
    user_id: str,
    transaction: TransactionCreate
) -> TransactionDB:
    """
    Создаёт новую запись журнала с валидацией данных.

    Args:
        session: Активная сессия БД
        user_id: Владелец записи
        transaction: Данные для создания записи (Pydantic модель)

    Returns:
        Созданная запись с заполненным ID и created_at

    Raises:
        ValidationError: Если категория не найдена, чужая или другого типа
        SQLAlchemyError: При ошибках записи в базу данных
    """
    try:
        logger.debug(f"Создание записи журнала: {transaction.amount}, cat_id={transaction.category_id}")

        validate_uuid_format(transaction.category_id, "category_id")

        category = session.query(CategoryDB).filter_by(
            id=transaction.category_id,
            user_id=user_id
        ).first()
        if category is None:
            raise ValidationError(f"Категория ID {transaction.category_id} не найдена")

        if category.type != transaction.type:
            raise ValidationError(
                f"Тип записи ({transaction.type.value}) не совпадает с типом "
                f"категории '{category.name}' ({category.type.value})"
            )

        db_transaction = TransactionDB(user_id=user_id, **transaction.model_dump())
        session.add(db_transaction)
        session.commit()
        session.refresh(db_transaction)

        logger.info(f"Запись журнала успешно создана с ID: {db_transaction.id}")
        return db_transaction

    except ValidationError:
        session.rollback()
        raise

    except SQLAlchemyError as e:
        logger.error(f"Ошибка при сохранении записи журнала в БД: {e}")
        session.rollback()
        raise


def get_transaction(session: Session, user_id: str, transaction_id: str) -> Optional[TransactionDB]:
    """
    Получает запись журнала по ID.

    Returns:
        Запись или None, если не найдена или принадлежит другому пользователю
    """
    return session.query(TransactionDB).filter_by(id=transaction_id, user_id=user_id).first()


def get_transactions(
    session: Session,
    user_id: str,
    category_id: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    transaction_type: Optional[TransactionType] = None
) -> List[TransactionDB]:
    """
    Получает записи журнала пользователя с опциональными фильтрами.

    Args:
        session: Активная сессия БД
        user_id: Владелец записей
        category_id: Фильтр по категории
        start_date: Начало периода (включительно)
        end_date: Конец периода (включительно)
        transaction_type: Фильтр по направлению

    Returns:
        Список записей, новые первыми

    Raises:
        SQLAlchemyError: При ошибках работы с базой данных
    """
    try:
        query = session.query(TransactionDB).filter(TransactionDB.user_id == user_id)

        if category_id is not None:
            query = query.filter(TransactionDB.category_id == category_id)
        if start_date is not None:
            query = query.filter(TransactionDB.transaction_date >= start_date)
        if end_date is not None:
            query = query.filter(TransactionDB.transaction_date <= end_date)
        if transaction_type is not None:
            query = query.filter(TransactionDB.type == transaction_type)

        transactions = query.order_by(
            TransactionDB.transaction_date.desc(),
            TransactionDB.created_at.desc(),
            TransactionDB.id.desc()
        ).all()

        logger.debug(f"Найдено {len(transactions)} записей журнала пользователя {user_id}")
        return transactions

    except SQLAlchemyError as e:
        logger.error(f"Ошибка при получении записей журнала: {e}")
        raise


def delete_transaction(session: Session, user_id: str, transaction_id: str) -> bool:
    """
    Удаляет запись журнала.

    Если запись - расход по категории кредита, счётчик оплаченных взносов
    уменьшается (не ниже 0), а погашенный кредит снова становится активным.
    Удаление записи и корректировка кредита фиксируются одной транзакцией.

    Args:
        session: Активная сессия БД
        user_id: Владелец записи
        transaction_id: ID записи для удаления (UUID)

    Returns:
        True если запись удалена, False если не найдена

    Raises:
        SQLAlchemyError: При ошибках работы с базой данных
    """
    try:
        validate_uuid_format(transaction_id, "transaction_id")
        logger.debug(f"Удаление записи журнала ID: {transaction_id}")

        db_transaction = get_transaction(session, user_id, transaction_id)
        if not db_transaction:
            logger.warning(f"Запись журнала с ID {transaction_id} не найдена для удаления")
            return False

        # Локальный импорт: loan_service зависит от notification_service и журнала
        from obligation_tracker.services.loan_service import rollback_installment_for_entry

        rollback_installment_for_entry(session, db_transaction)

        session.delete(db_transaction)
        session.commit()

        logger.info(f"Запись журнала ID {transaction_id} успешно удалена")
        return True

    except SQLAlchemyError as e:
        logger.error(f"Ошибка при удалении записи журнала из БД: {e}")
        session.rollback()
        raise


def has_expense_in_period(
    session: Session,
    user_id: str,
    category_id: str,
    start_date: date,
    end_date: date
) -> bool:
    """
    Проверяет, есть ли расход по категории в периоде (включительно).
    """
    return session.query(
        session.query(TransactionDB).filter(
            TransactionDB.user_id == user_id,
            TransactionDB.category_id == category_id,
            TransactionDB.type == TransactionType.EXPENSE,
            TransactionDB.transaction_date >= start_date,
            TransactionDB.transaction_date <= end_date
        ).exists()
    ).scalar()


def sum_expenses_by_category(
    session: Session,
    user_id: str,
    start_date: date,
    end_date: date,
    category_ids: Optional[Iterable[str]] = None
) -> Dict[str, Decimal]:
    """
    Суммирует расходы пользователя за период по категориям.

    Args:
        session: Активная сессия БД
        user_id: Владелец записей
        start_date: Начало периода (включительно)
        end_date: Конец периода (включительно)
        category_ids: Ограничить суммирование этими категориями

    Returns:
        Словарь {category_id: сумма расходов}. Категорий без расходов в нём нет.
    """
    expenses = get_transactions(
        session, user_id,
        start_date=start_date,
        end_date=end_date,
        transaction_type=TransactionType.EXPENSE
    )

    allowed = set(category_ids) if category_ids is not None else None

    totals: Dict[str, Decimal] = {}
    for expense in expenses:
        if allowed is not None and expense.category_id not in allowed:
            continue
        totals[expense.category_id] = totals.get(expense.category_id, Decimal('0')) + expense.amount

    return totals


def get_month_totals(session: Session, user_id: str, year: int, month: int) -> Tuple[Decimal, Decimal]:
    """
    Получает суммы доходов и расходов пользователя за месяц.

    Returns:
        Кортеж (доходы, расходы)
    """
    first_day, last_day = month_bounds(year, month)
    transactions = get_transactions(session, user_id, start_date=first_day, end_date=last_day)

    income = sum((t.amount for t in transactions if t.type == TransactionType.INCOME), Decimal('0.0'))
    expense = sum((t.amount for t in transactions if t.type == TransactionType.EXPENSE), Decimal('0.0'))

    logger.info(f"Итоги {year}-{month:02d} для {user_id}: доходы={income}, расходы={expense}")
    return income, expense


def get_balance(session: Session, user_id: str) -> Decimal:
    """
    Рассчитывает текущий баланс пользователя (Доходы - Расходы).
    """
    transactions = get_transactions(session, user_id)

    total_income = sum((t.amount for t in transactions if t.type == TransactionType.INCOME), Decimal('0.0'))
    total_expense = sum((t.amount for t in transactions if t.type == TransactionType.EXPENSE), Decimal('0.0'))

    return total_income - total_expense
