"""
Сервис справочника категорий.

Предоставляет функции для работы с категориями пользователя:
- Получение категории и списков (в том числе фиксированных расходов)
- Создание категории, опционально с расписанием фиксированного расхода
- Изменение категории (изменение расписания сбрасывает напоминания месяца)
- Удаление категории (категории кредитов и используемые категории защищены)

Категории кредитов редактируются только через loan_service.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from obligation_tracker.models import (
    CategoryDB, TransactionDB, BudgetDB, NotificationDB,
    CategoryCreate, CategoryUpdate, TransactionType
)
from obligation_tracker.services.notification_service import (
    generate_notification_for_category,
    delete_current_month_notifications
)
from obligation_tracker.utils.exceptions import ValidationError, BusinessLogicError

# Настройка логирования
logger = logging.getLogger(__name__)


def _validate_schedule(
    category_type: TransactionType,
    is_fixed_expense: bool,
    day_of_month: Optional[int],
    estimated_amount: Optional[Decimal]
) -> None:
    """
    Проверяет согласованность расписания фиксированного расхода.

    День и сумма заполнены тогда и только тогда, когда категория
    помечена как фиксированный расход.
    """
    if is_fixed_expense:
        if category_type != TransactionType.EXPENSE:
            error_msg = "Фиксированным расходом может быть только категория расходов"
            logger.error(error_msg)
            raise ValidationError(error_msg)
        if day_of_month is None or estimated_amount is None:
            error_msg = "Для фиксированного расхода обязательны день платежа и ожидаемая сумма"
            logger.error(error_msg)
            raise ValidationError(error_msg)
    elif day_of_month is not None or estimated_amount is not None:
        error_msg = "День платежа и ожидаемая сумма задаются только для фиксированного расхода"
        logger.error(error_msg)
        raise ValidationError(error_msg)


def get_category(session: Session, category_id: str, user_id: str) -> Optional[CategoryDB]:
    """Получает категорию по ID (None, если не найдена или чужая)."""
    return session.query(CategoryDB).filter_by(id=category_id, user_id=user_id).first()


def get_all_categories(
    session: Session,
    user_id: str,
    transaction_type: Optional[TransactionType] = None
) -> List[CategoryDB]:
    """
    Получает категории пользователя с опциональной фильтрацией по типу.
    """
    try:
        query = session.query(CategoryDB).filter(CategoryDB.user_id == user_id)
        if transaction_type is not None:
            query = query.filter(CategoryDB.type == transaction_type)

        categories = query.order_by(CategoryDB.name).all()
        logger.debug(f"Загружено {len(categories)} категорий пользователя {user_id}")
        return categories

    except SQLAlchemyError as e:
        error_msg = (
            f"Ошибка при получении категорий"
            f"{f' типа {transaction_type.value}' if transaction_type else ''}: {e}"
        )
        logger.error(error_msg)
        raise


def get_fixed_expense_categories(session: Session, user_id: Optional[str] = None) -> List[CategoryDB]:
    """
    Категории фиксированных расходов с заполненным днём платежа.

    Без user_id возвращает категории всех пользователей (для планировщика).
    """
    query = session.query(CategoryDB).filter(
        CategoryDB.is_fixed_expense.is_(True),
        CategoryDB.day_of_month.isnot(None)
    )
    if user_id is not None:
        query = query.filter(CategoryDB.user_id == user_id)
    return query.order_by(CategoryDB.day_of_month).all()


def create_category(
    session: Session,
    user_id: str,
    category: CategoryCreate,
    today: Optional[date] = None
) -> CategoryDB:
    """
    Создаёт категорию пользователя.

    Для фиксированного расхода сразу запускается формирование напоминания
    по этой категории (если платёж уже в окне напоминания или просрочен).

    Args:
        session: Активная сессия БД
        user_id: Владелец категории
        category: Данные категории (Pydantic модель)
        today: Текущая дата (по умолчанию date.today())

    Returns:
        Созданная категория

    Raises:
        ValidationError: При несогласованном расписании фиксированного расхода
        SQLAlchemyError: При ошибках работы с БД
    """
    try:
        _validate_schedule(
            category.type, category.is_fixed_expense,
            category.day_of_month, category.estimated_amount
        )

        db_category = CategoryDB(user_id=user_id, **category.model_dump())
        session.add(db_category)
        session.commit()
        session.refresh(db_category)

        logger.info(
            f"Создана категория '{db_category.name}' типа {db_category.type.value} "
            f"с ID {db_category.id}"
        )

    except ValidationError:
        session.rollback()
        raise

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при создании категории '{category.name}': {e}")
        raise

    if db_category.is_fixed_expense:
        generate_notification_for_category(session, db_category.id, today=today)

    return db_category


def update_category(
    session: Session,
    category_id: str,
    user_id: str,
    category_update: CategoryUpdate,
    today: Optional[date] = None
) -> Optional[CategoryDB]:
    """
    Обновляет категорию пользователя.

    Изменение расписания (признак фиксированного расхода, день, сумма)
    удаляет напоминания категории за текущий месяц и сразу формирует
    их заново по новому расписанию. При is_fixed_expense=False день
    и сумма сбрасываются.

    Returns:
        Обновлённая категория или None, если не найдена

    Raises:
        BusinessLogicError: Категория принадлежит кредиту
        ValidationError: При несогласованном расписании
    """
    try:
        db_category = get_category(session, category_id, user_id)
        if db_category is None:
            logger.warning(f"Категория {category_id} не найдена для обновления")
            return None

        if db_category.is_loan_owned:
            error_msg = (
                f"Категория '{db_category.name}' принадлежит кредиту и изменяется "
                f"только через редактирование кредита"
            )
            logger.error(error_msg)
            raise BusinessLogicError(error_msg)

        update_data = category_update.model_dump(exclude_unset=True)
        if update_data.get("is_fixed_expense") is False:
            update_data["day_of_month"] = None
            update_data["estimated_amount"] = None

        old_schedule = (db_category.is_fixed_expense, db_category.day_of_month, db_category.estimated_amount)

        for field, value in update_data.items():
            setattr(db_category, field, value)

        _validate_schedule(
            db_category.type, db_category.is_fixed_expense,
            db_category.day_of_month, db_category.estimated_amount
        )

        schedule_changed = old_schedule != (
            db_category.is_fixed_expense, db_category.day_of_month, db_category.estimated_amount
        )
        if schedule_changed:
            delete_current_month_notifications(session, db_category.id, user_id, today=today, commit=False)

        session.commit()
        session.refresh(db_category)

        logger.info(f"Категория {category_id} обновлена: {list(update_data.keys())}")

    except (ValidationError, BusinessLogicError):
        session.rollback()
        raise

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при обновлении категории ID {category_id}: {e}")
        raise

    if schedule_changed and db_category.is_fixed_expense:
        generate_notification_for_category(session, db_category.id, today=today)

    return db_category


def delete_category(session: Session, category_id: str, user_id: str) -> bool:
    """
    Удаляет категорию пользователя вместе с её напоминаниями.

    Returns:
        True если удалена, False если не найдена

    Raises:
        BusinessLogicError: Категория принадлежит кредиту или используется
            в записях журнала либо бюджетах
    """
    try:
        category = get_category(session, category_id, user_id)
        if category is None:
            logger.warning(f"Категория {category_id} не найдена для удаления")
            return False

        if category.is_loan_owned:
            error_msg = (
                f"Невозможно удалить категорию '{category.name}': она принадлежит кредиту. "
                f"Удалите кредит."
            )
            logger.error(error_msg)
            raise BusinessLogicError(error_msg)

        transactions_count = session.query(TransactionDB).filter_by(category_id=category_id).count()
        if transactions_count > 0:
            error_msg = (
                f"Невозможно удалить категорию '{category.name}': "
                f"существует {transactions_count} записей журнала с этой категорией"
            )
            logger.error(error_msg)
            raise BusinessLogicError(error_msg)

        budgets_count = session.query(BudgetDB).filter_by(category_id=category_id).count()
        if budgets_count > 0:
            error_msg = (
                f"Невозможно удалить категорию '{category.name}': "
                f"существует {budgets_count} бюджетов с этой категорией"
            )
            logger.error(error_msg)
            raise BusinessLogicError(error_msg)

        for notification in session.query(NotificationDB).filter_by(category_id=category_id).all():
            session.delete(notification)

        category_name = category.name
        session.delete(category)
        session.commit()

        logger.info(f"Удалена категория '{category_name}' (ID {category_id})")
        return True

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при удалении категории ID {category_id}: {e}")
        raise
