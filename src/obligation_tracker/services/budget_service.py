"""
Сервис бюджетов по категориям.

Потраченная сумма бюджета нигде не хранится: при каждом чтении она
вычисляется по расходам журнала за календарный месяц бюджета.

Содержит:
- get_budgets_for_period: бюджеты периода с фактическими расходами
- calculate_spent_by_category: расходы периода по категориям
- get_total_spent_for_month: расходы только по категориям с бюджетом
- get_total_budget_for_month, get_total_available_amount,
  validate_available_budget: итоги периода
- get_exceeded_budgets: превышенные и близкие к лимиту бюджеты
- create_budget, update_budget, delete_budget, get_budget,
  get_all_budgets, get_active_budgets: управление бюджетами
- copy_budgets_from_previous_month: перенос бюджетов на новый месяц
"""

from decimal import Decimal
from typing import Dict, List, Optional
import logging

from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from obligation_tracker.config import settings
from obligation_tracker.models import BudgetDB, CategoryDB, BudgetCreate, BudgetUpdate, BudgetView
from obligation_tracker.services.transaction_service import sum_expenses_by_category
from obligation_tracker.utils.dates import month_bounds, previous_month
from obligation_tracker.utils.exceptions import ValidationError, BusinessLogicError

# Настройка логирования
logger = logging.getLogger(__name__)


def _period_budgets(session: Session, user_id: str, month: int, year: int) -> List[BudgetDB]:
    """Активные бюджеты пользователя за период."""
    return session.query(BudgetDB).options(
        joinedload(BudgetDB.category)
    ).filter(
        BudgetDB.user_id == user_id,
        BudgetDB.month == month,
        BudgetDB.year == year,
        BudgetDB.is_active.is_(True)
    ).order_by(BudgetDB.name).all()


def calculate_spent_by_category(session: Session, user_id: str, month: int, year: int) -> Dict[str, Decimal]:
    """
    Суммы расходов пользователя за месяц по категориям.

    Returns:
        Словарь {category_id: сумма}. Категорий без расходов в нём нет.
    """
    first_day, last_day = month_bounds(year, month)
    return sum_expenses_by_category(session, user_id, first_day, last_day)


def get_budgets_for_period(session: Session, user_id: str, month: int, year: int) -> List[BudgetView]:
    """
    Получает активные бюджеты периода с фактическими расходами.

    Алгоритм:
    1. Активные бюджеты пользователя за (month, year)
    2. Все расходы пользователя с первого по последний день месяца
    3. Группировка расходов по категориям
    4. Для каждого бюджета: расход его категории (0, если расходов нет)
       и производные поля (доступно, процент, превышение, близость к лимиту)

    Args:
        session: Активная сессия БД
        user_id: Владелец бюджетов
        month: Месяц (1-12)
        year: Год

    Returns:
        Список BudgetView; пустой, если бюджетов нет

    Example:
        >>> views = get_budgets_for_period(session, user_id, 3, 2025)
        >>> views[0].spent_amount, views[0].is_over_budget
        (Decimal('1100.00'), True)
    """
    try:
        budgets = _period_budgets(session, user_id, month, year)
        if not budgets:
            return []

        spent_by_category = calculate_spent_by_category(session, user_id, month, year)
        near_limit = Decimal(settings.budget_near_limit_percent)

        views = [
            BudgetView.from_budget(
                budget,
                spent_by_category.get(budget.category_id, Decimal('0')),
                near_limit_percent=near_limit
            )
            for budget in budgets
        ]

        logger.debug(f"Бюджеты {month:02d}/{year} пользователя {user_id}: {len(views)}")
        return views

    except SQLAlchemyError as e:
        logger.error(f"Ошибка при получении бюджетов периода {month:02d}/{year}: {e}")
        raise


def get_total_spent_for_month(session: Session, user_id: str, month: int, year: int) -> Decimal:
    """
    Сумма расходов за месяц только по категориям, у которых есть
    активный бюджет в этом периоде.
    """
    budgets = _period_budgets(session, user_id, month, year)
    if not budgets:
        return Decimal('0')

    first_day, last_day = month_bounds(year, month)
    spent = sum_expenses_by_category(
        session, user_id, first_day, last_day,
        category_ids={budget.category_id for budget in budgets}
    )
    return sum(spent.values(), Decimal('0'))


def get_total_budget_for_month(session: Session, user_id: str, month: int, year: int) -> Decimal:
    """Сумма выделенных средств по активным бюджетам месяца."""
    budgets = _period_budgets(session, user_id, month, year)
    return sum((budget.assigned_amount for budget in budgets), Decimal('0'))


def get_total_available_amount(session: Session, user_id: str, month: int, year: int) -> Decimal:
    """Сумма доступных остатков по активным бюджетам месяца."""
    views = get_budgets_for_period(session, user_id, month, year)
    return sum((view.available_amount for view in views), Decimal('0'))


def validate_available_budget(
    session: Session,
    user_id: str,
    month: int,
    year: int,
    required_amount: Decimal
) -> bool:
    """Проверяет, хватает ли доступного остатка бюджетов на сумму."""
    return get_total_available_amount(session, user_id, month, year) >= required_amount


def get_exceeded_budgets(session: Session, user_id: str, month: int, year: int) -> List[BudgetView]:
    """Бюджеты периода, которые превышены или близки к лимиту."""
    return [
        view for view in get_budgets_for_period(session, user_id, month, year)
        if view.is_over_budget or view.is_near_limit
    ]


def get_budget(session: Session, budget_id: str, user_id: str) -> Optional[BudgetDB]:
    return session.query(BudgetDB).filter_by(id=budget_id, user_id=user_id).first()


def get_all_budgets(session: Session, user_id: str) -> List[BudgetDB]:
    """Все бюджеты пользователя, новые периоды первыми."""
    return session.query(BudgetDB).filter(
        BudgetDB.user_id == user_id
    ).order_by(BudgetDB.year.desc(), BudgetDB.month.desc(), BudgetDB.name).all()


def get_active_budgets(session: Session, user_id: str) -> List[BudgetDB]:
    return session.query(BudgetDB).filter(
        BudgetDB.user_id == user_id,
        BudgetDB.is_active.is_(True)
    ).order_by(BudgetDB.year.desc(), BudgetDB.month.desc(), BudgetDB.name).all()


def _exists_active_budget(
    session: Session,
    user_id: str,
    category_id: str,
    month: int,
    year: int,
    exclude_budget_id: Optional[str] = None
) -> bool:
    query = session.query(BudgetDB).filter(
        BudgetDB.user_id == user_id,
        BudgetDB.category_id == category_id,
        BudgetDB.month == month,
        BudgetDB.year == year,
        BudgetDB.is_active.is_(True)
    )
    if exclude_budget_id is not None:
        query = query.filter(BudgetDB.id != exclude_budget_id)
    return session.query(query.exists()).scalar()


def create_budget(session: Session, user_id: str, budget: BudgetCreate) -> BudgetDB:
    """
    Создаёт бюджет категории на месяц.

    Args:
        session: Активная сессия БД
        user_id: Владелец бюджета
        budget: Данные бюджета (Pydantic модель)

    Returns:
        Созданный активный бюджет

    Raises:
        ValidationError: Категория не найдена (или чужая), либо активный
            бюджет для категории в этом периоде уже есть
        SQLAlchemyError: При ошибках работы с БД
    """
    try:
        category = session.query(CategoryDB).filter_by(id=budget.category_id, user_id=user_id).first()
        if category is None:
            error_msg = f"Категория {budget.category_id} не найдена"
            logger.error(error_msg)
            raise ValidationError(error_msg)

        if _exists_active_budget(session, user_id, budget.category_id, budget.month, budget.year):
            error_msg = (
                f"Активный бюджет для категории '{category.name}' "
                f"за {budget.month:02d}/{budget.year} уже существует"
            )
            logger.error(error_msg)
            raise ValidationError(error_msg)

        db_budget = BudgetDB(user_id=user_id, is_active=True, **budget.model_dump())
        session.add(db_budget)
        session.commit()
        session.refresh(db_budget)

        logger.info(
            f"Создан бюджет '{db_budget.name}' ({db_budget.assigned_amount}) "
            f"на {db_budget.month:02d}/{db_budget.year}, ID: {db_budget.id}"
        )
        return db_budget

    except ValidationError:
        session.rollback()
        raise

    except IntegrityError as e:
        # Параллельное создание: сработал частичный уникальный индекс
        session.rollback()
        error_msg = f"Активный бюджет для категории {budget.category_id} в этом периоде уже существует"
        logger.error(f"{error_msg}: {e}")
        raise ValidationError(error_msg)

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при создании бюджета '{budget.name}': {e}")
        raise


def update_budget(
    session: Session,
    budget_id: str,
    user_id: str,
    budget_update: BudgetUpdate
) -> Optional[BudgetDB]:
    """
    Обновляет бюджет (только переданные поля).

    Returns:
        Обновлённый бюджет или None, если не найден

    Raises:
        ValidationError: Новая категория не найдена или нарушена
            уникальность активного бюджета
    """
    try:
        db_budget = get_budget(session, budget_id, user_id)
        if db_budget is None:
            logger.warning(f"Бюджет {budget_id} не найден для обновления")
            return None

        update_data = budget_update.model_dump(exclude_unset=True)

        if "category_id" in update_data:
            category = session.query(CategoryDB).filter_by(
                id=update_data["category_id"], user_id=user_id
            ).first()
            if category is None:
                error_msg = f"Категория {update_data['category_id']} не найдена"
                logger.error(error_msg)
                raise ValidationError(error_msg)

        for field, value in update_data.items():
            setattr(db_budget, field, value)

        if db_budget.is_active and _exists_active_budget(
            session, user_id, db_budget.category_id, db_budget.month, db_budget.year,
            exclude_budget_id=db_budget.id
        ):
            error_msg = (
                f"Активный бюджет для категории {db_budget.category_id} "
                f"за {db_budget.month:02d}/{db_budget.year} уже существует"
            )
            logger.error(error_msg)
            raise ValidationError(error_msg)

        session.commit()
        session.refresh(db_budget)

        logger.info(f"Бюджет {budget_id} обновлён: {list(update_data.keys())}")
        return db_budget

    except ValidationError:
        session.rollback()
        raise

    except IntegrityError as e:
        session.rollback()
        error_msg = "Активный бюджет для этой категории и периода уже существует"
        logger.error(f"{error_msg}: {e}")
        raise ValidationError(error_msg)

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при обновлении бюджета {budget_id}: {e}")
        raise


def delete_budget(session: Session, budget_id: str, user_id: str) -> bool:
    """
    Удаляет бюджет.

    Returns:
        True если удалён, False если не найден
    """
    try:
        db_budget = get_budget(session, budget_id, user_id)
        if db_budget is None:
            logger.warning(f"Бюджет {budget_id} не найден для удаления")
            return False

        session.delete(db_budget)
        session.commit()
        logger.info(f"Бюджет {budget_id} удалён")
        return True

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при удалении бюджета {budget_id}: {e}")
        raise


def copy_budgets_from_previous_month(
    session: Session,
    user_id: str,
    target_month: int,
    target_year: int
) -> int:
    """
    Копирует активные бюджеты предыдущего месяца в целевой месяц.

    Копируются название, категория и выделенная сумма. Целевой месяц
    должен быть пустым.

    Returns:
        Количество скопированных бюджетов (0, если копировать нечего)

    Raises:
        BusinessLogicError: В целевом месяце уже есть активные бюджеты
    """
    source_year, source_month = previous_month(target_year, target_month)

    try:
        source_budgets = _period_budgets(session, user_id, source_month, source_year)
        if not source_budgets:
            logger.warning(f"Нет бюджетов за {source_month:02d}/{source_year} для копирования")
            return 0

        if _period_budgets(session, user_id, target_month, target_year):
            error_msg = (
                f"В {target_month:02d}/{target_year} уже есть бюджеты. "
                f"Удалите существующие перед копированием."
            )
            logger.error(error_msg)
            raise BusinessLogicError(error_msg)

        for source in source_budgets:
            session.add(BudgetDB(
                user_id=user_id,
                name=source.name,
                assigned_amount=source.assigned_amount,
                category_id=source.category_id,
                month=target_month,
                year=target_year,
                is_active=True
            ))
        session.commit()

        logger.info(
            f"Скопировано {len(source_budgets)} бюджетов из {source_month:02d}/{source_year} "
            f"в {target_month:02d}/{target_year}"
        )
        return len(source_budgets)

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при копировании бюджетов: {e}")
        raise
