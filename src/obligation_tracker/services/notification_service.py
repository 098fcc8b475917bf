"""
Сервис напоминаний о фиксированных ежемесячных расходах.

Содержит:
- generate_notifications_for_fixed_expenses: полный проход по всем
  категориям фиксированных расходов (вызывается планировщиком)
- generate_notification_for_category: тот же алгоритм для одной категории
- mark_as_read, mark_all_as_read: отметка прочтения
- delete_current_month_notifications: сброс напоминаний текущего месяца
  при изменении расписания категории
- clean_old_notifications: удаление устаревших напоминаний
- get_unread_notifications, get_all_notifications, get_unread_count,
  delete_notification: запросы для слоя представления

Цикл напоминания - календарный месяц. На каждый цикл категории существует
не более одного напоминания (ограничение uq_notifications_cycle).
"""

from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple
import logging

from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from obligation_tracker.config import settings
from obligation_tracker.models import CategoryDB, NotificationDB
from obligation_tracker.services.transaction_service import has_expense_in_period
from obligation_tracker.utils.dates import month_bounds, resolve_due_date

# Настройка логирования
logger = logging.getLogger(__name__)


def exists_for_cycle(session: Session, category_id: str, user_id: str, month: int, year: int) -> bool:
    """Проверяет, есть ли напоминание категории за расчётный месяц."""
    return session.query(
        session.query(NotificationDB).filter(
            NotificationDB.category_id == category_id,
            NotificationDB.user_id == user_id,
            NotificationDB.due_month == month,
            NotificationDB.due_year == year
        ).exists()
    ).scalar()


def get_notifications_by_category_and_month(
    session: Session,
    category_id: str,
    user_id: str,
    month: int,
    year: int
) -> List[NotificationDB]:
    """
    Получает напоминания категории, срок которых приходится на месяц.
    """
    first_day, last_day = month_bounds(year, month)
    return session.query(NotificationDB).filter(
        NotificationDB.category_id == category_id,
        NotificationDB.user_id == user_id,
        NotificationDB.due_date >= first_day,
        NotificationDB.due_date <= last_day
    ).all()


def _resolve_notification_due_date(session: Session, category: CategoryDB, today: date) -> Optional[date]:
    """
    Решает, нужно ли напоминание по категории в текущем цикле.

    Порядок проверок:
    1. Категория кредита, который погашен или архивирован -> нет
    2. Дата платежа: день категории, ограниченный длиной текущего месяца
    3. Напоминание за этот цикл уже есть -> нет
    4. В текущем месяце уже есть расход по категории -> нет
    5. Дата платежа прошла -> просрочка, напоминание нужно всегда.
       Иначе только если до платежа осталось не больше notify_days_before дней

    Returns:
        Дата платежа, если напоминание нужно создать, иначе None
    """
    loan = category.loan
    if loan is not None and (not loan.is_active or loan.is_completed):
        logger.debug(f"Кредит {loan.id} неактивен или погашен, напоминание по категории {category.id} не нужно")
        return None

    due_date = resolve_due_date(category.day_of_month, today)

    if exists_for_cycle(session, category.id, category.user_id, due_date.month, due_date.year):
        logger.debug(f"Напоминание по категории {category.id} за {due_date.month}/{due_date.year} уже есть")
        return None

    first_day, last_day = month_bounds(today.year, today.month)
    if has_expense_in_period(session, category.user_id, category.id, first_day, last_day):
        logger.debug(f"Категория {category.id} уже оплачена в текущем месяце")
        return None

    if due_date < today:
        return due_date

    window_start = due_date - timedelta(days=settings.notify_days_before)
    if window_start <= today <= due_date:
        return due_date

    return None


def _build_notification(category: CategoryDB, due_date: date, today: date) -> NotificationDB:
    return NotificationDB(
        category_id=category.id,
        user_id=category.user_id,
        notification_date=today,
        due_date=due_date,
        due_month=due_date.month,
        due_year=due_date.year,
        is_read=False
    )


def generate_notifications_for_fixed_expenses(session: Session, today: Optional[date] = None) -> int:
    """
    Полный проход планировщика по всем фиксированным расходам.

    Для каждой категории с is_fixed_expense и заполненным днём платежа
    применяется алгоритм _resolve_notification_due_date. Все новые
    напоминания сохраняются одним коммитом. Если коммит нарушил
    уникальность цикла (параллельный вызов для той же категории),
    напоминания сохраняются по одному, а дубликаты пропускаются.

    Проход идемпотентен: повторный вызов в тот же день ничего не создаёт.

    Args:
        session: Активная сессия БД
        today: Текущая дата (по умолчанию date.today())

    Returns:
        Количество созданных напоминаний

    Raises:
        SQLAlchemyError: При ошибках работы с БД

    Example:
        >>> with get_db_session() as session:
        ...     created = generate_notifications_for_fixed_expenses(session)
    """
    today = today or date.today()

    try:
        categories = session.query(CategoryDB).filter(
            CategoryDB.is_fixed_expense.is_(True),
            CategoryDB.day_of_month.isnot(None)
        ).all()

        pending: List[Tuple[CategoryDB, date]] = []
        for category in categories:
            due_date = _resolve_notification_due_date(session, category, today)
            if due_date is not None:
                pending.append((category, due_date))

        if not pending:
            logger.debug(f"Новых напоминаний нет ({len(categories)} категорий проверено)")
            return 0

        for category, due_date in pending:
            session.add(_build_notification(category, due_date, today))

        try:
            session.commit()
            created = len(pending)
        except IntegrityError:
            session.rollback()
            logger.warning("Конфликт уникальности напоминаний, сохранение по одному")
            created = _insert_one_by_one(session, pending, today)

        logger.info(f"Создано напоминаний: {created} (категорий проверено: {len(categories)})")
        return created

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при формировании напоминаний: {e}")
        raise


def _insert_one_by_one(session: Session, pending: List[Tuple[CategoryDB, date]], today: date) -> int:
    created = 0
    for category, due_date in pending:
        try:
            session.add(_build_notification(category, due_date, today))
            session.commit()
            created += 1
        except IntegrityError:
            session.rollback()
            logger.info(
                f"Напоминание по категории {category.id} за {due_date.month}/{due_date.year} "
                f"уже создано, пропуск"
            )
    return created


def generate_notification_for_category(
    session: Session,
    category_id: str,
    today: Optional[date] = None
) -> Optional[NotificationDB]:
    """
    Формирует напоминание для одной категории (синхронный вызов).

    Используется при создании и изменении фиксированного расхода.

    Args:
        session: Активная сессия БД
        category_id: ID категории
        today: Текущая дата (по умолчанию date.today())

    Returns:
        Созданное напоминание или None, если оно не требуется,
        уже существует или категория не найдена
    """
    today = today or date.today()

    try:
        category = session.get(CategoryDB, category_id)
        if category is None:
            logger.warning(f"Категория {category_id} не найдена для формирования напоминания")
            return None

        if not category.is_fixed_expense or category.day_of_month is None:
            return None

        due_date = _resolve_notification_due_date(session, category, today)
        if due_date is None:
            return None

        notification = _build_notification(category, due_date, today)
        session.add(notification)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.info(f"Напоминание по категории {category_id} уже создано параллельно, пропуск")
            return None

        session.refresh(notification)
        logger.info(f"Создано напоминание {notification.id} по категории {category_id} на {due_date}")
        return notification

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при формировании напоминания по категории {category_id}: {e}")
        raise


def mark_as_read(session: Session, notification_id: str, user_id: str) -> bool:
    """
    Отмечает напоминание прочитанным.

    Returns:
        True если напоминание найдено, иначе False
    """
    try:
        notification = session.query(NotificationDB).filter_by(id=notification_id, user_id=user_id).first()
        if notification is None:
            logger.warning(f"Напоминание {notification_id} не найдено")
            return False

        notification.is_read = True
        session.commit()
        logger.debug(f"Напоминание {notification_id} отмечено прочитанным")
        return True

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при отметке напоминания {notification_id}: {e}")
        raise


def mark_all_as_read(session: Session, user_id: str) -> int:
    """
    Отмечает все непрочитанные напоминания пользователя прочитанными.

    Returns:
        Количество отмеченных напоминаний
    """
    try:
        updated = session.query(NotificationDB).filter(
            NotificationDB.user_id == user_id,
            NotificationDB.is_read.is_(False)
        ).update({NotificationDB.is_read: True}, synchronize_session=False)
        session.commit()
        logger.info(f"Отмечено прочитанными {updated} напоминаний пользователя {user_id}")
        return updated

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при отметке напоминаний пользователя {user_id}: {e}")
        raise


def delete_current_month_notifications(
    session: Session,
    category_id: str,
    user_id: str,
    today: Optional[date] = None,
    commit: bool = True
) -> int:
    """
    Удаляет напоминания категории со сроком в текущем календарном месяце.

    Вызывается при изменении расписания категории (день, сумма, признак
    напоминания), чтобы следующий проход сформировал их заново.

    Args:
        session: Активная сессия БД
        category_id: ID категории
        user_id: Владелец
        today: Текущая дата (по умолчанию date.today())
        commit: False, если вызывающий код сам фиксирует транзакцию

    Returns:
        Количество удалённых напоминаний
    """
    today = today or date.today()

    try:
        notifications = get_notifications_by_category_and_month(
            session, category_id, user_id, today.month, today.year
        )
        for notification in notifications:
            session.delete(notification)

        if commit:
            session.commit()
        else:
            session.flush()

        if notifications:
            logger.info(f"Удалено {len(notifications)} напоминаний текущего месяца по категории {category_id}")
        return len(notifications)

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при удалении напоминаний категории {category_id}: {e}")
        raise


def clean_old_notifications(session: Session, days: Optional[int] = None) -> int:
    """
    Удаляет напоминания, созданные раньше чем days дней назад.

    Args:
        session: Активная сессия БД
        days: Срок хранения (по умолчанию settings.notification_retention_days)

    Returns:
        Количество удалённых напоминаний
    """
    if days is None:
        days = settings.notification_retention_days
    cutoff = datetime.now() - timedelta(days=days)

    try:
        deleted = session.query(NotificationDB).filter(
            NotificationDB.created_at < cutoff
        ).delete(synchronize_session=False)
        session.commit()
        logger.info(f"Удалено устаревших напоминаний: {deleted} (старше {days} дн.)")
        return deleted

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при очистке устаревших напоминаний: {e}")
        raise


def get_unread_notifications(session: Session, user_id: str) -> List[NotificationDB]:
    """Непрочитанные напоминания пользователя, ближайший срок первым."""
    return session.query(NotificationDB).options(
        joinedload(NotificationDB.category)
    ).filter(
        NotificationDB.user_id == user_id,
        NotificationDB.is_read.is_(False)
    ).order_by(NotificationDB.due_date.asc()).all()


def get_all_notifications(session: Session, user_id: str) -> List[NotificationDB]:
    """Все напоминания пользователя, новые первыми."""
    return session.query(NotificationDB).options(
        joinedload(NotificationDB.category)
    ).filter(
        NotificationDB.user_id == user_id
    ).order_by(NotificationDB.created_at.desc()).all()


def get_unread_count(session: Session, user_id: str) -> int:
    return session.query(NotificationDB).filter(
        NotificationDB.user_id == user_id,
        NotificationDB.is_read.is_(False)
    ).count()


def delete_notification(session: Session, notification_id: str, user_id: str) -> bool:
    """
    Удаляет одно напоминание.

    Returns:
        True если удалено, False если не найдено
    """
    try:
        notification = session.query(NotificationDB).filter_by(id=notification_id, user_id=user_id).first()
        if notification is None:
            logger.warning(f"Напоминание {notification_id} не найдено для удаления")
            return False

        session.delete(notification)
        session.commit()
        logger.info(f"Напоминание {notification_id} удалено")
        return True

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при удалении напоминания {notification_id}: {e}")
        raise
