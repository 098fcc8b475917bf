"""
Сервис для работы с кредитами.

Предоставляет функции для:
- Создания кредита вместе с собственной категорией (create_loan)
- Изменения кредита с проекцией полей на категорию (update_loan)
- Регистрации и отмены ежемесячного взноса (register_payment, undo_last_payment)
- Отката счётчика взносов при удалении записи журнала
  (rollback_installment_for_entry)
- Архивации и полного удаления (delete_loan)
- Ручного завершения и повторной активации (mark_as_completed, reactivate_loan)
- Запросов (get_loan, get_all_loans, get_active_loans, exists_loan_with_title)

Счётчик оплаченных взносов меняется только одиночным UPDATE с условием,
поэтому он не может стать отрицательным или превысить количество взносов.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Union
import logging

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from obligation_tracker.models import (
    CategoryDB, LoanDB, TransactionDB, NotificationDB, BudgetDB,
    LoanUpdate, TransactionType, LoanDeletionPolicy
)
from obligation_tracker.services.notification_service import delete_current_month_notifications
from obligation_tracker.utils.exceptions import ValidationError
from obligation_tracker.utils.validation import validate_uuid_format

# Настройка логирования
logger = logging.getLogger(__name__)

Number = Union[Decimal, int, float, str]


def _to_decimal(value: Number, field_name: str) -> Decimal:
    """
    Приводит сумму к Decimal.

    Raises:
        ValidationError: Значение не является конечным числом
    """
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        _raise_validation(f"Некорректное значение поля {field_name}: {value!r}")

    if not result.is_finite():
        _raise_validation(f"Некорректное значение поля {field_name}: {value!r}")
    return result


def _project_onto_category(loan: LoanDB, category: CategoryDB, reminder_enabled: bool) -> None:
    """
    Записывает поля кредита в его категорию.

    Кредит - единственный источник истины: название, иконка, день платежа
    и сумма взноса категории всегда берутся из кредита.
    """
    category.name = f"{loan.icon} {loan.name}"
    category.icon = loan.icon
    category.type = TransactionType.EXPENSE
    category.user_id = loan.user_id
    category.is_fixed_expense = reminder_enabled
    category.day_of_month = loan.due_day if reminder_enabled else None
    category.estimated_amount = loan.installment_amount if reminder_enabled else None


def _raise_validation(message: str) -> None:
    logger.error(message)
    raise ValidationError(message)


def exists_loan_with_title(
    session: Session,
    user_id: str,
    name: str,
    exclude_loan_id: Optional[str] = None
) -> bool:
    """
    Проверяет, есть ли у пользователя кредит с таким названием.

    Args:
        session: Активная сессия БД
        user_id: Владелец
        name: Название для проверки
        exclude_loan_id: ID кредита, который не учитывается (при редактировании)
    """
    query = session.query(LoanDB).filter(LoanDB.user_id == user_id, LoanDB.name == name.strip())
    if exclude_loan_id is not None:
        query = query.filter(LoanDB.id != exclude_loan_id)
    return session.query(query.exists()).scalar()


def get_loan(session: Session, loan_id: str, user_id: str) -> Optional[LoanDB]:
    """Получает кредит по ID (None, если не найден или чужой)."""
    return session.query(LoanDB).filter_by(id=loan_id, user_id=user_id).first()


def get_all_loans(session: Session, user_id: str) -> List[LoanDB]:
    """Все кредиты пользователя: сначала активные, затем по дате начала (новые первыми)."""
    return session.query(LoanDB).filter(
        LoanDB.user_id == user_id
    ).order_by(LoanDB.is_active.desc(), LoanDB.start_date.desc()).all()


def get_active_loans(session: Session, user_id: str) -> List[LoanDB]:
    return session.query(LoanDB).filter(
        LoanDB.user_id == user_id,
        LoanDB.is_active.is_(True)
    ).order_by(LoanDB.start_date.desc()).all()


def create_loan(
    session: Session,
    user_id: str,
    name: str,
    principal_amount: Number,
    installment_amount: Number,
    installments_count: int,
    due_day: int,
    start_date: Optional[date] = None,
    icon: str = "🏦",
    description: Optional[str] = None,
    wants_reminder: bool = False
) -> LoanDB:
    """
    Создаёт кредит и связанную с ним категорию расходов.

    Правила проверяются по порядку, ошибка называет первое нарушенное:
    сумма > 0, взнос > 0, количество взносов >= 1, день платежа 1-31,
    название не пустое и уникально для пользователя.

    Категория создаётся в той же транзакции. При wants_reminder она
    помечается как фиксированный расход (день = due_day, сумма = взнос),
    и планировщик начнёт формировать напоминания со следующего прохода.
    Сразу напоминание не создаётся.

    Args:
        session: Активная сессия БД
        user_id: Владелец кредита
        name: Название кредита
        principal_amount: Фактически полученная сумма
        installment_amount: Сумма ежемесячного взноса
        installments_count: Количество взносов
        due_day: День месяца для платежа (1-31)
        start_date: Дата начала (по умолчанию сегодня)
        icon: Иконка кредита
        description: Описание
        wants_reminder: Включить напоминания по категории кредита

    Returns:
        Созданный кредит (is_active=True, installments_paid=0)

    Raises:
        ValidationError: При нарушении правил валидации
        SQLAlchemyError: При ошибках работы с БД

    Example:
        >>> loan = create_loan(
        ...     session, user_id, "Автокредит",
        ...     principal_amount=Decimal('10000'),
        ...     installment_amount=Decimal('1000'),
        ...     installments_count=12,
        ...     due_day=15,
        ...     wants_reminder=True
        ... )
        >>> loan.category.is_fixed_expense
        True
    """
    try:
        principal = _to_decimal(principal_amount, "principal_amount")
        installment = _to_decimal(installment_amount, "installment_amount")

        if principal <= 0:
            _raise_validation(f"Сумма кредита должна быть больше 0, получено: {principal}")
        if installment <= 0:
            _raise_validation(f"Сумма взноса должна быть больше 0, получено: {installment}")
        if installments_count is None or installments_count < 1:
            _raise_validation(f"Количество взносов должно быть не меньше 1, получено: {installments_count}")
        if due_day is None or not 1 <= due_day <= 31:
            _raise_validation(f"День платежа должен быть в диапазоне 1-31, получено: {due_day}")
        if not name or not name.strip():
            _raise_validation("Название кредита не может быть пустым")

        name = name.strip()
        if exists_loan_with_title(session, user_id, name):
            _raise_validation(f"Кредит с названием '{name}' уже существует")

        loan = LoanDB(
            user_id=user_id,
            name=name,
            description=description,
            principal_amount=principal,
            installment_amount=installment,
            installments_count=installments_count,
            due_day=due_day,
            start_date=start_date or date.today(),
            icon=icon,
            is_active=True,
            installments_paid=0
        )

        category = CategoryDB()
        _project_onto_category(loan, category, wants_reminder)
        loan.category = category

        session.add(category)
        session.add(loan)
        session.commit()
        session.refresh(loan)

        logger.info(
            f"Создан кредит '{loan.name}' (ID: {loan.id}): {installments_count} x {installment}, "
            f"категория {category.id}, напоминания: {'вкл' if wants_reminder else 'выкл'}"
        )
        return loan

    except ValidationError:
        session.rollback()
        raise

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при создании кредита '{name}': {e}")
        raise


def update_loan(
    session: Session,
    loan_id: str,
    user_id: str,
    loan_update: LoanUpdate,
    today: Optional[date] = None
) -> Optional[LoanDB]:
    """
    Обновляет кредит и проецирует изменения на его категорию.

    Изменение расписания (день платежа, сумма взноса, признак напоминания)
    удаляет напоминания категории за текущий месяц в той же транзакции.

    Args:
        session: Активная сессия БД
        loan_id: ID кредита
        user_id: Владелец
        loan_update: Изменяемые поля (обновляются только указанные)
        today: Текущая дата (по умолчанию date.today())

    Returns:
        Обновлённый кредит или None, если кредит не найден

    Raises:
        ValidationError: Название занято или количество взносов меньше оплаченных
        SQLAlchemyError: При ошибках работы с БД
    """
    try:
        loan = get_loan(session, loan_id, user_id)
        if loan is None:
            logger.warning(f"Кредит {loan_id} не найден для обновления")
            return None

        update_data = loan_update.model_dump(exclude_unset=True)
        reminder_enabled = update_data.pop("reminder_enabled", None)
        category = loan.category

        if "name" in update_data and update_data["name"] != loan.name:
            if exists_loan_with_title(session, user_id, update_data["name"], exclude_loan_id=loan.id):
                _raise_validation(f"Кредит с названием '{update_data['name']}' уже существует")

        new_count = update_data.get("installments_count", loan.installments_count)
        if new_count < loan.installments_paid:
            _raise_validation(
                f"Количество взносов ({new_count}) не может быть меньше уже оплаченных ({loan.installments_paid})"
            )

        if reminder_enabled is None:
            reminder_enabled = category.is_fixed_expense

        schedule_changed = (
            update_data.get("due_day", loan.due_day) != loan.due_day
            or update_data.get("installment_amount", loan.installment_amount) != loan.installment_amount
            or reminder_enabled != category.is_fixed_expense
        )

        for field, value in update_data.items():
            setattr(loan, field, value)

        if loan.is_completed and loan.is_active:
            loan.is_active = False
            logger.info(f"Кредит {loan.id} полностью оплачен после изменения и деактивирован")

        _project_onto_category(loan, category, reminder_enabled)

        if schedule_changed:
            delete_current_month_notifications(session, category.id, user_id, today=today, commit=False)

        session.commit()
        session.refresh(loan)

        logger.info(f"Кредит {loan.id} обновлён: {list(update_data.keys())}")
        return loan

    except ValidationError:
        session.rollback()
        raise

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при обновлении кредита {loan_id}: {e}")
        raise


def _decrement_installments(session: Session, loan: LoanDB) -> bool:
    """
    Уменьшает счётчик взносов на 1 (не ниже 0) без коммита.

    Если кредит был погашен и поэтому деактивирован, после уменьшения
    он снова становится активным.

    Returns:
        True если счётчик изменён
    """
    session.refresh(loan)
    was_completed = loan.is_completed

    updated = session.query(LoanDB).filter(
        LoanDB.id == loan.id,
        LoanDB.installments_paid > 0
    ).update(
        {LoanDB.installments_paid: LoanDB.installments_paid - 1},
        synchronize_session=False
    )
    if not updated:
        return False

    session.refresh(loan)
    if was_completed and not loan.is_active and loan.installments_paid < loan.installments_count:
        loan.is_active = True
        logger.info(f"Кредит {loan.id} снова активен ({loan.installments_paid}/{loan.installments_count})")

    return True


def rollback_installment_for_entry(session: Session, entry: TransactionDB) -> bool:
    """
    Откатывает взнос кредита, которому принадлежит удаляемая запись журнала.

    Не фиксирует транзакцию: вызывающий код удаляет запись и делает commit.

    Args:
        session: Активная сессия БД
        entry: Удаляемая запись журнала

    Returns:
        True если запись относилась к кредиту и счётчик уменьшен
    """
    if entry.type != TransactionType.EXPENSE:
        return False

    loan = session.query(LoanDB).filter_by(category_id=entry.category_id, user_id=entry.user_id).first()
    if loan is None:
        return False

    if not _decrement_installments(session, loan):
        logger.warning(f"Счётчик взносов кредита {loan.id} уже равен 0, откат не выполнен")
        return False

    logger.info(f"Откат взноса кредита {loan.id} при удалении записи {entry.id}")
    return True


def register_payment(
    session: Session,
    loan_id: str,
    user_id: str,
    today: Optional[date] = None
) -> bool:
    """
    Регистрирует очередной взнос по кредиту.

    Увеличивает счётчик оплаченных взносов и добавляет расход на сумму
    взноса в категорию кредита с датой today. После последнего взноса
    кредит деактивируется.

    Args:
        session: Активная сессия БД
        loan_id: ID кредита
        user_id: Владелец
        today: Дата платежа (по умолчанию date.today())

    Returns:
        True при успехе. False если кредит не найден, неактивен
        или уже полностью оплачен

    Raises:
        SQLAlchemyError: При ошибках работы с БД
    """
    today = today or date.today()

    try:
        validate_uuid_format(loan_id, "loan_id")

        loan = get_loan(session, loan_id, user_id)
        if loan is None:
            logger.warning(f"Кредит {loan_id} не найден для регистрации взноса")
            return False

        if not loan.is_active or loan.is_completed:
            logger.warning(f"Взнос по кредиту {loan_id} не принят: кредит неактивен или погашен")
            return False

        updated = session.query(LoanDB).filter(
            LoanDB.id == loan.id,
            LoanDB.is_active.is_(True),
            LoanDB.installments_paid < LoanDB.installments_count
        ).update(
            {LoanDB.installments_paid: LoanDB.installments_paid + 1},
            synchronize_session=False
        )
        if not updated:
            session.rollback()
            logger.warning(f"Взнос по кредиту {loan_id} не принят: состояние кредита изменилось")
            return False

        session.refresh(loan)

        entry = TransactionDB(
            user_id=user_id,
            amount=loan.installment_amount,
            type=TransactionType.EXPENSE,
            category_id=loan.category_id,
            description=f"Взнос {loan.installments_paid}/{loan.installments_count} - {loan.name}",
            transaction_date=today
        )
        session.add(entry)

        if loan.is_completed:
            loan.is_active = False
            logger.info(f"Кредит {loan.id} полностью погашен и деактивирован")

        session.commit()

        logger.info(f"Зарегистрирован взнос {loan.installments_paid}/{loan.installments_count} по кредиту {loan.id}")
        return True

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при регистрации взноса по кредиту {loan_id}: {e}")
        raise


def undo_last_payment(session: Session, loan_id: str, user_id: str) -> bool:
    """
    Отменяет последний зарегистрированный взнос.

    Точная обратная операция к register_payment: удаляет последний расход
    в категории кредита (по дате, затем по времени создания, затем по ID),
    уменьшает счётчик и снова активирует кредит, если он был погашен.

    Если счётчик > 0, а расходов в категории нет, счётчик сбрасывается
    в 0 и операция считается неуспешной.

    Returns:
        True если взнос отменён, иначе False
    """
    try:
        loan = get_loan(session, loan_id, user_id)
        if loan is None:
            logger.warning(f"Кредит {loan_id} не найден для отмены взноса")
            return False

        if loan.installments_paid <= 0:
            logger.warning(f"У кредита {loan_id} нет оплаченных взносов для отмены")
            return False

        last_entry = session.query(TransactionDB).filter(
            TransactionDB.user_id == user_id,
            TransactionDB.category_id == loan.category_id,
            TransactionDB.type == TransactionType.EXPENSE
        ).order_by(
            TransactionDB.transaction_date.desc(),
            TransactionDB.created_at.desc(),
            TransactionDB.id.desc()
        ).first()

        if last_entry is None:
            loan.installments_paid = 0
            session.commit()
            logger.warning(
                f"Для кредита {loan_id} не найдено записей о взносах, счётчик сброшен в 0"
            )
            return False

        if not _decrement_installments(session, loan):
            session.rollback()
            logger.warning(f"Взнос по кредиту {loan_id} не отменён: счётчик уже равен 0")
            return False

        session.delete(last_entry)
        session.commit()

        logger.info(
            f"Отменён взнос по кредиту {loan_id}, оплачено {loan.installments_paid}/{loan.installments_count}"
        )
        return True

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при отмене взноса по кредиту {loan_id}: {e}")
        raise


def delete_loan(
    session: Session,
    loan_id: str,
    user_id: str,
    policy: LoanDeletionPolicy = LoanDeletionPolicy.ARCHIVE
) -> bool:
    """
    Удаляет кредит согласно политике.

    ARCHIVE: кредит деактивируется, история сохраняется.
    PURGE: удаляются напоминания, записи журнала и бюджеты категории
    кредита, затем сам кредит и категория. Порядок DELETE определяет
    unit of work по внешним ключам: дочерние записи раньше категории.

    Returns:
        True если кредит найден и обработан, False если не найден
    """
    try:
        loan = get_loan(session, loan_id, user_id)
        if loan is None:
            logger.warning(f"Кредит {loan_id} не найден для удаления")
            return False

        if policy == LoanDeletionPolicy.ARCHIVE:
            loan.is_active = False
            session.commit()
            logger.info(f"Кредит {loan_id} архивирован")
            return True

        category = loan.category

        notifications = session.query(NotificationDB).filter_by(category_id=category.id).all()
        entries = session.query(TransactionDB).filter_by(category_id=category.id).all()
        budgets = session.query(BudgetDB).filter_by(category_id=category.id).all()

        for child in [*notifications, *entries, *budgets]:
            session.delete(child)
        session.delete(loan)
        session.delete(category)
        session.commit()

        logger.info(
            f"Кредит {loan_id} удалён полностью: напоминаний {len(notifications)}, "
            f"записей {len(entries)}, бюджетов {len(budgets)}"
        )
        return True

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при удалении кредита {loan_id}: {e}")
        raise


def mark_as_completed(session: Session, loan_id: str, user_id: str) -> bool:
    """
    Вручную деактивирует кредит (счётчик взносов не меняется).
    """
    try:
        loan = get_loan(session, loan_id, user_id)
        if loan is None:
            return False

        loan.is_active = False
        session.commit()
        logger.info(f"Кредит {loan_id} отмечен завершённым")
        return True

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при завершении кредита {loan_id}: {e}")
        raise


def reactivate_loan(session: Session, loan_id: str, user_id: str) -> bool:
    """
    Снова активирует деактивированный, но не погашенный кредит.

    Returns:
        True если кредит активирован. False если не найден,
        уже активен или полностью оплачен
    """
    try:
        loan = get_loan(session, loan_id, user_id)
        if loan is None:
            return False

        if loan.is_active or loan.is_completed:
            logger.warning(f"Кредит {loan_id} нельзя активировать: уже активен или погашен")
            return False

        loan.is_active = True
        session.commit()
        logger.info(f"Кредит {loan_id} снова активен")
        return True

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при активации кредита {loan_id}: {e}")
        raise
