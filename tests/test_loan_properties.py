"""
Тесты жизненного цикла кредитов.

Тестирует:
- Property 6: Регистрация и отмена взноса - взаимно обратные операции
- Property 7: Счётчик взносов не выходит за пределы [0, количество взносов]
- Валидацию при создании (первое нарушенное правило)
- Проекцию полей кредита на его категорию
- Погашение, повторную активацию, архивацию и полное удаление
- Откат взноса при ручном удалении записи журнала
"""

from contextlib import contextmanager
from datetime import date
from decimal import Decimal
import uuid

import pytest
from hypothesis import given, strategies as st, settings
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from obligation_tracker.models import (
    Base, CategoryDB, TransactionDB, NotificationDB, BudgetDB, LoanDB,
    LoanUpdate, LoanDeletionPolicy, TransactionType, CategoryUpdate
)
from obligation_tracker.services.loan_service import (
    create_loan,
    update_loan,
    delete_loan,
    register_payment,
    undo_last_payment,
    mark_as_completed,
    reactivate_loan,
    get_loan,
    get_all_loans,
    get_active_loans,
    exists_loan_with_title,
)
from obligation_tracker.services import loan_service
from obligation_tracker.services.notification_service import generate_notifications_for_fixed_expenses
from obligation_tracker.services.transaction_service import delete_transaction, get_transactions
from obligation_tracker.services.category_service import update_category, delete_category
from obligation_tracker.utils.exceptions import ValidationError, BusinessLogicError

from test_factories import create_test_notification, create_test_budget

# Создаём тестовый движок БД в памяти
test_engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False}
)


@event.listens_for(test_engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Включает поддержку foreign keys в SQLite."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


Base.metadata.create_all(test_engine)
TestSessionLocal = sessionmaker(bind=test_engine)


@contextmanager
def get_test_session():
    """Контекстный менеджер для создания тестовой сессии БД."""
    session = TestSessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        # Очищаем данные после использования
        session.query(NotificationDB).delete()
        session.query(TransactionDB).delete()
        session.query(BudgetDB).delete()
        session.query(LoanDB).delete()
        session.query(CategoryDB).delete()
        session.commit()
        session.close()


PAYMENT_DATE = date(2025, 3, 15)

# --- Strategies ---
installment_counts = st.integers(min_value=1, max_value=24)
installment_amounts = st.decimals(min_value=Decimal('1.00'), max_value=Decimal('100000.00'), places=2)


def _create_loan(session, user_id, name="Автокредит", count=12, wants_reminder=False, **kwargs):
    params = dict(
        principal_amount=Decimal('10000.00'),
        installment_amount=Decimal('1000.00'),
        installments_count=count,
        due_day=15,
        start_date=date(2025, 1, 1),
    )
    params.update(kwargs)
    return create_loan(session, user_id, name, wants_reminder=wants_reminder, **params)


def _pay(session, loan, user_id, times):
    for _ in range(times):
        assert register_payment(session, loan.id, user_id, today=PAYMENT_DATE) is True


class TestLoanProperties:
    """Property-based тесты взносов по кредиту."""

    @given(count=installment_counts, amount=installment_amounts, data=st.data())
    @settings(max_examples=25, deadline=None)
    def test_property_6_register_undo_is_inverse(self, count, amount, data):
        """
        Property 6: Для любого кредита с paid < count регистрация взноса
        и его отмена возвращают счётчик, активность и журнал в исходное состояние.
        """
        paid = data.draw(st.integers(min_value=0, max_value=count - 1))

        with get_test_session() as session:
            user_id = str(uuid.uuid4())
            loan = _create_loan(session, user_id, count=count, installment_amount=amount)
            _pay(session, loan, user_id, paid)

            entries_before = session.query(TransactionDB).filter_by(category_id=loan.category_id).count()
            active_before = loan.is_active

            assert register_payment(session, loan.id, user_id, today=PAYMENT_DATE) is True
            assert undo_last_payment(session, loan.id, user_id) is True

            session.refresh(loan)
            assert loan.installments_paid == paid
            assert loan.is_active == active_before
            entries_after = session.query(TransactionDB).filter_by(category_id=loan.category_id).count()
            assert entries_after == entries_before == paid

    @given(count=st.integers(min_value=1, max_value=6), extra=st.integers(min_value=1, max_value=3))
    @settings(max_examples=20, deadline=None)
    def test_property_7_counter_stays_in_range(self, count, extra):
        """
        Property 7: Лишние регистрации и отмены отклоняются, счётчик
        остаётся в пределах [0, count].
        """
        with get_test_session() as session:
            user_id = str(uuid.uuid4())
            loan = _create_loan(session, user_id, count=count)

            results = [register_payment(session, loan.id, user_id, today=PAYMENT_DATE) for _ in range(count + extra)]
            session.refresh(loan)
            assert results.count(True) == count
            assert loan.installments_paid == count
            assert loan.is_active is False

            results = [undo_last_payment(session, loan.id, user_id) for _ in range(count + extra)]
            session.refresh(loan)
            assert results.count(True) == count
            assert loan.installments_paid == 0
            assert loan.is_active is True


class TestLoanCreation:

    @pytest.mark.parametrize("overrides, message", [
        ({"principal_amount": Decimal('0')}, "Сумма кредита"),
        ({"installment_amount": Decimal('-1')}, "Сумма взноса"),
        ({"installments_count": 0}, "Количество взносов"),
        ({"due_day": 32}, "День платежа"),
        ({"name": "   "}, "Название"),
        # Несколько нарушений: сообщается первое по порядку
        ({"principal_amount": Decimal('0'), "due_day": 0}, "Сумма кредита"),
        ({"installments_count": 0, "due_day": 0}, "Количество взносов"),
    ])
    def test_validation_names_first_failing_rule(self, db_session, user_id, overrides, message):
        params = dict(
            name="Кредит",
            principal_amount=Decimal('10000'),
            installment_amount=Decimal('1000'),
            installments_count=12,
            due_day=15,
        )
        params.update(overrides)

        with pytest.raises(ValidationError, match=message):
            create_loan(db_session, user_id, **params)

        assert db_session.query(LoanDB).count() == 0
        assert db_session.query(CategoryDB).count() == 0

    @pytest.mark.parametrize("field, value", [
        ("principal_amount", "abc"),
        ("principal_amount", float("nan")),
        ("principal_amount", "NaN"),
        ("principal_amount", Decimal("Infinity")),
        ("installment_amount", "1 000"),
    ])
    def test_malformed_amount_rejected(self, db_session, user_id, field, value):
        with pytest.raises(ValidationError, match=field):
            _create_loan(db_session, user_id, **{field: value})

        assert db_session.query(LoanDB).count() == 0

    def test_numeric_strings_accepted(self, db_session, user_id):
        loan = _create_loan(db_session, user_id, principal_amount="10000.50", installment_amount=900)

        assert loan.principal_amount == Decimal("10000.50")
        assert loan.installment_amount == Decimal("900")

    def test_title_unique_per_user(self, db_session, user_id, other_user_id):
        _create_loan(db_session, user_id, name="Ипотека")

        with pytest.raises(ValidationError, match="уже существует"):
            _create_loan(db_session, user_id, name="Ипотека")

        # У другого пользователя то же название допустимо
        _create_loan(db_session, other_user_id, name="Ипотека")
        assert exists_loan_with_title(db_session, user_id, "Ипотека")
        assert db_session.query(LoanDB).count() == 2

    def test_creates_owned_category_with_reminder(self, db_session, user_id):
        loan = _create_loan(db_session, user_id, name="Автокредит", wants_reminder=True, icon="🚗")

        category = loan.category
        assert loan.is_active is True
        assert loan.installments_paid == 0
        assert category.name == "🚗 Автокредит"
        assert category.icon == "🚗"
        assert category.type == TransactionType.EXPENSE
        assert category.is_fixed_expense is True
        assert category.day_of_month == 15
        assert category.estimated_amount == Decimal('1000.00')
        assert category.is_loan_owned is True
        # Сразу напоминание не создаётся
        assert db_session.query(NotificationDB).count() == 0

    def test_creates_category_without_reminder(self, db_session, user_id):
        loan = _create_loan(db_session, user_id, wants_reminder=False)

        assert loan.category.is_fixed_expense is False
        assert loan.category.day_of_month is None
        assert loan.category.estimated_amount is None


class TestLoanPayments:

    def test_register_payment_appends_entry(self, db_session, user_id):
        loan = _create_loan(db_session, user_id, name="Ноутбук", count=10)
        _pay(db_session, loan, user_id, 3)

        entries = get_transactions(db_session, user_id, category_id=loan.category_id)

        assert loan.installments_paid == 3
        assert len(entries) == 3
        assert all(e.amount == Decimal('1000.00') for e in entries)
        assert all(e.transaction_date == PAYMENT_DATE for e in entries)
        assert sorted(e.description for e in entries) == [
            "Взнос 1/10 - Ноутбук", "Взнос 2/10 - Ноутбук", "Взнос 3/10 - Ноутбук"
        ]

    def test_register_undo_example(self, db_session, user_id):
        loan = _create_loan(db_session, user_id, count=10)
        _pay(db_session, loan, user_id, 3)

        assert register_payment(db_session, loan.id, user_id, today=PAYMENT_DATE) is True
        assert undo_last_payment(db_session, loan.id, user_id) is True

        db_session.refresh(loan)
        assert (loan.installments_paid, loan.is_active) == (3, True)
        assert len(get_transactions(db_session, user_id, category_id=loan.category_id)) == 3

    def test_completion_and_reactivation_on_undo(self, db_session, user_id):
        loan = _create_loan(db_session, user_id, count=5)
        _pay(db_session, loan, user_id, 5)

        db_session.refresh(loan)
        assert loan.is_active is False
        assert loan.is_completed is True
        assert loan.get_next_payment_date(PAYMENT_DATE) is None
        assert register_payment(db_session, loan.id, user_id, today=PAYMENT_DATE) is False

        assert undo_last_payment(db_session, loan.id, user_id) is True
        db_session.refresh(loan)
        assert (loan.installments_paid, loan.is_active) == (4, True)

    def test_undo_removes_latest_entry(self, db_session, user_id):
        loan = _create_loan(db_session, user_id, count=10)
        register_payment(db_session, loan.id, user_id, today=date(2025, 1, 15))
        register_payment(db_session, loan.id, user_id, today=date(2025, 2, 15))

        undo_last_payment(db_session, loan.id, user_id)

        remaining = get_transactions(db_session, user_id, category_id=loan.category_id)
        assert [e.transaction_date for e in remaining] == [date(2025, 1, 15)]

    def test_undo_fails_when_counter_already_reset(self, db_session, user_id, monkeypatch):
        loan = _create_loan(db_session, user_id)
        _pay(db_session, loan, user_id, 1)
        # Параллельная отмена уже довела счётчик до 0
        monkeypatch.setattr(loan_service, "_decrement_installments", lambda session, loan: False)

        assert undo_last_payment(db_session, loan.id, user_id) is False

        db_session.refresh(loan)
        assert loan.installments_paid == 1
        assert len(get_transactions(db_session, user_id, category_id=loan.category_id)) == 1

    def test_undo_without_payments_fails(self, db_session, user_id):
        loan = _create_loan(db_session, user_id)

        assert undo_last_payment(db_session, loan.id, user_id) is False

    def test_undo_resets_counter_when_entries_missing(self, db_session, user_id):
        loan = _create_loan(db_session, user_id)
        _pay(db_session, loan, user_id, 2)
        db_session.query(TransactionDB).filter_by(category_id=loan.category_id).delete()
        db_session.commit()

        assert undo_last_payment(db_session, loan.id, user_id) is False
        db_session.refresh(loan)
        assert loan.installments_paid == 0

    def test_register_payment_missing_or_foreign_loan(self, db_session, user_id, other_user_id):
        loan = _create_loan(db_session, user_id)

        assert register_payment(db_session, str(uuid.uuid4()), user_id) is False
        assert register_payment(db_session, loan.id, other_user_id) is False
        assert undo_last_payment(db_session, loan.id, other_user_id) is False

    def test_register_payment_archived_loan_fails(self, db_session, user_id):
        loan = _create_loan(db_session, user_id)
        delete_loan(db_session, loan.id, user_id)

        assert register_payment(db_session, loan.id, user_id, today=PAYMENT_DATE) is False

    def test_manual_entry_deletion_rolls_back_counter(self, db_session, user_id):
        loan = _create_loan(db_session, user_id, count=2)
        _pay(db_session, loan, user_id, 2)
        db_session.refresh(loan)
        assert loan.is_active is False

        entry = get_transactions(db_session, user_id, category_id=loan.category_id)[0]
        assert delete_transaction(db_session, user_id, entry.id) is True

        db_session.refresh(loan)
        assert (loan.installments_paid, loan.is_active) == (1, True)

    def test_manual_deletion_keeps_archived_loan_inactive(self, db_session, user_id):
        loan = _create_loan(db_session, user_id, count=5)
        _pay(db_session, loan, user_id, 2)
        delete_loan(db_session, loan.id, user_id, LoanDeletionPolicy.ARCHIVE)

        entry = get_transactions(db_session, user_id, category_id=loan.category_id)[0]
        delete_transaction(db_session, user_id, entry.id)

        db_session.refresh(loan)
        assert (loan.installments_paid, loan.is_active) == (1, False)


class TestLoanUpdate:

    def test_update_projects_onto_category(self, db_session, user_id):
        loan = _create_loan(db_session, user_id, name="Старое", wants_reminder=True)

        updated = update_loan(db_session, loan.id, user_id, LoanUpdate(
            name="Новое", icon="💳", due_day=20, installment_amount=Decimal('1200')
        ))

        category = updated.category
        assert category.name == "💳 Новое"
        assert category.icon == "💳"
        assert category.day_of_month == 20
        assert category.estimated_amount == Decimal('1200.00')

    def test_schedule_change_clears_current_month_notifications(self, db_session, user_id):
        loan = _create_loan(db_session, user_id, wants_reminder=True)
        today = date(2025, 3, 10)
        db_session.add_all([
            create_test_notification(category_id=loan.category_id, user_id=user_id, due_date=date(2025, 3, 15)),
            create_test_notification(category_id=loan.category_id, user_id=user_id, due_date=date(2025, 2, 15)),
        ])
        db_session.commit()

        update_loan(db_session, loan.id, user_id, LoanUpdate(due_day=25), today=today)

        remaining = db_session.query(NotificationDB).all()
        assert [n.due_date for n in remaining] == [date(2025, 2, 15)]

    def test_description_change_keeps_notifications(self, db_session, user_id):
        loan = _create_loan(db_session, user_id, wants_reminder=True)
        db_session.add(create_test_notification(
            category_id=loan.category_id, user_id=user_id, due_date=date(2025, 3, 15)
        ))
        db_session.commit()

        update_loan(db_session, loan.id, user_id, LoanUpdate(description="Без изменений графика"),
                    today=date(2025, 3, 10))

        assert db_session.query(NotificationDB).count() == 1

    def test_disable_reminder(self, db_session, user_id):
        loan = _create_loan(db_session, user_id, wants_reminder=True)

        updated = update_loan(db_session, loan.id, user_id, LoanUpdate(reminder_enabled=False))

        assert updated.category.is_fixed_expense is False
        assert updated.category.day_of_month is None

    def test_update_rejects_count_below_paid(self, db_session, user_id):
        loan = _create_loan(db_session, user_id, count=10)
        _pay(db_session, loan, user_id, 3)

        with pytest.raises(ValidationError):
            update_loan(db_session, loan.id, user_id, LoanUpdate(installments_count=2))

        db_session.refresh(loan)
        assert loan.installments_count == 10

    def test_update_rejects_duplicate_title(self, db_session, user_id):
        _create_loan(db_session, user_id, name="Первый")
        second = _create_loan(db_session, user_id, name="Второй")

        with pytest.raises(ValidationError):
            update_loan(db_session, second.id, user_id, LoanUpdate(name="Первый"))

    def test_update_missing_loan(self, db_session, user_id):
        assert update_loan(db_session, str(uuid.uuid4()), user_id, LoanUpdate(name="X")) is None

    def test_category_api_refuses_loan_category(self, db_session, user_id):
        loan = _create_loan(db_session, user_id)

        with pytest.raises(BusinessLogicError):
            update_category(db_session, loan.category_id, user_id, CategoryUpdate(name="Другое"))
        with pytest.raises(BusinessLogicError):
            delete_category(db_session, loan.category_id, user_id)


class TestLoanDeletion:

    def test_archive_keeps_history(self, db_session, user_id):
        loan = _create_loan(db_session, user_id)
        _pay(db_session, loan, user_id, 2)

        assert delete_loan(db_session, loan.id, user_id) is True

        db_session.refresh(loan)
        assert loan.is_active is False
        assert db_session.query(TransactionDB).count() == 2
        assert db_session.query(CategoryDB).count() == 1
        assert get_active_loans(db_session, user_id) == []
        assert len(get_all_loans(db_session, user_id)) == 1

    def test_purge_removes_everything(self, db_session, user_id):
        loan = _create_loan(db_session, user_id, wants_reminder=True)
        _pay(db_session, loan, user_id, 2)
        db_session.add(create_test_notification(
            category_id=loan.category_id, user_id=user_id, due_date=date(2025, 3, 15)
        ))
        db_session.add(create_test_budget(category_id=loan.category_id, user_id=user_id))
        db_session.commit()
        loan_id = loan.id

        assert delete_loan(db_session, loan_id, user_id, LoanDeletionPolicy.PURGE) is True

        assert get_loan(db_session, loan_id, user_id) is None
        assert db_session.query(LoanDB).count() == 0
        assert db_session.query(CategoryDB).count() == 0
        assert db_session.query(TransactionDB).count() == 0
        assert db_session.query(NotificationDB).count() == 0
        assert db_session.query(BudgetDB).count() == 0

    def test_purge_leaves_other_loans(self, db_session, user_id):
        keep = _create_loan(db_session, user_id, name="Оставить")
        drop = _create_loan(db_session, user_id, name="Удалить")
        _pay(db_session, keep, user_id, 1)
        _pay(db_session, drop, user_id, 1)

        delete_loan(db_session, drop.id, user_id, LoanDeletionPolicy.PURGE)

        assert [loan.name for loan in get_all_loans(db_session, user_id)] == ["Оставить"]
        assert db_session.query(TransactionDB).count() == 1

    def test_delete_missing_loan(self, db_session, user_id):
        assert delete_loan(db_session, str(uuid.uuid4()), user_id) is False


class TestLoanStatus:

    def test_mark_as_completed_and_reactivate(self, db_session, user_id):
        loan = _create_loan(db_session, user_id, count=10)
        _pay(db_session, loan, user_id, 2)

        assert mark_as_completed(db_session, loan.id, user_id) is True
        db_session.refresh(loan)
        assert loan.is_active is False
        assert loan.installments_paid == 2

        assert reactivate_loan(db_session, loan.id, user_id) is True
        db_session.refresh(loan)
        assert loan.is_active is True
        # Уже активный кредит повторно не активируется
        assert reactivate_loan(db_session, loan.id, user_id) is False

    def test_completed_loan_cannot_be_reactivated(self, db_session, user_id):
        loan = _create_loan(db_session, user_id, count=1)
        _pay(db_session, loan, user_id, 1)

        assert reactivate_loan(db_session, loan.id, user_id) is False
        assert mark_as_completed(db_session, str(uuid.uuid4()), user_id) is False


class TestLoanReminders:

    def test_active_loan_overdue_reminder(self, db_session, user_id):
        loan = _create_loan(db_session, user_id, count=5, wants_reminder=True)
        _pay(db_session, loan, user_id, 2)

        assert generate_notifications_for_fixed_expenses(db_session, today=date(2025, 4, 20)) == 1

    def test_completed_loan_not_reminded(self, db_session, user_id):
        loan = _create_loan(db_session, user_id, count=2, wants_reminder=True)
        _pay(db_session, loan, user_id, 2)

        assert generate_notifications_for_fixed_expenses(db_session, today=date(2025, 4, 20)) == 0
        assert db_session.query(NotificationDB).count() == 0

    def test_archived_loan_not_reminded_until_reactivated(self, db_session, user_id):
        loan = _create_loan(db_session, user_id, count=5, wants_reminder=True)
        delete_loan(db_session, loan.id, user_id, LoanDeletionPolicy.ARCHIVE)

        assert generate_notifications_for_fixed_expenses(db_session, today=date(2025, 4, 20)) == 0

        assert reactivate_loan(db_session, loan.id, user_id) is True
        assert generate_notifications_for_fixed_expenses(db_session, today=date(2025, 4, 20)) == 1
