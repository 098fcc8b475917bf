"""
Конфигурация pytest для тестов obligation_tracker.
"""
import os
import tempfile

# Данные приложения (конфиг, логи) пишутся во временную директорию
os.environ.setdefault("OBLIGATION_TRACKER_DATA_DIR", tempfile.mkdtemp(prefix="obligation_tracker_tests_"))

import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from obligation_tracker.models import Base, CategoryDB, TransactionType

from test_factories import create_test_category


@pytest.fixture
def db_session():
    """
    Централизованная фикстура для создания временной БД и сессии.
    Внешние ключи SQLite включены. Автоматически закрывает соединение после теста.
    """
    engine = create_engine("sqlite:///:memory:")

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    session = Session()

    yield session

    # Закрываем сессию и соединение
    session.close()
    engine.dispose()


@pytest.fixture
def user_id():
    return "user-" + uuid.uuid4().hex[:8]


@pytest.fixture
def other_user_id():
    return "other-" + uuid.uuid4().hex[:8]


@pytest.fixture
def expense_category(db_session, user_id) -> CategoryDB:
    """Обычная категория расходов пользователя."""
    category = create_test_category(user_id=user_id, name="Продукты")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture
def income_category(db_session, user_id) -> CategoryDB:
    category = create_test_category(user_id=user_id, name="Зарплата", type=TransactionType.INCOME, icon="💰")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture
def fixed_category(db_session, user_id) -> CategoryDB:
    """
    Фиксированный расход: аренда 5-го числа на 1500.
    """
    category = create_test_category(
        user_id=user_id,
        name="Аренда",
        icon="🏠",
        is_fixed_expense=True,
        day_of_month=5,
        estimated_amount=Decimal('1500.00'),
    )
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture
def today():
    """Фиксированная "текущая" дата для детерминированных тестов."""
    return date(2025, 3, 20)
