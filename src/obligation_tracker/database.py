"""
Модуль управления базой данных для Obligation Tracker.

Содержит функции для:
- Инициализации базы данных и создания таблиц
- Управления сессиями БД через контекстный менеджер
- Обработки ошибок с автоматическим откатом транзакций

Путь к базе данных определяется в config.py через settings.db_path
"""

from contextlib import contextmanager
from typing import Generator, Optional
import logging
import atexit

from sqlalchemy import create_engine, event, Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError

from obligation_tracker.config import settings

# Настройка логирования
logger = logging.getLogger(__name__)


# Глобальные переменные для engine и session factory
_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def _enable_sqlite_foreign_keys(engine: Engine) -> None:
    """Включает поддержку foreign keys для каждого нового соединения SQLite."""
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def init_db(database_url: Optional[str] = None) -> Engine:
    """
    Инициализирует подключение к базе данных и создаёт таблицы.

    Args:
        database_url: URL базы данных. По умолчанию SQLite файл из settings.db_path

    Returns:
        Engine: Созданный engine
    """
    global _engine, _SessionLocal

    # Import inside function
    from obligation_tracker.models import Base

    try:
        if database_url is None:
            database_url = f"sqlite:///{settings.db_path}"

        logger.info(f"Инициализация базы данных: {database_url}")

        connect_args = {}
        if database_url.startswith("sqlite"):
            # Планировщик работает в отдельном потоке
            connect_args["check_same_thread"] = False

        _engine = create_engine(database_url, connect_args=connect_args, echo=False)
        _enable_sqlite_foreign_keys(_engine)

        # Создаём все таблицы на основе моделей
        Base.metadata.create_all(bind=_engine)
        logger.info("Таблицы базы данных успешно созданы/проверены")

        # Создаём фабрику сессий
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=_engine
        )

        # Регистрируем автоматическое закрытие при завершении процесса
        atexit.register(close_db)

        logger.info("База данных успешно инициализирована")
        return _engine

    except SQLAlchemyError as e:
        logger.error(f"Ошибка при инициализации базы данных: {e}")
        raise


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Контекстный менеджер для работы с сессией базы данных.

    Example:
        >>> with get_db_session() as session:
        ...     loans = loan_service.get_active_loans(session, user_id)
    """
    if _SessionLocal is None:
        error_msg = "База данных не инициализирована. Вызовите init_db() перед использованием."
        logger.error(error_msg)
        raise RuntimeError(error_msg)

    session: Session = _SessionLocal()

    try:
        logger.debug("Создана новая сессия БД")
        yield session

    except SQLAlchemyError as e:
        # Откатываем транзакцию при ошибке БД
        logger.error(f"Ошибка SQLAlchemy, откат транзакции: {e}")
        session.rollback()
        raise

    except Exception as e:
        # Откатываем транзакцию при любой другой ошибке
        logger.error(f"Неожиданная ошибка, откат транзакции: {e}")
        session.rollback()
        raise

    finally:
        # Всегда закрываем сессию
        session.close()
        logger.debug("Сессия БД закрыта")


def close_db() -> None:
    """
    Закрывает соединение с базой данных и освобождает ресурсы.
    """
    global _engine, _SessionLocal

    if _engine is not None:
        logger.info("Закрытие соединения с базой данных...")
        _engine.dispose()
        _engine = None
        _SessionLocal = None
        logger.info("Соединение с базой данных закрыто")
