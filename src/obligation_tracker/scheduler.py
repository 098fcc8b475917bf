"""
Периодический планировщик напоминаний о фиксированных расходах.

Работает в отдельном фоновом потоке независимо от остального приложения:
раз в settings.scheduler_interval_hours часов выполняет полный проход
generate_notifications_for_fixed_expenses в собственной сессии БД.
Ошибка прохода записывается в лог и не останавливает планировщик;
пропущенные проходы восполняются веткой просрочки на следующем проходе.
"""

import logging
import threading
from contextlib import AbstractContextManager
from datetime import date
from typing import Callable, Optional

from sqlalchemy.orm import Session

from obligation_tracker.config import settings
from obligation_tracker.database import get_db_session
from obligation_tracker.services.notification_service import generate_notifications_for_fixed_expenses

# Настройка логирования
logger = logging.getLogger(__name__)


class NotificationScheduler:
    """
    Фоновый запуск формирования напоминаний по таймеру.

    Args:
        interval_seconds: Интервал между проходами
            (по умолчанию settings.scheduler_interval_hours)
        session_factory: Фабрика контекстных менеджеров сессии БД
            (по умолчанию database.get_db_session)

    Example:
        >>> scheduler = NotificationScheduler()
        >>> scheduler.start()
        >>> ...
        >>> scheduler.stop()
    """

    def __init__(
        self,
        interval_seconds: Optional[float] = None,
        session_factory: Callable[[], AbstractContextManager[Session]] = get_db_session
    ):
        if interval_seconds is None:
            interval_seconds = settings.scheduler_interval_hours * 3600
        self.interval_seconds = interval_seconds
        self._session_factory = session_factory
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self, today: Optional[date] = None) -> int:
        """
        Выполняет один полный проход в новой сессии.

        Returns:
            Количество созданных напоминаний
        """
        with self._session_factory() as session:
            return generate_notifications_for_fixed_expenses(session, today=today)

    def _run(self) -> None:
        logger.info(f"Планировщик напоминаний запущен, интервал {self.interval_seconds} с")

        while not self._stop_event.is_set():
            try:
                created = self.run_once()
                logger.info(f"Проход планировщика завершён, создано напоминаний: {created}")
            except Exception:
                logger.exception("Ошибка при формировании напоминаний, повтор на следующем проходе")

            self._stop_event.wait(self.interval_seconds)

        logger.info("Планировщик напоминаний остановлен")

    def start(self) -> None:
        """Запускает фоновый поток (повторный вызов игнорируется)."""
        if self.is_running:
            logger.warning("Планировщик напоминаний уже запущен")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="notification-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Останавливает поток и ждёт завершения текущего прохода."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
