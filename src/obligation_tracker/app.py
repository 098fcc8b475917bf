import time

from obligation_tracker.config import settings
from obligation_tracker.database import init_db, close_db, get_db_session
from obligation_tracker.scheduler import NotificationScheduler
from obligation_tracker.services.notification_service import clean_old_notifications
from obligation_tracker.utils.logger import setup_logging, get_logger

logger = get_logger(__name__)


def main() -> int:
    # 1. Настройка логирования
    setup_logging()
    logger.info(f"Запуск {settings.APP_NAME} {settings.VERSION}")

    # 2. Инициализация БД
    try:
        init_db()
    except Exception as e:
        logger.error(f"Ошибка инициализации БД: {e}")
        return 1

    # 3. Очистка устаревших напоминаний
    with get_db_session() as session:
        clean_old_notifications(session)

    # 4. Планировщик напоминаний работает до прерывания процесса
    scheduler = NotificationScheduler()
    scheduler.start()

    try:
        while scheduler.is_running:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Получен сигнал остановки")
    finally:
        scheduler.stop()
        close_db()

    return 0
