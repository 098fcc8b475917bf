"""
Модуль конфигурации Obligation Tracker.

Содержит настройки:
- Основные параметры приложения (название, версия)
- Настройки базы данных (путь)
- Параметры планировщика напоминаний (интервал, окно, срок хранения)
- Пороги для бюджетов и дашборда
- Настройки логирования
- Персистентность настроек (загрузка/сохранение)
- Управление пользовательской директорией данных
"""

import os
import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

class Config:
    """
    Класс конфигурации приложения.
    Реализует паттерн Singleton для доступа к настройкам из любой части приложения.

    Все пользовательские данные (БД, логи, настройки) хранятся в
    директории ~/.obligation_tracker_data/. Каталог можно переопределить
    переменной окружения OBLIGATION_TRACKER_DATA_DIR.
    """

    _instance = None

    # Константы приложения
    APP_NAME = "Obligation Tracker"
    VERSION = "1.0.0"

    @staticmethod
    def get_user_data_dir() -> Path:
        """
        Возвращает путь к директории пользовательских данных.

        Создаёт директорию и поддиректорию logs/ для файлов логов.

        Returns:
            Path: Путь к директории данных
        """
        override = os.environ.get("OBLIGATION_TRACKER_DATA_DIR")
        data_dir = Path(override) if override else Path.home() / ".obligation_tracker_data"

        # Создаём основную директорию, если не существует
        data_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Директория пользовательских данных: {data_dir}")

        # Создаём поддиректорию для логов
        logs_dir = data_dir / "logs"
        logs_dir.mkdir(exist_ok=True)
        logger.debug(f"Директория логов: {logs_dir}")

        return data_dir

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._initialized = True

        # Получаем директорию пользовательских данных
        self.user_data_dir = self.get_user_data_dir()

        # Определяем пути к файлам
        self.db_path: str = str(self.user_data_dir / "obligations.db")
        self.config_file: str = str(self.user_data_dir / "config.json")
        self.log_file: str = str(self.user_data_dir / "logs" / "obligation_tracker.log")

        # Настройки логирования
        self.log_level: str = "INFO"

        # Планировщик напоминаний
        self.scheduler_interval_hours: float = 24.0
        self.notify_days_before: int = 3
        self.notification_retention_days: int = 60

        # Дашборд и бюджеты
        self.upcoming_payments_days: int = 7
        self.budget_near_limit_percent: int = 80

        # Загрузка настроек при инициализации
        self.load()

    def load(self) -> None:
        """
        Загружает настройки из файла конфигурации.

        Если файл не существует, используются значения по умолчанию.
        Путь к БД не загружается из конфигурации.
        """
        if not os.path.exists(self.config_file):
            logger.info(f"Файл конфигурации не найден, используются значения по умолчанию: {self.config_file}")
            return

        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                data = json.load(f)

            # Настройки логирования
            self.log_level = data.get("log_level", "INFO")

            # Планировщик
            self.scheduler_interval_hours = float(data.get("scheduler_interval_hours", 24.0))
            self.notify_days_before = int(data.get("notify_days_before", 3))
            self.notification_retention_days = int(data.get("notification_retention_days", 60))

            # Дашборд и бюджеты
            self.upcoming_payments_days = int(data.get("upcoming_payments_days", 7))
            self.budget_near_limit_percent = int(data.get("budget_near_limit_percent", 80))

            logger.info(f"Конфигурация загружена из {self.config_file}")

        except (OSError, ValueError) as e:
            logger.error(f"Ошибка при загрузке конфигурации: {e}")

    def save(self) -> None:
        """
        Сохраняет текущие настройки в файл конфигурации.
        """
        data = {
            "log_level": self.log_level,
            "scheduler_interval_hours": self.scheduler_interval_hours,
            "notify_days_before": self.notify_days_before,
            "notification_retention_days": self.notification_retention_days,
            "upcoming_payments_days": self.upcoming_payments_days,
            "budget_near_limit_percent": self.budget_near_limit_percent,
        }

        try:
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=4, ensure_ascii=False)
            logger.info(f"Конфигурация сохранена в {self.config_file}")
        except OSError as e:
            logger.error(f"Ошибка при сохранении конфигурации: {e}")

# Глобальный экземпляр конфигурации
settings = Config()
