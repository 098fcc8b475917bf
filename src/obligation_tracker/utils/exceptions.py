"""
Модуль пользовательских исключений приложения.
"""

class ObligationTrackerError(Exception):
    """Базовый класс для всех исключений приложения."""
    pass

class ValidationError(ObligationTrackerError, ValueError):
    """Исключение при ошибке валидации данных (пользовательский ввод)."""
    pass

class BusinessLogicError(ObligationTrackerError):
    """Исключение при нарушении бизнес-правил (например, правка категории кредита)."""
    pass
