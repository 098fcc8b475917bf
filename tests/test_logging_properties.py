"""
Property-based тесты для системы логирования.
Проверяют формат и структуру логов.
"""

import json
import logging
import sys
from datetime import date
from decimal import Decimal

from hypothesis import given, strategies as st

from obligation_tracker.utils.logger import JsonFormatter


def _record(msg: str, level: int = logging.INFO, func: str = "register_payment") -> logging.LogRecord:
    return logging.LogRecord(
        name="test_logger",
        level=level,
        pathname="loan_service.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
        func=func,
    )


@given(
    message=st.text(),
    level=st.sampled_from([logging.INFO, logging.WARNING, logging.ERROR]),
    module=st.text(min_size=1),
    func=st.text(min_size=1)
)
def test_json_formatter_structure(message, level, module, func):
    """
    Запись лога сериализуется в валидный JSON с обязательными полями,
    unicode сохраняется без экранирования.
    """
    formatter = JsonFormatter()

    record = _record(message, level, func)
    record.module = module

    data = json.loads(formatter.format(record))

    assert "timestamp" in data
    assert data["level"] == logging.getLevelName(level)
    assert data["module"] == module
    assert data["function"] == func
    assert data["line"] == 10
    assert data["message"] == message


def test_json_formatter_extra_fields():
    formatter = JsonFormatter()

    record = _record("Взнос зарегистрирован")
    record.loan_id = "3f1c"
    record.amount = Decimal('1000.50')
    record.due_date = date(2025, 3, 5)

    data = json.loads(formatter.format(record))

    assert data["loan_id"] == "3f1c"
    assert data["amount"] == "1000.50"
    assert data["due_date"] == "2025-03-05"
    assert "Взнос" in formatter.format(record)


def test_json_formatter_exception():
    formatter = JsonFormatter()

    try:
        raise ValueError("Test exception")
    except ValueError:
        record = _record("Error occurred", logging.ERROR)
        record.exc_info = sys.exc_info()

        data = json.loads(formatter.format(record))

    assert "exception" in data
    assert "ValueError: Test exception" in data["exception"]
