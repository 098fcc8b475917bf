"""
Тесты календарных вычислений (utils/dates.py).

Тестирует:
- Property 1: День платежа ограничивается длиной месяца
- Property 2: Ближайшая дата платежа не раньше текущей даты
- Граничные случаи: февраль високосного года, переход через год
"""

from datetime import date

import pytest
from hypothesis import given, strategies as st, settings

from obligation_tracker.utils.dates import (
    clamp_day,
    days_in_month,
    month_bounds,
    next_month,
    next_payment_date,
    previous_month,
    resolve_due_date,
)


days = st.integers(min_value=1, max_value=31)
dates = st.dates(min_value=date(2000, 1, 1), max_value=date(2099, 12, 31))


class TestDateProperties:
    """Property-based тесты календарных функций."""

    @given(day=days, today=dates)
    @settings(max_examples=50, deadline=None)
    def test_property_1_due_date_clamped_to_month(self, day, today):
        """
        Property 1: Дата платежа всегда в месяце today и не позже его последнего дня.
        """
        due = resolve_due_date(day, today)

        assert (due.year, due.month) == (today.year, today.month)
        assert due.day == min(day, days_in_month(today.year, today.month))

    @given(day=days, today=dates)
    @settings(max_examples=50, deadline=None)
    def test_property_2_next_payment_not_in_past(self, day, today):
        """
        Property 2: Ближайший платёж не раньше today и не дальше следующего месяца.
        """
        payment = next_payment_date(day, today)

        assert payment >= today
        assert (payment - today).days <= 31


class TestDateEdgeCases:

    @pytest.mark.parametrize("year, expected_day", [(2025, 28), (2024, 29)])
    def test_day_31_in_february(self, year, expected_day):
        assert clamp_day(year, 2, 31) == date(year, 2, expected_day)

    def test_day_30_in_april(self):
        assert clamp_day(2025, 4, 31) == date(2025, 4, 30)

    def test_next_payment_same_day_is_today(self):
        assert next_payment_date(31, date(2025, 1, 31)) == date(2025, 1, 31)

    def test_next_payment_rolls_over_and_reclamps(self):
        # 30 января прошло 31-го, в феврале только 28 дней
        assert next_payment_date(30, date(2025, 1, 31)) == date(2025, 2, 28)

    def test_next_payment_rolls_over_year(self):
        assert next_payment_date(5, date(2025, 12, 20)) == date(2026, 1, 5)

    def test_month_bounds(self):
        assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
        assert month_bounds(2025, 12) == (date(2025, 12, 1), date(2025, 12, 31))

    def test_month_shift_across_year(self):
        assert next_month(2025, 12) == (2026, 1)
        assert previous_month(2025, 1) == (2024, 12)
        assert next_month(2025, 3) == (2025, 4)
        assert previous_month(2025, 3) == (2025, 2)
