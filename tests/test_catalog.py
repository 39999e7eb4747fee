"""Listino, orari e date."""

from datetime import date, datetime, time

import pytest

from catalog import end_time_for, format_time, month_bounds, normalize_date, parse_time, service_price


class TestTimes:
    def test_end_time_from_duration(self):
        assert end_time_for(time(10, 0), "Taglio") == time(10, 45)
        assert end_time_for(time(10, 0), "Servizio nuovo") == time(10, 30)

    def test_end_time_capped_at_midnight(self):
        assert end_time_for(time(23, 30), "Rasatura") == time(23, 59)

    def test_parse_time(self):
        assert parse_time("09:15") == time(9, 15)
        assert parse_time("09:15:30") == time(9, 15)
        with pytest.raises(ValueError):
            parse_time("9")

    def test_format_time(self):
        assert format_time(time(8, 5)) == "08:05"
        assert format_time(None) is None


class TestDates:
    def test_normalize_date(self):
        assert normalize_date("2024-03-15T00:00:00.000Z") == date(2024, 3, 15)
        assert normalize_date(datetime(2024, 3, 15, 18, 0)) == date(2024, 3, 15)
        with pytest.raises(ValueError):
            normalize_date(20240315)

    def test_month_bounds(self):
        assert month_bounds("2024-02") == (date(2024, 2, 1), date(2024, 2, 29))
        assert month_bounds("2024-12") == (date(2024, 12, 1), date(2024, 12, 31))
        with pytest.raises(ValueError):
            month_bounds("2024-1x")


def test_prices():
    assert service_price("Taglio e barba") == 20
    assert service_price("Pausa") == 0
    assert service_price("Boh") == 0
