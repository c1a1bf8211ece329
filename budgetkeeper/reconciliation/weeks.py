"""Week arithmetic. Weeks run Monday to Sunday inclusive."""

from datetime import date, timedelta


def start_of_week(day: date) -> date:
    """The Monday on or before `day`."""
    return day - timedelta(days=day.weekday())


def week_bounds(day: date) -> tuple[date, date]:
    """(Monday, Sunday) of the week containing `day`."""
    start = start_of_week(day)
    return start, start + timedelta(days=6)


def week_offset(source_start: date, target_start: date) -> timedelta:
    """Shift that moves a date from one budget week to another."""
    return start_of_week(target_start) - start_of_week(source_start)
