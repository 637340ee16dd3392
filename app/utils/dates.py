"""
Calendar helpers for quarters and months in the portal's local timezone.

"Today" is evaluated in APP_TIMEZONE, not UTC, so a check-in made just
after midnight local time lands in the correct quarter.
"""

import calendar
from datetime import date, datetime

import pytz
from flask import current_app

DEFAULT_TIMEZONE = 'Asia/Seoul'


def get_app_timezone():
    tz_name = current_app.config.get('APP_TIMEZONE', DEFAULT_TIMEZONE)
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        current_app.logger.warning(f"Invalid APP_TIMEZONE '{tz_name}', defaulting to {DEFAULT_TIMEZONE}.")
        return pytz.timezone(DEFAULT_TIMEZONE)


def local_today():
    """Return today's date in the application timezone."""
    return datetime.now(get_app_timezone()).date()


def quarter_of(day):
    """Return the calendar quarter (1-4) containing ``day``."""
    return (day.month - 1) // 3 + 1


def quarter_start(day):
    """Return the first day of the quarter containing ``day``."""
    return date(day.year, 3 * (quarter_of(day) - 1) + 1, 1)


def quarter_bounds(year, quarter):
    """Return (first_day, last_day) of the given quarter."""
    if quarter not in (1, 2, 3, 4):
        raise ValueError(f"Invalid quarter: {quarter}")
    start_month = 3 * (quarter - 1) + 1
    end_month = start_month + 2
    last_day = calendar.monthrange(year, end_month)[1]
    return date(year, start_month, 1), date(year, end_month, last_day)


def quarter_bucket(day):
    """Return the check-in bucket key, e.g. ``2026-Q4``."""
    return f"{day.year}-Q{quarter_of(day)}"


def bucket_for(year, quarter):
    return f"{year}-Q{quarter}"


def month_bounds(year, month):
    """Return (first_day, last_day) of the given month."""
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {month}")
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])
