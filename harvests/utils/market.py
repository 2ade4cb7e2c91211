# harvests/utils/market.py
"""
Delivery calendar helpers: cutoff times and delivery-day selection.

Cutoff times are "HH:MM" strings; delivery days are English weekday names.
All functions take an explicit `now` so callers (and tests) control the clock.
"""

from datetime import datetime, timedelta, time

WEEKDAYS = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')


def parse_cutoff(cutoff_time):
    hour, minute = (int(part) for part in cutoff_time.split(':'))
    return time(hour, minute)


def day_name(value):
    return WEEKDAYS[value.weekday()]


def is_cutoff_passed(cutoff_time, now=None):
    now = now or datetime.utcnow()
    cutoff = datetime.combine(now.date(), parse_cutoff(cutoff_time))
    return now >= cutoff


def get_next_available_date(cutoff_time, delivery_days, now=None):
    """
    Next date a new order can be delivered.

    Starts from tomorrow (or the day after, once today's cutoff has passed)
    and walks forward until it lands on a delivery day.
    """
    now = now or datetime.utcnow()
    if not delivery_days:
        return None

    candidate = now.date() + timedelta(days=1)
    if is_cutoff_passed(cutoff_time, now):
        candidate += timedelta(days=1)

    for _ in range(7):
        if day_name(candidate) in delivery_days:
            return candidate
        candidate += timedelta(days=1)
    return None


def is_delivery_day(value, delivery_days):
    return day_name(value) in (delivery_days or [])


def hours_until_delivery(delivery_date, now=None):
    """Hours from now until the start (00:00) of the delivery date."""
    now = now or datetime.utcnow()
    start = datetime.combine(delivery_date, time(0, 0))
    return (start - now).total_seconds() / 3600


def tomorrow(now=None):
    now = now or datetime.utcnow()
    return now.date() + timedelta(days=1)


def can_cancel_order(status, delivery_date, now=None, window_hours=24):
    """Only pending orders more than `window_hours` before delivery can be cancelled."""
    if status != 'pending':
        return False
    return hours_until_delivery(delivery_date, now) > window_hours
