"""
Period bucketing for tier thresholds and payout cadences.

Every period type maps a calendar date to a bucket key (stored on
StaffSalesAggregate rows) and to the inclusive [start, end] date range the
bucket covers.
"""
import calendar
from datetime import date, datetime, timedelta

from django.conf import settings
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

DAILY = 'DAILY'
WEEKLY = 'WEEKLY'
BIWEEKLY = 'BIWEEKLY'
MONTHLY = 'MONTHLY'
QUARTERLY = 'QUARTERLY'
YEARLY = 'YEARLY'

TIER_PERIOD_CHOICES = [
    (DAILY, _("Daily")),
    (WEEKLY, _("Weekly")),
    (BIWEEKLY, _("Bi-weekly")),
    (MONTHLY, _("Monthly")),
    (QUARTERLY, _("Quarterly")),
    (YEARLY, _("Yearly")),
]

AGGREGATION_PERIOD_CHOICES = [
    (WEEKLY, _("Weekly")),
    (BIWEEKLY, _("Bi-weekly")),
    (MONTHLY, _("Monthly")),
]

DEFAULT_BIWEEKLY_ANCHOR = date(2024, 1, 1)  # a Monday


def biweekly_anchor():
    anchor = getattr(settings, 'COMMISSIONS_BIWEEKLY_ANCHOR', DEFAULT_BIWEEKLY_ANCHOR)
    if isinstance(anchor, str):
        anchor = date.fromisoformat(anchor)
    return anchor


def local_day(value):
    """Venue-local calendar date of a datetime (dates pass through)."""
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            return timezone.localdate(value)
        return value.date()
    return value


def period_bounds(period, day):
    """Return the inclusive (start, end) dates of the bucket holding ``day``."""
    day = local_day(day)
    if period == DAILY:
        return day, day
    if period == WEEKLY:
        start = day - timedelta(days=day.weekday())
        return start, start + timedelta(days=6)
    if period == BIWEEKLY:
        anchor = biweekly_anchor()
        index = (day - anchor).days // 14
        start = anchor + timedelta(days=index * 14)
        return start, start + timedelta(days=13)
    if period == MONTHLY:
        last = calendar.monthrange(day.year, day.month)[1]
        return day.replace(day=1), day.replace(day=last)
    if period == QUARTERLY:
        first_month = 3 * ((day.month - 1) // 3) + 1
        last_month = first_month + 2
        last = calendar.monthrange(day.year, last_month)[1]
        return date(day.year, first_month, 1), date(day.year, last_month, last)
    if period == YEARLY:
        return date(day.year, 1, 1), date(day.year, 12, 31)
    raise ValueError(f"Unknown period: {period}")


def period_key(period, day):
    """Stable bucket key for ``day`` under ``period``."""
    day = local_day(day)
    if period == DAILY:
        return day.isoformat()
    if period == WEEKLY:
        iso_year, iso_week, _weekday = day.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if period == BIWEEKLY:
        return f"B{(day - biweekly_anchor()).days // 14}"
    if period == MONTHLY:
        return f"{day.year}-{day.month:02d}"
    if period == QUARTERLY:
        return f"{day.year}-Q{(day.month - 1) // 3 + 1}"
    if period == YEARLY:
        return str(day.year)
    raise ValueError(f"Unknown period: {period}")
