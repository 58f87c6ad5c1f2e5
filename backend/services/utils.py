from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP

from backend.services.errors import InvalidDateRange

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Arrondi monétaire au centime (half-up)."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def percentage(part, whole) -> Decimal:
    """part / whole * 100, arrondi à 0.01 ; 0 si le dénominateur est nul."""
    whole = Decimal(str(whole or 0))
    if whole == 0:
        return Decimal("0.00")
    return (Decimal(str(part or 0)) / whole * 100).quantize(CENT, rounding=ROUND_HALF_UP)


def day_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    """
    Plage de dates inclusive -> [début, fin) en UTC.

    end=2025-01-31 couvre toute la journée du 31.
    """
    if end < start:
        raise InvalidDateRange(f"end ({end}) is before start ({start})", start=str(start), end=str(end))
    lower = datetime.combine(start, time.min, tzinfo=timezone.utc)
    upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return lower, upper


def as_utc(value: datetime | None) -> datetime:
    """Instant en UTC ; un datetime naïf est lu comme de l'UTC (jamais comme l'heure locale)."""
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_day(value) -> date:
    # timestamptz PostgreSQL : aware dans le fuseau de session ; SQLite : naïf, déjà UTC
    if isinstance(value, datetime):
        return as_utc(value).date()
    return as_date(value)


def as_date(value) -> date:
    # date, datetime ou chaîne ISO
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])
