"""
accounts/analytics.py -- Read-only projections over the account collection.

Nothing here writes. Each function takes an AccountStore and returns a plain
dict the API layer validates into its response models:

  registration_summary() -- totals, recent-signup windows, completeness,
                            provenance split.
  demographics()         -- gender distribution and age buckets.
  registration_trend()   -- per-day signup counts, zero-filled, oldest first.

Accounts with no age or gender are counted under "unspecified" so every
distribution sums to the total.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from accounts.models import Provenance
from accounts.store import AccountStore
from accounts.validation import GENDERS

UNSPECIFIED = "unspecified"

# (label, lowest age, highest age); None means open-ended.
AGE_BUCKETS: list[tuple[str, int, int | None]] = [
    ("13-17", 13, 17),
    ("18-24", 18, 24),
    ("25-34", 25, 34),
    ("35-44", 35, 44),
    ("45-54", 45, 54),
    ("55-64", 55, 64),
    ("65+", 65, None),
]

MAX_TREND_DAYS = 365


def age_bucket(age: int | None) -> str:
    """Return the bucket label for an age.

    >>> age_bucket(30)
    '25-34'
    >>> age_bucket(None)
    'unspecified'
    """
    if age is None:
        return UNSPECIFIED
    for label, low, high in AGE_BUCKETS:
        if age >= low and (high is None or age <= high):
            return label
    return UNSPECIFIED


def registration_summary(store: AccountStore, now: datetime | None = None) -> dict:
    now = now or datetime.now(timezone.utc)
    by_provenance = {p.value: 0 for p in Provenance}
    by_provenance.update(store.provenance_counts())
    return {
        "total": store.count_accounts(),
        "last_24h": store.count_accounts(created_since=(now - timedelta(hours=24)).isoformat()),
        "last_7d": store.count_accounts(created_since=(now - timedelta(days=7)).isoformat()),
        "last_30d": store.count_accounts(created_since=(now - timedelta(days=30)).isoformat()),
        "profile_complete": store.count_profile_complete(),
        "by_provenance": by_provenance,
    }


def demographics(store: AccountStore) -> dict:
    genders = {g: 0 for g in GENDERS}
    genders[UNSPECIFIED] = 0
    for gender, n in store.gender_counts().items():
        key = gender if gender in genders else UNSPECIFIED
        genders[key] += n

    ages = {label: 0 for label, _, _ in AGE_BUCKETS}
    ages[UNSPECIFIED] = 0
    for age, n in store.age_counts().items():
        ages[age_bucket(age)] += n

    return {"gender": genders, "age": ages}


def registration_trend(store: AccountStore, days: int = 30, today: date | None = None) -> list[dict]:
    """Return [{"date": "YYYY-MM-DD", "count": n}] for the last `days` days, today included.

    Raises ValueError if days is outside 1..365.
    """
    if not 1 <= days <= MAX_TREND_DAYS:
        raise ValueError(f"days must be between 1 and {MAX_TREND_DAYS}")
    today = today or datetime.now(timezone.utc).date()
    start = today - timedelta(days=days - 1)
    since = datetime(start.year, start.month, start.day, tzinfo=timezone.utc).isoformat()
    counts = store.daily_registration_counts(since)
    return [
        {"date": day.isoformat(), "count": counts.get(day.isoformat(), 0)}
        for day in (start + timedelta(days=i) for i in range(days))
    ]
