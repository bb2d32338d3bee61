"""
In-game calendar: the fixed per-turn date advance and annual cadence checks.

A turn is 36 days, so a single step can jump over a whole month. When the
previous date is given, the cadence checks fire on the turn whose window
``(since, on]`` contains the first day of the target month; every year's
event then happens exactly once. Without it they fall back to comparing
the month of ``on``.
"""

from __future__ import annotations

from datetime import date, timedelta

from polsim.config import settings


def advance_in_game_date(current: date, days: int | None = None) -> date:
    """One turn is 36 in-game days (about 1.2 months)."""
    return current + timedelta(days=settings.in_game_days_per_turn if days is None else days)


def _month_starts_crossed(since: date, on: date, month: int) -> list[int]:
    """Years whose ``month`` began inside ``(since, on]``."""
    return [
        year for year in range(since.year, on.year + 1)
        if since < date(year, month, 1) <= on
    ]


def is_immigration_due(on: date, month: int | None = None, since: date | None = None) -> bool:
    month = settings.immigration_month if month is None else month
    if since is not None:
        return bool(_month_starts_crossed(since, on, month))
    return on.month == month


def is_election_due(
    on: date,
    month: int | None = None,
    base_year: int | None = None,
    interval_years: int | None = None,
    since: date | None = None,
) -> bool:
    """Elections fall in the election month of every ``interval_years``-th year from ``base_year``."""
    month = settings.election_month if month is None else month
    base_year = settings.election_base_year if base_year is None else base_year
    interval_years = settings.election_interval_years if interval_years is None else interval_years

    def election_year(year: int) -> bool:
        return year >= base_year and (year - base_year) % interval_years == 0

    if since is not None:
        return any(election_year(y) for y in _month_starts_crossed(since, on, month))
    return on.month == month and election_year(on.year)
