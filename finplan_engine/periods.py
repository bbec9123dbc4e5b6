"""Monthly period timeline helpers and annual roll-ups."""

from __future__ import annotations

from typing import NamedTuple, Sequence

PERIODS_PER_YEAR = 12


class Period(NamedTuple):
    index: int
    label: str
    year: int           # 1-based model year
    month_of_year: int  # 1..12


def build_periods(count: int) -> list[Period]:
    """Timeline of `count` monthly periods starting at M1 / Y1."""
    return [
        Period(
            index=t,
            label=f"M{t + 1}",
            year=year_index(t) + 1,
            month_of_year=t % PERIODS_PER_YEAR + 1,
        )
        for t in range(count)
    ]


def period_labels(count: int) -> list[str]:
    return [p.label for p in build_periods(count)]


def year_index(period: int) -> int:
    """0-based model year for a 0-based period index."""
    return period // PERIODS_PER_YEAR


def total_years(count: int) -> int:
    """Number of (possibly partial) model years covered."""
    return -(-count // PERIODS_PER_YEAR)


def annual_totals(line: Sequence[float]) -> list[float]:
    """Sum a monthly flow line into model years."""
    out = [0.0] * total_years(len(line))
    for t, v in enumerate(line):
        out[year_index(t)] += v
    return out


def annual_closing(line: Sequence[float]) -> list[float]:
    """Year-end value of a monthly stock line (last month of each year)."""
    out = [0.0] * total_years(len(line))
    for t, v in enumerate(line):
        out[year_index(t)] = v
    return out
