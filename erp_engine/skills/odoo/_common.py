"""Arithmetic and formatting shared by the Odoo skills.

All rounding is half-up via ``decimal`` so results do not depend on float
banker's rounding.
"""

from collections.abc import Callable, Iterable
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal

from erp_engine.erp.records import Many2one, Record

TREND_THRESHOLD_PERCENT = 5.0

type Trend = Literal["mejorando", "estable", "empeorando"]

PERIOD_DESCRIPTION = (
    'Período a analizar: objeto {"start": "YYYY-MM-DD", "end": "YYYY-MM-DD"} '
    'o frase en español ("este mes", "enero 2026", "desde julio del año pasado"). '
    "Por defecto el mes actual."
)


def round_half_up(value: float, digits: int = 0) -> float:
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def percent_of(part: float, total: float, digits: int = 0) -> float:
    """``part / total * 100`` rounded half-up; 0 when ``total`` is not positive."""
    if total <= 0:
        return 0.0
    return round_half_up(part / total * 100, digits)


def change_percent(current: float, previous: float) -> float | None:
    """Relative change rounded to one decimal.

    A zero baseline yields 100 when something appeared and ``None`` when
    both sides are zero.
    """
    if previous == 0:
        return 100.0 if current > 0 else None
    return round_half_up((current - previous) / abs(previous) * 100, 1)


def trend_label(delta_percent: float | None, *, higher_is_better: bool = True) -> Trend:
    if delta_percent is None:
        return "estable"
    signed = delta_percent if higher_is_better else -delta_percent
    if signed > TREND_THRESHOLD_PERCENT:
        return "mejorando"
    if signed < -TREND_THRESHOLD_PERCENT:
        return "empeorando"
    return "estable"


def format_amount(value: float) -> str:
    """Money as shown to Spanish-speaking users: ``$ 1.234.567,89``."""
    rounded = round_half_up(value, 2)
    whole, _, cents = f"{abs(rounded):,.2f}".partition(".")
    text = whole.replace(",", ".")
    if cents != "00":
        text = f"{text},{cents}"
    return f"{'-' if rounded < 0 else ''}$ {text}"


def ranked[T](items: Iterable[T], metric: Callable[[T], float], name: Callable[[T], str]) -> list[T]:
    """Sort by ``metric`` descending, breaking ties by name ascending."""
    return sorted(items, key=lambda item: (-metric(item), name(item).casefold()))


def grouped_by(rows: Iterable[Record], field: str) -> list[tuple[Many2one, Record]]:
    """Pair each ``read_group`` row with its many2one group value, skipping empty groups."""
    pairs: list[tuple[Many2one, Record]] = []
    for row in rows:
        key = row.many2one(field)
        if key is not None:
            pairs.append((key, row))
    return pairs


def first_row(rows: list[Record]) -> Record:
    """The single row of an ungrouped ``read_group``, or an empty one."""
    return rows[0] if rows else Record({})


async def resolved[T](value: T) -> T:
    """Awaitable that yields ``value``, for optional slots in ``asyncio.gather``."""
    return value
