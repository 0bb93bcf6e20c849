"""Spanish natural-language period parsing.

``parse_period`` turns phrases such as "desde julio del año pasado" or
"del 1 de julio 2025 al 14 de enero 2026" into an exact ``Period``. It is a
pure function of the phrase and the injected reference date: it never reads
the clock. Rules are tried in a fixed priority order and the first match
wins, so overlapping phrases always resolve the same way.
"""

import calendar
import re
import unicodedata
from collections.abc import Callable
from datetime import date, datetime, timedelta
from typing import Self

from pydantic import BaseModel, ConfigDict, model_validator

MONTHS: dict[str, int] = {
    "enero": 1,
    "febrero": 2,
    "marzo": 3,
    "abril": 4,
    "mayo": 5,
    "junio": 6,
    "julio": 7,
    "agosto": 8,
    "septiembre": 9,
    "setiembre": 9,
    "octubre": 10,
    "noviembre": 11,
    "diciembre": 12,
}
MONTH_NAMES = ("", "enero", "febrero", "marzo", "abril", "mayo", "junio", "julio",
               "agosto", "septiembre", "octubre", "noviembre", "diciembre")  # fmt: skip


class Period(BaseModel):
    """Inclusive date range. ``start <= end`` holds for every instance."""

    model_config = ConfigDict(frozen=True)

    start: date
    end: date
    label: str | None = None

    @model_validator(mode="after")
    def _check_order(self) -> Self:
        if self.start > self.end:
            raise ValueError(f"Period start {self.start} is after end {self.end}")
        return self

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def describe(self) -> str:
        return self.label or f"{self.start.isoformat()} a {self.end.isoformat()}"


class PeriodParseError(ValueError):
    """The phrase matches no known time expression or yields an invalid range."""


class AmbiguousPeriodError(PeriodParseError):
    """The phrase has more than one reasonable reading; the caller must ask."""

    def __init__(self, phrase: str, candidates: tuple[Period, ...]) -> None:
        options = "; ".join(c.describe() for c in candidates)
        super().__init__(f"'{phrase}' es ambiguo, aclarar el año. Opciones: {options}")
        self.phrase = phrase
        self.candidates = candidates


# --- Calendar helpers ---


def month_period(year: int, month: int, label: str | None = None) -> Period:
    last_day = calendar.monthrange(year, month)[1]
    return Period(
        start=date(year, month, 1),
        end=date(year, month, last_day),
        label=label or f"{MONTH_NAMES[month]} {year}",
    )


def year_period(year: int, label: str | None = None) -> Period:
    return Period(start=date(year, 1, 1), end=date(year, 12, 31), label=label or str(year))


def shift_months(day: date, months: int) -> date:
    """Move ``day`` by whole months, clamping to the last day of the target month."""
    index = day.year * 12 + day.month - 1 + months
    year, month = divmod(index, 12)
    month += 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def current_month(today: date) -> Period:
    return month_period(today.year, today.month, "este mes")


def previous_month(today: date) -> Period:
    first = shift_months(today.replace(day=1), -1)
    return month_period(first.year, first.month, "mes pasado")


def preceding_period(period: Period) -> Period:
    """Period of the same length that ends the day before ``period`` starts.

    Whole calendar months map to the previous whole month so that
    "enero 2026" compares against "diciembre 2025" rather than 31 shifted days.
    """
    if period.start.day == 1 and period.end == month_period(period.end.year, period.end.month).end:
        months = (period.end.year - period.start.year) * 12 + period.end.month - period.start.month + 1
        start = shift_months(period.start, -months)
        end = period.start - timedelta(days=1)
        return Period(start=start, end=end, label=f"{start.isoformat()} a {end.isoformat()}")
    end = period.start - timedelta(days=1)
    start = end - timedelta(days=period.days - 1)
    return Period(start=start, end=end, label=f"{start.isoformat()} a {end.isoformat()}")


def _quarter_period(year: int, quarter: int, label: str) -> Period:
    first_month = 3 * (quarter - 1) + 1
    return Period(
        start=date(year, first_month, 1),
        end=month_period(year, first_month + 2).end,
        label=label,
    )


# --- Normalization ---


def normalize_phrase(phrase: str) -> str:
    """Lower-case, strip accents and punctuation, collapse whitespace."""
    decomposed = unicodedata.normalize("NFKD", phrase.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    cleaned = re.sub(r"[^\w\s\-/]", " ", stripped)
    return re.sub(r"\s+", " ", cleaned).strip()


def _safe_date(year: int, month: int, day: int, phrase: str) -> date:
    try:
        return date(year, month, day)
    except ValueError as exc:
        raise PeriodParseError(f"Fecha inválida en '{phrase}': {exc}") from exc


def _make_period(start: date, end: date, label: str, phrase: str) -> Period:
    if start > end:
        raise PeriodParseError(f"El período '{phrase}' empieza después de terminar ({start} > {end})")
    return Period(start=start, end=end, label=label)


# --- Rules ---

_M = "(?:" + "|".join(sorted(MONTHS, key=len, reverse=True)) + ")"
_YEAR_SEP = r"\s+(?:de\s+|del\s+)?"
_SINCE = r"\bdesde\s+(?:el\s+)?(?:(?P<day>\d{1,2})\s+de\s+)?"

type _Resolver = Callable[[re.Match[str], date, str], Period]


def _explicit_day_range(m: re.Match[str], today: date, phrase: str) -> Period:
    y1 = int(m["y1"]) if m["y1"] else None
    y2 = int(m["y2"]) if m["y2"] else None
    start_year = y1 or y2 or today.year
    end_year = y2 or y1 or today.year
    start = _safe_date(start_year, MONTHS[m["m1"]], int(m["d1"]), phrase)
    end = _safe_date(end_year, MONTHS[m["m2"]], int(m["d2"]), phrase)
    return _make_period(start, end, f"{start.isoformat()} a {end.isoformat()}", phrase)


def _iso_range(m: re.Match[str], today: date, phrase: str) -> Period:
    try:
        start = date.fromisoformat(m["a"])
        end = date.fromisoformat(m["b"])
    except ValueError as exc:
        raise PeriodParseError(f"Fecha inválida en '{phrase}': {exc}") from exc
    return _make_period(start, end, f"{start.isoformat()} a {end.isoformat()}", phrase)


def _month_range(m: re.Match[str], today: date, phrase: str) -> Period:
    y1 = int(m["y1"]) if m["y1"] else None
    y2 = int(m["y2"]) if m["y2"] else None
    start = month_period(y1 or y2 or today.year, MONTHS[m["m1"]])
    end = month_period(y2 or y1 or today.year, MONTHS[m["m2"]])
    return _make_period(start.start, end.end, f"{start.label} a {end.label}", phrase)


def _since_month_year(m: re.Match[str], today: date, phrase: str) -> Period:
    month = MONTHS[m["month"]]
    year = int(m["year"])
    start = _safe_date(year, month, int(m["day"]) if m["day"] else 1, phrase)
    return _make_period(start, today, f"desde {MONTH_NAMES[month]} {year}", phrase)


def _since_month_last_year(m: re.Match[str], today: date, phrase: str) -> Period:
    month = MONTHS[m["month"]]
    start = _safe_date(today.year - 1, month, int(m["day"]) if m["day"] else 1, phrase)
    return _make_period(start, today, f"desde {MONTH_NAMES[month]} {today.year - 1}", phrase)


def _single_iso_date(m: re.Match[str], today: date, phrase: str) -> Period:
    try:
        day = date.fromisoformat(m["a"])
    except ValueError as exc:
        raise PeriodParseError(f"Fecha inválida en '{phrase}': {exc}") from exc
    return Period(start=day, end=day, label=day.isoformat())


def _month_year(m: re.Match[str], today: date, phrase: str) -> Period:
    return month_period(int(m["year"]), MONTHS[m["month"]])


def _explicit_year(m: re.Match[str], today: date, phrase: str) -> Period:
    return year_period(int(m["year"]))


def _since_bare_month(m: re.Match[str], today: date, phrase: str) -> Period:
    month = MONTHS[m["month"]]
    day = int(m["day"]) if m["day"] else 1
    if month == today.month:
        start = _safe_date(today.year, month, day, phrase)
        if start <= today:
            return _make_period(start, today, f"desde {MONTH_NAMES[month]} {today.year}", phrase)
    candidates = []
    for year in (today.year, today.year - 1):
        start = _safe_date(year, month, day, phrase)
        if start <= today:
            candidates.append(Period(start=start, end=today, label=f"desde {MONTH_NAMES[month]} {year}"))
    if len(candidates) == 1:
        return candidates[0]
    raise AmbiguousPeriodError(phrase, tuple(candidates))


def _last_n(m: re.Match[str], today: date, phrase: str) -> Period:
    n = int(m["n"])
    if n < 1:
        raise PeriodParseError(f"Cantidad inválida en '{phrase}'")
    unit = m["unit"]
    if unit.startswith("dia"):
        start = today - timedelta(days=n - 1)
    elif unit.startswith("semana"):
        start = today - timedelta(weeks=n) + timedelta(days=1)
    else:
        start = shift_months(today, -n) + timedelta(days=1)
    return Period(start=start, end=today, label=f"últimos {n} {unit}")


def _bare_month(m: re.Match[str], today: date, phrase: str) -> Period:
    return month_period(today.year, MONTHS[m["month"]])


def _fixed(build: Callable[[date], Period]) -> _Resolver:
    return lambda m, today, phrase: build(today)


def _this_week(today: date) -> Period:
    monday = today - timedelta(days=today.weekday())
    return Period(start=monday, end=monday + timedelta(days=6), label="esta semana")


def _last_week(today: date) -> Period:
    monday = today - timedelta(days=today.weekday() + 7)
    return Period(start=monday, end=monday + timedelta(days=6), label="semana pasada")


def _this_quarter(today: date) -> Period:
    return _quarter_period(today.year, (today.month - 1) // 3 + 1, "este trimestre")


def _last_quarter(today: date) -> Period:
    quarter = (today.month - 1) // 3
    if quarter == 0:
        return _quarter_period(today.year - 1, 4, "trimestre pasado")
    return _quarter_period(today.year, quarter, "trimestre pasado")


_RULES: list[tuple[str, re.Pattern[str], _Resolver]] = [
    (
        "explicit_day_range",
        re.compile(
            rf"(?:\bdel?\b|\bdesde\b(?:\s+el)?|\bentre\b(?:\s+el)?)\s*(?P<d1>\d{{1,2}})\s+de\s+(?P<m1>{_M})"
            rf"(?:{_YEAR_SEP}(?P<y1>\d{{4}}))?"
            rf"\s+(?:al|a|hasta(?:\s+el)?|y(?:\s+el)?)\s+(?P<d2>\d{{1,2}})\s+de\s+(?P<m2>{_M})"
            rf"(?:{_YEAR_SEP}(?P<y2>\d{{4}}))?"
        ),
        _explicit_day_range,
    ),
    (
        "iso_range",
        re.compile(r"(?P<a>\d{4}-\d{2}-\d{2})\s*(?:al|a|hasta|y|-)\s*(?P<b>\d{4}-\d{2}-\d{2})"),
        _iso_range,
    ),
    (
        "month_range",
        re.compile(
            rf"\b(?:desde|de|entre)\s+(?P<m1>{_M})(?:{_YEAR_SEP}(?P<y1>\d{{4}}))?"
            rf"\s+(?:hasta|a|al|y)\s+(?P<m2>{_M})(?:{_YEAR_SEP}(?P<y2>\d{{4}}))?\b"
        ),
        _month_range,
    ),
    (
        "since_month_year",
        re.compile(_SINCE + rf"(?P<month>{_M}){_YEAR_SEP}(?P<year>\d{{4}})\b"),
        _since_month_year,
    ),
    (
        "since_month_last_year",
        re.compile(_SINCE + rf"(?P<month>{_M})\s+(?:del?\s+)?ano\s+(?:pasado|anterior)\b"),
        _since_month_last_year,
    ),
    ("single_iso_date", re.compile(r"\b(?P<a>\d{4}-\d{2}-\d{2})\b"), _single_iso_date),
    ("month_year", re.compile(rf"\b(?P<month>{_M}){_YEAR_SEP}(?P<year>\d{{4}})\b"), _month_year),
    ("explicit_year", re.compile(r"\b(?P<year>(?:19|20)\d{2})\b"), _explicit_year),
    (
        "since_bare_month",
        re.compile(_SINCE + rf"(?P<month>{_M})\b"),
        _since_bare_month,
    ),
    ("today", re.compile(r"\bhoy\b"), _fixed(lambda t: Period(start=t, end=t, label="hoy"))),
    (
        "yesterday",
        re.compile(r"\bayer\b"),
        _fixed(lambda t: Period(start=t - timedelta(days=1), end=t - timedelta(days=1), label="ayer")),
    ),
    ("this_week", re.compile(r"\besta\s+semana\b"), _fixed(_this_week)),
    ("last_week", re.compile(r"\bsemana\s+(?:pasada|anterior)\b"), _fixed(_last_week)),
    (
        "month_to_date",
        re.compile(r"\ben\s+lo\s+que\s+va\s+del\s+mes\b"),
        _fixed(lambda t: Period(start=t.replace(day=1), end=t, label="en lo que va del mes")),
    ),
    (
        "year_to_date",
        re.compile(r"\ben\s+lo\s+que\s+va\s+del\s+ano\b"),
        _fixed(lambda t: Period(start=date(t.year, 1, 1), end=t, label="en lo que va del año")),
    ),
    ("last_n", re.compile(r"\bultim[oa]s\s+(?P<n>\d{1,3})\s+(?P<unit>dias|semanas|meses)\b"), _last_n),
    ("this_month", re.compile(r"\b(?:este\s+mes|mes\s+actual)\b"), _fixed(current_month)),
    ("last_month", re.compile(r"\b(?:mes\s+(?:pasado|anterior)|ultimo\s+mes)\b"), _fixed(previous_month)),
    ("this_quarter", re.compile(r"\b(?:este\s+trimestre|trimestre\s+actual)\b"), _fixed(_this_quarter)),
    ("last_quarter", re.compile(r"\btrimestre\s+(?:pasado|anterior)\b"), _fixed(_last_quarter)),
    (
        "this_year",
        re.compile(r"\b(?:este\s+ano|ano\s+actual)\b"),
        _fixed(lambda t: year_period(t.year, "este año")),
    ),
    (
        "last_year",
        re.compile(r"\bano\s+(?:pasado|anterior)\b"),
        _fixed(lambda t: year_period(t.year - 1, "año pasado")),
    ),
    ("bare_month", re.compile(rf"\b(?P<month>{_M})\b"), _bare_month),
]

RULE_NAMES = tuple(name for name, _, _ in _RULES)


def parse_period(phrase: str, today: date | datetime) -> Period:
    """Resolve a Spanish time expression against the reference date ``today``.

    Raises ``AmbiguousPeriodError`` for bare "desde <mes>" phrases naming a
    month that already started both this year and last year, and
    ``PeriodParseError`` when nothing matches.
    """
    if isinstance(today, datetime):
        today = today.date()
    text = normalize_phrase(phrase)
    if not text:
        raise PeriodParseError("Frase de período vacía")
    for _name, pattern, resolve in _RULES:
        match = pattern.search(text)
        if match:
            return resolve(match, today, phrase)
    raise PeriodParseError(f"No se reconoce un período en '{phrase}'")


def resolve_period(
    value: Period | str | None,
    today: date,
    default: Callable[[date], Period] = current_month,
) -> Period:
    """Accept an explicit ``Period``, a phrase to parse, or nothing (use ``default``)."""
    if value is None:
        return default(today)
    if isinstance(value, Period):
        return value
    return parse_period(value, today)
