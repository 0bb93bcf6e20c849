"""Typed views over raw Odoo JSON-RPC rows.

Odoo encodes "no value" as ``False`` for every field type and many2one
relations as ``[id, display_name]``. ``Record`` hides both conventions so that
skills only ever see ints, floats, strings and ``Many2one`` tuples.
"""

from collections.abc import Iterator, Mapping
from typing import NamedTuple

from erp_engine.erp.errors import ErpApiError


class Many2one(NamedTuple):
    id: int
    name: str


class Record(Mapping[str, object]):
    """Read-only row returned by ``search_read``, ``read`` or ``read_group``."""

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, object]) -> None:
        self._data = dict(data)

    def __getitem__(self, key: str) -> object:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Record({self._data!r})"

    @property
    def id(self) -> int:
        return self.integer("id")

    def number(self, field: str, default: float = 0.0) -> float:
        value = self._data.get(field)
        if value is None or value is False:
            return default
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise ErpApiError(f"Field '{field}' is not numeric: {value!r}")
        return float(value)

    def integer(self, field: str, default: int = 0) -> int:
        value = self._data.get(field)
        if value is None or value is False:
            return default
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise ErpApiError(f"Field '{field}' is not an integer: {value!r}")
        return int(value)

    def text(self, field: str, default: str = "") -> str:
        value = self._data.get(field)
        if value is None or value is False:
            return default
        if isinstance(value, str):
            return value
        # many2one read as text: use the display name
        if isinstance(value, list | tuple) and len(value) == 2:
            return str(value[1])
        return str(value)

    def flag(self, field: str) -> bool:
        return bool(self._data.get(field))

    def many2one(self, field: str) -> Many2one | None:
        value = self._data.get(field)
        if value is None or value is False:
            return None
        if isinstance(value, list | tuple) and len(value) == 2 and isinstance(value[0], int):
            return Many2one(value[0], str(value[1]))
        if isinstance(value, int) and not isinstance(value, bool):
            return Many2one(value, "")
        raise ErpApiError(f"Field '{field}' is not a many2one value: {value!r}")

    def ids(self, field: str) -> list[int]:
        value = self._data.get(field)
        if value is None or value is False:
            return []
        if isinstance(value, list) and all(isinstance(v, int) and not isinstance(v, bool) for v in value):
            return list(value)
        raise ErpApiError(f"Field '{field}' is not an id list: {value!r}")

    def group_count(self, groupby: str | None = None) -> int:
        """Number of records folded into a ``read_group`` row.

        Lazy grouping reports ``<field>_count``, eager or ungrouped queries ``__count``.
        """
        if groupby:
            key = f"{groupby.split(':')[0]}_count"
            if key in self._data:
                return self.integer(key)
        return self.integer("__count")


def to_records(payload: object, *, model: str, method: str) -> list[Record]:
    """Validate that a response is a list of row objects and wrap each one."""
    if not isinstance(payload, list):
        raise ErpApiError(
            f"Unexpected {method} response for '{model}': expected a list, got {type(payload).__name__}",
            details={"model": model, "method": method},
        )
    records: list[Record] = []
    for row in payload:
        if not isinstance(row, dict):
            raise ErpApiError(
                f"Unexpected {method} row for '{model}': expected an object, got {type(row).__name__}",
                details={"model": model, "method": method},
            )
        records.append(Record(row))
    return records
