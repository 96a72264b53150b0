"""Tabular query results."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Table:
    """Rows returned by a Plug query.

    Attributes:
        columns: Column names, in the order the API returned them.
        rows: One tuple per row, values parallel to ``columns``.
    """

    columns: tuple[str, ...] = ()
    rows: tuple[tuple[Any, ...], ...] = ()

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[dict[str, Any]]:
        for row in self.rows:
            yield dict(zip(self.columns, row))

    @property
    def shape(self) -> tuple[int, int]:
        """Return ``(row_count, column_count)``."""
        return len(self.rows), len(self.columns)

    def records(self) -> list[dict[str, Any]]:
        """Return the rows as a list of dictionaries."""
        return list(self)

    def column(self, name: str) -> list[Any]:
        """Return every value of one column.

        Raises:
            KeyError: If the table has no such column.
        """
        try:
            index = self.columns.index(name)
        except ValueError:
            raise KeyError(name) from None
        return [row[index] for row in self.rows]

    def to_pandas(self) -> Any:
        """Convert to a ``pandas.DataFrame``."""
        try:
            import pandas as pd
        except ImportError:
            raise ImportError(  # noqa: B904
                "pandas is required for DataFrame conversion. "
                "Install it with: pip install 'plugapi[pandas]'"
            )
        return pd.DataFrame(list(self.rows), columns=list(self.columns))

    @classmethod
    def from_records(cls, records: list[dict[str, Any]]) -> Table:
        """Build a table from row objects.

        Column order comes from the first row. Keys that only appear in later
        rows are appended, and rows missing a column get ``None``.
        """
        columns: dict[str, None] = {}
        for record in records:
            if not isinstance(record, dict):
                raise ValueError(
                    f"Expected row objects, got {type(record).__name__}"
                )
            for key in record:
                columns.setdefault(str(key), None)

        names = tuple(columns)
        rows = tuple(
            tuple(record.get(name) for name in names) for record in records
        )
        return cls(columns=names, rows=rows)

    @classmethod
    def from_columns(cls, data: dict[str, list[Any]]) -> Table:
        """Build a table from a mapping of equal-length column lists."""
        lengths = {len(values) for values in data.values()}
        if len(lengths) > 1:
            raise ValueError("Column lists have different lengths")
        names = tuple(str(key) for key in data)
        rows = tuple(zip(*data.values())) if data else ()
        return cls(columns=names, rows=rows)

    @classmethod
    def from_json(cls, data: Any) -> Table:
        """Build a table from a decoded JSON query response.

        Accepts a list of row objects, a dict of column lists, or a single row
        object. A dict is read as columns only when it has at least two keys
        and every value is a list; a single key mapped to a list is one row
        holding that list.

        Raises:
            ValueError: If the payload has none of these shapes.
        """
        if isinstance(data, list):
            return cls.from_records(data)
        if isinstance(data, dict):
            if not data:
                return cls()
            if len(data) >= 2 and all(isinstance(v, list) for v in data.values()):
                return cls.from_columns(data)
            return cls.from_records([data])
        raise ValueError(
            f"Cannot build a table from a JSON {type(data).__name__}"
        )
