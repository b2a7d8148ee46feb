"""
Row structure adapters.

These adapters handle ONLY the structure of incoming rows (mapping them to
dictionaries). They do NOT perform any type conversion, which is handled by
the coercion engine.
"""
import dataclasses
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

import pandas as pd

__all__ = ['RowAdapter', 'iter_rows']


class RowAdapter:
    """Simple row adapter for converting driver rows to dictionaries."""

    def __init__(self, row: Any):
        self.row = row

    def to_dict(self) -> dict[str, Any]:
        """Convert row to dictionary.

        >>> RowAdapter({'id': 1}).to_dict()
        {'id': 1}
        >>> from collections import namedtuple
        >>> RowAdapter(namedtuple('R', 'id name')(1, 'Ada')).to_dict()
        {'id': 1, 'name': 'Ada'}
        """
        row = self.row
        # pandas row
        if isinstance(row, pd.Series):
            return row.to_dict()
        # Already a mapping
        if isinstance(row, Mapping):
            return dict(row)
        # sqlite3.Row
        if hasattr(row, 'keys') and callable(row.keys):
            return {key: row[key] for key in row.keys()}  # noqa: SIM118
        # Namedtuple
        if hasattr(row, '_asdict'):
            return dict(row._asdict())
        # Dataclass record, without recursing into nested values
        if dataclasses.is_dataclass(row) and not isinstance(row, type):
            return {f.name: getattr(row, f.name) for f in dataclasses.fields(row)}
        # Generic record object
        if hasattr(row, '__dict__'):
            return dict(vars(row))
        raise TypeError(f'Cannot adapt {type(row).__name__} to a row mapping')

    def get_value(self, key: str) -> Any:
        return self.to_dict()[key]


def iter_rows(rows: Iterable[Any] | pd.DataFrame) -> Iterator[dict[str, Any]]:
    """Yield each row of a result set as a dictionary.

    Accepts an iterable of rows or a pandas DataFrame.
    """
    if isinstance(rows, pd.DataFrame):
        yield from rows.to_dict(orient='records')
        return
    for row in rows:
        yield RowAdapter(row).to_dict()


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
