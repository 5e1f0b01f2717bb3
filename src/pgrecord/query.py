"""Query and table reference values passed through to the executor."""
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

__all__ = ['Query', 'TableName', 'table_name_of']


@dataclass(frozen=True, slots=True)
class Query:
    """SQL text with optional named parameters.

    Parameters use psycopg placeholders, e.g.
    ``Query('select * from t where id = %(id)s', {'id': 1})``.
    """
    text: str
    parameters: Mapping[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class TableName:
    """Reference to a whole table."""
    name: str

    def __str__(self) -> str:
        return self.name


def table_name_of(table: 'TableName | str') -> str:
    if isinstance(table, TableName):
        return table.name
    return table
