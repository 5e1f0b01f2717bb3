"""
Record mapper: typed reads and writes for one record type.

    accounts = RecordMapper(Account)
    accounts.insert(Account(id='A', balance=10))
    account = accounts.get(Query('select * from accounts where id = %(id)s', {'id': 'A'}))
    everything = accounts.enumerate(TableName('accounts'))

Every call fails with `ConfigurationError` before touching the database
when the context has no connection. Writes run one statement per record.
"""
import dataclasses
import logging
from collections.abc import Iterable
from typing import Any, Generic, TypeVar

from pgrecord.context import MapperContext, get_default_context
from pgrecord.executor import SqlExecutor
from pgrecord.query import Query, TableName
from pgrecord.statements import build_delete, build_insert, build_select_all
from pgrecord.statements import build_truncate, build_upsert

__all__ = [
    'RecordMapper',
    'get',
    'enumerate_records',
    'upsert',
    'insert',
    'delete',
    'truncate',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')


def _as_records(records: Any) -> list[Any]:
    if dataclasses.is_dataclass(records) and not isinstance(records, type):
        return [records]
    return list(records)


class RecordMapper(Generic[T]):
    """Mapping operations for a single record type.

    Uses the default context unless one is given.
    """

    def __init__(self, record_type: type[T], context: MapperContext | None = None) -> None:
        self.record_type = record_type
        self._context = context

    @property
    def context(self) -> MapperContext:
        return self._context or get_default_context()

    def _executor(self) -> SqlExecutor:
        return self.context.executor

    def _reader(self) -> SqlExecutor:
        executor = self.context.executor
        self.context.registry.ensure_registered(self.record_type)
        return executor

    def get(self, query: Query) -> T | None:
        """Return the first row of a query as a record, or None.
        """
        rows = self._reader().query(query.text, query.parameters)
        if not rows:
            return None
        return self.context.registry.hydrate(self.record_type, rows[0])

    def enumerate(self, source: Query | TableName) -> list[T]:
        """Return every row of a query, or of a whole table, as records.
        """
        executor = self._reader()
        if isinstance(source, TableName):
            rows = executor.query(build_select_all(source))
        elif isinstance(source, Query):
            rows = executor.query(source.text, source.parameters)
        else:
            raise TypeError(f'Expected Query or TableName, got {type(source).__name__}')
        return self.context.registry.hydrate_all(self.record_type, rows)

    def upsert(self, record: T) -> int:
        """Insert a record or update the row it matches.

        Returns the driver row count; identity upserts run as a DO block,
        for which PostgreSQL reports -1.

        Raises
            SchemaError: If the record type declares neither identity nor
                primary key.
        """
        executor = self._executor()
        return executor.execute(build_upsert(record))

    def insert(self, records: T | Iterable[T]) -> int:
        """Insert one record or each record of an iterable.

        Returns
            Sum of the affected row counts
        """
        executor = self._executor()
        total = 0
        for record in _as_records(records):
            total += executor.execute(build_insert(record))
        logger.debug(f'Inserted {total} rows for {self.record_type.__name__}')
        return total

    def delete(self, table: TableName | str, predicate: str) -> int:
        """Delete rows matching an SQL predicate, e.g. ``"id = 'A'"``.
        """
        return self._executor().execute(build_delete(table, predicate))

    def truncate(self, table: TableName | str) -> int:
        return self._executor().execute(build_truncate(table))


def get(record_type: type[T], query: Query, context: MapperContext | None = None) -> T | None:
    return RecordMapper(record_type, context).get(query)


def enumerate_records(record_type: type[T], source: Query | TableName,
                      context: MapperContext | None = None) -> list[T]:
    return RecordMapper(record_type, context).enumerate(source)


def upsert(record: Any, context: MapperContext | None = None) -> int:
    return RecordMapper(type(record), context).upsert(record)


def insert(records: Any, context: MapperContext | None = None) -> int:
    """Insert one record or an iterable of records of any mapped types.
    """
    records = _as_records(records)
    record_type = type(records[0]) if records else object
    return RecordMapper(record_type, context).insert(records)


def delete(table: TableName | str, predicate: str, context: MapperContext | None = None) -> int:
    return RecordMapper(object, context).delete(table, predicate)


def truncate(table: TableName | str, context: MapperContext | None = None) -> int:
    return RecordMapper(object, context).truncate(table)
