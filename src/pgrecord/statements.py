"""
Statement synthesis for mapped records.

Values are inlined as literals (see `pgrecord.encoding`); nothing here
produces placeholders. Upserts pick one of two strategies from the record
type's schema:

- primary key:  INSERT ... ON CONFLICT (<pk>) DO UPDATE SET ...
- identity:     DO block testing for the identity value, then UPDATE or INSERT

The identity strategy is used whenever an identity column is declared.
"""
import logging
from typing import Any

from pgrecord.encoding import to_literal
from pgrecord.query import TableName, table_name_of
from pgrecord.schema import ColumnDescriptor, EntityDescriptor, describe

__all__ = [
    'build_insert',
    'build_upsert',
    'build_select_all',
    'build_delete',
    'build_truncate',
]

logger = logging.getLogger(__name__)


def _literal(col: ColumnDescriptor, record: Any) -> str:
    return to_literal(col.value_of(record), col.field_type)


def _assignments(columns: tuple[ColumnDescriptor, ...], record: Any) -> str:
    return ', '.join(f'{col.name} = {_literal(col, record)}' for col in columns)


def _insert_sql(descriptor: EntityDescriptor, record: Any) -> str:
    columns = descriptor.insert_columns
    if not columns:
        return f'INSERT INTO {descriptor.table} DEFAULT VALUES'
    names = ', '.join(col.name for col in columns)
    values = ', '.join(_literal(col, record) for col in columns)
    return f'INSERT INTO {descriptor.table} ({names}) VALUES ({values})'


def _dollar_tag(body: str) -> str:
    """Pick a dollar-quote tag that does not occur inside the block body.
    """
    tag, n = '$$', 0
    while tag in body:
        n += 1
        tag = f'$upsert{n}$'
    return tag


def build_insert(record: Any) -> str:
    """Generate an INSERT statement for a record.

    All named columns except the identity column are written.
    """
    return _insert_sql(describe(type(record)), record)


def build_upsert(record: Any) -> str:
    """Generate an insert-or-update statement for a record.

    Raises
        SchemaError: If the record type declares neither identity nor primary key.
    """
    descriptor = describe(type(record))
    key = descriptor.upsert_key()
    if key.is_identity:
        return _identity_upsert_sql(descriptor, record, key)
    return _primary_key_upsert_sql(descriptor, record, key)


def _primary_key_upsert_sql(descriptor: EntityDescriptor, record: Any,
                            key: ColumnDescriptor) -> str:
    names = ', '.join(col.name for col in descriptor.columns)
    values = ', '.join(_literal(col, record) for col in descriptor.columns)
    return (f'INSERT INTO {descriptor.table} ({names}) VALUES ({values})\n'
            f'ON CONFLICT ({key.name}) DO UPDATE\n'
            f'SET {_assignments(descriptor.columns, record)};')


def _identity_upsert_sql(descriptor: EntityDescriptor, record: Any,
                         identity: ColumnDescriptor) -> str:
    predicate = f'{identity.name} = {_literal(identity, record)}'
    if descriptor.insert_columns:
        update_sql = (f'UPDATE {descriptor.table} SET '
                      f'{_assignments(descriptor.insert_columns, record)} WHERE {predicate};')
    else:
        update_sql = 'NULL;'
    insert_sql = f'{_insert_sql(descriptor, record)};'
    body = (f'BEGIN\n'
            f'    IF EXISTS (SELECT 1 FROM {descriptor.table} WHERE {predicate}) THEN\n'
            f'        {update_sql}\n'
            f'    ELSE\n'
            f'        {insert_sql}\n'
            f'    END IF;\n'
            f'END')
    tag = _dollar_tag(body)
    return f'DO {tag}\n{body}\n{tag};'


def build_select_all(table: TableName | str) -> str:
    return f'SELECT * FROM {table_name_of(table)}'


def build_delete(table: TableName | str, predicate: str) -> str:
    """Generate a DELETE statement; the predicate is inlined verbatim.
    """
    return f'DELETE FROM {table_name_of(table)} WHERE {predicate}'


def build_truncate(table: TableName | str) -> str:
    return f'TRUNCATE TABLE {table_name_of(table)}'
