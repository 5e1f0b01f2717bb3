"""
Lightweight record mapping for PostgreSQL.

Typed dataclass records are turned into INSERT/UPSERT statements with
inlined literals, and query rows are hydrated back into records.

All operations can be called either as:
- Module functions: pgrecord.insert(record), pgrecord.get(Account, query)
- RecordMapper methods: RecordMapper(Account, context).insert(record)

The module functions act on the default context configured with
`set_connection_string`.
"""
__version__ = '0.1.0'

from pgrecord.context import MapperContext, configure, get_connection_string
from pgrecord.context import get_default_context, initialize
from pgrecord.context import set_connection_string
from pgrecord.encoding import ValueCategory, categorize, to_literal
from pgrecord.exceptions import ConfigurationError, DbConnectionError
from pgrecord.exceptions import EncodingError, HydrationError, IntegrityError
from pgrecord.exceptions import MapperError, ProgrammingError, SchemaError
from pgrecord.exceptions import UniqueViolation
from pgrecord.executor import EngineExecutor, SqlExecutor
from pgrecord.hydration import HydrationRegistry
from pgrecord.mapper import RecordMapper, delete, enumerate_records, get
from pgrecord.mapper import insert, truncate, upsert
from pgrecord.options import MapperOptions
from pgrecord.query import Query, TableName
from pgrecord.record import DatabaseRecord
from pgrecord.schema import ColumnDescriptor, EntityDescriptor, column
from pgrecord.schema import describe
from pgrecord.statements import build_insert, build_upsert

__all__ = [
    'DatabaseRecord',
    'column',
    'describe',
    'ColumnDescriptor',
    'EntityDescriptor',
    'Query',
    'TableName',
    'RecordMapper',
    'MapperContext',
    'MapperOptions',
    'HydrationRegistry',
    'SqlExecutor',
    'EngineExecutor',
    'configure',
    'set_connection_string',
    'get_connection_string',
    'get_default_context',
    'initialize',
    'get',
    'enumerate_records',
    'upsert',
    'insert',
    'delete',
    'truncate',
    'build_insert',
    'build_upsert',
    'to_literal',
    'categorize',
    'ValueCategory',
    'MapperError',
    'ConfigurationError',
    'SchemaError',
    'EncodingError',
    'HydrationError',
    'DbConnectionError',
    'IntegrityError',
    'ProgrammingError',
    'UniqueViolation',
]
