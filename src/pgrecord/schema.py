"""
Schema extraction for mapped record types.

A record type is a dataclass whose mapped fields are declared with
`column()`. The column metadata lives in the dataclass field metadata,
so no decorator or metaclass is involved:

    @dataclass
    class Account(DatabaseRecord):
        __tablename__ = 'accounts'

        id: str = column('id', primary_key=True, default='')
        balance: int = column('balance', default=0)
        note: str = ''                      # not mapped

`describe()` turns such a type into an `EntityDescriptor` once and caches
it for the lifetime of the process.
"""
import dataclasses
import logging
import threading
import types
import typing
from dataclasses import dataclass
from typing import Any

from pgrecord.exceptions import SchemaError

__all__ = [
    'COLUMN_METADATA_KEY',
    'ColumnSpec',
    'ColumnDescriptor',
    'EntityDescriptor',
    'column',
    'describe',
    'resolve_field_types',
    'unwrap_optional',
    'is_string_sequence',
]

logger = logging.getLogger(__name__)

COLUMN_METADATA_KEY = 'pgrecord.column'

_descriptor_registry: dict[type, 'EntityDescriptor'] = {}
_descriptor_registry_lock = threading.RLock()


@dataclass(frozen=True, slots=True)
class ColumnSpec:
    """Column metadata attached to a dataclass field."""
    name: str | None
    primary_key: bool = False
    identity: bool = False


def column(name: str | None, *, primary_key: bool = False, identity: bool = False,
           **kwargs: Any) -> Any:
    """Declare a mapped dataclass field.

    Accepts every keyword `dataclasses.field` accepts (default,
    default_factory, repr, compare, ...). A `None` name keeps the field on
    the record but hides it from SQL generation.
    """
    metadata = dict(kwargs.pop('metadata', None) or {})
    metadata[COLUMN_METADATA_KEY] = ColumnSpec(name, primary_key, identity)
    return dataclasses.field(metadata=metadata, **kwargs)


@dataclass(frozen=True, slots=True)
class ColumnDescriptor:
    """Mapped column of a record type."""
    name: str
    field_name: str
    field_type: Any
    is_primary_key: bool = False
    is_identity: bool = False

    def value_of(self, record: Any) -> Any:
        return getattr(record, self.field_name)


@dataclass(frozen=True, slots=True)
class EntityDescriptor:
    """Table name and ordered mapped columns of a record type."""
    record_type: type
    table: str
    columns: tuple[ColumnDescriptor, ...]

    @property
    def identity(self) -> ColumnDescriptor | None:
        return next((c for c in self.columns if c.is_identity), None)

    @property
    def primary_key(self) -> ColumnDescriptor | None:
        return next((c for c in self.columns if c.is_primary_key), None)

    @property
    def insert_columns(self) -> tuple[ColumnDescriptor, ...]:
        """Columns written by INSERT; the identity column is left to the store.
        """
        return tuple(c for c in self.columns if not c.is_identity)

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def by_name(self, name: str) -> ColumnDescriptor | None:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def upsert_key(self) -> ColumnDescriptor:
        """Return the column that drives upsert behavior.

        The identity column wins over the primary key when both are declared.

        Raises
            SchemaError: If neither an identity nor a primary-key column exists.
        """
        key = self.identity or self.primary_key
        if key is None:
            raise SchemaError(
                f'{self.record_type.__name__} declares neither an identity nor a '
                f'primary key column; upsert is not possible')
        return key


def resolve_field_types(record_type: type) -> dict[str, Any]:
    """Resolve dataclass field annotations, including postponed ones.

    Falls back to the raw `Field.type` when a forward reference cannot be
    resolved (e.g. a class defined inside a function).
    """
    try:
        hints = typing.get_type_hints(record_type)
    except (NameError, TypeError) as err:
        logger.debug(f'Could not resolve annotations of {record_type.__name__}: {err}')
        hints = {}
    return {f.name: hints.get(f.name, f.type) for f in dataclasses.fields(record_type)}


def unwrap_optional(tp: Any) -> Any:
    """Return X for `X | None` / `Optional[X]`, otherwise the type unchanged."""
    if typing.get_origin(tp) in {typing.Union, types.UnionType}:
        args = [a for a in typing.get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return tp


def is_string_sequence(tp: Any) -> bool:
    """True for `list[str]` and `tuple[str, ...]`, the types stored as text arrays."""
    origin, args = typing.get_origin(tp), typing.get_args(tp)
    if origin is list:
        return args == (str,)
    if origin is tuple:
        return args == (str, ...)
    return False


def _extract(record_type: type) -> EntityDescriptor:
    if not (isinstance(record_type, type) and dataclasses.is_dataclass(record_type)):
        raise SchemaError(f'{record_type!r} is not a dataclass type')

    table = getattr(record_type, '__tablename__', None)
    if not table:
        raise SchemaError(f'{record_type.__name__} does not define __tablename__')

    field_types = resolve_field_types(record_type)
    columns = []
    for f in dataclasses.fields(record_type):
        spec = f.metadata.get(COLUMN_METADATA_KEY)
        if spec is None or spec.name is None:
            continue
        columns.append(ColumnDescriptor(
            name=spec.name,
            field_name=f.name,
            field_type=field_types[f.name],
            is_primary_key=spec.primary_key,
            is_identity=spec.identity,
        ))

    names = [c.name for c in columns]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise SchemaError(f'{record_type.__name__} declares duplicate columns: {duplicates}')

    identities = [c.name for c in columns if c.is_identity]
    if len(identities) > 1:
        raise SchemaError(f'{record_type.__name__} declares more than one identity column: {identities}')

    primary_keys = [c.name for c in columns if c.is_primary_key]
    if len(primary_keys) > 1:
        raise SchemaError(f'{record_type.__name__} declares more than one primary key column: {primary_keys}')

    if identities and primary_keys:
        logger.warning(f'{record_type.__name__} declares both identity column {identities[0]!r} '
                       f'and primary key {primary_keys[0]!r}; upserts use the identity column')

    return EntityDescriptor(record_type, table, tuple(columns))


def describe(record_type: type) -> EntityDescriptor:
    """Return the cached entity descriptor for a record type.

    Raises
        SchemaError: If the type is not a mappable record declaration.
    """
    descriptor = _descriptor_registry.get(record_type)
    if descriptor is not None:
        return descriptor

    with _descriptor_registry_lock:
        if record_type not in _descriptor_registry:
            _descriptor_registry[record_type] = _extract(record_type)
            logger.debug(f'Described {record_type.__name__} as table {_descriptor_registry[record_type].table}')
        return _descriptor_registry[record_type]
