"""
Hydration of typed records from query rows.

Each record type gets a type map: an ordered chain of column-to-field
mappers consulted for every column of a result row.

1. `ColumnTypeMap` matches the column names declared with `column()`.
2. `DefaultTypeMap` matches field names (exact, case-insensitive, then
   ignoring underscores).

A mapper that cannot bind a column returns None and the next mapper is
probed; an exception raised by a mapper aborts hydration of the row.

Registering a type also registers value handlers for its composite field
types: nested dataclasses decode from JSON (jsonb columns arrive as dicts,
json/text columns as text) and string lists/tuples from PostgreSQL arrays.
Nested JSON is written by field name, so its keys bind by field name only.
Registration is idempotent and recorded before nested types are visited,
so self-referential types terminate.

Usage:
    registry = HydrationRegistry()
    registry.register_module('myapp.models')
    account = registry.hydrate(Account, {'id': 'A', 'balance': 10})
"""
import base64
import dataclasses
import datetime
import importlib
import json
import logging
import threading
import types
import typing
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from functools import partial
from typing import Any, Protocol, TypeVar

import cachetools
import dateutil.parser
from pgrecord.exceptions import HydrationError
from pgrecord.schema import COLUMN_METADATA_KEY, is_string_sequence
from pgrecord.schema import resolve_field_types, unwrap_optional

__all__ = [
    'MemberBinding',
    'TypeMap',
    'ColumnTypeMap',
    'DefaultTypeMap',
    'FallbackTypeMap',
    'HydrationRegistry',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')

_MISSING = dataclasses.MISSING
_CONTAINER_ORIGINS = (list, tuple, set, frozenset)


@dataclass(frozen=True, slots=True)
class MemberBinding:
    """Target of a result column: a constructor parameter or a settable field.
    """
    column: str
    field_name: str
    field_type: Any
    via_constructor: bool = True


class TypeMap(Protocol):
    def find_member(self, column: str) -> MemberBinding | None: ...


def _binding(column: str, f: dataclasses.Field, field_types: dict[str, Any]) -> MemberBinding:
    return MemberBinding(column, f.name, field_types[f.name], via_constructor=f.init)


class ColumnTypeMap:
    """Bind columns to fields by their declared column names.
    """

    def __init__(self, record_type: type) -> None:
        field_types = resolve_field_types(record_type)
        self._by_column: dict[str, tuple[dataclasses.Field, dict]] = {}
        for f in dataclasses.fields(record_type):
            spec = f.metadata.get(COLUMN_METADATA_KEY)
            if spec is not None and spec.name is not None:
                self._by_column[spec.name] = (f, field_types)

    def find_member(self, column: str) -> MemberBinding | None:
        match = self._by_column.get(column)
        if match is None:
            return None
        return _binding(column, *match)


def _squash(name: str) -> str:
    return name.replace('_', '').casefold()


class DefaultTypeMap:
    """Bind columns to fields by field name.
    """

    def __init__(self, record_type: type) -> None:
        self._field_types = resolve_field_types(record_type)
        self._fields = dataclasses.fields(record_type)

    def find_member(self, column: str) -> MemberBinding | None:
        for matches in (lambda f: f.name == column,
                        lambda f: f.name.casefold() == column.casefold(),
                        lambda f: _squash(f.name) == _squash(column)):
            for f in self._fields:
                if matches(f):
                    return _binding(column, f, self._field_types)
        return None


class FallbackTypeMap:
    """Probe a sequence of type maps in order; the first binding wins.
    """

    def __init__(self, maps: Iterable[TypeMap]) -> None:
        self.maps = tuple(maps)

    def find_member(self, column: str) -> MemberBinding | None:
        for type_map in self.maps:
            binding = type_map.find_member(column)
            if binding is not None:
                return binding
        return None


def _is_record_type(tp: Any) -> bool:
    return isinstance(tp, type) and dataclasses.is_dataclass(tp)


def _load_json(value: Any, target: Any) -> Any:
    if isinstance(value, bytes | bytearray | memoryview):
        value = bytes(value).decode()
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except json.JSONDecodeError as err:
        raise HydrationError(f'Invalid JSON for {target!r}: {err}') from err


def _to_enum(enum_type: type[Enum], value: Any) -> Enum:
    if isinstance(value, enum_type):
        return value
    if isinstance(value, str):
        if value in enum_type.__members__:
            return enum_type[value]
        for name, member in enum_type.__members__.items():
            if name.casefold() == value.casefold():
                return member
    try:
        return enum_type(value)
    except ValueError as err:
        raise HydrationError(f'{value!r} is not a member of {enum_type.__name__}') from err


def _to_scalar(tp: Any, value: Any) -> Any:
    """Coerce driver values and JSON text into scalar field types."""
    if tp is datetime.datetime and isinstance(value, str):
        return dateutil.parser.isoparse(value)
    if tp is datetime.date:
        if isinstance(value, datetime.datetime):
            return value.date()
        if isinstance(value, str):
            return dateutil.parser.isoparse(value).date()
    if tp is datetime.time and isinstance(value, str):
        return dateutil.parser.isoparser().parse_isotime(value)
    if tp is bytes:
        if isinstance(value, bytearray | memoryview):
            return bytes(value)
        if isinstance(value, str):
            return base64.b64decode(value)
    if tp is float and isinstance(value, Decimal | int) and not isinstance(value, bool):
        return float(value)
    if tp is int and isinstance(value, Decimal) and value == value.to_integral_value():
        return int(value)
    if tp is Decimal and isinstance(value, int | float | str):
        return Decimal(str(value))
    if tp is uuid.UUID and isinstance(value, str):
        return uuid.UUID(value)
    return value


class HydrationRegistry:
    """Process-wide table of type maps and composite value handlers.

    Entries are append-only: a type moves from unregistered to registered
    exactly once and is never re-registered.
    """

    def __init__(self, plan_cache_size: int = 256) -> None:
        self._type_maps: dict[type, TypeMap] = {}
        self._field_maps: dict[type, TypeMap] = {}
        self._value_handlers: dict[Any, Callable[[Any], Any]] = {}
        self._plans: cachetools.LRUCache = cachetools.LRUCache(maxsize=plan_cache_size)
        self._lock = threading.RLock()

    def is_registered(self, record_type: type) -> bool:
        return record_type in self._type_maps

    @property
    def registered_types(self) -> list[type]:
        return list(self._type_maps)

    def ensure_registered(self, record_type: type) -> TypeMap:
        """Return the type map of a record type, registering it on first use.

        Nested record types reachable from its fields are registered
        depth-first before this call returns.
        """
        type_map = self._type_maps.get(record_type)
        if type_map is not None:
            return type_map

        if not _is_record_type(record_type):
            raise HydrationError(f'{record_type!r} is not a dataclass type')

        with self._lock:
            if record_type in self._type_maps:
                return self._type_maps[record_type]
            type_map = FallbackTypeMap([ColumnTypeMap(record_type), DefaultTypeMap(record_type)])
            self._type_maps[record_type] = type_map
            logger.debug(f'Registered type map for {record_type.__name__}')
            for field_type in resolve_field_types(record_type).values():
                self._register_value_type(field_type)
            return type_map

    def _register_value_type(self, tp: Any) -> None:
        tp = unwrap_optional(tp)
        try:
            if tp in self._value_handlers:
                return
        except TypeError:
            return

        if _is_record_type(tp):
            self._value_handlers[tp] = partial(self._decode_nested, tp)
            logger.debug(f'Registered JSON handler for nested type {tp.__name__}')
            self.ensure_registered(tp)
        elif is_string_sequence(tp):
            self._value_handlers[tp] = partial(self._decode_string_sequence, typing.get_origin(tp))
            logger.debug(f'Registered array handler for {tp}')
        elif typing.get_origin(tp) in {*_CONTAINER_ORIGINS, dict}:
            for arg in typing.get_args(tp):
                if arg is not Ellipsis:
                    self._register_value_type(arg)

    def register_module(self, module: types.ModuleType | str) -> list[type]:
        """Register every dataclass defined in a module.

        Parameters
            module: Module object or importable module name

        Returns
            The dataclass types found in the module
        """
        if isinstance(module, str):
            module = importlib.import_module(module)
        found = [obj for obj in vars(module).values()
                 if _is_record_type(obj) and obj.__module__ == module.__name__]
        for record_type in found:
            self.ensure_registered(record_type)
        logger.debug(f'Registered {len(found)} record types from {module.__name__}')
        return found

    def _field_map(self, record_type: type) -> TypeMap:
        self.ensure_registered(record_type)
        with self._lock:
            if record_type not in self._field_maps:
                self._field_maps[record_type] = DefaultTypeMap(record_type)
            return self._field_maps[record_type]

    def _plan(self, record_type: type, columns: tuple[str, ...],
              by_field_name: bool = False) -> list[MemberBinding]:
        key = (record_type, columns, by_field_name)
        with self._lock:
            plan = self._plans.get(key)
            if plan is None:
                if by_field_name:
                    type_map = self._field_map(record_type)
                else:
                    type_map = self.ensure_registered(record_type)
                plan = [b for b in (type_map.find_member(c) for c in columns) if b is not None]
                self._plans[key] = plan
        return plan

    def convert(self, tp: Any, value: Any) -> Any:
        """Convert a raw column or JSON value into the declared field type.
        """
        if value is None:
            return None
        tp = unwrap_optional(tp)
        if tp is Any or isinstance(tp, str | TypeVar):
            return value

        try:
            handler = self._value_handlers.get(tp)
        except TypeError:
            handler = None
        if handler is not None:
            return handler(value)

        if _is_record_type(tp):
            self._register_value_type(tp)
            return self._value_handlers[tp](value)
        if isinstance(tp, type) and issubclass(tp, Enum):
            return _to_enum(tp, value)

        origin, args = typing.get_origin(tp), typing.get_args(tp)
        if origin in _CONTAINER_ORIGINS:
            items = _load_json(value, tp)
            if origin is tuple and args and args[-1] is not Ellipsis:
                return tuple(self.convert(a, v) for a, v in zip(args, items))
            item_type = args[0] if args else Any
            return origin(self.convert(item_type, v) for v in items)
        if origin is dict or tp is dict:
            data = _load_json(value, tp)
            value_type = args[1] if len(args) == 2 else Any
            return {k: self.convert(value_type, v) for k, v in data.items()}

        return _to_scalar(tp, value)

    def _decode_nested(self, record_type: type, value: Any) -> Any:
        if isinstance(value, record_type):
            return value
        data = _load_json(value, record_type)
        if not isinstance(data, Mapping):
            raise HydrationError(
                f'Expected a JSON object for {record_type.__name__}, got {type(data).__name__}')
        return self._materialize(record_type, data, self._plan(record_type, tuple(data), by_field_name=True))

    def _decode_string_sequence(self, origin: type, value: Any) -> Any:
        items = _load_json(value, origin) if isinstance(value, str | bytes) else value
        if not isinstance(items, list | tuple):
            raise HydrationError(f'Expected an array, got {type(items).__name__}')
        return origin(items)

    def hydrate(self, record_type: type[T], row: Mapping[str, Any]) -> T:
        """Materialize one record from a mapping row.

        Columns without a binding are ignored; fields without a column keep
        their dataclass defaults.

        Raises
            HydrationError: If a required field has no column or a value
                cannot be decoded.
        """
        return self._materialize(record_type, row, self._plan(record_type, tuple(row.keys())))

    def _materialize(self, record_type: type[T], row: Mapping[str, Any],
                     plan: list[MemberBinding]) -> T:
        init_values: dict[str, Any] = {}
        late_values: dict[str, Any] = {}
        for binding in plan:
            value = self.convert(binding.field_type, row[binding.column])
            target = init_values if binding.via_constructor else late_values
            target[binding.field_name] = value

        missing = [f.name for f in dataclasses.fields(record_type)
                   if f.init and f.name not in init_values
                   and f.default is _MISSING and f.default_factory is _MISSING]
        if missing:
            raise HydrationError(f'{record_type.__name__} row has no column for required fields {missing}')

        record = record_type(**init_values)
        for name, value in late_values.items():
            object.__setattr__(record, name, value)
        return record

    def hydrate_all(self, record_type: type[T], rows: Iterable[Mapping[str, Any]]) -> list[T]:
        return [self.hydrate(record_type, row) for row in rows]
