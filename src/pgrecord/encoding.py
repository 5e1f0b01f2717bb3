"""
SQL literal encoding of record field values.

Statements are assembled as plain text, so every field value is rendered
into PostgreSQL literal syntax here. The category of a value decides the
rendering; categories are tested in a fixed order and the first match wins:

    string        'text'                       (no quote escaping)
    datetime      '2024-01-02T03:04:05'
    boolean       true / false
    byte-sequence E'\\x010203'
    string array  '{"a", "b"}'                 (list[str] / tuple[str, ...] fields)
    null          null
    enum          'MemberName'
    nested object '{"json": "text"}'           (single quotes doubled)
    other         str(value), unquoted

Byte sequences and string arrays are tested before the nested-object rule
because both would otherwise be serialized to JSON.
"""
import base64
import dataclasses
import datetime
import json
import logging
import uuid
from collections.abc import Mapping
from enum import Enum
from numbers import Number
from typing import Any

from pgrecord.exceptions import EncodingError
from pgrecord.schema import is_string_sequence, unwrap_optional

__all__ = [
    'ValueCategory',
    'categorize',
    'to_literal',
    'to_jsonable',
    'dumps',
]

logger = logging.getLogger(__name__)

DATETIME_TYPES = (datetime.datetime, datetime.date, datetime.time)
BYTE_TYPES = (bytes, bytearray, memoryview)


class ValueCategory(Enum):
    """Semantic category of a value for literal encoding."""
    STRING = 'string'
    DATETIME = 'datetime'
    BOOLEAN = 'boolean'
    BYTES = 'byte-sequence'
    STRING_ARRAY = 'string-array-or-list'
    NULL = 'null'
    ENUM = 'enum'
    NESTED = 'nested-object'
    OTHER = 'numeric-or-other'


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and not isinstance(value, Enum)


def _is_composite(value: Any) -> bool:
    if isinstance(value, Number):
        return False
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return True
    if isinstance(value, Mapping | list | tuple | set | frozenset):
        return True
    return hasattr(value, '__dict__') and not isinstance(value, type)


def _is_string_array(value: Any, field_type: Any) -> bool:
    if not isinstance(value, list | tuple):
        return False
    declared = unwrap_optional(field_type)
    if declared is None or declared is Any or isinstance(declared, str):
        return bool(value) and all(_is_text(item) for item in value)
    return is_string_sequence(declared)


def categorize(value: Any, field_type: Any = None) -> ValueCategory:
    """Return the encoding category of a runtime value.

    A declared `list[str]` or `tuple[str, ...]` field type makes any list or
    tuple a string array, empty ones included. Without a declared type only
    non-empty all-string sequences are.
    """
    if _is_text(value) or isinstance(value, uuid.UUID):
        return ValueCategory.STRING
    if isinstance(value, DATETIME_TYPES):
        return ValueCategory.DATETIME
    if isinstance(value, bool):
        return ValueCategory.BOOLEAN
    if isinstance(value, BYTE_TYPES):
        return ValueCategory.BYTES
    if _is_string_array(value, field_type):
        return ValueCategory.STRING_ARRAY
    if value is None:
        return ValueCategory.NULL
    if isinstance(value, Enum):
        return ValueCategory.ENUM
    if _is_composite(value):
        return ValueCategory.NESTED
    return ValueCategory.OTHER


def to_jsonable(value: Any) -> Any:
    """Convert a value into plain JSON-compatible Python data.

    Dataclasses become objects keyed by field name, enums their member
    name, temporal values ISO-8601 text and byte sequences base64 text.
    """
    if value is None or isinstance(value, bool | int | float) and not isinstance(value, Enum):
        return value
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, str):
        return value
    if isinstance(value, DATETIME_TYPES):
        return value.isoformat()
    if isinstance(value, BYTE_TYPES):
        return base64.b64encode(bytes(value)).decode('ascii')
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple | set | frozenset):
        return [to_jsonable(v) for v in value]
    if isinstance(value, Number | uuid.UUID):
        return str(value)
    if hasattr(value, '__dict__'):
        return {k: to_jsonable(v) for k, v in vars(value).items() if not k.startswith('_')}
    raise EncodingError(f'Cannot serialize {type(value).__name__} to JSON')


def dumps(value: Any) -> str:
    """Serialize a composite value to JSON text.

    Raises
        EncodingError: If the value holds something JSON cannot represent.
    """
    try:
        return json.dumps(to_jsonable(value))
    except (TypeError, ValueError) as err:
        raise EncodingError(f'Cannot serialize {type(value).__name__} to JSON: {err}') from err


def to_literal(value: Any, field_type: Any = None) -> str:
    """Render a single field value as PostgreSQL literal text.

    Embedded single quotes in plain strings are emitted unchanged; only JSON
    payloads have their quotes doubled.
    """
    match categorize(value, field_type):
        case ValueCategory.STRING:
            return f"'{value}'"
        case ValueCategory.DATETIME:
            return f"'{value.isoformat()}'"
        case ValueCategory.BOOLEAN:
            return 'true' if value else 'false'
        case ValueCategory.BYTES:
            return f"E'\\\\x{bytes(value).hex()}'"
        case ValueCategory.STRING_ARRAY:
            items = ', '.join(f'"{item}"' for item in value)
            return f"'{{{items}}}'"
        case ValueCategory.NULL:
            return 'null'
        case ValueCategory.ENUM:
            return f"'{value.name}'"
        case ValueCategory.NESTED:
            payload = dumps(value).replace("'", "''")
            return f"'{payload}'"
        case _:
            return f'{value}'
