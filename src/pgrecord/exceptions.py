"""
Record mapper exception classes.
"""
import psycopg
import sqlalchemy.exc


class MapperError(Exception):
    """Base class for all record mapper errors.
    """


class ConfigurationError(MapperError):
    """Connection or options used before being configured, or invalid.
    """


class SchemaError(MapperError):
    """Record type declaration cannot drive the requested statement.
    """


class EncodingError(MapperError):
    """Value could not be rendered as SQL literal text.
    """


class HydrationError(MapperError):
    """Query row could not be materialized into a record.
    """


DbConnectionError = (
    psycopg.OperationalError,
    psycopg.InterfaceError,
    sqlalchemy.exc.OperationalError,
    sqlalchemy.exc.InterfaceError,
    )

IntegrityError = (
    psycopg.IntegrityError,
    sqlalchemy.exc.IntegrityError,
    )

ProgrammingError = (
    psycopg.ProgrammingError,
    psycopg.DatabaseError,
    sqlalchemy.exc.ProgrammingError,
    )

UniqueViolation = (
    psycopg.errors.UniqueViolation,
    )
