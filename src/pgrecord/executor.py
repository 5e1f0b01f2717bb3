"""
SQL execution for generated statements.

This module provides:
1. A thread-safe registry of SQLAlchemy engines keyed by connection URL
2. The `SqlExecutor` protocol the mapper depends on
3. `EngineExecutor`, which runs each call on its own pooled connection and
   releases it on every exit path

Statements carry inlined literals, so `execute` passes no parameters to the
driver and psycopg leaves percent signs in the text alone.
"""
import atexit
import logging
import threading
import time
from collections.abc import Callable, Mapping
from functools import wraps
from typing import Any, Protocol

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

__all__ = [
    'SqlExecutor',
    'EngineExecutor',
    'DictRowFactory',
    'get_engine',
    'dispose_all_engines',
]

logger = logging.getLogger(__name__)

_engine_registry: dict[str, Engine] = {}
_engine_registry_lock = threading.RLock()


class SqlExecutor(Protocol):
    def execute(self, sql: str) -> int: ...

    def query(self, sql: str, params: Mapping[str, Any] | None = None) -> list[dict[str, Any]]: ...


class DictRowFactory:
    """Row factory for psycopg that returns dictionary rows.
    """

    def __init__(self, cursor: Any) -> None:
        self.fields = [c.name for c in (cursor.description or [])]

    def __call__(self, values: tuple) -> dict:
        return dict(zip(self.fields, values))


def get_engine(url: sa.URL, use_pool: bool = False, pool_size: int = 5,
               pool_recycle: int = 300, pool_timeout: int = 30,
               engine_factory: Callable[..., Engine] = sa.create_engine,
               **kwargs: Any) -> Engine:
    """Get or create a SQLAlchemy engine for the given URL.
    """
    key = f'{url.render_as_string(hide_password=False)}_{use_pool}_{pool_size}_{pool_recycle}_{pool_timeout}'

    with _engine_registry_lock:
        if key in _engine_registry:
            logger.debug(f'Using existing engine for {url.host}')
            return _engine_registry[key]

        engine_kwargs: dict[str, Any] = {'echo': False}

        if not use_pool:
            engine_kwargs['poolclass'] = NullPool
        else:
            engine_kwargs['pool_size'] = pool_size
            engine_kwargs['pool_recycle'] = pool_recycle
            engine_kwargs['pool_timeout'] = pool_timeout
            engine_kwargs['max_overflow'] = 10
            engine_kwargs['pool_pre_ping'] = True
            engine_kwargs['pool_reset_on_return'] = 'rollback'

        engine_kwargs.update(kwargs)

        engine = engine_factory(url, **engine_kwargs)

        _engine_registry[key] = engine
        logger.debug(f'Created new engine for {url.host}')

        return engine


def dispose_all_engines() -> None:
    """Dispose all engines in the registry.
    """
    with _engine_registry_lock:
        for engine in list(_engine_registry.values()):
            engine.dispose()
        _engine_registry.clear()
        logger.debug('All database engines disposed')


atexit.register(dispose_all_engines)


def dumpsql(func):
    """Decorator for logging SQL statements, parameters and timing."""
    @wraps(func)
    def wrapper(self, sql: str, *args: Any, **kwargs: Any):
        start = time.time()
        logger.debug(f'SQL:\n{sql}\nargs: {args}')
        try:
            return func(self, sql, *args, **kwargs)
        except Exception:
            logger.error(f'Error with query:\nSQL:\n{sql}\nargs: {args}')
            raise
        finally:
            elapsed = time.time() - start
            self.addcall(elapsed)
            logger.debug(f'Query time: {elapsed:.4f}s')
    return wrapper


class EngineExecutor:
    """Run statements against PostgreSQL through a SQLAlchemy engine.

    Each call checks a connection out of the engine, commits on success,
    rolls back on failure and always returns the connection.
    """

    def __init__(self, url: sa.URL, use_pool: bool = False, pool_size: int = 5,
                 pool_recycle: int = 300, pool_timeout: int = 30,
                 engine_factory: Callable[..., Engine] = sa.create_engine) -> None:
        self.url = url
        self.engine = get_engine(url, use_pool=use_pool, pool_size=pool_size,
                                 pool_recycle=pool_recycle, pool_timeout=pool_timeout,
                                 engine_factory=engine_factory)
        self.calls = 0
        self.time = 0.0

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def _run(self, sql: str, params: Mapping[str, Any] | None,
             fetch: bool) -> int | list[dict[str, Any]]:
        with self.engine.connect() as sa_connection:
            dbapi_connection = sa_connection.connection
            try:
                with dbapi_connection.cursor(row_factory=DictRowFactory) as cursor:
                    cursor.execute(sql, params or None)
                    if fetch:
                        result = cursor.fetchall() if cursor.description else []
                    else:
                        result = cursor.rowcount
                dbapi_connection.commit()
                return result
            except Exception:
                dbapi_connection.rollback()
                raise

    @dumpsql
    def execute(self, sql: str) -> int:
        """Execute a statement and return the affected row count.

        PostgreSQL reports -1 for statements without a row count, such as DO
        blocks.
        """
        return self._run(sql, None, fetch=False)

    @dumpsql
    def query(self, sql: str, params: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        """Execute a query and return its rows as dictionaries.
        """
        rows = self._run(sql, params, fetch=True)
        logger.debug(f'Query returned {len(rows)} rows')
        return rows

    def dispose(self) -> None:
        self.engine.dispose()
        logger.debug(f'Connection stats: {self.calls} queries in {self.time:.2f}s '
                     f'(avg: {self.time/max(1, self.calls):.3f}s per query)')
