"""
Mapper context: connection configuration, executor and hydration registry.

A `MapperContext` is built once and handed to every `RecordMapper`. The
module keeps one default context so the simple form works without passing
a handle around:

    import pgrecord

    pgrecord.set_connection_string('Host=localhost;Port=5432;Username=user;'
                                   'Password=secret;Database=testdb')
    pgrecord.initialize('myapp.models')

Configuration is expected to happen once before any mapping operation;
afterwards the context is only read. Operations on an unconfigured context
raise `ConfigurationError`.
"""
import logging
import threading
import types
from dataclasses import fields
from typing import Any

from pgrecord.exceptions import ConfigurationError
from pgrecord.executor import EngineExecutor, SqlExecutor
from pgrecord.hydration import HydrationRegistry
from pgrecord.options import MapperOptions, create_url_from_options
from pgrecord.options import parse_connection_string

from libb import load_options

__all__ = [
    'MapperContext',
    'configure',
    'get_default_context',
    'set_connection_string',
    'get_connection_string',
    'initialize',
]

logger = logging.getLogger(__name__)


class MapperContext:
    """Handle shared by all mapping operations.
    """

    def __init__(self, executor: SqlExecutor | None = None,
                 registry: HydrationRegistry | None = None,
                 connection_string: str | None = None) -> None:
        self._executor = executor
        self._connection_string = connection_string
        self.registry = registry or HydrationRegistry()
        self._lock = threading.RLock()

    @classmethod
    def from_connection_string(cls, connection_string: str, use_pool: bool = False) -> 'MapperContext':
        context = cls()
        context.set_connection_string(connection_string, use_pool=use_pool)
        return context

    def set_connection_string(self, connection_string: str, use_pool: bool = False) -> None:
        """Configure the connection used by every operation on this context.

        Raises
            ConfigurationError: If the connection string cannot be parsed.
        """
        url = parse_connection_string(connection_string)
        with self._lock:
            if self._connection_string is not None and self._connection_string != connection_string:
                logger.warning('Replacing the configured connection string')
            self._connection_string = connection_string
            self._executor = EngineExecutor(url, use_pool=use_pool)
        logger.debug(f'Configured connection to {url.host}:{url.port}/{url.database}')

    def get_connection_string(self) -> str | None:
        return self._connection_string

    @property
    def is_configured(self) -> bool:
        return self._executor is not None

    @property
    def executor(self) -> SqlExecutor:
        """Return the executor, failing fast when nothing is configured.
        """
        if self._executor is None:
            raise ConfigurationError(
                "Connection string is not set. Call 'set_connection_string' before executing any operations.")
        return self._executor

    def initialize(self, module: types.ModuleType | str) -> list[type]:
        """Register the hydration maps of every record type in a module.
        """
        return self.registry.register_module(module)


@load_options(cls=MapperOptions)
def configure(options: MapperOptions | dict[str, Any] | str,
              config: Any | None = None, **kw: Any) -> MapperContext:
    """Build a context from mapper options.

    Args:
        options: Can be:
                - MapperOptions object
                - String naming an options section of the config module
                - Dictionary of options
        config: Configuration object (for loading from config files)
        **kw: Additional keyword arguments to override options

    Returns
        MapperContext connected through a SQLAlchemy engine
    """
    if isinstance(options, MapperOptions):
        for field in fields(options):
            kw.pop(field.name, None)
    else:
        options_func = load_options(cls=MapperOptions)(lambda o, c: o)
        options = options_func(options, config, **kw)

    url = create_url_from_options(options)
    executor = EngineExecutor(url, use_pool=options.use_pool,
                              pool_size=options.pool_max_connections,
                              pool_recycle=options.pool_max_idle_time,
                              pool_timeout=options.pool_wait_timeout)
    return MapperContext(executor=executor,
                         connection_string=url.render_as_string(hide_password=False))


_default_context = MapperContext()


def get_default_context() -> MapperContext:
    return _default_context


def set_connection_string(connection_string: str) -> None:
    """Configure the default context.
    """
    _default_context.set_connection_string(connection_string)


def get_connection_string() -> str | None:
    return _default_context.get_connection_string()


def initialize(module: types.ModuleType | str) -> list[type]:
    """Register every record type of a module on the default context.
    """
    return _default_context.initialize(module)
