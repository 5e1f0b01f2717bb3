import logging
import pathlib
import sys

import pgrecord
import pytest

from libb import Setting

HERE = pathlib.Path(pathlib.Path(__file__).resolve()).parent
sys.path.insert(0, str(HERE.parent))
import config

logger = logging.getLogger(__name__)


@pytest.fixture(scope='session')
def psql_docker(request):
    """Session-scoped PostgreSQL container using testcontainers.

    Testcontainers automatically:
    - Assigns a random available port
    - Waits for the database to be ready
    - Handles cleanup when the session ends

    Tests depending on it are skipped when no container runtime is available.
    """
    try:
        from testcontainers.postgres import PostgresContainer
    except ImportError as e:
        pytest.skip(f'testcontainers not installed: {e}')

    container = PostgresContainer(
        image='postgres:16',
        username=config.postgresql.username,
        password=config.postgresql.password,
        dbname=config.postgresql.database,
    )

    try:
        container.start()
    except Exception as e:
        logger.warning(f'Could not start postgres container: {e}')
        pytest.skip(f'PostgreSQL container unavailable: {e}')

    Setting.unlock()
    config.postgresql.hostname = container.get_container_host_ip()
    config.postgresql.port = int(container.get_exposed_port(5432))
    Setting.lock()

    logger.info(
        f'PostgreSQL container started at '
        f'{config.postgresql.hostname}:{config.postgresql.port}'
    )

    def finalizer():
        try:
            container.stop()
            logger.info('PostgreSQL container stopped')
        except Exception as e:
            logger.warning(f'Error stopping container: {e}')

    request.addfinalizer(finalizer)
    return container


SCHEMA_SQL = """
drop table if exists sample_records;
drop table if exists keyed_records;
drop table if exists log_lines;

create table sample_records (
    id bigint generated always as identity primary key,
    string_column text,
    date_column timestamp,
    bool_column boolean,
    bytes_column bytea,
    null_column text,
    array_column text[],
    enum_column text,
    list_column text[],
    int_column integer,
    nested_column jsonb
);

create table keyed_records (
    id varchar(50) primary key,
    int_field integer,
    list_field text[],
    label text
);

create table log_lines (
    line text
);
"""


def stage_schema(context):
    for statement in SCHEMA_SQL.split(';'):
        if statement.strip():
            context.executor.execute(statement)


@pytest.fixture
def pg_context(psql_docker):
    """Context configured from the config module, with fresh tables."""
    context = pgrecord.configure('postgresql', config=config)
    context.initialize('tests.fixtures.models')
    stage_schema(context)
    yield context
    context.executor.dispose()


@pytest.fixture
def pg_connection_string(psql_docker):
    """Semicolon-pair connection string for the running container."""
    return (f'Host={config.postgresql.hostname};Port={config.postgresql.port};'
            f'Username={config.postgresql.username};Password={config.postgresql.password};'
            f'Database={config.postgresql.database}')
