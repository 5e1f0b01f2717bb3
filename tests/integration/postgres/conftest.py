"""
Fixtures for PostgreSQL record mapper integration tests.
"""
import pytest
from pgrecord import RecordMapper
from tests.fixtures.models import KeyedRecord, SampleRecord


@pytest.fixture
def sample_mapper(pg_context):
    """Mapper for identity-keyed sample records on an empty table."""
    return RecordMapper(SampleRecord, pg_context)


@pytest.fixture
def keyed_mapper(pg_context):
    """Mapper for primary-key records on an empty table."""
    return RecordMapper(KeyedRecord, pg_context)
