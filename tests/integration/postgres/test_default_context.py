import pgrecord
import pytest
from pgrecord import ConfigurationError
from tests.fixtures.models import KeyedRecord, UnkeyedRecord
from tests.fixtures.postgres import stage_schema

pytestmark = pytest.mark.integration


def test_module_functions_after_set_connection_string(default_context, pg_connection_string):
    """Test the module-level operations against a configured default context"""
    with pytest.raises(ConfigurationError):
        pgrecord.enumerate_records(KeyedRecord, KeyedRecord.table())

    pgrecord.set_connection_string(pg_connection_string)
    pgrecord.initialize('tests.fixtures.models')
    stage_schema(default_context)

    assert pgrecord.get_connection_string() == pg_connection_string

    pgrecord.insert([KeyedRecord(id='A', int_field=1), UnkeyedRecord(line='hello')])
    pgrecord.upsert(KeyedRecord(id='A', int_field=2))

    assert pgrecord.get(KeyedRecord, KeyedRecord.get_from_id('A')) == KeyedRecord(id='A', int_field=2)
    assert pgrecord.enumerate_records(UnkeyedRecord, UnkeyedRecord.table()) == [
        UnkeyedRecord(line='hello')]

    pgrecord.delete(KeyedRecord.table(), "id = 'A'")
    pgrecord.truncate(UnkeyedRecord.table())

    assert pgrecord.enumerate_records(KeyedRecord, KeyedRecord.table()) == []
    assert pgrecord.enumerate_records(UnkeyedRecord, UnkeyedRecord.table()) == []

    default_context.executor.dispose()


if __name__ == '__main__':
    __import__('pytest').main([__file__])
