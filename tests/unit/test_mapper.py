import pgrecord
import pytest
from pgrecord import ConfigurationError, MapperContext, Query, RecordMapper
from pgrecord import SchemaError, TableName
from tests.fixtures.models import KeyedRecord, SampleEnum, SampleRecord
from tests.fixtures.models import UnkeyedRecord


@pytest.fixture
def context(recording_executor):
    return MapperContext(executor=recording_executor)


def test_operations_require_configuration():
    """Test that every operation fails before touching a database"""
    mapper = RecordMapper(KeyedRecord)
    record = KeyedRecord(id='A')

    for call in (lambda: mapper.get(KeyedRecord.get_from_id('A')),
                 lambda: mapper.enumerate(TableName('keyed_records')),
                 lambda: mapper.upsert(record),
                 lambda: mapper.insert(record),
                 lambda: mapper.delete(TableName('keyed_records'), "id = 'A'"),
                 lambda: mapper.truncate(TableName('keyed_records')),
                 lambda: pgrecord.insert(record)):
        with pytest.raises(ConfigurationError):
            call()


def test_get_returns_first_row(make_executor):
    """Test that get hydrates the first row of the query"""
    executor = make_executor(rows=[
        {'id': 'A', 'int_field': 123, 'list_field': ['x', 'y'], 'label': 'Option2'},
        {'id': 'B', 'int_field': 1, 'list_field': [], 'label': None},
    ])
    mapper = RecordMapper(KeyedRecord, MapperContext(executor=executor))

    record = mapper.get(KeyedRecord.get_from_id('A'))

    assert record == KeyedRecord(id='A', int_field=123, list_field=['x', 'y'],
                                 label=SampleEnum.Option2)
    assert executor.queries == [('SELECT * FROM keyed_records WHERE id = %(id)s', {'id': 'A'})]


def test_get_without_rows(context):
    assert RecordMapper(KeyedRecord, context).get(Query('SELECT * FROM keyed_records')) is None


def test_enumerate_table(make_executor):
    """Test that enumerating a table selects every row"""
    executor = make_executor(rows=[{'id': 'A'}, {'id': 'B'}, {'id': 'C'}])
    mapper = RecordMapper(KeyedRecord, MapperContext(executor=executor))

    records = mapper.enumerate(TableName('keyed_records'))

    assert [r.id for r in records] == ['A', 'B', 'C']
    assert executor.queries == [('SELECT * FROM keyed_records', None)]


def test_enumerate_query(make_executor):
    executor = make_executor(rows=[{'id': 'A'}])
    mapper = RecordMapper(KeyedRecord, MapperContext(executor=executor))

    assert mapper.enumerate(Query('SELECT id FROM keyed_records WHERE int_field > 0')) == [
        KeyedRecord(id='A')]


def test_enumerate_empty(context):
    assert RecordMapper(KeyedRecord, context).enumerate(TableName('keyed_records')) == []


def test_enumerate_rejects_other_sources(context):
    with pytest.raises(TypeError):
        RecordMapper(KeyedRecord, context).enumerate('keyed_records')


def test_read_registers_record_type(context):
    """Test that reading registers the record type on first use"""
    RecordMapper(SampleRecord, context).enumerate(SampleRecord.get_table_name())
    assert context.registry.is_registered(SampleRecord)


def test_insert_one(context, recording_executor):
    """Test that a single insert runs one INSERT statement"""
    assert RecordMapper(KeyedRecord, context).insert(KeyedRecord(id='A', int_field=1)) == 1
    assert recording_executor.statements == [
        'INSERT INTO keyed_records (id, int_field, list_field, label) '
        "VALUES ('A', 1, '{}', null)"]


def test_insert_many(context, recording_executor):
    """Test that an iterable insert runs one statement per record"""
    records = (KeyedRecord(id=key) for key in 'ABC')

    assert RecordMapper(KeyedRecord, context).insert(records) == 3
    assert len(recording_executor.statements) == 3
    assert "VALUES ('C'" in recording_executor.statements[-1]


def test_insert_stops_at_first_failure():
    """Test that a failing statement aborts the remaining inserts"""
    class FailingExecutor:
        def __init__(self):
            self.statements = []

        def execute(self, sql):
            self.statements.append(sql)
            if len(self.statements) == 2:
                raise RuntimeError('constraint violated')
            return 1

    executor = FailingExecutor()
    mapper = RecordMapper(KeyedRecord, MapperContext(executor=executor))

    with pytest.raises(RuntimeError):
        mapper.insert([KeyedRecord(id='A'), KeyedRecord(id='B'), KeyedRecord(id='C')])
    assert len(executor.statements) == 2


def test_upsert(context, recording_executor):
    """Test that upsert executes the strategy chosen for the type"""
    RecordMapper(KeyedRecord, context).upsert(KeyedRecord(id='A'))
    RecordMapper(SampleRecord, context).upsert(SampleRecord(id=5))

    assert 'ON CONFLICT (id) DO UPDATE' in recording_executor.statements[0]
    assert recording_executor.statements[1].startswith('DO $$')


def test_upsert_without_key(context, recording_executor):
    with pytest.raises(SchemaError):
        RecordMapper(UnkeyedRecord, context).upsert(UnkeyedRecord(line='x'))
    assert recording_executor.statements == []


def test_delete_and_truncate(context, recording_executor):
    mapper = RecordMapper(KeyedRecord, context)

    mapper.delete(TableName('keyed_records'), "id = 'A'")
    mapper.truncate(KeyedRecord.table())

    assert recording_executor.statements == [
        "DELETE FROM keyed_records WHERE id = 'A'",
        'TRUNCATE TABLE keyed_records',
    ]


def test_module_functions_use_default_context(default_context, recording_executor):
    """Test the module-level facade against the default context"""
    default_context._executor = recording_executor
    recording_executor.rows = [{'id': 'A', 'int_field': 2}]

    pgrecord.insert([KeyedRecord(id='A'), UnkeyedRecord(line='x')])
    pgrecord.upsert(KeyedRecord(id='A', int_field=2))
    record = pgrecord.get(KeyedRecord, KeyedRecord.get_from_id('A'))
    records = pgrecord.enumerate_records(KeyedRecord, KeyedRecord.table())
    pgrecord.delete('keyed_records', "id = 'A'")
    pgrecord.truncate('log_lines')

    assert record == KeyedRecord(id='A', int_field=2)
    assert records == [record]
    assert recording_executor.statements[1] == "INSERT INTO log_lines (line) VALUES ('x')"
    assert recording_executor.statements[-2:] == [
        "DELETE FROM keyed_records WHERE id = 'A'",
        'TRUNCATE TABLE log_lines',
    ]


def test_module_functions_with_explicit_context(context, recording_executor):
    assert pgrecord.insert([], context=context) == 0
    assert pgrecord.truncate(TableName('log_lines'), context=context) == 1
    assert recording_executor.statements == ['TRUNCATE TABLE log_lines']


if __name__ == '__main__':
    __import__('pytest').main([__file__])
