import pathlib
import site

import pgrecord.context
import pytest
from pgrecord.context import MapperContext

HERE = pathlib.Path(pathlib.Path(__file__).resolve()).parent
site.addsitedir(HERE)


@pytest.fixture(autouse=True)
def default_context(monkeypatch):
    """Give every test a fresh, unconfigured default context."""
    context = MapperContext()
    monkeypatch.setattr(pgrecord.context, '_default_context', context)
    return context


pytest_plugins = [
    'tests.fixtures.fakes',
    'tests.fixtures.postgres',
]
