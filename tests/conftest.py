import pathlib
import site

import pytest
from bulksql.strategy import _get_strategy

HERE = pathlib.Path(pathlib.Path(__file__).resolve()).parent
site.addsitedir(HERE)


@pytest.fixture(autouse=True)
def clear_caches():
    """Clear the strategy cache before and after each test to ensure test isolation."""
    _get_strategy.cache_clear()
    yield
    _get_strategy.cache_clear()


pytest_plugins = [
    'tests.fixtures.mocks',
    'tests.fixtures.sqlite',
]
