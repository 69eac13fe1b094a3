import pytest
from reconnect.options import reset_options


@pytest.fixture(autouse=True)
def default_retry_options():
    """Restore default retry options before and after each test to ensure test isolation."""
    reset_options()
    yield
    reset_options()


pytest_plugins = [
    'tests.fixtures.mocks',
    'tests.fixtures.sqlite',
]
