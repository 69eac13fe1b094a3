"""
Mock operations and errors for retry tests.

Provides flaky callables that fail a fixed number of times before
succeeding, and helpers that build database errors carrying known
fingerprints.

Usage:
    def test_retry(flaky_operation, gone_away):
        op = flaky_operation([gone_away(), gone_away()], value=42)
        assert retryable(op, sleep=lambda s: None) == 42
"""
import sqlite3

import pytest
import sqlalchemy.exc
from reconnect.exceptions import DriverError


class FlakyOperation:
    """Zero-argument callable raising queued errors before returning a value.
    """

    def __init__(self, errors, value='ok'):
        self.errors = list(errors)
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.value


def _statement_error(message, sql='select 1'):
    """Build the error SQLAlchemy raises when the driver reports `message`."""
    return sqlalchemy.exc.OperationalError(sql, None, sqlite3.OperationalError(message))


@pytest.fixture
def flaky_operation():
    """Factory for FlakyOperation instances."""
    def factory(errors, value='ok'):
        return FlakyOperation(errors, value)

    return factory


@pytest.fixture
def gone_away():
    """Factory for a read-write-safe driver error."""
    def factory(exc_type=DriverError):
        return exc_type('MySQL server has gone away')

    return factory


@pytest.fixture
def lost_connection():
    """Factory for a read-only-safe driver error."""
    def factory(exc_type=DriverError):
        return exc_type('Lost connection to MySQL server during query')

    return factory


@pytest.fixture
def statement_error():
    """Factory for SQLAlchemy-wrapped driver errors."""
    return _statement_error


@pytest.fixture
def recorded_sleep(mocker):
    """Stand-in for time.sleep that records the requested waits."""
    return mocker.Mock(return_value=None)
