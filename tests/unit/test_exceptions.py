import sqlite3

import psycopg
import pymysql.err
import pytest
import sqlalchemy.exc
from reconnect.exceptions import READ_ONLY_SAFE_MESSAGES, READ_WRITE_SAFE_MESSAGES
from reconnect.exceptions import ConnectionNotEstablished, DriverError
from reconnect.exceptions import ErrorFamilies, ErrorFamily, Transience
from reconnect.exceptions import classify_error, classify_exception


class TestErrorFamilies:
    """Tests for mapping exception types onto error families."""

    def test_sqlalchemy_statement_errors(self, statement_error):
        exc = statement_error('MySQL server has gone away')
        assert ErrorFamilies().family_of(exc) is ErrorFamily.STATEMENT_INVALID

    def test_driver_errors(self):
        families = ErrorFamilies()
        assert families.family_of(psycopg.OperationalError('x')) is ErrorFamily.DRIVER_ERROR
        assert families.family_of(sqlite3.OperationalError('x')) is ErrorFamily.DRIVER_ERROR
        assert families.family_of(pymysql.err.OperationalError(2006, 'x')) is ErrorFamily.DRIVER_ERROR
        assert families.family_of(DriverError('x')) is ErrorFamily.DRIVER_ERROR

    def test_connection_not_established(self):
        families = ErrorFamilies()
        assert families.family_of(ConnectionNotEstablished('x')) is ErrorFamily.CONNECTION_NOT_ESTABLISHED
        assert families.family_of(sqlalchemy.exc.DisconnectionError('x')) is ErrorFamily.CONNECTION_NOT_ESTABLISHED

    @pytest.mark.parametrize('exc', [
        ValueError('MySQL server has gone away'),
        RuntimeError('Lost connection to MySQL server during query'),
        ConnectionError('could not connect to server'),
    ])
    def test_non_database_errors(self, exc):
        assert ErrorFamilies().family_of(exc) is None

    def test_custom_families(self):
        class VendorError(Exception):
            pass

        families = ErrorFamilies(driver_error=(VendorError,))
        assert families.family_of(VendorError('x')) is ErrorFamily.DRIVER_ERROR
        assert families.family_of(sqlite3.OperationalError('x')) is None


class TestClassifyError:
    """Tests for transient fingerprint classification."""

    @pytest.mark.parametrize('message', list(READ_WRITE_SAFE_MESSAGES.values()))
    def test_read_write_safe_fingerprints(self, message):
        result = classify_error(f'(driver) {message} (2006)', ErrorFamily.DRIVER_ERROR)
        assert result is Transience.READ_WRITE_SAFE

    @pytest.mark.parametrize('message', list(READ_ONLY_SAFE_MESSAGES.values()))
    def test_read_only_safe_fingerprints(self, message):
        result = classify_error(message, ErrorFamily.STATEMENT_INVALID)
        assert result is Transience.READ_ONLY_SAFE

    def test_unknown_message_not_transient(self):
        result = classify_error('syntax error at or near "SELEC"', ErrorFamily.DRIVER_ERROR)
        assert result is Transience.NOT_TRANSIENT

    def test_non_database_family_never_transient(self):
        assert classify_error('MySQL server has gone away', None) is Transience.NOT_TRANSIENT

    def test_matching_is_case_sensitive(self):
        result = classify_error('mysql server has gone away', ErrorFamily.DRIVER_ERROR)
        assert result is Transience.NOT_TRANSIENT

    def test_read_write_wins_when_both_match(self):
        message = ("Lost connection to MySQL server at 'reading initial communication packet'; "
                   'Lost connection to MySQL server during query')
        assert classify_error(message, ErrorFamily.DRIVER_ERROR) is Transience.READ_WRITE_SAFE

    def test_custom_fingerprints(self):
        result = classify_error('deadlock found', ErrorFamily.DRIVER_ERROR,
                                read_only_safe={'deadlock': 'deadlock found'},
                                read_write_safe={})
        assert result is Transience.READ_ONLY_SAFE

    def test_fingerprints_are_extensible(self, monkeypatch):
        monkeypatch.setitem(READ_WRITE_SAFE_MESSAGES, 'too_many', 'Too many connections')
        assert classify_error('Too many connections', ErrorFamily.DRIVER_ERROR) is Transience.READ_WRITE_SAFE


def test_classify_exception_uses_message_and_family(statement_error):
    assert classify_exception(statement_error('MySQL server has gone away')) is Transience.READ_WRITE_SAFE
    assert classify_exception(ValueError('MySQL server has gone away')) is Transience.NOT_TRANSIENT
    assert classify_exception(DriverError('duplicate key')) is Transience.NOT_TRANSIENT


def test_raw_pymysql_errors_classified():
    gone = pymysql.err.OperationalError(2006, 'MySQL server has gone away')
    lost = pymysql.err.OperationalError(2013, 'Lost connection to MySQL server during query')
    assert classify_exception(gone) is Transience.READ_WRITE_SAFE
    assert classify_exception(lost) is Transience.READ_ONLY_SAFE


if __name__ == '__main__':
    __import__('pytest').main([__file__])
