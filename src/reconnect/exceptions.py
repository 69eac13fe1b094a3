"""
Database error families and transient-error classification.
"""
import sqlite3
from dataclasses import dataclass
from enum import Enum

import psycopg
import pymysql.err
import sqlalchemy.exc

__all__ = [
    'ReconnectError',
    'DriverError',
    'ConnectionNotEstablished',
    'ErrorFamily',
    'ErrorFamilies',
    'Transience',
    'READ_ONLY_SAFE_MESSAGES',
    'READ_WRITE_SAFE_MESSAGES',
    'default_error_families',
    'classify_error',
    'classify_exception',
]

# Errors that may have interrupted a statement after the server started
# applying it. Only reads can be repeated safely.
READ_ONLY_SAFE_MESSAGES: dict[str, str] = {
    'lost_connection': 'Lost connection to MySQL server during query',
    'pg_server_closed': 'server closed the connection unexpectedly',
    'pg_admin_shutdown': 'terminating connection due to administrator command',
}

# Errors raised before the statement reached the server, or after the server
# discarded it. Any statement can be repeated.
READ_WRITE_SAFE_MESSAGES: dict[str, str] = {
    'gone_away': 'MySQL server has gone away',
    'server_shutdown': 'Server shutdown in progress',
    'closed_connection': 'closed MySQL connection',
    'cannot_connect': "Can't connect to MySQL server",
    'interrupted': 'Query execution was interrupted',
    'access_denied': 'Access denied for user',
    'read_only': 'The MySQL server is running with the --read-only option',
    'cannot_connect_to_local': "Can't connect to local MySQL server",
    'unknown_host': 'Unknown MySQL server host',
    'lost_connection': "Lost connection to MySQL server at 'reading initial communication packet'",
    'not_connected': 'MySQL client is not connected',
    'killed': 'Connection was killed',
    'pg_cannot_connect': 'could not connect to server',
    'pg_starting_up': 'the database system is starting up',
    'pg_shutting_down': 'the database system is shutting down',
}


class ReconnectError(Exception):
    """Base class for all reconnect module errors.
    """


class DriverError(ReconnectError):
    """Error reported by a database driver without a driver-specific type.
    """


class ConnectionNotEstablished(ReconnectError):
    """No usable connection could be obtained for the statement.
    """


class ErrorFamily(Enum):
    """Database error families the retry policy understands.
    """
    STATEMENT_INVALID = 'statement_invalid'
    DRIVER_ERROR = 'driver_error'
    CONNECTION_NOT_ESTABLISHED = 'connection_not_established'


class Transience(Enum):
    """How safe it is to repeat a statement after an error.
    """
    NOT_TRANSIENT = 'not_transient'
    READ_ONLY_SAFE = 'read_only_safe'
    READ_WRITE_SAFE = 'read_write_safe'


@dataclass
class ErrorFamilies:
    """Maps exception types onto error families.

    This is the only place exception types are inspected. Integrations with
    other drivers pass their own instance with extended tuples.
    """
    statement_invalid: tuple[type[BaseException], ...] = (
        sqlalchemy.exc.StatementError,
        )
    driver_error: tuple[type[BaseException], ...] = (
        psycopg.Error,
        pymysql.err.MySQLError,
        sqlite3.Error,
        DriverError,
        )
    connection_not_established: tuple[type[BaseException], ...] = (
        sqlalchemy.exc.DisconnectionError,
        ConnectionNotEstablished,
        )

    def family_of(self, exc: BaseException) -> ErrorFamily | None:
        """Return the family of an exception, or None when it is not a database error.
        """
        if isinstance(exc, self.statement_invalid):
            return ErrorFamily.STATEMENT_INVALID
        if isinstance(exc, self.driver_error):
            return ErrorFamily.DRIVER_ERROR
        if isinstance(exc, self.connection_not_established):
            return ErrorFamily.CONNECTION_NOT_ESTABLISHED
        return None


default_error_families = ErrorFamilies()


def classify_error(message: str, family: ErrorFamily | None,
                   read_only_safe: dict[str, str] | None = None,
                   read_write_safe: dict[str, str] | None = None) -> Transience:
    """Classify an error message against the transient fingerprints.

    Errors outside a database family are never transient. A message found in
    the read-write set wins over the read-only set.

    :param message: The error message text.
    :param family: The error family, or None for non-database errors.
    :param read_only_safe: Fingerprints only safe to retry for reads.
    :param read_write_safe: Fingerprints safe to retry for any statement.
    :returns: The transience verdict.
    """
    if family is None:
        return Transience.NOT_TRANSIENT

    if read_only_safe is None:
        read_only_safe = READ_ONLY_SAFE_MESSAGES
    if read_write_safe is None:
        read_write_safe = READ_WRITE_SAFE_MESSAGES

    if any(fingerprint in message for fingerprint in read_write_safe.values()):
        return Transience.READ_WRITE_SAFE
    if any(fingerprint in message for fingerprint in read_only_safe.values()):
        return Transience.READ_ONLY_SAFE
    return Transience.NOT_TRANSIENT


def classify_exception(exc: BaseException,
                       families: ErrorFamilies | None = None) -> Transience:
    """Classify a caught exception using its family and message.
    """
    families = families or default_error_families
    return classify_error(str(exc), families.family_of(exc))
