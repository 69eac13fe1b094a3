"""
Retry decision for a failed statement.

`decide()` runs the checks below in order and stops at the first one that
forbids a retry:

1. retries suppressed for the current context
2. connection outside the database allow-list
3. error outside the database error families
4. error message not a known transient fingerprint
5. write statement the retry mode does not allow to repeat
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from reconnect.exceptions import ErrorFamilies, Transience, classify_error
from reconnect.exceptions import default_error_families
from reconnect.options import DatabasePatterns, RetryMode, RetryOptions
from reconnect.options import get_options
from reconnect.scope import is_retry_suppressed
from reconnect.sql import is_read_query
from reconnect.utils import ConnectionInfo, connection_info

__all__ = [
    'Verdict',
    'RetryContext',
    'decide',
    'should_retry',
    'database_allowed',
]

logger = logging.getLogger(__name__)


class Verdict(Enum):
    RETRY = 'retry'
    PROPAGATE = 'propagate'


@dataclass
class RetryContext:
    """Per-call inputs to the retry decision.

    `connection` may be any handle `connection_info()` understands.
    `retry_mode` overrides the configured mode for this call only.
    """
    sql: str | None = None
    connection: Any = None
    retry_mode: RetryMode | str | None = None
    families: ErrorFamilies | None = None

    def __post_init__(self):
        if self.retry_mode is not None:
            self.retry_mode = RetryMode.coerce(self.retry_mode)

    @property
    def info(self) -> ConnectionInfo | None:
        return connection_info(self.connection)


def database_allowed(info: ConnectionInfo, patterns: DatabasePatterns) -> bool:
    """Check a connection against the (host, database) allow-list.

    Missing host or database values are matched as empty strings.
    """
    host = info.host or ''
    database = info.database or ''
    return any(host_re.search(host) and db_re.search(database)
               for host_re, db_re in patterns)


def decide(exc: BaseException, context: RetryContext | None = None,
           options: RetryOptions | None = None) -> Verdict:
    """Decide whether a failed statement may be retried.
    """
    context = context or RetryContext()
    if options is None:
        options = get_options()

    if is_retry_suppressed():
        return Verdict.PROPAGATE

    if context.connection is not None and options.database_patterns:
        info = context.info
        if not database_allowed(info, options.database_patterns):
            logger.debug(f'Not retrying: {info.describe()} is outside retry_databases')
            return Verdict.PROPAGATE

    families = context.families or default_error_families
    family = families.family_of(exc)
    if family is None:
        return Verdict.PROPAGATE

    transience = classify_error(str(exc), family)
    if transience is Transience.NOT_TRANSIENT:
        return Verdict.PROPAGATE

    if context.sql is not None and not is_read_query(context.sql):
        mode = context.retry_mode or options.retry_mode
        if mode is RetryMode.FORCE:
            return Verdict.RETRY
        if mode is RetryMode.READ_WRITE and transience is Transience.READ_WRITE_SAFE:
            return Verdict.RETRY
        return Verdict.PROPAGATE

    return Verdict.RETRY


def should_retry(exc: BaseException, context: RetryContext | None = None,
                 options: RetryOptions | None = None) -> bool:
    """Boolean form of `decide()`."""
    return decide(exc, context, options) is Verdict.RETRY
