"""
Retry loop for database statements.

`retryable()` runs a zero-argument callable, consults the retry policy when
it raises, waits `execution_retry_wait * attempt` seconds and tries again.
The caller never sees a recovered failure. When retries stop, the original
exception is re-raised untouched.

Examples
    configure(enable_retry=True)
    rows = retryable(lambda: cursor.execute(sql), sql=sql, connection=cn)
"""
import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

from reconnect.options import RetryMode, RetryOptions, get_options
from reconnect.policy import RetryContext, Verdict, decide
from reconnect.scope import is_retry_suppressed, without_retry
from reconnect.utils import connection_info

__all__ = [
    'retryable',
    'build_error_message',
    'without_retry',
    'is_retry_suppressed',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')


def build_error_message(exc: BaseException, sql: str | None = None,
                        connection: Any = None) -> str:
    """Describe a failed statement for the retry log.

    >>> build_error_message(ValueError('boom'), sql='select 1')
    'cause: boom [ValueError], sql: select 1'
    """
    parts = [f'cause: {exc} [{type(exc).__name__}]']
    if sql is not None:
        parts.append(f'sql: {sql}')
    info = connection_info(connection)
    if info is not None:
        parts.append(f'connection: {info.describe()}')
    return ', '.join(parts)


def retryable(proc: Callable[[], T], *, sql: str | None = None,
              connection: Any = None, on_error: Callable[[], Any] | None = None,
              retry_mode: RetryMode | str | None = None,
              options: RetryOptions | None = None,
              sleep: Callable[[float], Any] | None = None,
              log: logging.Logger | None = None) -> T:
    """Run `proc`, retrying transient database errors.

    Args:
        proc: Zero-argument callable running the statement
        sql: Statement text, used to tell reads from writes
        connection: Connection handle, used for the allow-list and log messages
        on_error: Called before each retry, e.g. to drop a broken connection
        retry_mode: Overrides the configured retry mode for this call
        options: Fixed options; the live snapshot is read per attempt when omitted
        sleep: Function used to wait between attempts (default: time.sleep)
        log: Receives warning messages (default: this module's logger)

    Returns
        Whatever `proc` returns

    Raises
        The last exception raised by `proc`, unchanged
    """
    log = log or logger
    sleep = sleep or time.sleep
    context = RetryContext(sql=sql, connection=connection, retry_mode=retry_mode)

    attempt = 0
    while True:
        attempt += 1
        try:
            return proc()
        except Exception as exc:
            current = options if options is not None else get_options()
            tries = current.execution_tries
            can_retry = (current.enable_retry
                         and (tries == 0 or attempt < tries)
                         and decide(exc, context, current) is Verdict.RETRY)

            if not can_retry:
                if current.enable_retry and attempt > 1:
                    log.warning(f'Query retry failed. ({build_error_message(exc, sql, connection)})')
                raise

            if on_error is not None:
                on_error()
            wait = current.execution_retry_wait * attempt
            log.warning(f'Database server has gone away. Trying to reconnect in {wait} seconds. '
                        f'({build_error_message(exc, sql, connection)})')
            sleep(wait)
