"""
Transparent retries for database statements interrupted by transient
connection failures.

Statements can be run either as:
- Wrapped calls: retryable(lambda: cursor.execute(sql), sql=sql, connection=cn)
- ConnectionWrapper methods: cn.execute(sql, *args), cn.select(sql, *args)

Retries are opt-in and configured process-wide:

    import reconnect
    reconnect.configure(enable_retry=True, retry_mode='rw')
"""
__version__ = '0.1.0'

from reconnect.connection import ConnectionWrapper, connect
from reconnect.connection import dispose_all_engines
from reconnect.exceptions import READ_ONLY_SAFE_MESSAGES
from reconnect.exceptions import READ_WRITE_SAFE_MESSAGES
from reconnect.exceptions import ConnectionNotEstablished, DriverError
from reconnect.exceptions import ErrorFamilies, ErrorFamily, ReconnectError
from reconnect.exceptions import Transience, classify_error
from reconnect.options import DatabaseOptions, ExactDatabase, RetryMode
from reconnect.options import RetryOptions, configure, get_options
from reconnect.options import reset_options
from reconnect.policy import RetryContext, Verdict, decide, should_retry
from reconnect.retry import retryable
from reconnect.scope import is_retry_suppressed, without_retry
from reconnect.sql import compile_like_pattern, is_read_query
from reconnect.transaction import Transaction as transaction
from reconnect.utils import ConnectionInfo, connection_info

__all__ = [
    'retryable',
    'without_retry',
    'is_retry_suppressed',
    'configure',
    'get_options',
    'reset_options',
    'RetryOptions',
    'RetryMode',
    'ExactDatabase',
    'decide',
    'should_retry',
    'RetryContext',
    'Verdict',
    'classify_error',
    'Transience',
    'ErrorFamily',
    'ErrorFamilies',
    'READ_ONLY_SAFE_MESSAGES',
    'READ_WRITE_SAFE_MESSAGES',
    'is_read_query',
    'compile_like_pattern',
    'ConnectionInfo',
    'connection_info',
    'connect',
    'ConnectionWrapper',
    'DatabaseOptions',
    'transaction',
    'dispose_all_engines',
    'ReconnectError',
    'DriverError',
    'ConnectionNotEstablished',
]
