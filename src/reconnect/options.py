"""
Retry and connection options.

Retry settings live in a single process-wide `RetryOptions` snapshot. The
snapshot is never changed in place: `configure()` validates a new snapshot and
swaps the module reference, so a reader holding `get_options()` always sees a
complete, consistent set of values.
"""
import re
import threading
from dataclasses import FrozenInstanceError, dataclass, field, replace
from enum import Enum
from typing import Any

from reconnect.sql import compile_like_pattern

from libb import ConfigOptions

__all__ = [
    'DEFAULT_EXECUTION_TRIES',
    'DEFAULT_EXECUTION_RETRY_WAIT',
    'SUPPORTED_DRIVERS',
    'RetryMode',
    'ExactDatabase',
    'RetryOptions',
    'DatabaseOptions',
    'compile_retry_databases',
    'get_options',
    'configure',
    'reset_options',
]

DEFAULT_EXECUTION_TRIES = 3
DEFAULT_EXECUTION_RETRY_WAIT = 0.5

SUPPORTED_DRIVERS = ('postgresql', 'sqlite', 'mysql')

DatabasePatterns = tuple[tuple[re.Pattern[str], re.Pattern[str]], ...]


class RetryMode(Enum):
    """How aggressively statements that write may be retried.

    - READ_ONLY: writes are never retried
    - READ_WRITE: writes are retried for errors raised before the server ran them
    - FORCE: writes are retried for any transient error (idempotent work only)
    """
    READ_ONLY = 'r'
    READ_WRITE = 'rw'
    FORCE = 'force'

    @classmethod
    def coerce(cls, value: 'RetryMode | str') -> 'RetryMode':
        """Normalize a mode given as a member, value ('rw') or name ('read_write').
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for mode in cls:
                if value.lower() in {mode.value, mode.name.lower()}:
                    return mode
        valid = ', '.join(repr(mode.value) for mode in cls)
        raise ValueError(f'Invalid retry_mode {value!r}. Please set one of the following: {valid}')


@dataclass(frozen=True)
class ExactDatabase:
    """Allow-list entry matching one database name exactly on any host.
    """
    name: str


def _compile_entry(entry: Any) -> tuple[re.Pattern[str], re.Pattern[str]]:
    if isinstance(entry, ExactDatabase):
        return re.compile('.*', re.DOTALL), re.compile(rf'\A{re.escape(entry.name)}\Z')

    if _is_pattern_pair(entry):
        return entry[0], entry[1]

    if isinstance(entry, str):
        host, database = '%', entry
        if ':' in entry:
            host, database = entry.split(':', 1)
        return compile_like_pattern(host), compile_like_pattern(database)

    raise ValueError(f'Invalid retry_databases entry: {entry!r}')


def _is_pattern_pair(value: Any) -> bool:
    return (isinstance(value, tuple) and len(value) == 2
            and all(isinstance(p, re.Pattern) for p in value))


def compile_retry_databases(value: Any) -> DatabasePatterns:
    """Compile allow-list entries into (host, database) regex pairs.

    Accepts None, a single entry or a list of entries. An entry is one of:
    - `ExactDatabase('name')` - that database on any host
    - `'database'` or `'host:database'` - LIKE-style globs (`%`, `_`, `\\`)
    - `(host_regex, database_regex)` - compiled patterns used as given
    """
    if value is None:
        return ()
    if isinstance(value, (str, ExactDatabase)) or _is_pattern_pair(value):
        value = [value]
    return tuple(_compile_entry(entry) for entry in value)


@dataclass
class RetryOptions(ConfigOptions):
    """Retry options

    - execution_tries: attempts per statement, 0 retries forever (default: 3)
    - execution_retry_wait: backoff unit in seconds, multiplied by the attempt (default: 0.5)
    - enable_retry: master switch, retries are opt-in (default: False)
    - retry_mode: `RetryMode` or one of 'r', 'rw', 'force' (default: 'r')
    - retry_databases: allow-list, empty means every database (default: none)

    Instances are read-only once validated; change them with `configure()`.
    """
    execution_tries: int = DEFAULT_EXECUTION_TRIES
    execution_retry_wait: float = DEFAULT_EXECUTION_RETRY_WAIT
    enable_retry: bool = False
    retry_mode: RetryMode | str = RetryMode.READ_ONLY
    retry_databases: Any = ()
    database_patterns: DatabasePatterns = field(init=False, repr=False, default=())

    def __post_init__(self):
        if isinstance(self.execution_tries, bool) or not isinstance(self.execution_tries, int):
            raise ValueError(f'execution_tries must be an integer, got {self.execution_tries!r}')
        if self.execution_tries < 0:
            raise ValueError(f'execution_tries must be >= 0, got {self.execution_tries}')
        wait = float(self.execution_retry_wait)
        if wait <= 0:
            raise ValueError(f'execution_retry_wait must be positive, got {self.execution_retry_wait}')
        self.execution_retry_wait = wait
        self.enable_retry = bool(self.enable_retry)
        self.retry_mode = RetryMode.coerce(self.retry_mode)
        self.database_patterns = compile_retry_databases(self.retry_databases)
        object.__setattr__(self, '_sealed', True)

    def __setattr__(self, name, value):
        if self.__dict__.get('_sealed'):
            raise FrozenInstanceError(f'cannot assign to {name!r}; use configure() to change retry options')
        super().__setattr__(name, value)


@dataclass
class DatabaseOptions(ConfigOptions):
    """Options

    supported driver names: `postgresql`, `sqlite`, `mysql`

    Connection pooling options:
    - use_pool: Whether to use connection pooling (default: False)
    - pool_max_connections: Maximum connections in pool (default: 5)
    - pool_max_idle_time: Maximum seconds a connection can be idle (default: 300)
    - pool_wait_timeout: Maximum seconds to wait for a connection (default: 30)
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    timeout: int = 0
    use_pool: bool = False
    pool_max_connections: int = 5
    pool_max_idle_time: int = 300
    pool_wait_timeout: int = 30

    def __post_init__(self):
        if self.drivername not in SUPPORTED_DRIVERS:
            raise ValueError(f'drivername must be one of: {list(SUPPORTED_DRIVERS)}')
        if not self.database:
            raise ValueError(f'database is required for {self.drivername}')
        if self.drivername != 'sqlite' and not self.hostname:
            raise ValueError(f'hostname is required for {self.drivername}')


_options_lock = threading.RLock()
_options = RetryOptions()


def get_options() -> RetryOptions:
    """Return the current retry options snapshot.
    """
    return _options


def configure(options: RetryOptions | None = None, **changes: Any) -> RetryOptions:
    """Replace the process-wide retry options.

    Builds a new snapshot from `options` (or the current one) with `changes`
    applied. Validation errors are raised here and leave the current
    snapshot in place.

    Examples
        configure(enable_retry=True, retry_mode='rw')
        configure(retry_databases=['db-%:app_%', ExactDatabase('billing')])
    """
    global _options
    with _options_lock:
        base = options if options is not None else _options
        updated = replace(base, **changes) if changes else base
        _options = updated
    return updated


def reset_options() -> RetryOptions:
    """Restore the default retry options.
    """
    return configure(RetryOptions())
