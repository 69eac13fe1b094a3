"""
Retrying database client built on SQLAlchemy.

`connect()` opens a `ConnectionWrapper`. Each statement it issues goes
through `retryable()` with its SQL text and the connection metadata, so the
retry policy can tell reads from writes and check the database allow-list.
When an attempt fails, the SQLAlchemy connection is invalidated and the next
attempt checks out a new one from the same engine.

Engines are cached per connection URL and pool setting, and disposed at exit.

Examples
    cn = connect({'drivername': 'sqlite', 'database': 'app.db'})
    rows = cn.select('select * from orders where id = ?', 1)
"""
import atexit
import logging
import sqlite3
import threading
from collections.abc import Callable
from dataclasses import fields
from typing import Any, Self

import sqlalchemy as sa
from reconnect.options import DatabaseOptions, RetryMode
from reconnect.retry import retryable
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

from libb import attrdict, load_options

__all__ = [
    'ConnectionWrapper',
    'connect',
    'database_url',
    'get_engine',
    'dispose_all_engines',
]

logger = logging.getLogger(__name__)

DIALECT_DRIVERS = {
    'sqlite': 'sqlite',
    'postgresql': 'postgresql+psycopg',
    'mysql': 'mysql+pymysql',
}

_engines: dict[tuple[str, bool], Engine] = {}
_engines_lock = threading.RLock()


def database_url(options: DatabaseOptions) -> sa.URL:
    """Build the SQLAlchemy URL for a set of connection options.

    >>> database_url(DatabaseOptions(drivername='sqlite', database='app.db'))
    sqlite:///app.db
    """
    if options.drivername == 'sqlite':
        return sa.URL.create('sqlite', database=options.database)

    query = {'connect_timeout': str(options.timeout)} if options.timeout else {}
    return sa.URL.create(DIALECT_DRIVERS[options.drivername],
                         username=options.username,
                         password=options.password,
                         host=options.hostname,
                         port=options.port or None,
                         database=options.database,
                         query=query)


def _engine_arguments(options: DatabaseOptions) -> dict[str, Any]:
    arguments: dict[str, Any] = {}
    if options.drivername == 'sqlite':
        arguments['connect_args'] = {'detect_types': sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES}
    if not options.use_pool:
        arguments['poolclass'] = NullPool
        return arguments
    # pre-ping drops dead pooled connections before they reach the retry loop
    arguments.update(pool_size=options.pool_max_connections,
                     pool_recycle=options.pool_max_idle_time,
                     pool_timeout=options.pool_wait_timeout,
                     pool_pre_ping=True,
                     pool_reset_on_return='rollback')
    return arguments


def get_engine(options: DatabaseOptions) -> Engine:
    """Return the cached engine for these options, creating it on first use.
    """
    url = database_url(options)
    key = (url.render_as_string(hide_password=False), bool(options.use_pool))
    with _engines_lock:
        engine = _engines.get(key)
        if engine is None:
            engine = sa.create_engine(url, **_engine_arguments(options))
            _engines[key] = engine
            logger.debug(f'Created engine for {url.render_as_string(hide_password=True)}')
        return engine


def dispose_all_engines() -> None:
    """Dispose and forget every cached engine.
    """
    with _engines_lock:
        while _engines:
            _, engine = _engines.popitem()
            engine.dispose()
    logger.debug('Disposed cached engines')


atexit.register(dispose_all_engines)


class ConnectionWrapper:
    """SQLAlchemy connection whose statements survive dropped connections.

    `retry_mode` overrides the configured retry mode for statements issued
    through this wrapper. `calls` counts successful statements and
    `reconnects` counts connections replaced after a failure. Unknown
    attributes are looked up on the SQLAlchemy connection.
    """

    def __init__(self, sa_connection: sa.engine.Connection | None = None,
                 options: DatabaseOptions | None = None,
                 retry_mode: RetryMode | str | None = None) -> None:
        self.sa_connection = sa_connection
        self.engine = sa_connection.engine if sa_connection is not None else None
        self.options = options
        self.retry_mode = retry_mode
        self.calls = 0
        self.reconnects = 0
        self.in_transaction = False

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        try:
            self.close()
        except Exception as e:
            logger.debug(f'Ignoring error while closing connection: {e}')

    def __getattr__(self, name: str) -> Any:
        return getattr(self.__dict__.get('sa_connection'), name)

    @property
    def closed(self) -> bool:
        return self.sa_connection is None or self.sa_connection.closed

    def connection(self) -> sa.engine.Connection:
        """Return a live SQLAlchemy connection, reconnecting if the last one was dropped
        """
        if self.sa_connection is None or self.sa_connection.closed or self.sa_connection.invalidated:
            self.sa_connection = self.engine.connect()
            self.reconnects += 1
            logger.debug(f'Reconnected to {self.engine.url.render_as_string(hide_password=True)}')
        return self.sa_connection

    def invalidate(self) -> None:
        """Discard the current connection after a failed attempt.

        The connection is detached from the pool and closed, so the next
        statement checks out a fresh one.
        """
        if self.sa_connection is None:
            return
        try:
            self.sa_connection.invalidate()
            self.sa_connection.close()
        except Exception as e:
            logger.debug(f'Error discarding broken connection: {e}')

    def _run(self, sql: str, work: Callable[[sa.engine.Connection], Any]) -> Any:
        def attempt():
            result = work(self.connection())
            self.calls += 1
            return result

        return retryable(attempt, sql=sql, connection=self,
                         on_error=self.invalidate, retry_mode=self.retry_mode)

    def execute(self, sql: str, *args: Any) -> int:
        """Run a statement and return the number of affected rows.

        Outside a transaction the statement is committed immediately, and
        rolled back if it fails.
        """
        def work(conn: sa.engine.Connection) -> int:
            try:
                rowcount = conn.exec_driver_sql(sql, args or None).rowcount
                if not self.in_transaction:
                    conn.commit()
                return rowcount
            except Exception:
                if not self.in_transaction:
                    self._rollback_quietly(conn)
                raise

        return self._run(sql, work)

    def select(self, sql: str, *args: Any) -> list[attrdict]:
        """Run a query and return its rows as attribute dictionaries.
        """
        def work(conn: sa.engine.Connection) -> list[attrdict]:
            return [attrdict(row._mapping) for row in conn.exec_driver_sql(sql, args or None)]

        return self._run(sql, work)

    def select_row(self, sql: str, *args: Any) -> attrdict:
        """Run a query that must return exactly one row.
        """
        rows = self.select(sql, *args)
        assert len(rows) == 1, f'Expected one row, got {len(rows)}'
        return rows[0]

    def select_scalar(self, sql: str, *args: Any) -> Any:
        """Run a query that must return exactly one row and return its first column.
        """
        return next(iter(self.select_row(sql, *args).values()))

    def commit(self) -> None:
        self.sa_connection.commit()

    def rollback(self) -> None:
        self.sa_connection.rollback()

    def _rollback_quietly(self, conn: sa.engine.Connection) -> None:
        try:
            conn.rollback()
        except Exception as e:
            logger.debug(f'Rollback after failed statement failed: {e}')

    def close(self) -> None:
        """Close the connection, committing first unless a transaction is open
        """
        if self.closed:
            return
        if not self.in_transaction and not self.sa_connection.invalidated:
            self.sa_connection.commit()
        self.sa_connection.close()
        logger.debug(f'Connection closed after {self.calls} statements and {self.reconnects} reconnects')


@load_options(cls=DatabaseOptions)
def connect(options: DatabaseOptions | dict[str, Any] | str,
            config: Any | None = None, **kw: Any) -> ConnectionWrapper:
    """Open a retrying connection.

    Args:
        options: `DatabaseOptions`, a dict of option values, or the name of
            a config section resolved through `config`
        config: Configuration object holding named option sets
        **kw: Option overrides

    Opening the connection is itself retried under the configured policy.
    """
    if isinstance(options, DatabaseOptions):
        for field in fields(options):
            kw.pop(field.name, None)
    else:
        options = load_options(cls=DatabaseOptions)(lambda o, c: o)(options, config, **kw)

    engine = get_engine(options)
    sa_connection = retryable(engine.connect, connection=options)
    logger.debug(f'Connected to {options.drivername} database {options.database}')
    return ConnectionWrapper(sa_connection, options)
