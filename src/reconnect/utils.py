"""
Connection metadata helpers.

The retry policy only needs to know which host, database and user a
statement ran against. `connection_info()` pulls those three values out of
whatever handle the caller passes in.
"""
import logging
from collections.abc import Mapping
from typing import Any, NamedTuple

import sqlalchemy as sa

__all__ = [
    'ConnectionInfo',
    'connection_info',
]

logger = logging.getLogger(__name__)


class ConnectionInfo(NamedTuple):
    """Host, database and user a statement ran against."""
    host: str | None = None
    database: str | None = None
    username: str | None = None

    def describe(self) -> str:
        return ';'.join(f'{k}={"" if v is None else v}' for k, v in self._asdict().items())


def _from_url(url: sa.URL) -> ConnectionInfo:
    return ConnectionInfo(url.host, url.database, url.username)


def connection_info(conn: Any) -> ConnectionInfo | None:
    """Extract connection metadata from a connection handle.

    Works with:
    - ConnectionInfo (returned as is)
    - mappings with `host`/`hostname`, `database` and `username`/`user` keys
    - SQLAlchemy URLs, engines and connections
    - objects carrying `DatabaseOptions` (ConnectionWrapper) or the options themselves

    Returns None when `conn` is None, and an empty ConnectionInfo for handles
    that expose no metadata.
    """
    if conn is None:
        return None

    if isinstance(conn, ConnectionInfo):
        return conn

    if isinstance(conn, Mapping):
        return ConnectionInfo(
            host=conn.get('host', conn.get('hostname')),
            database=conn.get('database'),
            username=conn.get('username', conn.get('user')),
        )

    if isinstance(conn, sa.URL):
        return _from_url(conn)

    if isinstance(conn, sa.engine.Engine):
        return _from_url(conn.url)

    if isinstance(conn, sa.engine.Connection):
        return _from_url(conn.engine.url)

    options = getattr(conn, 'options', conn)
    if hasattr(options, 'hostname') and hasattr(options, 'database'):
        return ConnectionInfo(options.hostname, options.database,
                              getattr(options, 'username', None))

    engine = getattr(conn, 'engine', None)
    if isinstance(engine, sa.engine.Engine):
        return _from_url(engine.url)

    logger.debug(f'No connection metadata available for {type(conn).__name__}')
    return ConnectionInfo()
