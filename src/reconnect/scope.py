"""
Scoped retry suppression.

The flag is held in a context variable, so every thread and every asyncio
task sees its own value. Entering `without_retry()` in one thread never
disables retries for work running elsewhere.
"""
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

__all__ = [
    'without_retry',
    'is_retry_suppressed',
]

_without_retry: ContextVar[bool] = ContextVar('reconnect_without_retry', default=False)


def is_retry_suppressed() -> bool:
    """Check whether retries are disabled for the current context."""
    return _without_retry.get()


@contextmanager
def without_retry() -> Iterator[None]:
    """Disable retries for the enclosed block.

    The previous value is restored on every exit path, including errors
    raised from the block. Also usable as a decorator.

    Examples
        with without_retry():
            cn.execute('update accounts set balance = balance - %s', amount)
    """
    token = _without_retry.set(True)
    try:
        yield
    finally:
        _without_retry.reset(token)
