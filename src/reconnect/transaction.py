"""
Transaction handling for wrapped connections.
"""
import logging
import threading
from contextlib import ExitStack
from typing import Any

from reconnect.scope import without_retry

from libb import attrdict

logger = logging.getLogger(__name__)


_local = threading.local()


class Transaction:
    """Context manager for running multiple commands in a transaction.

    Retries are disabled for the whole block: once a statement inside a
    transaction fails, repeating it on a fresh connection would run it
    outside the transaction the earlier statements belonged to. The error
    propagates, and the transaction is rolled back.

    Transaction state is tracked per thread, so each thread can have its own
    transaction for the same connection, but nested transactions within the
    same thread are not supported.

    Examples
        with Transaction(cn) as tx:
            tx.execute('delete from orders where id = ?', order_id)
            tx.execute('update stock set qty = qty + 1 where sku = ?', sku)
    """

    def __init__(self, cn: Any) -> None:
        self.connection = cn

        if not hasattr(_local, 'active_transactions'):
            _local.active_transactions = {}

        if id(cn) in _local.active_transactions:
            raise RuntimeError('Nested transactions are not supported')

        self._scope = ExitStack()

    def __enter__(self):
        cn = self.connection
        _local.active_transactions[id(cn)] = True
        self._scope.enter_context(without_retry())

        try:
            cn.in_transaction = True
            sa_connection = cn.connection()
            if sa_connection.in_transaction():
                sa_connection.commit()
        except BaseException:
            self._release()
            raise
        logger.debug(f'Started transaction for connection {id(cn)}')

        return self

    def _release(self) -> None:
        _local.active_transactions.pop(id(self.connection), None)
        self.connection.in_transaction = False
        self._scope.close()

    def __exit__(self, exc_type: type | None, value: Exception | None, traceback: Any | None) -> None:
        try:
            if exc_type is not None:
                self.connection.rollback()
                logger.warning(f'Rolled back transaction after {exc_type.__name__}')
            else:
                self.connection.commit()
                logger.debug('Transaction committed')
        finally:
            self._release()
            logger.debug(f'Retries restored for connection {id(self.connection)}')

    def execute(self, sql: str, *args: Any) -> int:
        """Run a statement inside the transaction; failures are not retried"""
        return self.connection.execute(sql, *args)

    def select(self, sql: str, *args: Any) -> list[attrdict]:
        """Execute a query within transaction context"""
        return self.connection.select(sql, *args)

    def select_row(self, sql: str, *args: Any) -> attrdict:
        return self.connection.select_row(sql, *args)

    def select_scalar(self, sql: str, *args: Any) -> Any:
        return self.connection.select_scalar(sql, *args)
