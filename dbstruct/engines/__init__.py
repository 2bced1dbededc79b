import time
import logging
import threading
from contextlib import contextmanager

import sqlalchemy as sa

from dbstruct.errors import SQLExecutionError
from dbstruct.util.types import EngineLike


logger = logging.getLogger(__name__)


class SQLEngine:
    '''
    Connection gateway around a SQLAlchemy engine.

    Statements run through ``run()``, each in its own transaction, unless a ``txn()`` is
    open on the current thread, in which case they join it. A statement failing because
    the connection went away is retried once on a fresh connection when no transaction
    is open.

    Parameters:
        url: database URL, or an existing ``sa.Engine`` to wrap
        kwargs: passed through to ``sa.create_engine``
    '''
    def __init__(self, url: EngineLike, **kwargs):
        if isinstance(url, sa.Engine):
            self.manager = url
        else:
            self.manager = sa.create_engine(url, **kwargs)

        self._local = threading.local()

    @property
    def dialect(self):
        return self.manager.dialect

    @property
    def in_txn(self):
        return getattr(self._local, 'connection', None) is not None

    @contextmanager
    def connect(self):
        with self.manager.connect() as connection:
            yield connection

    def run(self, closure):
        '''
        Run ``closure(connection)`` in a transaction and return its result.
        '''
        connection = getattr(self._local, 'connection', None)
        if connection is not None:
            return closure(connection)

        try:
            return self._run_once(closure)
        except sa.exc.DBAPIError as e:
            if not e.connection_invalidated:
                raise
            logger.warning('Connection invalidated, retrying statement once')
            return self._run_once(closure)

    def _run_once(self, closure):
        with self.manager.begin() as connection:
            return closure(connection)

    def txn(self, closure):
        '''
        Run ``closure(connection)`` in one transaction shared by every ``run()`` made
        from inside it on this thread. Nested ``txn`` calls join the outer transaction.
        '''
        if self.in_txn:
            return closure(self._local.connection)

        with self.manager.begin() as connection:
            self._local.connection = connection
            try:
                return closure(connection)
            finally:
                self._local.connection = None

    def reconnect(self, timeout=30, interval=0.5):
        '''
        Drop pooled connections and wait until a new connection succeeds or
        ``timeout`` seconds pass.
        '''
        self.manager.dispose()
        deadline = time.monotonic() + timeout

        while True:
            try:
                with self.manager.connect() as connection:
                    connection.execute(sa.text('SELECT 1'))
                logger.info('Reconnected to database')
                return
            except sa.exc.DBAPIError as e:
                if time.monotonic() >= deadline:
                    raise SQLExecutionError(
                        f'Could not reconnect within {timeout}s: {e}'
                    ) from e
                time.sleep(interval)

