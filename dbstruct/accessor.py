'''
Accessor

Provides access to an underlying database through a supported set of operations.
Statements arrive as SQLAlchemy Core statements from the statement builder; the
accessor renders them for any caller hook, stops on dry runs, and otherwise executes
them through the Database's connection gateway.
'''
import logging

import sqlalchemy as sa

from dbstruct.util import db
from dbstruct.errors import SQLExecutionError
from dbstruct.statement import emit


logger = logging.getLogger(__name__)


class Accessor:
    '''
    Base for statement-running wrappers around a Database.

    Parameters:
        database: owning Database; supplies the gateway, catalog and dialect
    '''
    def __init__(self, database):
        self.database = database

    def render(self, statement):
        '''
        ``(sql, binds)`` of a statement as the connected dialect sends it.
        '''
        return db.compile_statement(statement, self.database.dialect)

    def _execute(
        self,
        statement,
        handle   = None,
        hook     = None,
        dry_run  = False,
    ):
        '''
        Execute one statement.

        Parameters:
            statement: executable SQLAlchemy statement
            handle:    function applied to the CursorResult inside the transaction; its
                       return value is returned. Defaults to the affected row count.
            hook:      SQL emission hook (callable or list)
            dry_run:   emit only, don't execute; returns ``None``
        '''
        if hook is not None or dry_run:
            sql, binds = self.render(statement)
            emit(hook, sql, binds)

            if dry_run:
                logger.debug(f'Dry run: {sql} {binds}')
                return None

        if handle is None:
            handle = lambda result: result.rowcount

        def closure(connection):
            return handle(connection.execute(statement))

        try:
            return self.database.engine.run(closure)
        except sa.exc.SQLAlchemyError as e:
            logger.debug(f'Statement failed: {e}')
            raise SQLExecutionError(
                str(getattr(e, 'orig', None) or e),
                getattr(e, 'statement', None),
                _bind_list(getattr(e, 'params', None)),
            ) from e


def _bind_list(params):
    if params is None:
        return []
    if isinstance(params, dict):
        return list(params.values())
    return list(params)
