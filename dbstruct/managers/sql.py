'''
SQL manager: INSERT/UPDATE/DELETE operations.

Note: inserted row values
    Dialects that support ``INSERT .. RETURNING`` (SQLite 3.35+, PostgreSQL, ...) hand
    back the full stored row, database defaults included. Elsewhere only the provided
    values and the inserted primary key are known; the Database re-reads the row.
'''
import logging

from dbstruct.util import db
from dbstruct.literal import Literal
from dbstruct.accessor import Accessor
from dbstruct.statement import build_insert, build_update, build_delete


logger = logging.getLogger(__name__)


class SQLManager(Accessor):
    '''
    Write operations against reflected tables. Values may be ``Literal`` expressions,
    which are written verbatim rather than bound.
    '''
    @property
    def returning(self):
        return bool(getattr(self.database.dialect, 'insert_returning', False))

    def insert(self, relation, values: dict, hook=None, dry_run=False):
        '''
        Insert a row into ``relation``'s table.

        Returns:
            dict of the stored column values (as far as known, see module note), or
            ``None`` on dry runs
        '''
        returning = self.returning
        statement = build_insert(relation.table, values, returning=returning)

        def handle(result):
            if returning:
                row = result.mappings().first()
                return dict(row) if row is not None else {}
            return dict(zip(relation.primary_key, result.inserted_primary_key or ()))

        stored = self._execute(statement, handle=handle, hook=hook, dry_run=dry_run)
        if stored is None or returning:
            return stored

        logger.debug(f'Inserted into "{relation.name}" without RETURNING')
        return {**values, **{ k:v for k, v in stored.items() if v is not None }}

    def update(self, table, values: dict, where=None, hook=None, dry_run=False):
        '''
        UPDATE ``table`` setting ``values`` where ``where`` holds. Returns the number of
        affected rows.
        '''
        if not values:
            return 0

        statement = build_update(table, values, where)
        return self._execute(statement, hook=hook, dry_run=dry_run)

    def delete(self, table, where=None, hook=None, dry_run=False):
        '''
        DELETE from ``table`` where ``where`` holds. Returns the number of deleted rows.
        '''
        statement = build_delete(table, where)
        return self._execute(statement, hook=hook, dry_run=dry_run)

    def execute(self, sql, *binds, hook=None, dry_run=False):
        '''
        Run an arbitrary statement with positional ``?`` binds; returns the row count.
        '''
        if len(binds) == 1 and isinstance(binds[0], (list, tuple)):
            binds = binds[0]
        return self._execute(db.positional_text(sql, binds), hook=hook, dry_run=dry_run)

    @staticmethod
    def has_literals(values):
        return any(isinstance(v, Literal) for v in values.values())
