'''
SQL accessor: SELECT-side operations.

Runs normalized QuerySpecs and hydrates the result rows into Row objects. Results of a
single table keep that table's Relation (or a projection of it when columns were
selected), so they can be updated; join and raw SQL results get an anonymous Relation
built from the result column names.
'''
import logging

from dbstruct.row import Row
from dbstruct.query import QuerySpec
from dbstruct.accessor import Accessor
from dbstruct.statement import build_select


logger = logging.getLogger(__name__)


class SQLAccessor(Accessor):
    def raw_select(
        self,
        statement,
        hook    = None,
        dry_run = False,
    ):
        '''
        Run a SELECT and return ``(column_names, value_tuples)``; ``None`` on dry runs.
        '''
        def handle(result):
            return list(result.keys()), [tuple(r) for r in result]

        return self._execute(statement, handle=handle, hook=hook, dry_run=dry_run)

    def relation_for(self, spec: QuerySpec, keys):
        catalog = self.database.catalog
        if spec.single_table:
            return catalog.projection(spec.table, keys)
        return catalog.anonymous(keys, spec.tables)

    def select(self, spec: QuerySpec):
        '''
        Run a QuerySpec.

        Returns:
            list of Rows, or of ``spec.mapper(row)`` results when a mapper is set; an
            empty list on dry runs
        '''
        database = self.database
        statement = build_select(spec, database.catalog)

        res = self.raw_select(statement, hook=spec.sql_hook, dry_run=spec.dry_run)
        if res is None:
            return []

        keys, tuples = res
        relation = self.relation_for(spec, keys)
        rows = [Row(relation, database, values) for values in tuples]

        if spec.mapper is not None:
            return [spec.mapper(row) for row in rows]

        return rows

    def select_one(self, spec: QuerySpec):
        '''
        First row of a QuerySpec (``LIMIT 1`` unless a limit was given), or ``None``.
        '''
        if spec.limit is None:
            spec = spec.with_limit(1)

        rows = self.select(spec)
        if len(rows) > 0:
            return rows[0]

        return None
