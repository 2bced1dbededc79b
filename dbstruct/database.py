'''
Database

Central object tying the pieces together: the connection gateway, the catalog snapshot
built from the live schema, the Accessor (reads) and Manager (writes), and the error
presentation policy. Every entry point hangs off a Database instance; nothing is kept
in module-level state, so several Databases can live in one process.

.. code-block:: python

    db = Database('postgresql+psycopg2://localhost/app', error_policy='record')

    employee = db.one_row('employee', 7)
    employer = employee.employer()
    staff    = employer.ref_employees(order_by('name'))

    row = db.new_row('employee', name='Ada', id_employer=employer.id_employer)
'''
import logging

import sqlalchemy as sa

from dbstruct.util.types import EngineLike
from dbstruct.row import Row
from dbstruct.query import normalize, is_raw_sql, is_key_value, key_condition
from dbstruct.engines import SQLEngine
from dbstruct.catalog import build_catalog
from dbstruct.errors import (
    SchemaError,
    QuerySpecError,
    UnknownColumnError,
    reported,
    resolve_policy,
)
from dbstruct.accessors.sql import SQLAccessor
from dbstruct.managers.sql  import SQLManager


logger = logging.getLogger(__name__)


class Database:
    accessor: type[SQLAccessor] = SQLAccessor
    manager:  type[SQLManager]  = SQLManager

    def __init__(
        self,
        url: EngineLike,
        schema       = None,
        error_policy = 'message',
        **engine_kwargs,
    ):
        '''
        Parameters:
            url:          database URL or an existing SQLAlchemy engine
            schema:       named schema to reflect (dialect default if ``None``)
            error_policy: ``"message"``, ``"record"`` or a callable rendering exceptions;
                          the rendered form is attached to raised errors as ``report``
            engine_kwargs: passed through to ``sa.create_engine``

        The catalog is built lazily on first use (or eagerly with ``connect()``).
        '''
        self.engine = SQLEngine(url, **engine_kwargs)
        self.schema = schema
        self.error_policy = resolve_policy(error_policy)

        self._access  = self.accessor(self)
        self._manage  = self.manager(self)
        self._catalog = None

    def __repr__(self):
        return f'<Database {self.engine.manager.url!r}>'

    def _error_policy(self):
        return self.error_policy

    @property
    def dialect(self):
        return self.engine.dialect

    @property
    def access(self):
        return self._access

    @property
    def manage(self):
        return self._manage

    @property
    def catalog(self):
        if self._catalog is None:
            self.connect()
        return self._catalog

    def _build_catalog(self):
        try:
            with self.engine.connect() as connection:
                return build_catalog(connection, schema=self.schema)
        except sa.exc.SQLAlchemyError as e:
            raise SchemaError(f'Database unreachable: {e}') from e

    @reported
    def connect(self):
        '''
        Connect and build the catalog snapshot. Returns the Database.
        '''
        self._catalog = self._build_catalog()
        return self

    @reported
    def reconnect(self, timeout=30):
        '''
        Reset the pool, wait for the database (up to ``timeout`` seconds) and rebuild
        the catalog. The new snapshot replaces the old one in a single assignment; rows
        already handed out keep the Relations they were built with.
        '''
        self.engine.reconnect(timeout=timeout)
        catalog = self._build_catalog()
        self._catalog = catalog
        logger.info(f'Catalog rebuilt after reconnect ({len(catalog)} tables)')
        return self

    @reported
    def table(self, name):
        '''
        Table-level handle for ``name``.
        '''
        return Table(self, self.catalog.relation(name).name)

    @reported
    def one_row(self, table_spec, *args, **kwargs):
        '''
        First row matching the query, or ``None``. See ``dbstruct.query`` for the
        accepted argument forms.
        '''
        spec = normalize(self.catalog, table_spec, *args, **kwargs)
        return self._access.select_one(spec)

    @reported
    def all_rows(self, table_spec, *args, **kwargs):
        '''
        All rows matching the query, passed through the mapper when one is given.
        '''
        spec = normalize(self.catalog, table_spec, *args, **kwargs)
        return self._access.select(spec)

    @reported
    def new_row(self, table_spec, values=None, sql=None, dry_run=False, **kwargs):
        '''
        Insert a row and return it as a Row. Column values come from ``values`` and/or
        keyword arguments; ``Literal`` values are written verbatim.

        Returns:
            the new Row, or ``None`` on dry runs
        '''
        if not isinstance(table_spec, str) or is_raw_sql(table_spec):
            raise QuerySpecError('new_row takes a single table name')

        relation = self.catalog.relation(table_spec)
        values = {**(values or {}), **kwargs}

        for column in values:
            if column not in relation.index:
                raise UnknownColumnError(relation.name, column)

        stored = self._manage.insert(relation, values, hook=sql, dry_run=dry_run)
        if stored is None:
            return None

        row = Row(relation, self, [stored.get(c) for c in relation.columns])

        # without RETURNING, defaults and literal expressions are only known to the database
        if not self._manage.returning and row._has_key_value():
            row.fetch()

        return row

    @reported
    def execute(self, sql, *binds, **kwargs):
        '''
        Run a raw statement with positional ``?`` binds; returns the affected row count.
        '''
        return self._manage.execute(sql, *binds, **kwargs)

    def txn(self, closure):
        '''
        Run ``closure(db)`` in one transaction; every statement issued from inside it on
        this thread joins the transaction. Rolled back if the closure raises.
        '''
        return self.engine.txn(lambda connection: closure(self))


class Table:
    '''
    Table-level operations, independent of any particular row.
    '''
    def __init__(self, database, name):
        self.database = database
        self.name = name

    def __repr__(self):
        return f'<Table {self.name}>'

    def _error_policy(self):
        return self.database.error_policy

    @property
    def relation(self):
        return self.database.catalog.relation(self.name)

    def one_row(self, *args, **kwargs):
        return self.database.one_row(self.name, *args, **kwargs)

    def all_rows(self, *args, **kwargs):
        return self.database.all_rows(self.name, *args, **kwargs)

    def new_row(self, values=None, **kwargs):
        return self.database.new_row(self.name, values, **kwargs)

    def row(self, values=None, **kwargs):
        '''
        Build a Row without touching the database, e.g. to ``fetch()`` it by primary
        key afterwards.
        '''
        row = Row(self.relation, self.database)
        for column, value in {**(values or {}), **kwargs}.items():
            row._values[row._index(column)] = value
        return row

    def _condition(self, where, operation):
        # a scalar (or a tuple on composite keys) addresses one row by primary key
        relation = self.relation
        if where is not None and is_key_value(relation, where):
            return key_condition(relation, where, operation)
        return where

    @reported
    def update(self, values, where=None, sql=None, dry_run=False):
        '''
        UPDATE every row matching ``where`` (all rows when ``None``; a primary key value
        addresses one row). Returns the number of affected rows.
        '''
        relation = self.relation
        for column in values:
            if column not in relation.index:
                raise UnknownColumnError(self.name, column)

        condition = self._condition(where, 'update by primary key')
        return self.database.manage.update(
            relation.table, values, condition, hook=sql, dry_run=dry_run
        )

    @reported
    def delete(self, where=None, sql=None, dry_run=False):
        '''
        DELETE every row matching ``where`` (all rows when ``None``; a primary key value
        addresses one row), with or without a primary key on the table. Returns the
        number of deleted rows.
        '''
        condition = self._condition(where, 'delete by primary key')
        return self.database.manage.delete(
            self.relation.table, condition, hook=sql, dry_run=dry_run
        )
