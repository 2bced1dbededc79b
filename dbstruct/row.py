'''
Row

In-memory representation of one database row. Values live in a list aligned with the
Relation's column order; the Relation's shared name-to-index map resolves attribute
names, so rows carry no per-row keys.

.. code-block:: python

    employee = db.one_row('employee', 7)
    employee.name = 'Ada'            # marks "name" dirty
    employee.settings['theme'] = 1   # in-place JSON change, detected on update()
    employee.update()                # UPDATE employee SET name=?, settings=? WHERE employee.id = ?

    with db.one_row('employee', 7) as employee:
        employee.set(salary=Literal('salary * 1.1'))
    # flushed here; failures are logged and re-raised

JSON columns arrive decoded through SQLAlchemy's JSON type and are encoded again when
written. Rows are not thread-safe; each one is a single snapshot with mutable dirty
state.
'''
import copy
import logging
from collections.abc import Mapping

from dbstruct.util import db
from dbstruct.literal import Literal
from dbstruct.query import Directive
from dbstruct.statement import build_key_select
from dbstruct.errors import (
    DBStructError,
    SchemaError,
    StaleRowError,
    NoPrimaryKeyError,
    UnknownColumnError,
    reported,
)


logger = logging.getLogger(__name__)


class Row:
    __slots__ = ('_relation', '_database', '_values', '_dirty', '_snapshots', '_valid')

    def __init__(self, relation, database, values=None):
        if values is None:
            values = [None] * len(relation.columns)

        values = list(values)
        if len(values) != len(relation.columns):
            raise SchemaError(
                f'Row of {len(values)} values does not fit the {len(relation.columns)} '
                f'columns of "{relation.name}"'
            )

        object.__setattr__(self, '_relation',  relation)
        object.__setattr__(self, '_database',  database)
        object.__setattr__(self, '_values',    values)
        object.__setattr__(self, '_dirty',     [False] * len(values))
        object.__setattr__(self, '_snapshots', {})
        object.__setattr__(self, '_valid',     True)

    def __repr__(self):
        state = 'deleted' if not self._valid else ('dirty' if any(self._dirty) else 'clean')
        pairs = ', '.join(f'{c}={v!r}' for c, v in zip(self._relation.columns, self._values))
        return f'<Row {self._relation.name or "(anonymous)"} {state} {pairs}>'

    def __len__(self):
        return len(self._values)

    @reported
    def __getattr__(self, name):
        # only reached for names that aren't slots or methods
        if name.startswith('_'):
            raise AttributeError(name)

        self._check()
        relation = self._relation

        if name in relation.index:
            return self.get(name)

        relationship = relation.relationships.get(name)
        if relationship is not None:
            return self._relationship_accessor(relationship)

        raise UnknownColumnError(relation.name, name)

    def __setattr__(self, name, value):
        if name in Row.__slots__:
            object.__setattr__(self, name, value)
        else:
            self.put(name, value)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        '''
        Flush dirty columns on normal exit. On exceptional exit nothing is written; the
        dropped changes are reported through the logger and the error propagates.
        '''
        if not self._valid:
            return False

        self._sync_json()
        if not any(self._dirty):
            return False

        if exc_type is not None:
            logger.warning(
                f'Discarding unflushed changes to {self.dirty_columns} of '
                f'"{self._relation.name}" after {exc_type.__name__}'
            )
            return False

        if not self._has_key_value():
            logger.warning(
                f'Cannot flush changes to {self.dirty_columns} of '
                f'"{self._relation.name}": row has no primary key value'
            )
            return False

        try:
            self.update()
        except DBStructError as e:
            logger.error(f'Scoped flush failed: {e.report or self._error_policy()(e)}')
            raise

        return False

    def _error_policy(self):
        return self._database.error_policy

    def _check(self):
        if not self._valid:
            raise StaleRowError(self._relation.name)

    def _index(self, column):
        if isinstance(column, int):
            if not 0 <= column < len(self._values):
                raise IndexError(f'Column index {column} out of range')
            return column

        idx = self._relation.index.get(column)
        if idx is None:
            raise UnknownColumnError(self._relation.name, column)
        return idx

    def _is_json(self, idx):
        return self._relation.columns[idx] in self._relation.json_columns

    @property
    def relation(self):
        return self._relation

    @property
    def dirty_columns(self):
        return [c for c, d in zip(self._relation.columns, self._dirty) if d]

    @property
    def is_deleted(self):
        return not self._valid

    @reported
    def get(self, column):
        '''
        Current value of a column, by name or position. The first read of a clean JSON
        structure keeps a copy, so in-place changes to it are found on ``update()``.
        '''
        self._check()
        idx = self._index(column)
        value = self._values[idx]

        if (
            self._is_json(idx)
            and isinstance(value, (Mapping, list))
            and not self._dirty[idx]
            and idx not in self._snapshots
        ):
            self._snapshots[idx] = copy.deepcopy(value)

        return value

    @reported
    def put(self, column, value):
        '''
        Store a value in a column, by name or position, and mark it dirty. Returns the
        row.
        '''
        self._check()
        idx = self._index(column)

        self._snapshots.pop(idx, None)
        self._values[idx] = value
        self._dirty[idx] = True
        return self

    @reported
    def set(self, values=None, **kwargs):
        '''
        Bulk ``put`` from a mapping and/or keyword arguments. Returns the row.
        '''
        self._check()
        for column, value in {**(values or {}), **kwargs}.items():
            self.put(column, value)
        return self

    @reported
    def data(self, *columns):
        '''
        Column values as a dict; restricted to ``columns`` if given.
        '''
        self._check()
        columns = columns or self._relation.columns
        return { c:self.get(c) for c in columns }

    def to_json(self):
        return self.data()

    @reported
    def mark_updated(self, *columns):
        '''
        Flag columns dirty, e.g. after mutating a JSON structure in place. Returns the
        row.
        '''
        self._check()
        for column in columns:
            idx = self._index(column)
            self._snapshots.pop(idx, None)
            self._dirty[idx] = True
        return self

    @reported
    def filter_timestamp(self, *columns):
        '''
        Drop fractional seconds from timestamp columns (all of them when none are named).
        Only the in-memory values change; dirty flags are left alone. Returns the row.
        '''
        self._check()
        columns = columns or sorted(self._relation.timestamp_columns)
        for column in columns:
            idx = self._index(column)
            self._values[idx] = db.truncate_fraction(self._values[idx])
        return self

    def _sync_json(self):
        # in-place changes to JSON structures don't touch the dirty flags
        for idx, snapshot in self._snapshots.items():
            if not self._dirty[idx] and self._values[idx] != snapshot:
                self._dirty[idx] = True

    def _take_snapshots(self, indexes):
        snapshots = {}
        for idx in indexes:
            value = self._values[idx]
            if isinstance(value, (Mapping, list)):
                snapshots[idx] = copy.deepcopy(value)
        object.__setattr__(self, '_snapshots', snapshots)

    def _has_key_value(self):
        relation = self._relation
        return relation.has_primary_key() and all(
            self._values[relation.index[c]] is not None for c in relation.primary_key
        )

    def _key_condition(self, operation):
        relation = self._relation
        if not relation.has_primary_key():
            raise NoPrimaryKeyError(relation.name, operation)

        condition = {}
        for column in relation.primary_key:
            value = self._values[relation.index[column]]
            if value is None or isinstance(value, Literal):
                raise NoPrimaryKeyError(
                    relation.name,
                    operation,
                    reason=f'primary key column "{column}" has no value',
                )
            condition[column] = value
        return condition

    @reported
    def update(self, values=None, **kwargs):
        '''
        Write dirty columns back, keyed on the primary key. Does nothing when no column
        is dirty. Values passed in are ``set`` first. Returns the row.
        '''
        self._check()
        if values or kwargs:
            self.set(values, **kwargs)

        self._sync_json()
        dirty = [i for i, d in enumerate(self._dirty) if d]
        if not dirty:
            return self

        condition = self._key_condition('update')
        changes = { self._relation.columns[i]:self._values[i] for i in dirty }

        self._database.manage.update(self._relation.table, changes, condition)
        object.__setattr__(self, '_dirty', [False] * len(self._values))

        # literal expressions were evaluated by the database; read back the results
        if self._database.manage.has_literals(changes):
            self.fetch()
        else:
            self._take_snapshots(
                set(self._snapshots) | {i for i in dirty if self._is_json(i)}
            )

        return self

    @reported
    def delete(self):
        '''
        Delete this row by primary key. The row is unusable afterwards.
        '''
        self._check()
        condition = self._key_condition('delete')

        self._database.manage.delete(self._relation.table, condition)
        object.__setattr__(self, '_valid', False)

    @reported
    def fetch(self):
        '''
        Re-read every column by primary key, replacing all values and clearing dirty
        flags. Returns the row.
        '''
        self._check()
        relation = self._relation
        condition = self._key_condition('fetch')

        statement = build_key_select(relation, condition)
        _, tuples = self._database.access.raw_select(statement)

        if not tuples:
            object.__setattr__(self, '_valid', False)
            raise StaleRowError(relation.name)

        object.__setattr__(self, '_values',    list(tuples[0]))
        object.__setattr__(self, '_dirty',     [False] * len(relation.columns))
        object.__setattr__(self, '_snapshots', {})
        return self

    def _relationship_accessor(self, relationship):
        fkey = relationship.fkey
        database = self._database

        if relationship.direction == 'forward':
            table, column, own_column = fkey.target, fkey.target_column, fkey.column
            select = database.one_row
        else:
            table, column, own_column = fkey.source, fkey.column, fkey.target_column
            select = database.all_rows if relationship.many else database.one_row

        def accessor(*args, **kwargs):
            value = self.get(own_column)
            if value is None and relationship.direction == 'forward':
                return None

            extra, rest = _split_conditions(args)
            where = kwargs.pop('where', None)
            if where is not None:
                extra.append(where)

            condition = {column: value}
            if extra:
                condition = {'-and': [condition, *extra]}

            return select(table, condition, *rest, **kwargs)

        accessor.__name__ = relationship.name
        return accessor


def _split_conditions(args):
    '''
    Separate caller conditions from the other query modifiers.
    '''
    conditions, rest = [], []
    for arg in args:
        if isinstance(arg, Directive) and arg.tag == 'where':
            conditions.append(arg.value)
        elif isinstance(arg, (Mapping, list, Literal)):
            conditions.append(arg)
        else:
            rest.append(arg)
    return conditions, rest
