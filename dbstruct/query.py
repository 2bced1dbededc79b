'''
Query specs

``normalize`` folds the call forms accepted by ``one_row``/``all_rows``/``new_row``
into one ``QuerySpec``:

.. code-block:: python

    db.one_row('employee', 5)                                  # primary key
    db.all_rows('employee', {'name': {'like': 'A%'}}, order_by('-id'))
    db.all_rows('SELECT * FROM employee WHERE salary > ?', 1000, limit(10))
    db.all_rows(['employee e', left('employer r'), columns('e.name', 'r.name')])
    db.all_rows(['employee', 'project', on('project.lead = employee.id')], str.upper)

Directives (``columns``, ``join``, ``left``, ``right``, ``on``, ``using``, ``where``,
``group_by``, ``having``, ``order_by``, ``limit``, ``offset``, ``sql``, ``dry_run``,
``mapper``) may appear anywhere in a table list or among the modifier arguments.
'''
import re
from dataclasses import dataclass, field, replace
from collections.abc import Mapping, Callable

from dbstruct.literal import Literal
from dbstruct.errors import (
    QuerySpecError,
    JoinNotFoundError,
    JoinAmbiguityError,
    NoPrimaryKeyError,
)


_select_re = re.compile(r'^\s*select\b.*\bfrom\b', re.IGNORECASE | re.DOTALL)

# primary key value not given (None is a value)
_unset = object()


@dataclass(frozen=True)
class Directive:
    tag:   str
    value: object = None


def columns(*cols):   return Directive('columns', cols)
def join(target, alias=None, kind='inner'):
    return Directive('join', (kind, target, alias))
def left(target, alias=None):  return join(target, alias, kind='left')
def right(target, alias=None): return join(target, alias, kind='right')
def on(condition):    return Directive('on', condition)
def using(column):    return Directive('using', column)
def where(condition): return Directive('where', condition)
def group_by(*cols):  return Directive('group_by', cols)
def having(condition): return Directive('having', condition)
def order_by(order):  return Directive('order_by', order)
def limit(n):         return Directive('limit', n)
def offset(n):        return Directive('offset', n)
def sql(hook):        return Directive('sql', hook)
def dry_run(flag=True): return Directive('dry_run', flag)
def mapper(func):     return Directive('mapper', func)


@dataclass(frozen=True)
class JoinClause:
    '''
    One joined table (or aliased sub-query). The condition comes from ``on``, ``using``
    or, for auto-joins, ``fkey``; ``fkey_source``/``fkey_target`` name the FROM items
    (table or alias) holding the two ends of the key. ``left`` is the FROM item the
    join attaches to.
    '''
    kind:   str
    target: 'str | QuerySpec'
    alias:  str | None = None
    on:     object = None
    using:  str | None = None
    fkey:   object = None
    left:   str | None = None
    fkey_source: str | None = None
    fkey_target: str | None = None

    @property
    def name(self):
        return self.alias or self.target


@dataclass(frozen=True)
class QuerySpec:
    table:    str | None = None
    alias:    str | None = None
    joins:    tuple = ()
    columns:  tuple = ('*',)
    raw_sql:  str | None = None
    where:    object = None
    group_by: tuple = ()
    having:   object = None
    order_by: object = None
    limit:    int | None = None
    offset:   int | None = None
    binds:    tuple = ()
    sql_hook: object = None
    dry_run:  bool = False
    mapper:   Callable | None = None
    tables:   tuple = field(default=(), compare=False)

    @property
    def single_table(self):
        return self.raw_sql is None and not self.joins

    def with_limit(self, n):
        return replace(self, limit=n)


def split_name(name):
    '''
    ``"employee e"`` -> ``("employee", "e")``; ``"employee AS e"`` works too.
    '''
    parts = name.split()
    if len(parts) == 1:
        return parts[0], None
    if len(parts) == 2:
        return parts[0], parts[1]
    if len(parts) == 3 and parts[1].lower() == 'as':
        return parts[0], parts[2]

    raise QuerySpecError(f'Cannot read table name from "{name}"')

def is_raw_sql(table_spec):
    return isinstance(table_spec, str) and _select_re.match(table_spec) is not None

def _is_scalar(value):
    return not (
        isinstance(value, (Mapping, list, tuple, set, frozenset, Directive, Literal, QuerySpec))
        or callable(value)
    )


class _Builder:
    '''
    Mutable accumulator for one normalize() call.
    '''
    def __init__(self, catalog):
        self.catalog = catalog

        self.table = None
        self.alias = None
        self.raw_sql = None
        self.joins = []
        self.options = {}
        self.binds = []
        self.primary = _unset

    def set_option(self, tag, value):
        if tag in ('mapper', 'where') and self.options.get(tag) is not None:
            raise QuerySpecError(f'More than one {tag} given for a single query')
        self.options[tag] = value

    def add_table(self, target, kind='inner', alias=None):
        if isinstance(target, str):
            name, parsed_alias = split_name(target)
            alias = alias or parsed_alias
            self.catalog.relation(name)
        else:
            name = target
            if alias is None:
                raise QuerySpecError('Joined sub-queries need an alias')

        if self.table is None:
            if not isinstance(name, str):
                raise QuerySpecError('The first table of a query must be a table name')
            self.table, self.alias = name, alias
            return

        self.joins.append(JoinClause(kind, name, alias))

    def set_condition(self, tag, condition):
        if not self.joins:
            raise QuerySpecError(f'"{tag}" given before any joined table')

        last = self.joins[-1]
        if last.on is not None or last.using is not None:
            raise QuerySpecError(f'Join to "{last.name}" already has a condition')

        self.joins[-1] = replace(last, **{tag: condition})

    def apply(self, directive):
        tag, value = directive.tag, directive.value
        if tag == 'join':
            kind, target, alias = value
            self.add_table(target, kind, alias)
        elif tag in ('on', 'using'):
            self.set_condition(tag, value)
        elif tag in ('columns', 'group_by'):
            cols = value
            if len(cols) == 1 and isinstance(cols[0], (list, tuple)):
                cols = tuple(cols[0])
            self.set_option(tag, tuple(cols))
        else:
            self.set_option(tag, value)

    def resolve_joins(self):
        resolved = []
        prev_table, prev_name = self.table, self.alias or self.table

        for clause in self.joins:
            clause = replace(clause, left=prev_name)

            if isinstance(clause.target, QuerySpec):
                if clause.on is None and clause.using is None:
                    raise QuerySpecError(
                        f'Join to sub-query "{clause.alias}" needs an explicit on/using'
                    )
                resolved.append(clause)
                prev_table, prev_name = None, clause.alias
                continue

            if clause.on is None and clause.using is None:
                if prev_table is None:
                    raise JoinNotFoundError(prev_name, clause.target)

                candidates = self.catalog.fkeys_between(prev_table, clause.target)
                if not candidates:
                    raise JoinNotFoundError(prev_table, clause.target)
                if len(candidates) > 1:
                    raise JoinAmbiguityError(
                        prev_table, clause.target, [str(fk) for fk in candidates]
                    )

                fk, = candidates
                if fk.source == prev_table and fk.target == clause.target and prev_table != clause.target:
                    source, target = prev_name, clause.name
                else:
                    source, target = clause.name, prev_name
                clause = replace(clause, fkey=fk, fkey_source=source, fkey_target=target)

            resolved.append(clause)
            prev_table, prev_name = clause.target, clause.name

        return tuple(resolved)

    def primary_key_condition(self):
        prefix = f'{self.alias or self.table}.' if self.joins else ''
        return key_condition(
            self.catalog.relation(self.table),
            self.primary,
            'select by primary key',
            prefix=prefix,
        )


def key_condition(relation, value, operation, prefix=''):
    '''
    Equality condition on ``relation``'s primary key; ``value`` is a scalar, or a tuple
    for composite keys.
    '''
    if not relation.primary_key:
        raise NoPrimaryKeyError(relation.name, operation)

    values = value
    if len(relation.primary_key) == 1:
        values = (value,)
    elif not isinstance(values, (list, tuple)) or len(values) != len(relation.primary_key):
        raise QuerySpecError(
            f'Table "{relation.name}" has a composite primary key; give a tuple of '
            f'{len(relation.primary_key)} values'
        )

    return { f'{prefix}{c}':v for c, v in zip(relation.primary_key, values) }

def is_key_value(relation, value):
    '''
    Whether a value addresses a row of ``relation`` by primary key rather than being a
    condition.
    '''
    if _is_scalar(value):
        return True
    return isinstance(value, tuple) and len(relation.primary_key) > 1


def normalize(catalog, table_spec, *args, **kwargs) -> QuerySpec:
    '''
    Fold one entry point call into a QuerySpec.

    Parameters:
        catalog:    catalog snapshot to resolve tables and auto-joins against
        table_spec: table name, raw SELECT, or list of tables and directives
        args:       modifiers: scalar primary key (binds for raw SQL), mapping or list
                    where condition, callable mapper, directives
        kwargs:     named modifiers (``where``, ``order_by``, ``limit``, ...)
    '''
    builder = _Builder(catalog)

    if isinstance(table_spec, str) and is_raw_sql(table_spec):
        builder.raw_sql = table_spec.strip()
    elif isinstance(table_spec, str):
        builder.add_table(table_spec)
    elif isinstance(table_spec, (list, tuple)):
        for item in table_spec:
            if isinstance(item, Directive):
                builder.apply(item)
            elif isinstance(item, QuerySpec):
                raise QuerySpecError('Sub-queries are joined with join(spec, alias)')
            elif callable(item):
                builder.set_option('mapper', item)
            elif isinstance(item, str):
                builder.add_table(item)
            else:
                raise QuerySpecError(f'Unexpected item in table list: {item!r}')
    else:
        raise QuerySpecError(f'Unsupported table spec {table_spec!r}')

    if builder.raw_sql is None and builder.table is None:
        raise QuerySpecError('No table given')

    for arg in args:
        if isinstance(arg, Directive):
            builder.apply(arg)
        elif callable(arg) and not isinstance(arg, Literal):
            builder.set_option('mapper', arg)
        elif builder.raw_sql is not None and _is_scalar(arg):
            builder.binds.append(arg)
        elif _is_scalar(arg) or (isinstance(arg, tuple) and builder.primary is _unset
                                 and _composite_key(catalog, builder)):
            if builder.primary is not _unset:
                raise QuerySpecError('More than one primary key value given')
            builder.primary = arg
        else:
            builder.set_option('where', arg)

    for key, value in kwargs.items():
        if key in ('columns', 'group_by') and isinstance(value, str):
            value = (value,)
        builder.apply(Directive(key, value))

    if builder.primary is not _unset:
        if builder.options.get('where') is not None:
            raise QuerySpecError('Give either a primary key value or a where condition')
        builder.options['where'] = builder.primary_key_condition()

    options = builder.options
    unknown = set(options) - {
        'columns', 'where', 'group_by', 'having', 'order_by', 'limit', 'offset',
        'sql', 'dry_run', 'mapper',
    }
    if unknown:
        raise QuerySpecError(f'Unknown query options: {", ".join(sorted(unknown))}')

    if builder.raw_sql is not None and (options.get('columns') or options.get('group_by')):
        raise QuerySpecError('Raw SQL queries take no column or group-by modifiers')

    joins = builder.resolve_joins() if builder.raw_sql is None else ()
    tables = tuple(
        [builder.table] + [j.target for j in joins if isinstance(j.target, str)]
    ) if builder.table else ()

    return QuerySpec(
        table=builder.table,
        alias=builder.alias,
        joins=joins,
        columns=options.get('columns') or ('*',),
        raw_sql=builder.raw_sql,
        where=options.get('where'),
        group_by=options.get('group_by') or (),
        having=options.get('having'),
        order_by=options.get('order_by'),
        limit=options.get('limit'),
        offset=options.get('offset'),
        binds=tuple(builder.binds),
        sql_hook=options.get('sql'),
        dry_run=bool(options.get('dry_run')),
        mapper=options.get('mapper'),
        tables=tables,
    )

def _composite_key(catalog, builder):
    if builder.table is None:
        return False
    return len(catalog.relation(builder.table).primary_key) > 1
