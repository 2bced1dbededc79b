'''
Statement builder

Turns QuerySpecs and write requests into SQLAlchemy Core statements over the catalog's
reflected tables. Conditions and orderings go through ``dbstruct.where``; ``Literal``
values become text fragments carrying their own binds.

Raw SQL queries stay opaque: with no modifiers they run as given, otherwise they're
wrapped as a sub-query so modifiers apply on top, whatever clauses the SQL ends with.
'''
import re

import sqlalchemy as sa

from dbstruct.util import db
from dbstruct.query import QuerySpec
from dbstruct.literal import Literal
from dbstruct.errors import QuerySpecError
from dbstruct.where import translate, translate_order
from dbstruct.util.types import Condition, SQLHook


_column_re = re.compile(r'^(?:(\w+)\.)?(\w+)$')
_label_re  = re.compile(r'^(.+?)\s+as\s+(\w+)$', re.IGNORECASE | re.DOTALL)


class FromScope:
    '''
    Named FROM items (tables, aliases, sub-queries) of one statement. Resolves the
    column names used in column lists, conditions and orderings; anything that isn't a
    known ``[name.]column`` passes through as literal SQL.
    '''
    def __init__(self, **items):
        self.items = dict(items)

    def add(self, name, from_clause):
        self.items[name] = from_clause
        return from_clause

    def __getitem__(self, name):
        from_clause = self.items.get(name)
        if from_clause is None:
            raise QuerySpecError(f'Unknown table or alias "{name}"')
        return from_clause

    def column(self, name):
        match = _column_re.match(name)
        if match is None:
            return sa.literal_column(name)

        owner, column = match.groups()
        if owner is not None:
            candidates = [self.items[owner]] if owner in self.items else []
        else:
            candidates = self.items.values()

        for from_clause in candidates:
            if column in from_clause.c:
                return from_clause.c[column]

        return sa.literal_column(name)

    def select_columns(self, names):
        selected = []
        for name in names:
            label = _label_re.match(name)
            if label is not None:
                expression, alias = label.groups()
                selected.append(self.column(expression.strip()).label(alias))
            elif name == '*':
                for from_clause in self.items.values():
                    selected.extend(from_clause.c)
            elif name.endswith('.*'):
                selected.extend(self[name[:-2]].c)
            else:
                selected.append(self.column(name))
        return selected


def _value(value):
    if isinstance(value, Literal):
        return value.expression()
    return value

def _from_table(catalog, name, alias):
    table = catalog.relation(name).table
    if alias:
        return table.alias(alias)
    return table

def _join_condition(clause, scope):
    if clause.using is not None:
        left, right = scope[clause.left], scope[clause.name]

        conditions = []
        for column in (c.strip() for c in clause.using.split(',')):
            if column not in left.c or column not in right.c:
                raise QuerySpecError(
                    f'USING column "{column}" missing on "{clause.left}" or "{clause.name}"'
                )
            conditions.append(left.c[column] == right.c[column])
        return sa.and_(*conditions)

    if clause.fkey is not None:
        fk = clause.fkey
        source, target = scope[clause.fkey_source], scope[clause.fkey_target]
        return source.c[fk.column] == target.c[fk.target_column]

    return translate(clause.on, scope.column)

def _apply_modifiers(stmt, spec, scope):
    condition = translate(spec.where, scope.column)
    if condition is not None:
        stmt = stmt.where(condition)

    if spec.group_by:
        stmt = stmt.group_by(*[scope.column(c) for c in spec.group_by])

    having = translate(spec.having, scope.column)
    if having is not None:
        stmt = stmt.having(having)

    order = translate_order(spec.order_by, scope.column)
    if order:
        stmt = stmt.order_by(*order)

    if spec.limit is not None:
        stmt = stmt.limit(int(spec.limit))
    if spec.offset is not None:
        stmt = stmt.offset(int(spec.offset))

    return stmt

def _build_raw_select(spec):
    raw = db.positional_text(spec.raw_sql, spec.binds)

    modifiers = (spec.where, spec.having, spec.order_by, spec.limit, spec.offset)
    if all(m is None for m in modifiers):
        return raw

    scope = FromScope(q=raw.columns().subquery('q'))
    stmt = sa.select(sa.literal_column('*')).select_from(scope['q'])
    return _apply_modifiers(stmt, spec, scope)

def build_select(spec: QuerySpec, catalog):
    '''
    Build the SELECT for a QuerySpec.

    Parameters:
        spec:    normalized query
        catalog: catalog snapshot providing the reflected tables

    Returns:
        an executable SQLAlchemy statement
    '''
    if spec.raw_sql is not None:
        return _build_raw_select(spec)

    scope = FromScope()
    source = scope.add(spec.alias or spec.table, _from_table(catalog, spec.table, spec.alias))

    for clause in spec.joins:
        if isinstance(clause.target, QuerySpec):
            target = build_select(clause.target, catalog).subquery(clause.alias)
        else:
            target = _from_table(catalog, clause.target, clause.alias)

        scope.add(clause.name, target)
        onclause = _join_condition(clause, scope)

        if clause.kind == 'right':
            source = sa.outerjoin(target, source, onclause)
        else:
            source = sa.join(source, target, onclause, isouter=clause.kind == 'left')

    stmt = sa.select(*scope.select_columns(spec.columns)).select_from(source)
    return _apply_modifiers(stmt, spec, scope)

def build_key_select(relation, key: Condition):
    '''
    SELECT of ``relation``'s columns for the row matching a primary key condition.
    '''
    table = relation.table
    scope = FromScope(**{table.name: table})

    return sa.select(
        *[scope.column(c) for c in relation.columns]
    ).where(translate(key, scope.column))

def build_insert(table, values, returning=False):
    '''
    INSERT of a column-value mapping. An empty mapping inserts a row of column
    defaults.
    '''
    stmt = sa.insert(table)
    if values:
        stmt = stmt.values({ c:_value(v) for c, v in values.items() })
    if returning:
        stmt = stmt.returning(*table.c)
    return stmt

def build_update(table, values, where: Condition = None):
    '''
    UPDATE setting ``values``, restricted by a structured condition.
    '''
    scope = FromScope(**{table.name: table})

    stmt = sa.update(table).values({ c:_value(v) for c, v in values.items() })
    condition = translate(where, scope.column)
    if condition is not None:
        stmt = stmt.where(condition)
    return stmt

def build_delete(table, where: Condition = None):
    scope = FromScope(**{table.name: table})

    stmt = sa.delete(table)
    condition = translate(where, scope.column)
    if condition is not None:
        stmt = stmt.where(condition)
    return stmt

def emit(hook: SQLHook, sql, binds):
    '''
    Hand a rendered statement to a caller hook: callables get ``(sql, binds)``, lists
    collect the SQL text.
    '''
    if hook is None:
        return
    if isinstance(hook, list):
        hook.append(sql)
    else:
        hook(sql, list(binds))
