'''
Condition translator

Turns structured conditions into SQLAlchemy boolean clauses:

- ``None``: no condition
- ``str``: raw SQL fragment, no binds
- ``Literal``: raw SQL fragment with its own binds
- mapping: AND of column conditions. Values may be scalars (equality), ``None``
  (``IS NULL``), lists (``IN``), ``Literal`` (``col <fragment>``) or operator mappings
  like ``{'>': 5}``, ``{'like': 'a%'}``, ``{'between': (1, 2)}``. The keys ``-and`` and
  ``-or`` nest sub-conditions.
- list/tuple: OR of conditions

Column names are resolved by the ``column`` function handed in by the statement
builder, so ``'e.name'`` lands on the right table or alias.

Order specs are column names (``'-name'`` for descending), ``{'-desc': col}`` /
``{'-asc': col}`` mappings, or lists of those.
'''
import operator
from collections.abc import Mapping

import sqlalchemy as sa

from dbstruct.literal import Literal
from dbstruct.errors import QuerySpecError
from dbstruct.util.types import Condition


_comparisons = {
    '=':        operator.eq,
    '!=':       operator.ne,
    '<>':       operator.ne,
    '<':        operator.lt,
    '>':        operator.gt,
    '<=':       operator.le,
    '>=':       operator.ge,
    'like':     lambda column, value: column.like(value),
    'not like': lambda column, value: column.not_like(value),
    'ilike':    lambda column, value: column.ilike(value),
}


def translate(condition: Condition, column=sa.column):
    '''
    Translate a structured condition.

    Returns:
        a boolean clause, or ``None`` when there is no condition
    '''
    if condition is None:
        return None

    if isinstance(condition, Literal):
        return condition.text(grouped=True)

    if isinstance(condition, str):
        return Literal(condition).text(grouped=True)

    if isinstance(condition, Mapping):
        return _combine(sa.and_, [
            _nested(key, value, column) if key in ('-and', '-or')
            else _column(column(key), value)
            for key, value in condition.items()
        ])

    if isinstance(condition, (list, tuple)):
        return _combine(sa.or_, [translate(c, column) for c in condition])

    raise QuerySpecError(f'Unsupported condition {condition!r}')

def _combine(conjunction, clauses):
    clauses = [c for c in clauses if c is not None]
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]

    return conjunction(*clauses)

def _nested(key, value, column):
    if isinstance(value, Mapping):
        items = [{k: v} for k, v in value.items()]
    else:
        items = list(value)

    conjunction = sa.and_ if key == '-and' else sa.or_
    return _combine(conjunction, [translate(item, column) for item in items])

def _column(column, value):
    if value is None:
        return column.is_(None)

    if isinstance(value, Literal):
        return value.expression(column)

    if isinstance(value, (list, tuple, set, frozenset)):
        return column.in_(list(value))

    if isinstance(value, Mapping):
        return _combine(sa.and_, [
            _operator(column, str(op).lower().strip(), operand)
            for op, operand in value.items()
        ])

    return column == value

def _operator(column, op, operand):
    if op in ('in', 'not in'):
        values = list(operand)
        return column.in_(values) if op == 'in' else column.not_in(values)

    if op in ('between', 'not between'):
        try:
            low, high = operand
        except (TypeError, ValueError):
            raise QuerySpecError(f'"{op}" takes a pair of bounds, got {operand!r}') from None

        clause = column.between(low, high)
        return clause if op == 'between' else sa.not_(clause)

    if operand is None:
        if op in ('=', 'is'):
            return column.is_(None)
        if op in ('!=', '<>', 'is not'):
            return column.is_not(None)

    if op not in _comparisons:
        raise QuerySpecError(f'Unsupported condition operator "{op}"', operator=op)

    if isinstance(operand, Literal):
        return operand.expression(column, op.upper())

    return _comparisons[op](column, operand)

def translate_order(order, column=sa.column):
    '''
    Translate an order spec to a list of ORDER BY clauses.
    '''
    if order is None:
        return []

    if isinstance(order, Literal):
        return [order.text()]

    if isinstance(order, str):
        if order.startswith('-'):
            return [column(order[1:]).desc()]
        return [column(order)]

    if isinstance(order, Mapping):
        clauses = []
        for direction, columns in order.items():
            if direction.lower() not in ('-asc', '-desc'):
                raise QuerySpecError(f'Unsupported order direction "{direction}"')

            if isinstance(columns, str):
                columns = [columns]
            for name in columns:
                c = column(name)
                clauses.append(c.desc() if direction.lower() == '-desc' else c.asc())
        return clauses

    clauses = []
    for item in order:
        clauses.extend(translate_order(item, column))
    return clauses
