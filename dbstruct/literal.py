'''
Literal SQL expressions for writes and conditions.

.. code-block:: python

    row.set(balance=Literal('balance + ?', 10))
    db.all_rows('employee', {'hired': Literal('> now() - interval 1 day')})
'''
import sqlalchemy as sa
from sqlalchemy.ext.compiler import compiles

from dbstruct.util import db


class Literal:
    '''
    Raw SQL fragment embedded verbatim in generated statements. Positional ``?``
    placeholders in the fragment are filled from ``binds``.
    '''
    __slots__ = ('sql', 'binds')

    def __init__(self, sql: str, *binds):
        self.sql   = sql
        self.binds = list(binds)

    def __repr__(self):
        if self.binds:
            return f'Literal({self.sql!r}, {", ".join(map(repr, self.binds))})'
        return f'Literal({self.sql!r})'

    def __eq__(self, other):
        if not isinstance(other, Literal):
            return NotImplemented
        return self.sql == other.sql and self.binds == other.binds

    def text(self, grouped=False):
        sql = f'({self.sql})' if grouped else self.sql
        return db.positional_text(sql, self.binds)

    def expression(self, *prefix):
        '''
        Column expression rendering ``prefix`` elements followed by the fragment, e.g.
        ``Literal('> ?', 5).expression(table.c.salary)``.
        '''
        return Fragment(*prefix, self.text())


class Fragment(sa.sql.expression.ColumnElement):
    '''
    SQL elements and text pieces rendered side by side, usable wherever SQLAlchemy
    expects a column expression (SET values, WHERE terms).
    '''
    inherit_cache = False

    def __init__(self, *parts):
        self.parts = parts


@compiles(Fragment)
def _compile_fragment(element, compiler, **kw):
    return ' '.join(
        part if isinstance(part, str) else compiler.process(part, **kw)
        for part in element.parts
    )
