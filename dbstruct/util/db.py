'''
Example usage for this file's utilities:

# turn caller SQL with positional ``?`` binds into an SA text clause
stmt = db.positional_text('SELECT * FROM employee WHERE id = ?', [5])

# render any SA statement for a dialect, binds in placeholder order
sql, binds = db.compile_statement(sa.select(<table>).where(...), engine.dialect)
'''

import re
import logging
import datetime

import sqlalchemy as sa

from dbstruct.errors import QuerySpecError


logger = logging.getLogger(__name__)

# quoted strings are skipped when scanning for placeholders
_placeholder_re = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|\?")
_fraction_re    = re.compile(r'(\d{2}:\d{2}:\d{2})\.\d+')


def positional_text(sql, binds=None):
    '''
    Build an ``sa.text`` clause from SQL written with positional ``?`` placeholders.

    ``sa.text`` only knows named binds, so each ``?`` becomes a bind parameter of its
    own; the parameters are unique, so several clauses can share a statement. Colons
    inside quoted literals are escaped so they aren't read as binds.
    '''
    binds = list(binds or [])
    names = []

    def replace(match):
        token = match.group(0)
        if token != '?':
            return token.replace(':', r'\:')

        names.append(f'b{len(names)}')
        return f':{names[-1]}'

    text = _placeholder_re.sub(replace, sql)

    if len(names) != len(binds):
        raise QuerySpecError(
            f'Statement has {len(names)} placeholders but {len(binds)} bind values',
            sql=sql,
        )

    return sa.text(text).bindparams(*[
        sa.bindparam(name, value, unique=True)
        for name, value in zip(names, binds)
    ])

def compile_statement(statement, dialect):
    '''
    Render a statement for ``dialect``.

    Returns:
        ``(sql, binds)``; binds follow placeholder order on positional dialects
    '''
    compiled = statement.compile(
        dialect=dialect,
        compile_kwargs={'render_postcompile': True},
    )
    params = compiled.params

    if compiled.positiontup is not None:
        return str(compiled), [params[name] for name in compiled.positiontup]

    return str(compiled), list(params.values())

def hash_slice(mapping, *keys):
    '''
    Sub-dict of ``mapping`` restricted to ``keys``; missing keys are skipped.
    '''
    return { k:mapping[k] for k in keys if k in mapping }

def truncate_fraction(value):
    '''
    Drop fractional seconds from a timestamp, given as a datetime or as text.
    '''
    if isinstance(value, (datetime.datetime, datetime.time)):
        return value.replace(microsecond=0)
    if isinstance(value, str):
        return _fraction_re.sub(r'\1', value)
    return value
