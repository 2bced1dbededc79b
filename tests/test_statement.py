import pytest

from dbstruct import (
    Literal,
    QuerySpecError,
    normalize,
    columns,
    join,
    right,
    using,
    order_by,
    limit,
    offset,
)
from dbstruct.util import db as dbutil
from dbstruct.statement import build_select, build_insert, build_update, build_delete, emit


def render(db, statement):
    sql, binds = dbutil.compile_statement(statement, db.dialect)
    return ' '.join(sql.split()), binds

def table(db, name):
    return db.catalog.relation(name).table


def test_select_single(db):
    spec = normalize(db.catalog, 'employee', {'id_employer': 1}, order_by('-salary'), limit(2))
    sql, binds = render(db, build_select(spec, db.catalog))

    assert sql == (
        'SELECT employee.id, employee.name, employee.id_employer, employee.salary, '
        'employee.hired FROM employee WHERE employee.id_employer = ? '
        'ORDER BY employee.salary DESC LIMIT ?'
    )
    assert binds == [1, 2]

def test_select_offset_without_limit(db):
    spec = normalize(db.catalog, 'employee', offset(5))

    sql, binds = render(db, build_select(spec, db.catalog))
    assert sql.endswith('FROM employee LIMIT -1 OFFSET ?')
    assert binds == [5]

def test_select_join(db):
    spec = normalize(db.catalog, ['employee', 'employer', columns('employee.name', 'employer.name AS firm')])

    sql, binds = render(db, build_select(spec, db.catalog))
    assert sql == (
        'SELECT employee.name, employer.name AS firm FROM employee '
        'JOIN employer ON employee.id_employer = employer.id_employer'
    )
    assert binds == []

def test_select_right_join(db):
    spec = normalize(db.catalog, ['employee', right('employer'), columns('employer.name AS firm')])

    sql, _ = render(db, build_select(spec, db.catalog))
    assert 'FROM employer LEFT OUTER JOIN employee ON employee.id_employer = employer.id_employer' in sql

def test_select_subquery_join(db):
    sub = normalize(db.catalog, 'employee', columns('id_employer', 'count(*) AS staff'),
                    group_by='id_employer', where={'salary': {'>': 10}})
    spec = normalize(db.catalog, ['employer', join(sub, 's'), using('id_employer'),
                                  columns('employer.name', 's.staff')])

    sql, binds = render(db, build_select(spec, db.catalog))
    assert sql.startswith('SELECT employer.name, s.staff FROM employer JOIN (SELECT')
    assert 'GROUP BY employee.id_employer) AS s ON employer.id_employer = s.id_employer' in sql
    assert binds == [10]

def test_select_using_unknown_column(db):
    spec = normalize(db.catalog, ['employee', join('office'), using('id_employer')])

    with pytest.raises(QuerySpecError):
        build_select(spec, db.catalog)

def test_select_group_having(db):
    spec = normalize(
        db.catalog, 'employee', columns('id_employer', 'count(*) AS n'),
        group_by='id_employer', having=Literal('count(*) > ?', 1),
    )

    assert render(db, build_select(spec, db.catalog)) == (
        'SELECT employee.id_employer, count(*) AS n FROM employee '
        'GROUP BY employee.id_employer HAVING (count(*) > ?)',
        [1],
    )

def test_select_raw_as_given(db):
    spec = normalize(db.catalog, 'SELECT * FROM employee WHERE salary > ?', 10)
    assert render(db, build_select(spec, db.catalog)) == (
        'SELECT * FROM employee WHERE salary > ?', [10]
    )

def test_select_raw_with_where(db):
    spec = normalize(db.catalog, 'SELECT * FROM employee WHERE salary > ?', 10, {'id_employer': 2})
    assert render(db, build_select(spec, db.catalog)) == (
        'SELECT * FROM (SELECT * FROM employee WHERE salary > ?) AS q WHERE id_employer = ?',
        [10, 2],
    )

def test_select_raw_trailing_clause(db):
    spec = normalize(db.catalog, 'SELECT * FROM employee ORDER BY id LIMIT 2', limit(1))
    assert render(db, build_select(spec, db.catalog)) == (
        'SELECT * FROM (SELECT * FROM employee ORDER BY id LIMIT 2) AS q LIMIT ?', [1]
    )

def test_raw_bind_count_mismatch(db):
    spec = normalize(db.catalog, 'SELECT * FROM employee WHERE id = ? AND salary > ?', 1)

    with pytest.raises(QuerySpecError):
        build_select(spec, db.catalog)

def test_raw_quoted_colon_untouched(db):
    statement = dbutil.positional_text("SELECT ':x', '?' FROM office WHERE id = ?", [1])
    assert render(db, statement) == ("SELECT ':x', '?' FROM office WHERE id = ?", [1])

def test_insert_with_literal(db):
    statement = build_insert(table(db, 'employee'), {'name': 'Ada', 'salary': Literal('? * 2', 50)})

    assert render(db, statement) == (
        'INSERT INTO employee (name, salary) VALUES (?, ? * 2)', ['Ada', 50]
    )

def test_insert_defaults(db):
    assert render(db, build_insert(table(db, 'office'), {})) == (
        'INSERT INTO office DEFAULT VALUES', []
    )

def test_update_literal_not_bound(db):
    statement = build_update(table(db, 'employee'), {'salary': Literal('salary + 10')}, {'id': 4})

    assert render(db, statement) == (
        'UPDATE employee SET salary=salary + 10 WHERE employee.id = ?', [4]
    )

def test_delete(db):
    audit_log = table(db, 'audit_log')

    assert render(db, build_delete(audit_log, {'level': 1})) == (
        'DELETE FROM audit_log WHERE audit_log.level = ?', [1]
    )
    assert render(db, build_delete(audit_log)) == ('DELETE FROM audit_log', [])

def test_emit():
    holder, calls = [], []

    emit(holder, 'SELECT 1', [])
    emit(lambda sql, binds: calls.append((sql, binds)), 'SELECT ?', [1])
    emit(None, 'SELECT 2', [])

    assert holder == ['SELECT 1']
    assert calls == [('SELECT ?', [1])]
