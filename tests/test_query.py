import pytest

from dbstruct import (
    normalize,
    columns,
    join,
    left,
    on,
    using,
    order_by,
    limit,
    dry_run,
    mapper,
    Literal,
    QuerySpecError,
    JoinNotFoundError,
    JoinAmbiguityError,
    NoPrimaryKeyError,
    SchemaError,
)


def test_bare_table(db):
    spec = normalize(db.catalog, 'employee')

    assert spec.table == 'employee'
    assert spec.joins == ()
    assert spec.columns == ('*',)
    assert spec.where is None
    assert spec.single_table

def test_primary_key_shortcut(db):
    assert normalize(db.catalog, 'employee', 5).where == {'id': 5}
    assert normalize(db.catalog, 'employer', 2).where == {'id_employer': 2}

def test_primary_key_shortcut_keyless(db):
    with pytest.raises(NoPrimaryKeyError):
        normalize(db.catalog, 'audit_log', 1)

def test_primary_key_none(db):
    assert normalize(db.catalog, 'employee', None).where == {'id': None}

    with pytest.raises(QuerySpecError):
        normalize(db.catalog, 'employee', None, 2)

def test_primary_key_with_join(db):
    spec = normalize(db.catalog, ['employee e', 'employer'], 3)
    assert spec.where == {'e.id': 3}

def test_where_forms(db):
    assert normalize(db.catalog, 'employee', {'name': 'Ada'}).where == {'name': 'Ada'}
    assert normalize(db.catalog, 'employee', [{'id': 1}, {'id': 2}]).where == [{'id': 1}, {'id': 2}]
    assert normalize(db.catalog, 'employee', where={'id': 1}).where == {'id': 1}

    with pytest.raises(QuerySpecError):
        normalize(db.catalog, 'employee', {'id': 1}, {'id': 2})
    with pytest.raises(QuerySpecError):
        normalize(db.catalog, 'employee', 1, {'id': 2})

def test_modifiers_anywhere(db):
    spec = normalize(db.catalog, 'employee', order_by('-id'), {'salary': {'>': 1}}, limit(2))

    assert spec.order_by == '-id'
    assert spec.limit == 2
    assert spec.where == {'salary': {'>': 1}}

def test_mapper(db):
    spec = normalize(db.catalog, 'employee', str)
    assert spec.mapper is str

    spec = normalize(db.catalog, ['employee', mapper(repr)])
    assert spec.mapper is repr

    with pytest.raises(QuerySpecError):
        normalize(db.catalog, 'employee', str, repr)

def test_unknown_table(db):
    with pytest.raises(SchemaError):
        normalize(db.catalog, 'nope')

def test_raw_sql(db):
    spec = normalize(db.catalog, '  select * FROM employee where salary > ?', 120, order_by('id'))

    assert spec.raw_sql.startswith('select')
    assert spec.binds == (120,)
    assert spec.order_by == 'id'
    assert not spec.single_table

def test_raw_sql_rejects_columns(db):
    with pytest.raises(QuerySpecError):
        normalize(db.catalog, 'select * from employee', columns('name'))

def test_auto_join(db):
    spec = normalize(db.catalog, ['employee', 'employer'])

    join_clause, = spec.joins
    assert join_clause.kind == 'inner'
    assert join_clause.target == 'employer'
    assert join_clause.on is None
    assert join_clause.fkey.column == 'id_employer'
    assert (join_clause.left, join_clause.fkey_source, join_clause.fkey_target) == (
        'employee', 'employee', 'employer'
    )
    assert spec.tables == ('employee', 'employer')

def test_auto_join_reverse_direction(db):
    spec = normalize(db.catalog, ['employer r', left('employee e')])

    join_clause, = spec.joins
    assert join_clause.kind == 'left'
    assert join_clause.alias == 'e'
    assert join_clause.left == 'r'
    assert (join_clause.fkey_source, join_clause.fkey_target) == ('e', 'r')

def test_auto_join_not_found(db):
    with pytest.raises(JoinNotFoundError):
        normalize(db.catalog, ['employee', 'office'])

def test_auto_join_ambiguous(db):
    with pytest.raises(JoinAmbiguityError):
        normalize(db.catalog, ['project', 'employee'])

def test_explicit_conditions(db):
    spec = normalize(db.catalog, [
        'project', 'employee', on('project.lead_id = employee.id'),
        join('office'), using('id'),
    ])

    first, second = spec.joins
    assert first.on == 'project.lead_id = employee.id'
    assert first.fkey is None
    assert second.using == 'id'

def test_condition_without_join(db):
    with pytest.raises(QuerySpecError):
        normalize(db.catalog, ['employee', on('1 = 1')])

def test_subquery_join(db):
    sub = normalize(db.catalog, 'employee', columns('id_employer', 'count(*) AS staff'),
                    group_by='id_employer')
    spec = normalize(db.catalog, ['employer', join(sub, 's'), using('id_employer')])

    assert spec.joins[0].target is sub
    assert spec.joins[0].alias == 's'

    with pytest.raises(QuerySpecError):
        normalize(db.catalog, ['employer', join(sub, 's')])

def test_columns_and_flags(db):
    hook = []
    spec = normalize(db.catalog, [columns('id', 'name'), 'employee', dry_run()], sql=hook)

    assert spec.columns == ('id', 'name')
    assert spec.dry_run
    assert spec.sql_hook is hook

def test_literal_where(db):
    spec = normalize(db.catalog, 'employee', Literal('salary > ?', 5))
    assert spec.where == Literal('salary > ?', 5)
