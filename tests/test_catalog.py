import pytest
import sqlalchemy as sa

from dbstruct import Database, SchemaError
from dbstruct.relation import fk_suffix


def test_catalog_tables(db):
    assert set(db.catalog) == {'employer', 'employee', 'project', 'office', 'audit_log'}

def test_catalog_columns(db):
    employee = db.catalog['employee']

    assert employee.columns == ('id', 'name', 'id_employer', 'salary', 'hired')
    assert employee.index['salary'] == 3
    assert employee.primary_key == ('id',)
    assert employee.timestamp_columns == {'hired'}

def test_catalog_json_columns(db):
    assert db.catalog['employer'].json_columns == {'settings'}
    assert db.catalog['employee'].json_columns == set()

def test_catalog_keyless_table(db):
    assert db.catalog['audit_log'].primary_key == ()
    assert not db.catalog['audit_log'].has_primary_key()

def test_catalog_unknown_table(db):
    with pytest.raises(SchemaError):
        db.catalog.relation('nope')

def test_relationship_names(db):
    employee = db.catalog['employee'].relationships
    employer = db.catalog['employer'].relationships
    project  = db.catalog['project'].relationships

    assert set(employer) == {'ref_employee', 'ref_employees'}
    assert employee['employer'].direction == 'forward'
    assert employer['ref_employees'].many
    assert not employer['ref_employee'].many

    assert set(project) == {'employee_lead', 'employee_backup'}
    assert {'ref_project_lead', 'ref_project_leads',
            'ref_project_backup', 'ref_project_backups'} <= set(employee)

def test_fkeys_between(db):
    assert len(db.catalog.fkeys_between('employee', 'employer')) == 1
    assert len(db.catalog.fkeys_between('employer', 'employee')) == 1
    assert len(db.catalog.fkeys_between('project', 'employee')) == 2
    assert db.catalog.fkeys_between('employee', 'office') == []

def test_fk_suffix():
    assert fk_suffix('id_employer', 'employer') == ''
    assert fk_suffix('employer_id', 'employer') == ''
    assert fk_suffix('lead_id', 'employee') == '_lead'
    assert fk_suffix('employee_boss_id', 'employee') == '_boss'
    assert fk_suffix('boss_employee_id', 'employee') == '_boss'

def test_projection_is_shared(db):
    first  = db.catalog.projection('employee', ('id', 'name'))
    second = db.catalog.projection('employee', ('id', 'name'))

    assert first is second
    assert first.primary_key == ('id',)
    assert db.catalog.projection('employee', ('name',)).primary_key == ()
    assert db.catalog.projection('employee', db.catalog['employee'].columns) is db.catalog['employee']

def test_accessor_collision():
    metadata = sa.MetaData()
    sa.Table(
        'person', metadata,
        sa.Column('id', sa.Integer, primary_key=True),
    )
    sa.Table(
        'badge', metadata,
        sa.Column('id',        sa.Integer, primary_key=True),
        sa.Column('person',    sa.String),
        sa.Column('person_id', sa.Integer, sa.ForeignKey('person.id')),
    )
    engine = sa.create_engine('sqlite://')
    metadata.create_all(engine)

    with pytest.raises(SchemaError):
        Database(engine).connect()

def test_reconnect_replaces_catalog(tmp_path):
    engine = sa.create_engine(f'sqlite:///{tmp_path / "staff.db"}')
    with engine.begin() as connection:
        connection.execute(sa.text('CREATE TABLE office (id INTEGER PRIMARY KEY, city TEXT)'))

    db = Database(engine).connect()
    before = db.catalog

    with engine.begin() as connection:
        connection.execute(sa.text('ALTER TABLE office ADD COLUMN country TEXT'))

    db.reconnect(timeout=5)

    assert db.catalog is not before
    assert before['office'].columns == ('id', 'city')
    assert db.catalog['office'].columns == ('id', 'city', 'country')
