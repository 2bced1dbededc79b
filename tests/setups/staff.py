'''
Staff schema used across the tests.

EMPLOYER <- EMPLOYEE <- PROJECT (lead_id, backup_id)
OFFICE      (unrelated)
AUDIT_LOG   (no primary key)
'''
import datetime

import sqlalchemy as sa


metadata = sa.MetaData()
employer_table = sa.Table(
    'employer',
    metadata,
    sa.Column('id_employer', sa.Integer, primary_key=True),
    sa.Column('name',        sa.String),
    sa.Column('settings',    sa.JSON, nullable=True),
)
employee_table = sa.Table(
    'employee',
    metadata,
    sa.Column('id',          sa.Integer, primary_key=True),
    sa.Column('name',        sa.String),
    sa.Column('id_employer', sa.Integer, sa.ForeignKey('employer.id_employer')),
    sa.Column('salary',      sa.Integer, server_default=sa.text('100')),
    sa.Column('hired',       sa.DateTime, nullable=True),
)
project_table = sa.Table(
    'project',
    metadata,
    sa.Column('id',        sa.Integer, primary_key=True),
    sa.Column('name',      sa.String),
    sa.Column('lead_id',   sa.Integer, sa.ForeignKey('employee.id')),
    sa.Column('backup_id', sa.Integer, sa.ForeignKey('employee.id')),
)
office_table = sa.Table(
    'office',
    metadata,
    sa.Column('id',   sa.Integer, primary_key=True),
    sa.Column('city', sa.String),
)
audit_log_table = sa.Table(
    'audit_log',
    metadata,
    sa.Column('message', sa.String),
    sa.Column('level',   sa.Integer),
)

seed = {
    employer_table: [
        {'id_employer': 1, 'name': 'Acme',   'settings': {'a': 1}},
        {'id_employer': 2, 'name': 'Globex', 'settings': None},
    ],
    employee_table: [
        {'id': 1, 'name': 'Ada', 'id_employer': 1, 'salary': 200,
         'hired': datetime.datetime(2024, 1, 2, 10, 11, 12, 345678)},
        {'id': 2, 'name': 'Bob', 'id_employer': 1, 'salary': 150, 'hired': None},
        {'id': 3, 'name': 'Cy',  'id_employer': 2, 'salary': 100, 'hired': None},
    ],
    project_table: [
        {'id': 1, 'name': 'Apollo', 'lead_id': 1, 'backup_id': 2},
    ],
    office_table: [
        {'id': 1, 'city': 'Oslo'},
    ],
    audit_log_table: [
        {'message': 'start', 'level': 1},
        {'message': 'stop',  'level': 2},
    ],
}

def create_engine():
    engine = sa.create_engine('sqlite://')
    metadata.create_all(engine)

    with engine.begin() as connection:
        for table in metadata.sorted_tables:
            connection.execute(sa.insert(table), seed[table])

    return engine
