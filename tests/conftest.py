import pytest
import sqlalchemy as sa

from setups import staff
from dbstruct import Database


@pytest.fixture
def engine():
    engine = staff.create_engine()
    yield engine
    engine.dispose()

@pytest.fixture
def db(engine):
    return Database(engine).connect()

@pytest.fixture
def statements(engine):
    '''
    SQL text of every statement the engine sends to the driver.
    '''
    captured = []

    def capture(conn, cursor, statement, parameters, context, executemany):
        captured.append(statement)

    sa.event.listen(engine, 'before_cursor_execute', capture)
    yield captured
    sa.event.remove(engine, 'before_cursor_execute', capture)
