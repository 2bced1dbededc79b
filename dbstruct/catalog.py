'''
Catalog

Schema introspection for a connected database. ``build_catalog`` reflects every table
into ``sa.Table`` objects (``MetaData.reflect``) and returns an immutable ``Catalog``
of Relations, with relationship accessors derived from foreign keys:

.. code-block:: python

    with engine.connect() as connection:
        catalog = build_catalog(connection)

    catalog['employee'].relationships   # {'employer': Relationship(...)}
    catalog['employer'].relationships   # {'ref_employee': ..., 'ref_employees': ...}

The catalog is a snapshot. Reconnecting builds a fresh one; existing Relations are
never modified in place.
'''
import logging
from types import MappingProxyType
from collections import defaultdict
from collections.abc import Mapping

import sqlalchemy as sa

from dbstruct.errors import SchemaError
from dbstruct.relation import Relation, ForeignKey, Relationship


logger = logging.getLogger(__name__)


class Catalog(Mapping):
    '''
    Read-only table name to Relation mapping, plus the foreign keys indexed by the pair
    of tables they connect (used for auto-joins).
    '''
    def __init__(self, relations, foreign_keys=()):
        self._relations = MappingProxyType(dict(relations))
        self.foreign_keys = tuple(foreign_keys)

        self._projections = {}
        self._anonymous   = {}

    def __getitem__(self, name):
        return self._relations[name]

    def __iter__(self):
        return iter(self._relations)

    def __len__(self):
        return len(self._relations)

    def relation(self, name):
        relation = self._relations.get(name)
        if relation is None:
            raise SchemaError(f'Unknown table "{name}"', table=name)
        return relation

    def fkeys_between(self, left, right):
        '''
        Foreign keys connecting two tables, in either direction.
        '''
        return [
            fk for fk in self.foreign_keys
            if (fk.source, fk.target) in ((left, right), (right, left))
        ]

    def projection(self, name, columns):
        '''
        Cached Relation for a result of table ``name`` with the given columns.
        '''
        key = (name, tuple(columns))
        if key not in self._projections:
            self._projections[key] = self.relation(name).project(columns)
        return self._projections[key]

    def anonymous(self, columns, tables=()):
        '''
        Cached anonymous Relation for join/raw results; JSON columns of the involved
        tables keep their in-place change tracking.
        '''
        key = (tuple(columns), tuple(tables))
        if key not in self._anonymous:
            json_columns = set()
            for table in tables:
                if table in self._relations:
                    json_columns |= self._relations[table].json_columns
            self._anonymous[key] = Relation.anonymous_from(columns, json_columns)
        return self._anonymous[key]


def _is_json(sa_type):
    return isinstance(sa_type, sa.JSON)

def _is_timestamp(sa_type):
    return isinstance(sa_type, sa.DateTime)

def build_catalog(connection, schema=None) -> Catalog:
    '''
    Reflect every table reachable on ``connection`` (optionally in a named schema).

    Raises:
        SchemaError: introspection failed, or derived accessor names collide
    '''
    metadata = sa.MetaData()
    try:
        metadata.reflect(bind=connection, schema=schema)
    except sa.exc.SQLAlchemyError as e:
        logger.error(f'Schema introspection failed: {e}')
        raise SchemaError(f'Schema introspection failed: {e}') from e

    # referred tables of other schemas get reflected alongside; they aren't ours
    tables = {
        table.name: table
        for table in metadata.tables.values()
        if table.schema == schema
    }

    foreign_keys = []
    composite    = []
    for table in tables.values():
        for constraint in table.foreign_key_constraints:
            referred = constraint.referred_table
            if referred.schema != schema:
                logger.debug(f'Skipping cross-schema foreign key on "{table.name}"')
                continue

            pairs = [(e.parent.name, e.column.name) for e in constraint.elements]
            if len(pairs) != 1:
                composite.append((table.name, referred.name, pairs))
                continue

            (column, target_column), = pairs
            foreign_keys.append(
                ForeignKey(table.name, column, referred.name, target_column)
            )

    if composite:
        logger.debug(f'{len(composite)} composite foreign keys get no accessors')

    relationships = defaultdict(dict)

    def register(table_name, relationship):
        existing = relationships[table_name]

        if relationship.name in existing or relationship.name in tables[table_name].c:
            raise SchemaError(
                f'Relationship accessor "{relationship.name}" on table "{table_name}" '
                f'collides with an existing column or accessor',
                table=table_name,
                accessor=relationship.name,
            )
        existing[relationship.name] = relationship

    for fk in foreign_keys:
        register(fk.source, Relationship(fk.forward_name, fk, 'forward'))
        register(fk.target, Relationship(fk.reverse_name, fk, 'reverse', many=False))
        register(fk.target, Relationship(fk.reverse_name + 's', fk, 'reverse', many=True))

    relations = {}
    for name, table in tables.items():
        relations[name] = Relation(
            name,
            [c.name for c in table.columns],
            primary_key=[c.name for c in table.primary_key.columns],
            json_columns=[c.name for c in table.columns if _is_json(c.type)],
            timestamp_columns=[c.name for c in table.columns if _is_timestamp(c.type)],
            foreign_keys=[fk for fk in foreign_keys if fk.source == name],
            relationships=relationships.get(name),
            table=table,
        )

    logger.info(
        f'Catalog built with {len(relations)} tables and {len(foreign_keys)} foreign keys'
    )

    return Catalog(relations, foreign_keys)
