'''
Relation

Table descriptors shared by every row of a table. A Relation records the column layout
(the positional order every row's value list follows), the primary key, JSON and
timestamp columns, the foreign keys leaving the table and the relationship accessors
derived from foreign keys in either direction. ``table`` is the reflected ``sa.Table``
that statements for the relation are built against.

Relations are built once per catalog snapshot and never mutated afterwards; rows hold
long-lived references to them. Projections (column subsets of one table) and anonymous
relations (join or raw SQL results) are built on demand from result column names.
'''
from types import MappingProxyType
from dataclasses import dataclass


@dataclass(frozen=True)
class ForeignKey:
    '''
    One single-column referential constraint ``source.column -> target.target_column``.

    ``suffix`` is what remains of the source column name once the conventional
    ``<target>_id`` / ``id_<target>`` parts are removed; it keeps accessor names apart
    when a table references the same target more than once.
    '''
    source:        str
    column:        str
    target:        str
    target_column: str

    @property
    def suffix(self):
        return fk_suffix(self.column, self.target)

    @property
    def forward_name(self):
        return f'{self.target}{self.suffix}'

    @property
    def reverse_name(self):
        return f'ref_{self.source}{self.suffix}'


@dataclass(frozen=True)
class Relationship:
    '''
    A derived relationship accessor. ``direction`` is ``forward`` (source row to the one
    target row it references) or ``reverse`` (target row to referencing source rows);
    reverse accessors come in ``many=False`` and ``many=True`` flavors.
    '''
    name:      str
    fkey:      ForeignKey
    direction: str
    many:      bool = False


def fk_suffix(column, target):
    base = column
    if base.startswith('id_'):
        base = base[3:]
    elif base.endswith('_id'):
        base = base[:-3]

    if base == target or base == '':
        return ''
    if base.startswith(target + '_'):
        return base[len(target):]
    if base.endswith('_' + target):
        return '_' + base[:-len(target) - 1]

    return '_' + base


class Relation:
    def __init__(
        self,
        name,
        columns,
        primary_key  = (),
        json_columns = (),
        timestamp_columns = (),
        foreign_keys = (),
        relationships = None,
        table        = None,
    ):
        self.name    = name
        self.table   = table
        self.columns = tuple(columns)
        self.index   = MappingProxyType({ c:i for i, c in reversed(list(enumerate(self.columns))) })

        self.primary_key       = tuple(primary_key)
        self.json_columns      = frozenset(json_columns)
        self.timestamp_columns = frozenset(timestamp_columns)
        self.foreign_keys      = tuple(foreign_keys)
        self.relationships     = MappingProxyType(dict(relationships or {}))

    def __repr__(self):
        return f'<Relation {self.name or "(anonymous)"} [{", ".join(self.columns)}]>'

    def __len__(self):
        return len(self.columns)

    @property
    def anonymous(self):
        return self.name is None

    def has_primary_key(self):
        return bool(self.primary_key) and all(c in self.index for c in self.primary_key)

    def project(self, columns):
        '''
        Relation over a subset (or reordering) of this table's columns. The primary key
        survives only when every key column is selected.
        '''
        columns = tuple(columns)
        if columns == self.columns:
            return self

        selected = set(columns)
        primary_key = self.primary_key if selected.issuperset(self.primary_key) else ()

        return Relation(
            self.name,
            columns,
            primary_key=primary_key,
            json_columns=self.json_columns & selected,
            timestamp_columns=self.timestamp_columns & selected,
            foreign_keys=[fk for fk in self.foreign_keys if fk.column in selected],
            relationships={
                name: rel for name, rel in self.relationships.items()
                if (rel.fkey.column if rel.direction == 'forward' else rel.fkey.target_column)
                in selected
            },
            table=self.table,
        )

    @classmethod
    def anonymous_from(cls, columns, json_columns=()):
        '''
        Relation for result sets not tied to a single table. Duplicate column names
        resolve to their first position.
        '''
        return cls(None, columns, json_columns=set(json_columns) & set(columns))
