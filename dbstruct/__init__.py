'''
dbstruct: schema-introspecting data access.

Connect a Database to a live schema and query it by table name, raw SQL, or lists of
joined tables and directives. Rows come back as dirty-tracked objects whose columns
and foreign-key relationships are reachable as attributes.
'''

from dbstruct.literal  import Literal
from dbstruct.row      import Row
from dbstruct.relation import Relation, ForeignKey, Relationship
from dbstruct.catalog  import Catalog, build_catalog
from dbstruct.database import Database, Table
from dbstruct.engines  import SQLEngine
from dbstruct.util.db  import hash_slice

from dbstruct.query import (
    QuerySpec,
    JoinClause,
    normalize,
    columns,
    join,
    left,
    right,
    on,
    using,
    where,
    group_by,
    having,
    order_by,
    limit,
    offset,
    sql,
    dry_run,
    mapper,
)

from dbstruct.errors import (
    DBStructError,
    SchemaError,
    UnknownColumnError,
    NoPrimaryKeyError,
    QuerySpecError,
    JoinError,
    JoinAmbiguityError,
    JoinNotFoundError,
    StaleRowError,
    SQLExecutionError,
    message_policy,
    record_policy,
)
