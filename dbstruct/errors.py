'''
Error types

Every failure surfaced by a public entry point is one of the types below. How an error
is presented (plain message or structured record) is a policy chosen once on the
Database; see ``resolve_policy``.
'''
from functools import wraps


class DBStructError(Exception):
    '''Base error for all dbstruct operations.'''
    kind = 'error'

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details
        self.report  = None

    def as_record(self):
        return {
            'kind': self.kind,
            'message': self.message,
            **self.details,
        }


class SchemaError(DBStructError):
    '''Catalog build failed or a table/column is not known to the catalog.'''
    kind = 'schema'


class UnknownColumnError(SchemaError, AttributeError):
    '''Column or accessor name not present on the table.'''
    kind = 'unknown_column'

    def __init__(self, table, column):
        super().__init__(
            f'Column "{column}" not found on table "{table}"',
            table=table,
            column=column,
        )


class NoPrimaryKeyError(SchemaError):
    '''Operation requires a primary key the table does not have.'''
    kind = 'no_primary_key'

    def __init__(self, table, operation, reason=None):
        super().__init__(
            f'Cannot {operation}: ' + (reason or f'table "{table}" has no primary key'),
            table=table,
            operation=operation,
        )


class QuerySpecError(DBStructError):
    '''Malformed call arguments for one_row/all_rows/new_row.'''
    kind = 'query_spec'


class JoinError(QuerySpecError):
    kind = 'join'


class JoinNotFoundError(JoinError):
    '''No foreign key relates the two tables of an auto-join.'''
    kind = 'join_not_found'

    def __init__(self, left, right):
        super().__init__(
            f'No foreign key between "{left}" and "{right}"; give an explicit on/using',
            left=left,
            right=right,
        )


class JoinAmbiguityError(JoinError):
    '''More than one foreign key relates the two tables of an auto-join.'''
    kind = 'join_ambiguous'

    def __init__(self, left, right, candidates):
        super().__init__(
            f'{len(candidates)} foreign keys between "{left}" and "{right}"; '
            f'give an explicit on/using',
            left=left,
            right=right,
            candidates=candidates,
        )


class StaleRowError(DBStructError):
    '''Row was deleted and can no longer be used.'''
    kind = 'stale_row'

    def __init__(self, table):
        super().__init__(
            f'Row of table "{table}" was deleted',
            table=table,
        )


class SQLExecutionError(DBStructError):
    '''Driver-level failure while running a statement.'''
    kind = 'sql'

    def __init__(self, message, sql=None, binds=None):
        super().__init__(message, sql=sql, binds=list(binds or []))
        self.sql   = sql
        self.binds = list(binds or [])


def message_policy(error):
    return str(error)

def record_policy(error):
    if isinstance(error, DBStructError):
        return error.as_record()

    return {'kind': 'error', 'message': str(error)}

_policies = {
    'message': message_policy,
    'record':  record_policy,
}

def resolve_policy(policy):
    '''
    Resolve an error presentation policy: one of the registered names, or any callable
    taking the exception and returning its presentation.
    '''
    if callable(policy):
        return policy

    if policy not in _policies:
        raise ValueError(f'Unknown error policy "{policy}"')

    return _policies[policy]

def reported(method):
    '''
    Attach the owner's rendered error presentation to errors leaving ``method``. The
    owner provides ``_error_policy()``.
    '''
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except DBStructError as e:
            if e.report is None:
                e.report = self._error_policy()(e)
            raise

    return wrapper
