"""
SQL text for routine calls.
"""
from collections.abc import Sequence

from dbroutine.params import ParameterSpec, RoutineSpec

__all__ = ['quote_identifier', 'qualify', 'make_argument_list', 'cast_for']

# SQL casts used when a scalar result is requested as a calendar type
_WIRE_CASTS: dict[str, str] = {
    'date': 'date',
    'time': 'time',
    'datetime': 'timestamp',
}


def quote_identifier(identifier: str, dialect: str = 'postgresql') -> str:
    """Safely quote database identifiers.

    >>> quote_identifier('get_2_first_user')
    '"get_2_first_user"'
    >>> quote_identifier('odd"name')
    '"odd""name"'

    Raises
        ValueError: If dialect is unsupported
    """
    if dialect == 'postgresql':
        return '"' + identifier.replace('"', '""') + '"'

    raise ValueError(f'Unknown dialect: {dialect}')


def qualify(routine: RoutineSpec, dialect: str = 'postgresql') -> str:
    """Quoted, schema-qualified routine name.

    The catalog (the database, for PostgreSQL) is only meaningful in front
    of a schema.

    >>> qualify(RoutineSpec('add_user', schema='test_program_unit'))
    '"test_program_unit"."add_user"'
    >>> qualify(RoutineSpec('add_user', schema='public', catalog='test_db'))
    '"test_db"."public"."add_user"'
    >>> qualify(RoutineSpec('add_user', catalog='test_db'))
    '"add_user"'
    """
    if routine.schema:
        parts = [routine.catalog, routine.schema, routine.name]
    else:
        parts = [routine.name]
    return '.'.join(quote_identifier(part, dialect) for part in parts if part)


def make_argument_list(count: int, specs: Sequence[ParameterSpec] = (),
                       placeholder: str = '%s') -> str:
    """Placeholders for ``count`` arguments, cast to declared wire types.

    >>> make_argument_list(2, [ParameterSpec('user_id', 'bigint'), ParameterSpec('name')])
    '%s::bigint, %s'
    >>> make_argument_list(0)
    ''
    """
    items = []
    for i in range(count):
        wire_type = specs[i].wire_type if i < len(specs) else None
        items.append(f'{placeholder}::{wire_type}' if wire_type else placeholder)
    return ', '.join(items)


def cast_for(wire_type: type) -> str:
    """SQL cast suffix requesting a calendar wire type, empty otherwise.

    >>> import datetime
    >>> cast_for(datetime.datetime), cast_for(object)
    ('::timestamp', '')
    """
    cast = _WIRE_CASTS.get(getattr(wire_type, '__name__', ''))
    return f'::{cast}' if cast else ''


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
