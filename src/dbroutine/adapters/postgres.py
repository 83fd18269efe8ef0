"""
PostgreSQL routine adapter built on psycopg.

Functions are called as ``select * from schema.fn(...)`` and procedures as
``call schema.proc(...)``, passing ``null`` for OUT arguments (PostgreSQL 14+).
Cursor outputs arrive as refcursor portal names and are read with
``fetch all from`` inside the same transaction.
"""
import logging
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import cachetools
import psycopg
from dbroutine.adapters.base import RoutineAdapter, RowMappers, logcall
from dbroutine.adapters.base import register_adapter
from dbroutine.annotations import DEFAULT_RETURN_NAME
from dbroutine.descriptor import normalize_key
from dbroutine.exceptions import AdapterError
from dbroutine.params import RoutineSpec
from dbroutine.sql import cast_for, make_argument_list, qualify, quote_identifier
from psycopg.postgres import types as pg_types
from psycopg.pq import TransactionStatus

logger = logging.getLogger(__name__)

REFCURSOR_OID = pg_types.get('refcursor').oid

SIGNATURE_CACHE_SIZE = 50
SIGNATURE_CACHE_TTL = 300

_SIGNATURE_SQL = """
select
    r.specific_name,
    p.parameter_name,
    p.parameter_mode
from
    information_schema.routines r
    left join information_schema.parameters p
        on p.specific_schema = r.specific_schema
        and p.specific_name = r.specific_name
where
    r.routine_schema = coalesce(%s, current_schema())
    and r.routine_name = %s
order by
    r.specific_name, p.ordinal_position
"""


class DictRowFactory:
    """Row factory for psycopg that returns rows as plain dictionaries.

    Values are left exactly as the driver decoded them; conversion to model
    types is the binder's job.
    """

    def __init__(self, cursor: Any) -> None:
        self.names = [c.name for c in (cursor.description or [])]

    def __call__(self, values: tuple) -> dict:
        return dict(zip(self.names, values))


def get_raw_connection(connection: Any) -> Any:
    """Extract the raw psycopg connection from a pool proxy or wrapper."""
    raw_conn = connection
    if hasattr(connection, 'driver_connection'):
        raw_conn = connection.driver_connection
    return raw_conn


def _refcursor_columns(cursor: Any) -> set[str]:
    return {c.name for c in (cursor.description or []) if c.type_code == REFCURSOR_OID}


@register_adapter('postgresql')
class PostgresAdapter(RoutineAdapter):
    """PostgreSQL routine execution over one psycopg connection.

    Calls on one adapter are serialized; the connection is not shared
    between concurrent statements.

    With ``auto_commit`` every call runs in its own transaction and is
    committed. Without it the call joins the caller's transaction, inside a
    savepoint when one is already open, and nothing is committed.
    """

    def __init__(self, connection: Any, auto_commit: bool = True,
                 signature_ttl: int = SIGNATURE_CACHE_TTL) -> None:
        super().__init__()
        self._holder = connection
        self.connection = get_raw_connection(connection)
        self.auto_commit = auto_commit
        self._lock = threading.RLock()
        self._signatures = cachetools.TTLCache(maxsize=SIGNATURE_CACHE_SIZE, ttl=signature_ttl)

    @property
    def dialect_name(self) -> str:
        return 'postgresql'

    @classmethod
    def get_required_options(cls) -> list[str]:
        return ['hostname', 'username', 'password', 'database', 'port']

    def close(self) -> None:
        self._holder.close()

    def _status(self) -> TransactionStatus:
        return self.connection.info.transaction_status

    @contextmanager
    def _implicit_transaction(self) -> Iterator[None]:
        """Leave the transaction open for the caller, rolling back on driver errors."""
        try:
            yield
        except psycopg.Error:
            self.connection.rollback()
            raise

    def _transaction(self) -> Any:
        """Transaction block for one call.

        A block entered on an idle connection is the outer transaction and
        commits on exit, so it is only used when committing or when the
        connection is in autocommit mode (refcursors need a transaction).
        Inside an open transaction the block is a savepoint.
        """
        if self.auto_commit or self.connection.autocommit:
            return self.connection.transaction()
        if self._status() != TransactionStatus.IDLE:
            return self.connection.transaction()
        return self._implicit_transaction()

    @contextmanager
    def _call(self, routine: RoutineSpec) -> Iterator[Any]:
        """Cursor inside a transaction; driver errors become ``AdapterError``."""
        with self._lock:
            try:
                with self._transaction():
                    with self.connection.cursor(row_factory=DictRowFactory) as cursor:
                        yield cursor
                if (self.auto_commit and not self.connection.autocommit
                        and self._status() != TransactionStatus.IDLE):
                    self.connection.commit()
            except psycopg.Error as err:
                raise AdapterError(f'{routine.kind} {routine.qualified_name}: {err}') from err

    def clear_signatures(self) -> None:
        """Forget cached routine signatures, e.g. after a routine is redefined."""
        with self._lock:
            self._signatures.clear()

    def _signature(self, cursor: Any, routine: RoutineSpec, argc: int) -> tuple[str, ...]:
        """Parameter modes of the overload accepting ``argc`` input arguments."""
        key = (routine.catalog, routine.schema, routine.name, argc)
        signature = self._signatures.get(key)
        if signature is not None:
            return signature

        cursor.execute(_SIGNATURE_SQL, (routine.schema, routine.name))
        overloads: dict[str, list[str]] = {}
        for row in cursor.fetchall():
            modes = overloads.setdefault(row['specific_name'], [])
            if row['parameter_mode'] is not None:
                modes.append(row['parameter_mode'])

        if not overloads:
            raise AdapterError(f'{routine.kind} {routine.qualified_name} does not exist')

        for modes in overloads.values():
            if sum(mode != 'OUT' for mode in modes) == argc:
                signature = tuple(modes)
                break
        else:
            raise AdapterError(
                f'No {routine.kind} {routine.qualified_name} accepts {argc} argument(s)')

        logger.debug(f'Signature of {routine.qualified_name}: {signature}')
        self._signatures[key] = signature
        return signature

    def _arguments(self, routine: RoutineSpec, params: Sequence[Any],
                   modes: Sequence[str] | None = None) -> str:
        text = make_argument_list(len(params), routine.params)
        placeholders = iter(text.split(', ') if text else [])
        if modes is None:
            return text
        return ', '.join('null' if mode == 'OUT' else next(placeholders) for mode in modes)

    def _run(self, cursor: Any, routine: RoutineSpec, params: Sequence[Any]) -> dict[str, Any]:
        """Execute the routine and return its single output row, if any."""
        params = list(params)
        if routine.is_function:
            sql = f'select * from {qualify(routine)}({self._arguments(routine, params)})'
        else:
            modes = self._signature(cursor, routine, len(params))
            sql = f'call {qualify(routine)}({self._arguments(routine, params, modes)})'
        cursor.execute(sql, params)
        if cursor.description is None:
            return {}
        return cursor.fetchone() or {}

    def _fetch(self, portal: str, mapper: Any) -> list[Any]:
        """Read every row of an open refcursor through ``mapper``."""
        with self.connection.cursor(row_factory=DictRowFactory) as portal_cursor:
            portal_cursor.execute(f'fetch all from {quote_identifier(portal)}')
            return [mapper(row) for row in portal_cursor]

    def _dereference(self, cursor: Any, row: dict[str, Any],
                     row_mappers: RowMappers) -> dict[str, Any]:
        refcursors = _refcursor_columns(cursor)
        anonymous = len(row) == 1 and DEFAULT_RETURN_NAME in row_mappers
        outputs: dict[str, Any] = {}
        for name, value in row.items():
            key = normalize_key(name)
            if key not in row_mappers and anonymous:
                name = key = DEFAULT_RETURN_NAME
            mapper = row_mappers.get(key)
            if mapper is not None and (name in refcursors or anonymous):
                outputs[name] = self._fetch(value, mapper) if value is not None else []
            else:
                outputs[name] = value
        return outputs

    @logcall
    def execute_bare(self, routine: RoutineSpec, params: Sequence[Any]) -> None:
        with self._call(routine) as cursor:
            self._run(cursor, routine, params)

    @logcall
    def execute_scalar(self, routine: RoutineSpec, wire_type: type,
                       params: Sequence[Any]) -> Any:
        with self._call(routine) as cursor:
            if not routine.is_function:
                row = self._run(cursor, routine, params)
                return next(iter(row.values()), None)
            sql = (f'select {qualify(routine)}({self._arguments(routine, params)})'
                   f'{cast_for(wire_type)} as value')
            cursor.execute(sql, list(params))
            row = cursor.fetchone()
            return row['value'] if row else None

    @logcall
    def execute_cursor(self, routine: RoutineSpec, row_mappers: RowMappers,
                       params: Sequence[Any]) -> list[Any]:
        (name, mapper), = row_mappers.items()
        with self._call(routine) as cursor:
            if routine.is_function:
                cursor.execute(
                    f'select * from {qualify(routine)}({self._arguments(routine, params)})',
                    list(params))
                if not _refcursor_columns(cursor):
                    return [mapper(row) for row in cursor]
                rows = []
                for portal in [next(iter(row.values())) for row in cursor.fetchall()]:
                    if portal is not None:
                        rows.extend(self._fetch(portal, mapper))
                return rows

            outputs = {normalize_key(k): v for k, v in self._run(cursor, routine, params).items()}
            if name not in outputs:
                raise AdapterError(
                    f'{routine.kind} {routine.qualified_name} returned no output named {name!r}')
            portal = outputs[name]
            return self._fetch(portal, mapper) if portal is not None else []

    @logcall
    def execute_named(self, routine: RoutineSpec, row_mappers: RowMappers,
                      params: Sequence[Any]) -> dict[str, Any]:
        with self._call(routine) as cursor:
            row = self._run(cursor, routine, params)
            return self._dereference(cursor, row, row_mappers)
