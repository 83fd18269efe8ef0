"""
Database connection handling with SQLAlchemy.

This module provides:
1. The `connect()` function returning a routine adapter over a new connection
2. Engine creation and management through a thread-safe registry

Engines use ``NullPool``: every ``connect()`` opens a fresh driver
connection, and closing the adapter closes it.
"""
import atexit
import dataclasses
import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any

import sqlalchemy as sa
from dbroutine.adapters import RoutineAdapter, get_adapter_class
from dbroutine.options import DatabaseOptions
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

__all__ = [
    'connect',
    'create_url_from_options',
    'get_engine_for_options',
    'dispose_all_engines',
]

logger = logging.getLogger(__name__)

_engine_registry: dict[str, Engine] = {}
_engine_registry_lock = threading.RLock()


def create_url_from_options(options: DatabaseOptions,
                            url_creator: Callable[..., sa.URL] = sa.URL.create) -> sa.URL:
    """Convert DatabaseOptions to SQLAlchemy URL.
    """
    if options.drivername == 'postgresql':
        query = {'application_name': options.appname}
        if options.timeout:
            query['connect_timeout'] = str(options.timeout)

        return url_creator(
            drivername='postgresql+psycopg',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port,
            database=options.database,
            query=query
        )

    raise ValueError(f'Unsupported database type: {options.drivername}')


def get_engine_for_options(options: DatabaseOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Get or create a SQLAlchemy engine for the given options.
    """
    key = str(options)

    with _engine_registry_lock:
        if key in _engine_registry:
            logger.debug(f'Using existing engine for {options.drivername}')
            return _engine_registry[key]

        engine_kwargs: dict[str, Any] = {'echo': False, 'poolclass': NullPool}
        engine_kwargs.update(kwargs)

        engine = engine_factory(create_url_from_options(options), **engine_kwargs)

        _engine_registry[key] = engine
        logger.debug(f'Created new engine for {options.drivername}')

        return engine


def dispose_all_engines() -> None:
    """Dispose all engines in the registry.
    """
    with _engine_registry_lock:
        for engine in _engine_registry.values():
            engine.dispose()
        _engine_registry.clear()
        logger.debug('All database engines disposed')


atexit.register(dispose_all_engines)


def _load_options(options: DatabaseOptions | Mapping[str, Any] | None,
                  **kw: Any) -> DatabaseOptions:
    if isinstance(options, DatabaseOptions):
        return dataclasses.replace(options, **kw) if kw else options
    if options is None:
        return DatabaseOptions(**kw)
    if isinstance(options, Mapping):
        return DatabaseOptions(**{**options, **kw})
    raise TypeError(f'Cannot build DatabaseOptions from {type(options).__name__}')


def connect(options: DatabaseOptions | dict[str, Any] | None = None,
            **kw: Any) -> RoutineAdapter:
    """Connect to a database and return the routine adapter for its dialect.

    Args:
        options: Can be:
                - DatabaseOptions object
                - Dictionary of options
                - None, with options specified as keyword arguments
        **kw: Additional keyword arguments to override options

    Returns
        RoutineAdapter owning the new connection; close it when done
    """
    options = _load_options(options, **kw)
    engine = get_engine_for_options(options)

    raw_connection = engine.raw_connection()
    logger.debug(f'Connected to {options.drivername} database {options.database}')

    adapter_cls = get_adapter_class(options.drivername)
    return adapter_cls(raw_connection, auto_commit=options.auto_commit)
