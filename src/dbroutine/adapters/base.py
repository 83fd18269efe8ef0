"""
Base adapter interface for routine execution.

An adapter owns the physical call to the database. The binding engine
consumes it only through four operations:

- execute_bare: run the routine, discarding any output
- execute_scalar: run the routine and return its single non-cursor result
- execute_cursor: run the routine and map every row of its one cursor
- execute_named: run the routine and return every named output

Cursor rows are handed to row mappers keyed by normalized output name; a
mapper raises ``BindingError`` on the first fault, and the adapter must let
it propagate, abandoning the rest of the result set.
"""
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from functools import wraps
from typing import TYPE_CHECKING, Any

from dbroutine.params import ParameterSpec, RoutineSpec

if TYPE_CHECKING:
    from dbroutine.options import DatabaseOptions

__all__ = [
    'ParameterSpec',
    'RoutineSpec',
    'RoutineAdapter',
    'RowMappers',
    'register_adapter',
    'logcall',
]

logger = logging.getLogger(__name__)

RowMappers = Mapping[str, Callable[[Any], Any]]

# Registry of dialect name -> adapter class
_ADAPTER_REGISTRY: dict[str, type['RoutineAdapter']] = {}


def register_adapter(dialect: str):
    """Decorator to register an adapter class for a dialect.

    Usage:
        @register_adapter('postgresql')
        class PostgresAdapter(RoutineAdapter):
            ...
    """
    def decorator(cls: type['RoutineAdapter']) -> type['RoutineAdapter']:
        _ADAPTER_REGISTRY[dialect] = cls
        return cls
    return decorator


def logcall(func):
    """Decorator for logging routine calls, arguments and timing."""
    @wraps(func)
    def wrapper(self, routine: RoutineSpec, *args: Any, **kwargs: Any):
        start = time.time()
        params = args[-1] if args else kwargs.get('params')
        logger.debug(f'Call {routine.kind} {routine.qualified_name} via {func.__name__}\nargs: {params}')
        try:
            return func(self, routine, *args, **kwargs)
        except Exception:
            logger.error(f'Error calling {routine.kind} {routine.qualified_name}\nargs: {params}')
            raise
        finally:
            elapsed = time.time() - start
            self.addcall(elapsed)
            logger.debug(f'Call time: {elapsed:.4f}s')
    return wrapper


class RoutineAdapter(ABC):
    """Base class for database-specific routine execution.
    """

    def __init__(self) -> None:
        self._stats_lock = threading.Lock()
        self.calls = 0
        self.time = 0.0

    def addcall(self, elapsed: float) -> None:
        """Track call count and cumulative execution time."""
        with self._stats_lock:
            self.time += elapsed
            self.calls += 1

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the dialect identifier."""

    @abstractmethod
    def execute_bare(self, routine: RoutineSpec, params: Sequence[Any]) -> None:
        """Run the routine, discarding any output."""

    @abstractmethod
    def execute_scalar(self, routine: RoutineSpec, wire_type: type,
                       params: Sequence[Any]) -> Any:
        """Run the routine and return its single non-cursor result as ``wire_type``."""

    @abstractmethod
    def execute_cursor(self, routine: RoutineSpec, row_mappers: RowMappers,
                       params: Sequence[Any]) -> list[Any]:
        """Run the routine and return its cursor rows mapped by ``row_mappers``."""

    @abstractmethod
    def execute_named(self, routine: RoutineSpec, row_mappers: RowMappers,
                      params: Sequence[Any]) -> dict[str, Any]:
        """Run the routine and return every named output.

        Outputs whose normalized name has a row mapper hold lists of mapped rows.
        """

    def close(self) -> None:
        """Release the underlying connection, if the adapter owns one."""

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return option field names that must be set for this dialect."""
        return []

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Validate options for this dialect.

        Raises
            ValueError: If any required field is None or 0
        """
        for field in cls.get_required_options():
            if not getattr(options, field):
                raise ValueError(f'field {field} cannot be None or 0')

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()
