"""
Routine adapter factory for database-specific execution.
"""
from dbroutine.adapters.base import _ADAPTER_REGISTRY, RoutineAdapter, RowMappers
from dbroutine.adapters.base import logcall as logcall
from dbroutine.adapters.base import register_adapter as register_adapter
from dbroutine.adapters.postgres import PostgresAdapter as PostgresAdapter

__all__ = [
    'RoutineAdapter',
    'RowMappers',
    'PostgresAdapter',
    'register_adapter',
    'logcall',
    'get_adapter_class',
    'get_available_dialects',
    'is_supported_dialect',
]


def _validate_dialect(dialect: str) -> None:
    """Raise ValueError if dialect is not registered."""
    if dialect not in _ADAPTER_REGISTRY:
        available = list(_ADAPTER_REGISTRY.keys())
        raise ValueError(f'Unsupported dialect: {dialect}. Available: {available}')


def get_available_dialects() -> list[str]:
    """Return list of registered dialect names."""
    return list(_ADAPTER_REGISTRY.keys())


def is_supported_dialect(dialect: str) -> bool:
    """Check if a dialect is supported."""
    return dialect in _ADAPTER_REGISTRY


def get_adapter_class(dialect: str) -> type[RoutineAdapter]:
    """Get the adapter class for a dialect without instantiating."""
    _validate_dialect(dialect)
    return _ADAPTER_REGISTRY[dialect]
