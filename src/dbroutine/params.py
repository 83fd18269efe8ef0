"""Routine identity and declared input parameters."""
from dataclasses import dataclass

__all__ = ['ParameterSpec', 'RoutineSpec']


@dataclass(frozen=True)
class ParameterSpec:
    """Declared input parameter: name and optional SQL wire type."""
    name: str
    wire_type: str | None = None


@dataclass(frozen=True)
class RoutineSpec:
    """Identity of a stored routine as seen by an adapter."""
    name: str
    schema: str | None = None
    catalog: str | None = None
    is_function: bool = False
    params: tuple[ParameterSpec, ...] = ()

    @property
    def qualified_name(self) -> str:
        return '.'.join(part for part in (self.catalog, self.schema, self.name) if part)

    @property
    def kind(self) -> str:
        return 'function' if self.is_function else 'procedure'
