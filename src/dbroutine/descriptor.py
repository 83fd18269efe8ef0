"""
Output descriptors resolved once from a model type.

The descriptor builder inspects the model for ``Column`` and ``OutParam``
markers and classifies the routine output into exactly one shape:

- NoOutput: the routine returns nothing
- Scalar: one non-cursor value of a type from ``SCALAR_TYPES``
- CursorList: one cursor whose rows bind to the model
- MultiOutput: several named outputs, some of which may be cursors whose
  rows bind to nested row types

All binding keys are normalized to upper case here, so binding a row or an
output map is a plain dictionary lookup.
"""
import enum
import inspect
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Annotated, Any, ClassVar, get_origin
from typing import get_type_hints

from dbroutine.annotations import DEFAULT_RETURN_NAME, Column, OutParam
from dbroutine.annotations import get_out_param
from dbroutine.exceptions import ConfigurationError
from dbroutine.types import is_scalar_type, resolve_target

__all__ = [
    'Shape',
    'FieldTarget',
    'ParamSlot',
    'GroupTarget',
    'Binding',
    'RowDescriptor',
    'OutputDescriptor',
    'NoOutput',
    'Scalar',
    'CursorList',
    'MultiOutput',
    'build_descriptor',
    'build_row_descriptor',
    'normalize_key',
]

logger = logging.getLogger(__name__)


def normalize_key(name: str) -> str:
    """Canonical form of a column or output-parameter name.

    >>> normalize_key('createDate')
    'CREATEDATE'
    """
    return name.upper()


class Shape(enum.Enum):
    """Output shape of a bound routine."""

    NONE = 'no output'
    SCALAR = 'a single scalar value'
    CURSOR_LIST = 'a single cursor'
    MULTI_OUTPUT = 'several output parameters'


@dataclass(frozen=True)
class FieldTarget:
    """Attribute assigned directly from one value."""
    attr: str
    type: Any

    def assign(self, instance: Any, value: Any) -> None:
        setattr(instance, self.attr, value)


@dataclass(frozen=True)
class ParamSlot:
    """One parameter of a setter method bound to a column or output."""
    key: str
    name: str
    type: Any


@dataclass(frozen=True)
class GroupTarget:
    """Setter method invoked once with all of its bound values."""
    method: str
    slots: tuple[ParamSlot, ...]

    @property
    def keys(self) -> tuple[str, ...]:
        return tuple(slot.key for slot in self.slots)

    def invoke(self, instance: Any, values: Mapping[str, Any]) -> None:
        getattr(instance, self.method)(**values)


@dataclass(frozen=True)
class Binding:
    """Association of a normalized name with its target."""
    key: str
    target: FieldTarget | GroupTarget

    @property
    def declared_type(self) -> Any:
        if isinstance(self.target, FieldTarget):
            return self.target.type
        return next(slot.type for slot in self.target.slots if slot.key == self.key)


@dataclass(frozen=True)
class RowDescriptor:
    """Bindings of one cursor's columns to a row model.

    ``parent`` is the multi-output model that declares this row type, if any.
    """
    model: type
    name: str
    bindings: Mapping[str, Binding]
    parent: type | None = None

    def __iter__(self) -> Iterator[Binding]:
        return iter(self.bindings.values())


class OutputDescriptor:
    """Base of the four output shapes."""
    shape: ClassVar[Shape]


@dataclass(frozen=True)
class NoOutput(OutputDescriptor):
    shape: ClassVar[Shape] = Shape.NONE


@dataclass(frozen=True)
class Scalar(OutputDescriptor):
    target: Any
    shape: ClassVar[Shape] = Shape.SCALAR


@dataclass(frozen=True)
class CursorList(OutputDescriptor):
    cursor_name: str
    row: RowDescriptor
    shape: ClassVar[Shape] = Shape.CURSOR_LIST


@dataclass(frozen=True)
class MultiOutput(OutputDescriptor):
    model: type
    bindings: Mapping[str, Binding]
    cursors: Mapping[str, RowDescriptor] = field(default_factory=dict)
    shape: ClassVar[Shape] = Shape.MULTI_OUTPUT


def _marker(annotation: Any, kind: type) -> Any:
    if get_origin(annotation) is Annotated:
        for meta in annotation.__metadata__:
            if isinstance(meta, kind):
                return meta
    return None


def _mentions(annotations: Mapping[str, Any], kind: type) -> bool:
    return any(kind.__name__ in str(value) for value in annotations.values())


def _type_hints(obj: Any, owner: type, kind: type) -> dict[str, Any]:
    """Resolve annotations; unresolvable ones only matter if they carry markers."""
    try:
        return get_type_hints(obj, include_extras=True)
    except Exception as err:
        if _mentions(getattr(obj, '__annotations__', {}), kind):
            raise ConfigurationError(
                f'Cannot resolve annotations of {owner.__qualname__}: {err}') from err
        return {}


def _members(model: type) -> dict[str, Any]:
    """Class namespace merged along the MRO, subclasses winning."""
    members: dict[str, Any] = {}
    for klass in reversed(model.__mro__):
        if klass is object:
            continue
        members.update(vars(klass))
    return members


def _setters(model: type) -> Iterator[tuple[str, Any]]:
    """Plain methods that may receive values; dunder methods never do."""
    for name, member in _members(model).items():
        if inspect.isfunction(member) and not (name.startswith('__') and name.endswith('__')):
            yield name, member


def _method_slots(model: type, name: str, func: Any, kind: type) -> tuple[ParamSlot, ...] | None:
    """Slots of a fully annotated setter, ``None`` if it carries no markers."""
    params = list(inspect.signature(func).parameters.values())[1:]
    hints = _type_hints(func, model, kind)
    markers = [(param, _marker(hints.get(param.name), kind)) for param in params]
    annotated = [marker for _, marker in markers if marker is not None]
    if not annotated:
        return None
    if len(annotated) != len(params):
        raise ConfigurationError(
            f'Either mark all parameters of {model.__qualname__}.{name} with '
            f'{kind.__name__}, or do not use this method to receive routine output')
    return tuple(
        ParamSlot(normalize_key(marker.name), param.name, resolve_target(hints[param.name]))
        for param, marker in markers)


def _collect_bindings(model: type, kind: type) -> dict[str, Binding]:
    """Map normalized names to attribute and setter targets for one marker kind."""
    bindings: dict[str, Binding] = {}

    def add(key: str, target: FieldTarget | GroupTarget) -> None:
        if key in bindings:
            raise ConfigurationError(
                f'Duplicate {kind.__name__} binding {key!r} on {model.__qualname__}')
        bindings[key] = Binding(key, target)

    for attr, annotation in _type_hints(model, model, kind).items():
        marker = _marker(annotation, kind)
        if marker is not None:
            add(normalize_key(marker.name), FieldTarget(attr, resolve_target(annotation)))

    for name, member in _setters(model):
        slots = _method_slots(model, name, member, kind)
        if slots is None:
            continue
        target = GroupTarget(name, slots)
        for slot in slots:
            add(slot.key, target)

    return bindings


def build_row_descriptor(model: type, name: str = DEFAULT_RETURN_NAME,
                         parent: type | None = None) -> RowDescriptor:
    """Build the column bindings of one cursor row type.

    Raises
        ConfigurationError: If no attribute or setter carries a ``Column`` marker
    """
    bindings = _collect_bindings(model, Column)
    if not bindings:
        raise ConfigurationError(
            f'No fields or method parameters of {model.__qualname__} annotated with Column')
    return RowDescriptor(model, normalize_key(name), MappingProxyType(bindings), parent)


def _nested_row_types(model: type) -> Iterator[tuple[str, type]]:
    for member in _members(model).values():
        marker = get_out_param(member)
        if marker is not None and member is not model:
            yield marker.name, member


def _build_multi_output(model: type) -> MultiOutput:
    bindings = _collect_bindings(model, OutParam)
    cursors: dict[str, RowDescriptor] = {}
    for name, row_type in _nested_row_types(model):
        row = build_row_descriptor(row_type, name, parent=model)
        if row.name in cursors:
            raise ConfigurationError(
                f'Duplicate cursor row type for output {name!r} on {model.__qualname__}')
        cursors[row.name] = row
    if not bindings and not cursors:
        raise ConfigurationError(
            f'No fields, method parameters or classes of {model.__qualname__} '
            'annotated with OutParam')
    return MultiOutput(model, MappingProxyType(bindings), MappingProxyType(cursors))


def _cursor_name(model: type, is_function: bool) -> str:
    """Resolve the output name of the single cursor.

    A function returns its cursor under the default name: the class must be
    unmarked or marked as the function return. A procedure must name the
    cursor output explicitly.
    """
    marker = get_out_param(model)
    if is_function and (marker is None or marker.is_function_return):
        return DEFAULT_RETURN_NAME
    if (not is_function and marker is not None and not marker.is_function_return
            and marker.name != DEFAULT_RETURN_NAME):
        return normalize_key(marker.name)
    raise ConfigurationError(
        f'Cannot determine how to expose the class {model.__qualname__} '
        f'to an output cursor of a {"function" if is_function else "procedure"}')


def build_descriptor(model: Any, is_function: bool) -> OutputDescriptor:
    """Classify a model type into its output descriptor.

    >>> build_descriptor(None, False)
    NoOutput()
    >>> build_descriptor(int, True)
    Scalar(target=<class 'int'>)

    Raises
        ConfigurationError: If the model cannot be bound to any shape
    """
    if model is None:
        return NoOutput()

    if is_scalar_type(model):
        return Scalar(model)

    if not isinstance(model, type):
        raise ConfigurationError(f'Cannot bind routine output to {model!r}: not a class')

    if _has_marker(model, OutParam):
        descriptor = _build_multi_output(model)
        logger.debug(f'{model.__qualname__}: {len(descriptor.bindings)} output binding(s), '
                     f'{len(descriptor.cursors)} nested cursor(s)')
        return descriptor

    if _has_marker(model, Column):
        name = _cursor_name(model, is_function)
        row = build_row_descriptor(model, name)
        logger.debug(f'{model.__qualname__}: cursor {name!r} with {len(row.bindings)} column binding(s)')
        return CursorList(name, row)

    raise ConfigurationError(
        f'It is not clear how to handle output parameters with {model.__qualname__}')


def _has_marker(model: type, kind: type) -> bool:
    """Check whether any attribute or setter parameter carries a ``kind`` marker."""
    for annotation in _type_hints(model, model, kind).values():
        if _marker(annotation, kind) is not None:
            return True
    for _, member in _setters(model):
        hints = _type_hints(member, model, kind)
        if any(_marker(hint, kind) is not None for hint in hints.values()):
            return True
    return False


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
