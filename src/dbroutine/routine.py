"""
Invocation dispatcher: a bound routine handle.

A ``Routine`` resolves its output descriptor once, at construction. Every
call then checks that the entry point matches the bound shape, normalizes
the arguments, creates a fresh ``CallFaults`` and drives the adapter with
row mappers closed over that state:

    >>> from dbroutine.adapters.base import RoutineAdapter
    >>> class Echo(RoutineAdapter):
    ...     dialect_name = 'echo'
    ...     def execute_bare(self, routine, params): pass
    ...     def execute_scalar(self, routine, wire_type, params): return params[0]
    ...     def execute_cursor(self, routine, row_mappers, params): return []
    ...     def execute_named(self, routine, row_mappers, params): return {}
    >>> Routine(Echo(), 'double', ['n'], int, is_function=True).call_scalar('21')
    21
"""
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from dbroutine.adapters.base import RoutineAdapter
from dbroutine.descriptor import OutputDescriptor, Shape, build_descriptor
from dbroutine.descriptor import normalize_key
from dbroutine.exceptions import BindingError, InvocationShapeError
from dbroutine.exceptions import ValidationError
from dbroutine.faults import CallFaults, Fault
from dbroutine.params import ParameterSpec, RoutineSpec
from dbroutine.row import RowBinder, bind_values
from dbroutine.types import TypeCoercer, TypeConverter

__all__ = ['Routine']

logger = logging.getLogger(__name__)


def _parameter_specs(params: Iterable[ParameterSpec | str] | None) -> tuple[ParameterSpec, ...]:
    return tuple(p if isinstance(p, ParameterSpec) else ParameterSpec(p) for p in (params or ()))


class Routine:
    """Handle on one stored routine bound to one output model.

    The handle holds only immutable state and may be called from several
    threads at once.
    """

    def __init__(self, adapter: RoutineAdapter, name: str,
                 params: Iterable[ParameterSpec | str] | None = None,
                 model: Any = None, is_function: bool = False,
                 schema: str | None = None, catalog: str | None = None) -> None:
        if adapter is None:
            raise ValueError('A routine adapter is required')
        self.adapter = adapter
        self.spec = RoutineSpec(name, schema, catalog, is_function, _parameter_specs(params))
        self.model = model
        self.descriptor: OutputDescriptor = build_descriptor(model, is_function)

        self._binders: dict[str, RowBinder] = {}
        if self.descriptor.shape is Shape.CURSOR_LIST:
            self._binders[self.descriptor.cursor_name] = RowBinder(self.descriptor.row)
        elif self.descriptor.shape is Shape.MULTI_OUTPUT:
            for name, row in self.descriptor.cursors.items():
                self._binders[name] = RowBinder(row)

        logger.debug(f'Bound {self.spec.kind} {self.spec.qualified_name} '
                     f'returning {self.descriptor.shape.value}')

    def __repr__(self) -> str:
        return (f'Routine({self.spec.kind} {self.spec.qualified_name!r}, '
                f'shape={self.descriptor.shape.name})')

    @property
    def shape(self) -> Shape:
        return self.descriptor.shape

    def _require(self, shape: Shape, entry: str) -> Any:
        if self.descriptor.shape is not shape:
            raise InvocationShapeError(
                f'{self.spec.qualified_name} is bound to {self.descriptor.shape.value}, '
                f'{entry} expects {shape.value}')
        return self.descriptor

    def _arguments(self, args: Sequence[Any], kwargs: Mapping[str, Any]) -> list[Any]:
        """Order positional and keyword arguments by the declared parameters.

        Raises
            ValidationError: On a wrong count, an unknown or a missing name
        """
        names = [p.name for p in self.spec.params]
        if names and len(args) > len(names):
            raise ValidationError(
                f'{self.spec.qualified_name} takes {len(names)} argument(s), got {len(args)}')

        values = list(args)
        if kwargs:
            if not names:
                raise ValidationError(
                    f'{self.spec.qualified_name} declares no parameter names, '
                    'pass arguments by position')
            unknown = set(kwargs) - set(names)
            if unknown:
                raise ValidationError(f'Unknown argument(s) for {self.spec.qualified_name}: '
                                      f'{sorted(unknown)}')
            repeated = set(kwargs) & set(names[:len(args)])
            if repeated:
                raise ValidationError(f'Argument(s) given twice for {self.spec.qualified_name}: '
                                      f'{sorted(repeated)}')

        for name in names[len(args):]:
            if name not in kwargs:
                raise ValidationError(f'Missing argument {name!r} for {self.spec.qualified_name}')
            values.append(kwargs[name])

        return TypeConverter.convert_params(values)

    def _drive(self, faults: CallFaults, operation: Callable[..., Any], *args: Any) -> Any:
        """Run one adapter operation, then surface any recorded fault."""
        try:
            result = operation(self.spec, *args)
        except BindingError:
            raise
        except Exception:
            # a wrapped mapper error is reported as the binding fault itself
            faults.check()
            raise
        faults.check()
        return result

    def _mappers(self, faults: CallFaults) -> dict[str, Callable[[Any], Any]]:
        return {name: binder.mapper(faults) for name, binder in self._binders.items()}

    def call_no_output(self, *args: Any, **kwargs: Any) -> None:
        """Run a routine that returns nothing."""
        self._require(Shape.NONE, 'call_no_output')
        params = self._arguments(args, kwargs)
        self.adapter.execute_bare(self.spec, params)

    def call_scalar(self, *args: Any, **kwargs: Any) -> Any:
        """Run the routine and return its single value coerced to the model type."""
        descriptor = self._require(Shape.SCALAR, 'call_scalar')
        params = self._arguments(args, kwargs)
        raw = self.adapter.execute_scalar(
            self.spec, TypeCoercer.wire_type_for(descriptor.target), params)
        return TypeCoercer.to_model_shape(descriptor.target, raw)

    def call_cursor_list(self, *args: Any, **kwargs: Any) -> list[Any]:
        """Run the routine and bind every row of its cursor.

        Raises
            BindingError: On the first row that cannot be bound; no rows are returned
        """
        self._require(Shape.CURSOR_LIST, 'call_cursor_list')
        params = self._arguments(args, kwargs)
        faults = CallFaults(self.spec.qualified_name)
        rows = self._drive(faults, self.adapter.execute_cursor, self._mappers(faults), params)
        return list(rows)

    def call_cursor_first(self, *args: Any, **kwargs: Any) -> Any | None:
        """Run the routine and return its first bound row, or None if it has none."""
        self._require(Shape.CURSOR_LIST, 'call_cursor_first')
        rows = self.call_cursor_list(*args, **kwargs)
        return rows[0] if rows else None

    def call_multi_output(self, *args: Any, **kwargs: Any) -> Any:
        """Run the routine and assemble one model instance from its named outputs.

        Outputs the routine did not return leave the model default in place.
        Nested cursor outputs are assigned as lists of bound rows.
        """
        descriptor = self._require(Shape.MULTI_OUTPUT, 'call_multi_output')
        params = self._arguments(args, kwargs)
        faults = CallFaults(self.spec.qualified_name)
        outputs = self._drive(faults, self.adapter.execute_named, self._mappers(faults), params)

        try:
            instance = descriptor.model()
        except Exception as err:
            raise faults.record(Fault.NO_DEFAULT_CONSTRUCTOR, descriptor.model.__qualname__, err)

        values = {normalize_key(name): value for name, value in outputs.items()}
        return bind_values(instance, descriptor.bindings, values, faults,
                           strict=False, raw_keys=descriptor.cursors.keys())

    def execute(self, *args: Any, **kwargs: Any) -> Any:
        """Call the entry point matching the bound shape."""
        entry = {
            Shape.NONE: self.call_no_output,
            Shape.SCALAR: self.call_scalar,
            Shape.CURSOR_LIST: self.call_cursor_list,
            Shape.MULTI_OUTPUT: self.call_multi_output,
        }[self.descriptor.shape]
        return entry(*args, **kwargs)

    __call__ = execute


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
