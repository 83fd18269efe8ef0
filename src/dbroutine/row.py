"""Row binding: turn one cursor row or one output map into a model instance."""
import logging
from collections.abc import Callable, Collection, Mapping
from typing import Any

from dbroutine.descriptor import Binding, FieldTarget, GroupTarget, RowDescriptor
from dbroutine.descriptor import normalize_key
from dbroutine.exceptions import BindingError
from dbroutine.faults import CallFaults, Fault
from dbroutine.types import TypeCoercer

__all__ = ['RowAdapter', 'RowBinder', 'bind_values']

logger = logging.getLogger(__name__)

RowMapper = Callable[[Any], Any]


class RowAdapter:
    """Uniform access to the columns of a driver row.

    Supports mappings, ``sqlite3.Row``-style objects with ``keys()`` and
    named tuples.
    """

    def __init__(self, row: Any) -> None:
        self.row = row

    def keys(self) -> Collection[str]:
        """Column names the row publishes."""
        if hasattr(self.row, 'keys') and callable(self.row.keys):
            return self.row.keys()
        if hasattr(self.row, '_fields'):
            return self.row._fields
        raise TypeError(f'{type(self.row).__name__} row does not publish column names')

    def get_value(self, key: str) -> Any:
        if hasattr(self.row, 'keys'):
            return self.row[key]
        return getattr(self.row, key)

    def to_dict(self) -> dict[str, Any]:
        return {key: self.get_value(key) for key in self.keys()}


def _coerce(faults: CallFaults, tp: Any, raw: Any, key: str) -> Any:
    try:
        return TypeCoercer.from_wire(tp, raw, key)
    except BindingError as err:
        raise faults.record(Fault.COERCION_FAILED, f'{key!r} ({err.__cause__})', err)


def bind_values(instance: Any, bindings: Mapping[str, Binding], values: Mapping[str, Any],
                faults: CallFaults, *, strict: bool = True,
                raw_keys: Collection[str] = ()) -> Any:
    """Assign normalized ``values`` to ``instance`` through ``bindings``.

    Each setter group is invoked exactly once, with every one of its values,
    the first time one of its keys is seen. With ``strict``, a setter value
    missing from ``values`` is a fault; otherwise it is passed as ``None``.
    Keys in ``raw_keys`` are assigned without coercion.
    """
    pending = {key for key, binding in bindings.items()
               if isinstance(binding.target, GroupTarget)}

    for key, raw in values.items():
        binding = bindings.get(key)
        if binding is None:
            continue
        target = binding.target

        if isinstance(target, FieldTarget):
            value = raw if key in raw_keys else _coerce(faults, target.type, raw, key)
            try:
                target.assign(instance, value)
            except Exception as err:
                raise faults.record(Fault.FIELD_NOT_SETTABLE,
                                    f'{type(instance).__qualname__}.{target.attr}', err)
            continue

        if key not in pending:
            continue
        args = {}
        for slot in target.slots:
            if slot.key in values:
                raw_slot = values[slot.key]
            elif strict:
                raise faults.record(Fault.COLUMN_MISSING,
                                    f'{slot.key!r} for {type(instance).__qualname__}.{target.method}')
            else:
                raw_slot = None
            args[slot.name] = raw_slot if slot.key in raw_keys else _coerce(faults, slot.type, raw_slot, slot.key)
            pending.discard(slot.key)
        try:
            target.invoke(instance, args)
        except Exception as err:
            raise faults.record(Fault.METHOD_NOT_INVOCABLE,
                                f'{type(instance).__qualname__}.{target.method}', err)

    return instance


class RowBinder:
    """Builds one model instance per cursor row.
    """

    def __init__(self, descriptor: RowDescriptor) -> None:
        self.descriptor = descriptor

    def bind_row(self, row: Any, faults: CallFaults) -> Any:
        """Construct and populate one row instance.

        Raises
            BindingError: On the first fault; the fault is also kept on ``faults``
        """
        faults.check()
        model = self.descriptor.model

        try:
            instance = model()
        except Exception as err:
            raise faults.record(Fault.NO_DEFAULT_CONSTRUCTOR, model.__qualname__, err)

        adapter = RowAdapter(row)
        try:
            published = adapter.keys()
        except Exception as err:
            raise faults.record(Fault.METADATA_UNAVAILABLE, str(err), err)

        try:
            columns = list(published)
        except Exception as err:
            raise faults.record(Fault.COLUMN_COUNT_UNAVAILABLE, str(err), err)

        values = {}
        for column in columns:
            try:
                values[normalize_key(column)] = adapter.get_value(column)
            except Exception as err:
                raise faults.record(Fault.COLUMN_MISSING, repr(column), err)

        return bind_values(instance, self.descriptor.bindings, values, faults)

    def mapper(self, faults: CallFaults) -> RowMapper:
        """Row callback for an adapter, bound to one call's fault state."""
        def map_row(row: Any) -> Any:
            return self.bind_row(row, faults)
        return map_row
