"""
Type handling for routine binding.

This module provides:
- TypeCoercer: Convert wire values from cursors and output parameters to model types
- TypeConverter: Convert call arguments to database-compatible values
- SCALAR_TYPES: Closed set of model types bound as a single scalar output
- resolve_target: Reduce a binding annotation to the coercion target type
"""
import datetime
import decimal
import logging
import math
import types
from collections.abc import Callable
from typing import Annotated, Any, Union, get_args, get_origin

import dateutil.parser
import numpy as np
import pandas as pd
from dbroutine.exceptions import BindingError
from dbroutine.faults import Fault

__all__ = [
    'SCALAR_TYPES',
    'TypeCoercer',
    'TypeConverter',
    'is_null',
    'is_scalar_type',
    'resolve_target',
]

logger = logging.getLogger(__name__)

NoneType = type(None)

SCALAR_TYPES: tuple[type, ...] = (
    bool,
    int,
    float,
    decimal.Decimal,
    str,
    bytes,
    datetime.date,
    datetime.time,
    datetime.datetime,
    NoneType,
    )

TRUE_STRINGS: set[str] = {'true', 't', 'yes', 'y', 'on', '1'}
FALSE_STRINGS: set[str] = {'false', 'f', 'no', 'n', 'off', '0'}

_isoparser = dateutil.parser.isoparser()


def is_scalar_type(tp: Any) -> bool:
    """Check identity against the scalar set (``datetime`` is not a ``date`` here)."""
    return any(tp is t for t in SCALAR_TYPES)


def is_null(value: Any) -> bool:
    """Check whether a wire value means SQL NULL.

    >>> is_null(None), is_null(float('nan')), is_null(pd.NaT), is_null(0)
    (True, True, True, False)
    """
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    try:
        return bool(pd.api.types.is_scalar(value) and pd.isna(value))
    except (TypeError, ValueError):
        return False


def resolve_target(annotation: Any) -> Any:
    """Strip ``Annotated`` and ``Optional`` wrappers from a binding annotation.

    >>> resolve_target(Annotated[int | None, 'x'])
    <class 'int'>
    >>> resolve_target(list[int])
    list[int]
    """
    if get_origin(annotation) is Annotated:
        annotation = get_args(annotation)[0]
    if get_origin(annotation) in {Union, types.UnionType}:
        args = [arg for arg in get_args(annotation) if arg is not NoneType]
        if len(args) == 1:
            return resolve_target(args[0])
    return annotation


def _normalize_wire(raw: Any) -> Any:
    """Unwrap numpy and pandas scalars into plain Python values."""
    if isinstance(raw, np.datetime64):
        return pd.Timestamp(raw).to_pydatetime()
    if isinstance(raw, np.generic):
        return raw.item()
    if isinstance(raw, pd.Timestamp):
        return raw.to_pydatetime()
    return raw


def _to_int(raw: Any) -> int:
    if isinstance(raw, bool):
        return int(raw)
    if isinstance(raw, int):
        return raw
    return int(str(raw).strip())


def _to_float(raw: Any) -> float:
    if isinstance(raw, float):
        return raw
    if isinstance(raw, bool):
        return float(raw)
    return float(str(raw).strip())


def _to_decimal(raw: Any) -> decimal.Decimal:
    if isinstance(raw, decimal.Decimal):
        return raw
    return decimal.Decimal(str(raw).strip())


def _to_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, int | float | decimal.Decimal):
        return raw != 0
    if isinstance(raw, str):
        text = raw.strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
    raise ValueError(f'not a boolean: {raw!r}')


def _to_str(raw: Any) -> str:
    if isinstance(raw, bytes | bytearray | memoryview):
        return bytes(raw).decode('utf-8')
    return str(raw)


def _to_bytes(raw: Any) -> bytes:
    if isinstance(raw, bytes | bytearray | memoryview):
        return bytes(raw)
    if isinstance(raw, str):
        return raw.encode('utf-8')
    raise TypeError(f'not binary data: {type(raw).__name__}')


def _to_date(raw: Any) -> datetime.date:
    if isinstance(raw, datetime.datetime):
        return raw.date()
    if isinstance(raw, datetime.date):
        return raw
    if isinstance(raw, str):
        return _isoparser.isoparse(raw.strip()).date()
    raise TypeError(f'not a date: {type(raw).__name__}')


def _to_time(raw: Any) -> datetime.time:
    if isinstance(raw, datetime.datetime):
        return raw.timetz()
    if isinstance(raw, datetime.time):
        return raw
    if isinstance(raw, str):
        return _isoparser.parse_isotime(raw.strip())
    raise TypeError(f'not a time: {type(raw).__name__}')


def _to_datetime(raw: Any) -> datetime.datetime:
    if isinstance(raw, datetime.datetime):
        return raw
    if isinstance(raw, datetime.date):
        return datetime.datetime.combine(raw, datetime.time())
    if isinstance(raw, str):
        return _isoparser.isoparse(raw.strip())
    raise TypeError(f'not a timestamp: {type(raw).__name__}')


_CONVERTERS: dict[type, Callable[[Any], Any]] = {
    int: _to_int,
    float: _to_float,
    decimal.Decimal: _to_decimal,
    bool: _to_bool,
    str: _to_str,
    bytes: _to_bytes,
    datetime.date: _to_date,
    datetime.time: _to_time,
    datetime.datetime: _to_datetime,
    }

# wire type requested from the adapter for a scalar result
_WIRE_TYPES: dict[type, type] = {
    datetime.date: datetime.date,
    datetime.time: datetime.time,
    datetime.datetime: datetime.datetime,
    }


class TypeCoercer:
    """Conversion table from wire values to model-native types.

    The same table serves cursor columns, output parameters and scalar
    function results. Targets outside the table receive the raw value.
    """

    @staticmethod
    def from_wire(target: Any, raw: Any, name: str = '') -> Any:
        """Coerce one column or output value to ``target``.

        >>> TypeCoercer.from_wire(int, '42')
        42
        >>> TypeCoercer.from_wire(datetime.datetime, '2020-01-01T00:00:00')
        datetime.datetime(2020, 1, 1, 0, 0)
        >>> TypeCoercer.from_wire(float, None) is None
        True
        """
        if is_null(raw):
            return None
        target = resolve_target(target)
        if target is NoneType:
            return None
        raw = _normalize_wire(raw)
        converter = _CONVERTERS.get(target) if isinstance(target, type) else None
        if converter is None:
            return raw
        try:
            return converter(raw)
        except (ValueError, TypeError, ArithmeticError, UnicodeDecodeError) as err:
            where = f' for {name!r}' if name else ''
            raise BindingError(
                f'{Fault.COERCION_FAILED.value}{where}: cannot convert '
                f'{type(raw).__name__} {raw!r} to {target.__name__}',
                Fault.COERCION_FAILED) from err

    @staticmethod
    def to_model_shape(target: Any, raw: Any) -> Any:
        """Coerce a scalar routine result into the bound model type."""
        value = TypeCoercer.from_wire(target, raw, name='return value')
        logger.debug(f'Scalar result coerced to {type(value).__name__}')
        return value

    @staticmethod
    def wire_type_for(target: Any) -> type:
        """Return the wire type to request for a scalar result."""
        return _WIRE_TYPES.get(resolve_target(target), object)


class TypeConverter:
    """Conversion of call arguments to database-compatible values."""

    @staticmethod
    def convert_value(value: Any) -> Any:
        """Convert a single argument.

        >>> TypeConverter.convert_value(np.int64(3))
        3
        >>> TypeConverter.convert_value(float('nan')) is None
        True
        """
        if is_null(value):
            return None
        return _normalize_wire(value)

    @staticmethod
    def convert_params(params: Any) -> Any:
        """Convert a collection of call arguments."""
        if params is None:
            return None

        if isinstance(params, dict):
            return {k: TypeConverter.convert_value(v) for k, v in params.items()}

        if isinstance(params, list | tuple):
            return type(params)(TypeConverter.convert_value(v) for v in params)

        return TypeConverter.convert_value(params)


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
