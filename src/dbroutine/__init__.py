"""
Typed binding of stored database routines.

A routine handle is bound once to an output model and then called any
number of times:

    get_user = Routine(cn, 'get_2_first_user', model=User, is_function=True)
    users = get_user.call_cursor_list()

All handle methods can also be called as module functions:
- Method: get_user.call_cursor_list(*args)
- Module function: db.call_cursor_list(get_user, *args)
"""
__version__ = '0.1.0'

from typing import Any

from dbroutine.adapters import PostgresAdapter, RoutineAdapter, register_adapter
from dbroutine.annotations import Column, OutParam, out_param
from dbroutine.connection import connect
from dbroutine.descriptor import Shape, build_descriptor
from dbroutine.exceptions import AdapterError, BindingError, ConfigurationError
from dbroutine.exceptions import InvocationShapeError, RoutineError, ValidationError
from dbroutine.faults import Fault
from dbroutine.options import DatabaseOptions
from dbroutine.params import ParameterSpec, RoutineSpec
from dbroutine.routine import Routine


def routine(cn: RoutineAdapter, name: str, *params: ParameterSpec | str,
            model: Any = None, is_function: bool = False,
            schema: str | None = None, catalog: str | None = None) -> Routine:
    """Bind a stored routine on a connection to an output model.
    """
    return Routine(cn, name, params, model, is_function, schema, catalog)


def call_no_output(handle: Routine, *args: Any, **kwargs: Any) -> None:
    """Run a routine that returns nothing.
    """
    handle.call_no_output(*args, **kwargs)


def call_scalar(handle: Routine, *args: Any, **kwargs: Any) -> Any:
    """Run a routine and return its single value.
    """
    return handle.call_scalar(*args, **kwargs)


def call_cursor_list(handle: Routine, *args: Any, **kwargs: Any) -> list[Any]:
    """Run a routine and return every bound row of its cursor.
    """
    return handle.call_cursor_list(*args, **kwargs)


def call_cursor_first(handle: Routine, *args: Any, **kwargs: Any) -> Any | None:
    """Run a routine and return the first bound row of its cursor or None.
    """
    return handle.call_cursor_first(*args, **kwargs)


def call_multi_output(handle: Routine, *args: Any, **kwargs: Any) -> Any:
    """Run a routine and return its named outputs bound to one model instance.
    """
    return handle.call_multi_output(*args, **kwargs)


__all__ = [
    'Routine',
    'routine',
    'call_no_output',
    'call_scalar',
    'call_cursor_list',
    'call_cursor_first',
    'call_multi_output',
    'connect',
    'DatabaseOptions',
    'Column',
    'OutParam',
    'out_param',
    'ParameterSpec',
    'RoutineSpec',
    'Shape',
    'Fault',
    'build_descriptor',
    'RoutineAdapter',
    'PostgresAdapter',
    'register_adapter',
    'RoutineError',
    'ConfigurationError',
    'InvocationShapeError',
    'BindingError',
    'ValidationError',
    'AdapterError',
]
