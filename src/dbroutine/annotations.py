"""
Declarative binding markers read once by the descriptor builder.

Markers are attached with ``typing.Annotated``, either to a class attribute
annotation or to every parameter of one setter method:

    class User:
        id: Annotated[int, Column('id')] = None

        def set_name(self, first: Annotated[str, Column('first_name')],
                     last: Annotated[str, Column('last_name')]) -> None:
            self.name = f'{first} {last}'

``@out_param`` marks a class as the row shape of one named cursor output.
"""
from dataclasses import dataclass
from typing import Any

__all__ = [
    'Column',
    'OutParam',
    'out_param',
    'get_out_param',
    'DEFAULT_RETURN_NAME',
]

# name the database reports for the anonymous return value of a function
DEFAULT_RETURN_NAME = ''


@dataclass(frozen=True)
class Column:
    """Binds a result cursor column to an attribute or setter parameter.
    """
    name: str


@dataclass(frozen=True)
class OutParam:
    """Binds a routine output parameter to an attribute or setter parameter.

    ``is_function_return`` marks the anonymous return value of a function.
    """
    name: str = DEFAULT_RETURN_NAME
    is_function_return: bool = False


def out_param(name: str = DEFAULT_RETURN_NAME, is_function_return: bool = False):
    """Class decorator marking a row shape for one cursor output.

    >>> @out_param('admins')
    ... class Admin:
    ...     pass
    >>> get_out_param(Admin)
    OutParam(name='admins', is_function_return=False)
    """
    marker = OutParam(name, is_function_return)

    def decorator(cls: type) -> type:
        cls.__out_param__ = marker
        return cls
    return decorator


def get_out_param(cls: Any) -> OutParam | None:
    """Return the class-level output marker, ignoring inherited ones."""
    if not isinstance(cls, type):
        return None
    marker = vars(cls).get('__out_param__')
    return marker if isinstance(marker, OutParam) else None


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
