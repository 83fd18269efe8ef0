"""
Routine binding exception classes.
"""


class RoutineError(Exception):
    """Base class for all routine binding errors.
    """


class ConfigurationError(RoutineError):
    """Model type cannot be bound to the routine outputs.

    Raised while the routine handle is constructed; no handle is returned.
    """


class InvocationShapeError(RoutineError):
    """Entry point called does not match the bound output shape.
    """


class BindingError(RoutineError):
    """Error converting one row or one named output into the model.
    """

    def __init__(self, message: str, fault=None) -> None:
        super().__init__(message)
        self.fault = fault


class ValidationError(RoutineError):
    """Error in call argument validation.
    """


class AdapterError(RoutineError):
    """Error raised by the database while executing a routine.
    """
