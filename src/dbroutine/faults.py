"""
Per-invocation fault state for row and output binding.

Row mappers run inside the adapter's iteration over a result set. Each call
gets its own ``CallFaults``; the first fault recorded is kept, raised at once
from the mapper, and raised again by the dispatcher when the adapter returns,
so a call can never hand back a partially bound result.
"""
import enum
import logging
import threading

from dbroutine.exceptions import BindingError

__all__ = ['Fault', 'CallFaults']

logger = logging.getLogger(__name__)


class Fault(enum.Enum):
    """Kinds of binding faults."""

    NO_DEFAULT_CONSTRUCTOR = 'No default constructor'
    FIELD_NOT_SETTABLE = 'Called field is missing'
    METHOD_NOT_INVOCABLE = 'Called method is missing'
    METADATA_UNAVAILABLE = 'Metadata not found'
    COLUMN_COUNT_UNAVAILABLE = 'No entries in cursor'
    COLUMN_MISSING = 'Column not found in selection'
    COERCION_FAILED = 'Error when converting type from column type to model type'


class CallFaults:
    """Sticky fault state owned by exactly one invocation.
    """

    def __init__(self, routine: str = '') -> None:
        self.routine = routine
        self._lock = threading.Lock()
        self._error: BindingError | None = None

    @property
    def failed(self) -> bool:
        return self._error is not None

    @property
    def fault(self) -> Fault | None:
        return self._error.fault if self._error is not None else None

    def record(self, fault: Fault, detail: str = '',
               cause: BaseException | None = None) -> BindingError:
        """Record a fault and return the error to raise.

        Only the first fault is kept; later ones return the first error.
        """
        with self._lock:
            if self._error is None:
                message = fault.value if not detail else f'{fault.value}: {detail}'
                if self.routine:
                    message = f'{self.routine}: {message}'
                error = BindingError(message, fault)
                error.__cause__ = cause
                self._error = error
                logger.debug(f'Binding fault {fault.name} in {self.routine or "routine"}: {detail}')
            return self._error

    def check(self) -> None:
        """Raise the recorded fault, if any."""
        if self._error is not None:
            raise self._error
