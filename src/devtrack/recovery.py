from typing import Any, Dict, List, Optional, Protocol

from devtrack.logs import get_logger

log = get_logger("recovery")

class DevTrackError(Exception):
    """Base exception for all devtrack errors."""
    pass

class RecoverableError(DevTrackError):
    """An error that can be recovered from without data loss."""
    pass

class FatalError(DevTrackError):
    """An error that requires application termination or major intervention."""
    pass

class CorruptionError(FatalError):
    """Corrupted Data Error - from syntax errors in data formats, to just unknown data"""
    pass

class FileOperationError(RecoverableError):
    """File operation failed but can be retried."""
    pass

class RepositoryError(RecoverableError):
    """A repository operation failed; the message chains the operation name to the cause."""
    pass

class NotFoundError(RepositoryError):
    """The referenced entity does not exist."""
    pass

class ValidationError(RepositoryError):
    """A record, transition or hierarchy was rejected before any write."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = list(errors or [])
        if self.errors:
            message = f"{message}: {', '.join(self.errors)}"
        super().__init__(message)

class DataConsistencyError(RepositoryError):
    """Writing the record would break a collection invariant (duplicate id)."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.context = dict(context or {})
        super().__init__(message)

EXPECTED_ERRORS = (NotFoundError, ValidationError, DataConsistencyError)

class ErrorPolicy(Protocol):
    """Decides what a failed repository operation returns.

    Implementations either return a fallback value or re-raise the fault.
    """

    def handle(self, fault: Exception, component: str, operation: str,
               context: Dict[str, Any]) -> Any:
        ...

class FallbackErrorPolicy:
    """Swallow recoverable faults for operations that have a registered fallback.

    Fatal errors and operations without a fallback are re-raised unchanged.
    """

    def __init__(self, fallbacks: Optional[Dict[str, Any]] = None):
        self.fallbacks = dict(fallbacks or {})
        self.handled: List[Dict[str, Any]] = []

    def register(self, operation: str, value: Any):
        self.fallbacks[operation] = value

    def handle(self, fault: Exception, component: str, operation: str,
               context: Dict[str, Any]) -> Any:
        self.handled.append({
            "fault": fault,
            "component": component,
            "operation": operation,
            "context": context,
        })

        if isinstance(fault, FatalError) or operation not in self.fallbacks:
            log.error(f"{component}.{operation} failed without fallback: {fault}")
            raise fault

        log.warning(f"{component}.{operation} failed, returning fallback: {fault}")
        fallback = self.fallbacks[operation]
        # Hand out a fresh copy of mutable fallbacks
        if isinstance(fallback, (list, dict)):
            return type(fallback)(fallback)
        return fallback
