"""
Custom exceptions for the Lyceum platform.
"""

from typing import Optional, Any, Dict, Tuple


class LyceumException(Exception):
    """Base exception for all Lyceum-related errors."""

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class AuthorizationDenied(LyceumException):
    """Raised when the authorization gate denies an action."""

    def __init__(self, reason, action=None):
        self.reason = reason
        self.action = action
        action_name = action.value if action is not None else "action"
        super().__init__(
            f"{action_name} denied: {reason.value}",
            error_code="authorization_denied",
            details={"reason": reason.value, "action": action_name},
        )


class NotFound(LyceumException):
    """Raised when a requested entity does not exist."""

    def __init__(self, entity_kind: str, entity_id: Any):
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        super().__init__(
            f"{entity_kind} {entity_id} not found",
            error_code="not_found",
            details={"entity_kind": entity_kind, "id": entity_id},
        )


class ValidationError(LyceumException):
    """Raised when input violates a constraint."""

    def __init__(self, field: str, constraint: str):
        self.field = field
        self.constraint = constraint
        super().__init__(
            f"{field}: {constraint}",
            error_code="validation_error",
            details={"field": field, "constraint": constraint},
        )


class ConflictStaleWrite(LyceumException):
    """Raised when a mutation targets a superseded entity version. Retryable by the caller."""

    def __init__(self, pair: Tuple[Any, ...], expected_version: Optional[int] = None,
                 actual_version: Optional[int] = None):
        self.pair = tuple(pair)
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stale write on {'/'.join(str(p) for p in self.pair)}: "
            f"expected version {expected_version}, found {actual_version}",
            error_code="conflict_stale_write",
            details={"pair": list(self.pair), "expected_version": expected_version,
                     "actual_version": actual_version},
        )


class InvariantViolation(LyceumException):
    """Raised when stored data breaks a structural invariant. Not recoverable locally."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="invariant_violation", details=details)


class PersistenceError(LyceumException):
    """Raised when persistence operations fail."""
    pass


class ConfigurationError(LyceumException):
    """Raised when configuration is invalid."""
    pass
