"""Core utilities and security modules."""

from seatline.core.exceptions import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    CapacityExceeded,
    ExternalServiceError,
    InvalidTransition,
    MalformedEvent,
    NotFoundError,
    PersistenceUnavailable,
    ValidationError,
)
from seatline.core.security import (
    Principal,
    create_access_token,
    principal_from_token,
    verify_token,
)

__all__ = [
    "AppException",
    "AuthenticationError",
    "AuthorizationError",
    "CapacityExceeded",
    "ExternalServiceError",
    "InvalidTransition",
    "MalformedEvent",
    "NotFoundError",
    "PersistenceUnavailable",
    "ValidationError",
    "Principal",
    "create_access_token",
    "principal_from_token",
    "verify_token",
]
