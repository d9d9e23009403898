"""
Error taxonomy for store operations.

Every error carries a stable ``reason`` code that callers can branch on and an
HTTP status used by the API layer. Orchestrators catch these at their boundary
and turn them into tagged result objects.
"""
import logging
from typing import Tuple

from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError, PyMongoError

logger = logging.getLogger(__name__)


class StoreError(Exception):
    reason = "server_error"
    status_code = 500

    def __init__(self, message: str = "An unexpected error occurred."):
        super().__init__(message)
        self.message = message


class AuthorizationError(StoreError):
    reason = "unauthorized"
    status_code = 403


class InvalidRequestError(StoreError):
    reason = "invalid_request"
    status_code = 400


class MissingParentError(InvalidRequestError):
    reason = "missing_parent"


class NotFoundError(StoreError):
    reason = "not_found"
    status_code = 404


class InsufficientStockError(StoreError):
    reason = "out_of_stock"
    status_code = 409


class AssetStoreError(StoreError):
    reason = "asset_store"
    status_code = 502


class IntegrityError(StoreError):
    reason = "integrity"
    status_code = 500


class ConfigurationError(StoreError):
    reason = "configuration"
    status_code = 500


STATUS_BY_REASON = {
    cls.reason: cls.status_code
    for cls in (
        StoreError,
        AuthorizationError,
        InvalidRequestError,
        MissingParentError,
        NotFoundError,
        InsufficientStockError,
        AssetStoreError,
        IntegrityError,
        ConfigurationError,
    )
}


def describe_failure(exc: Exception) -> Tuple[str, str]:
    """Map any exception to a ``(reason, message)`` pair safe to show a user."""
    if isinstance(exc, StoreError):
        return exc.reason, exc.message
    if isinstance(exc, ValidationError):
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}" for err in exc.errors()
        )
        return InvalidRequestError.reason, f"Invalid input: {problems}"
    if isinstance(exc, DuplicateKeyError):
        return InvalidRequestError.reason, "A record with the same unique value already exists."
    if isinstance(exc, PyMongoError):
        return StoreError.reason, "A database error occurred. Please try again."
    return StoreError.reason, "An unexpected error occurred."


def status_for(reason: str) -> int:
    return STATUS_BY_REASON.get(reason, 500)


def log_failure(action: str, exc: Exception) -> Tuple[str, str]:
    """Log a caught failure with context and return its ``(reason, message)``."""
    reason, message = describe_failure(exc)
    if reason == StoreError.reason:
        logger.exception("Failed to %s", action)
    else:
        logger.warning("Failed to %s: %s", action, message)
    return reason, message
