# shopnow/core/errors.py
"""Exceptions raised by the ShopNow state-sync layer."""
from __future__ import annotations

from enum import Enum


class ShopNowError(Exception):
    """Base exception for all ShopNow errors."""

    def __init__(self, message: str, *args: object) -> None:
        super().__init__(message, *args)
        self.message = message


class AuthFailure(str, Enum):
    """Classification of a failed sign-in / sign-up."""

    INVALID_CREDENTIALS = "invalid_credentials"
    USER_NOT_FOUND = "user_not_found"
    INVALID_EMAIL = "invalid_email"
    EMAIL_TAKEN = "email_taken"
    WEAK_PASSWORD = "weak_password"
    UNKNOWN = "unknown"


# Human-readable text shown to the shopper for each failure kind
AUTH_FAILURE_MESSAGES: dict[AuthFailure, str] = {
    AuthFailure.INVALID_CREDENTIALS: "Incorrect password.",
    AuthFailure.USER_NOT_FOUND: "User not found. Please sign up first.",
    AuthFailure.INVALID_EMAIL: "Invalid email format.",
    AuthFailure.EMAIL_TAKEN: "An account with this email already exists.",
    AuthFailure.WEAK_PASSWORD: "Password is too weak.",
    AuthFailure.UNKNOWN: "Authentication failed.",
}


class AuthError(ShopNowError):
    """Sign-in / sign-up rejected by the auth provider."""

    def __init__(self, failure: AuthFailure, message: str | None = None) -> None:
        super().__init__(message or AUTH_FAILURE_MESSAGES[failure])
        self.failure = failure


class NotAuthenticatedError(ShopNowError):
    """A cart command was issued without a signed-in user."""

    def __init__(self, action: str) -> None:
        super().__init__(f"Sign in required to {action}")
        self.action = action


class SubscriptionError(ShopNowError):
    """A live collection listener failed."""

    def __init__(self, path: str, cause: BaseException | None = None) -> None:
        super().__init__(f"Subscription to {path} failed: {cause}")
        self.path = path
        self.cause = cause


class WriteError(ShopNowError):
    """An upsert or delete against the remote store failed."""

    def __init__(self, operation: str, path: str, cause: BaseException | None = None) -> None:
        super().__init__(f"Remote {operation} at {path} failed: {cause}")
        self.operation = operation
        self.path = path
        self.cause = cause


class ProductNotFoundError(ShopNowError):
    """Product id is not present in the current catalog."""

    def __init__(self, product_id: str) -> None:
        super().__init__(f"Product with ID {product_id} not found")
        self.product_id = product_id


class InvalidPathError(ShopNowError):
    """Logical collection/document path cannot be mapped to a table."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Unsupported remote path: {path}")
        self.path = path
