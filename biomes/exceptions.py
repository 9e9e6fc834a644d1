"""
Custom exception types for the Biomes client loader.

This module defines the exception hierarchy used throughout the loader.
Using specific exception types enables:
- Precise handling of retryable vs. terminal failures
- Better error messages when a load cannot complete
- Cleaner separation between network, auth and bootstrap failures
"""

from __future__ import annotations

from typing import Any


class BiomesError(Exception):
    """Base exception for all Biomes client errors.

    All custom exceptions should inherit from this class so callers can
    catch every client-specific error with a single handler.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class ConfigurationError(BiomesError):
    """Raised when a component is configured incorrectly."""

    def __init__(self, component: str, reason: str):
        super().__init__(
            f"Invalid configuration for {component}: {reason}",
            {"component": component, "reason": reason},
        )
        self.component = component
        self.reason = reason


# ============================================================================
# Network Errors
# ============================================================================


class NetworkError(BiomesError):
    """Base exception for outbound request failures."""

    pass


class TransientNetworkError(NetworkError):
    """Raised when a request failed or timed out on every attempt."""

    def __init__(self, url: str, attempts: int, reason: str):
        super().__init__(
            f"Request to {url} failed after {attempts} attempts: {reason}",
            {"url": url, "attempts": attempts},
        )
        self.url = url
        self.attempts = attempts
        self.reason = reason


class ServiceUnavailableError(NetworkError):
    """Raised on a 502 response. Never retried at the fetch layer."""

    status = 502

    def __init__(self, url: str):
        super().__init__(f"{url}: 502: Unavailable", {"url": url})
        self.url = url


class HTTPResponseError(NetworkError):
    """Raised for a non-2xx response that is not a recognised API error."""

    def __init__(self, url: str, status: int, text: str):
        super().__init__(text or f"{url}: HTTP {status}", {"url": url, "status": status})
        self.url = url
        self.status = status
        self.text = text


class APIError(NetworkError):
    """Raised when the server answers with a structured API error code."""

    def __init__(self, code: str, detailed_message: str | None = None, status: int | None = None):
        super().__init__(code)
        self.code = code
        self.detailed_message = detailed_message
        self.status = status

    def __str__(self) -> str:
        if self.detailed_message:
            return f"{self.code}: {self.detailed_message}"
        return self.code


# ============================================================================
# Auth Errors
# ============================================================================


class AuthError(BiomesError):
    """Base exception for authentication errors."""

    pass


class AuthMismatchError(AuthError):
    """Raised when a fetched profile belongs to a different user."""

    def __init__(self, requested_id: int, received_id: Any):
        super().__init__(
            f"User ID mismatch: requested {requested_id}, received {received_id}",
            {"requested_id": requested_id, "received_id": received_id},
        )
        self.requested_id = requested_id
        self.received_id = received_id


class AccountDoesntExistError(AuthError):
    """Raised when logging in to an account that does not exist."""

    def __init__(self, message: str = "Account does not exist"):
        super().__init__(message)


class LoginTimeoutError(AuthError):
    """Raised when the login flow never reports a logged-in session."""

    def __init__(self, attempts: int):
        super().__init__(
            f"Timed out waiting for logged in after {attempts} checks",
            {"attempts": attempts},
        )
        self.attempts = attempts


# ============================================================================
# Bootstrap Errors
# ============================================================================


class BootstrapError(BiomesError):
    """Base exception for client bootstrap failures."""

    pass


class BootstrapTimeoutError(BootstrapError):
    """Raised when the early bootstrap exceeds the global ceiling."""

    def __init__(self, timeout_seconds: float):
        super().__init__(
            f"Client bootstrap timed out after {timeout_seconds}s",
            {"timeout_seconds": timeout_seconds},
        )
        self.timeout_seconds = timeout_seconds


class StallError(BootstrapError):
    """Raised when load progress stays unchanged with no context to fall back on."""

    def __init__(self, stage: str, ticks: int):
        super().__init__(
            f"Load progress stuck at '{stage}' for {ticks} ticks",
            {"stage": stage, "ticks": ticks},
        )
        self.stage = stage
        self.ticks = ticks


class ConnectionBrokenError(BootstrapError):
    """Raised when the server channel reports a disconnected state."""

    def __init__(self, status: str):
        super().__init__(f"Connection broken (status: {status})", {"status": status})
        self.status = status


class ExhaustedRetriesError(BootstrapError):
    """Raised when every load attempt failed and no context is usable."""

    def __init__(self, attempts: int, reason: str):
        super().__init__(
            f"Client load failed after {attempts} attempts: {reason}",
            {"attempts": attempts, "reason": reason},
        )
        self.attempts = attempts
        self.reason = reason


class LoaderStoppedError(BootstrapError):
    """Raised to unblock a pending load when the loader is stopped."""

    def __init__(self) -> None:
        super().__init__("Client loader stopped by user or application.")


__all__ = [
    "BiomesError",
    "ConfigurationError",
    # Network
    "NetworkError",
    "TransientNetworkError",
    "ServiceUnavailableError",
    "HTTPResponseError",
    "APIError",
    # Auth
    "AuthError",
    "AuthMismatchError",
    "AccountDoesntExistError",
    "LoginTimeoutError",
    # Bootstrap
    "BootstrapError",
    "BootstrapTimeoutError",
    "StallError",
    "ConnectionBrokenError",
    "ExhaustedRetriesError",
    "LoaderStoppedError",
]
