# src/astrashare/backend/errors.py

from __future__ import annotations


class BackendError(RuntimeError):
    """Non-2xx or undecodable response from the analysis backend."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(BackendError):
    """401: the caller must re-authenticate via the auth collaborator."""


class InsufficientCreditError(BackendError):
    """Submission rejected because the account has no points left."""


class BackendUnavailableError(BackendError):
    """Transport failure: connection refused, timeout, reset."""


def friendly_error_message(err: Exception) -> str:
    if isinstance(err, AuthenticationError):
        return "Not signed in or session expired. Set ASTRA_AUTH_TOKEN and try again."
    if isinstance(err, InsufficientCreditError):
        return f"Not enough points: {err}"
    if isinstance(err, BackendUnavailableError):
        return "Backend is unreachable. Make sure the analysis service is running."
    msg = str(err).strip()
    return msg or err.__class__.__name__
