"""
Domain exceptions raised by the service layer.

Routes translate these into HTTPException responses using status_code and
error_code; services never raise HTTPException themselves.
"""

from contextlib import contextmanager
from typing import Iterator

from postgrest.exceptions import APIError


class ServiceError(Exception):
    """Base class for expected, user-facing service failures."""

    error_code = "service_error"
    status_code = 400

    def __init__(self, message: str, error_code: str | None = None):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code


class NotFoundError(ServiceError):
    error_code = "not_found"
    status_code = 404


class ConflictError(ServiceError):
    error_code = "conflict"


class InvalidRequestError(ServiceError):
    error_code = "invalid_request"


class AuthError(ServiceError):
    error_code = "unauthorized"
    status_code = 401


class SubscriptionError(ServiceError):
    error_code = "subscription_error"


class BillingNotConfigured(ServiceError):
    error_code = "billing_not_configured"
    status_code = 503


class LLMNotConfigured(ServiceError):
    error_code = "llm_not_configured"
    status_code = 503


def is_malformed_id(error: APIError) -> bool:
    """Postgres 22P02 (invalid_text_representation), e.g. a non-UUID key."""
    return error.code == "22P02"


@contextmanager
def malformed_id_as_not_found(message: str) -> Iterator[None]:
    """Report a malformed UUID key as a missing row."""
    try:
        yield
    except APIError as e:
        if is_malformed_id(e):
            raise NotFoundError(message)
        raise
