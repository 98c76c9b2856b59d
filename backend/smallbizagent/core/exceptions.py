"""Exceptions raised by the billing core.

Each exception knows the HTTP status it is answered with, so the API layer maps the
whole hierarchy with a single handler. ``code`` is a stable identifier clients can
branch on; it is only set where the message alone is not enough.
"""

from typing import Optional

from pydantic import ValidationError


class SmallBizAgentException(Exception):
    """Base exception for SmallBizAgent services."""

    status_code: int = 500
    code: Optional[str] = None
    default_message: str = "Internal error"

    def __init__(self, message: Optional[str] = None):
        """Create the exception with a message, or the class default."""
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_response(self) -> dict:
        """The JSON body this exception is answered with."""
        content = {"detail": str(self)}
        if self.code:
            content["code"] = self.code
        return content


class PermissionException(SmallBizAgentException):
    """The caller is not allowed to perform the action, e.g. plan management by a non-admin."""

    status_code = 403
    default_message = "User does not have the right to perform this action"


class NotFoundException(SmallBizAgentException):
    """A business, plan or subscription does not exist."""

    status_code = 404
    default_message = "Object not found"


class ImmutableFieldError(SmallBizAgentException):
    """A change touches fields that are frozen while a plan has running subscriptions."""

    status_code = 400
    code = "immutable_field"

    def __init__(self, field_name: str, message: str = "Cannot modify immutable field"):
        """Create the error for the given field name(s).

        Args:
        ----
            field_name (str): The frozen field, or a comma separated list of them.
            message (str, optional): The error message. Has default message.

        """
        self.field_name = field_name
        super().__init__(f"{message}: {field_name}")


class InvalidStateError(SmallBizAgentException):
    """The business is in a state that does not allow the action."""

    status_code = 400
    code = "invalid_state"
    default_message = "Object is in an invalid state"


class SignatureInvalidError(SmallBizAgentException):
    """A webhook payload failed signature verification. Never mutates state."""

    status_code = 400
    default_message = "Invalid webhook signature"


class BillingNotConfiguredError(SmallBizAgentException):
    """Stripe credentials are absent; billing operations are unavailable."""

    status_code = 503
    code = "billing_not_configured"
    default_message = "Billing is not configured"


class ExternalServiceError(SmallBizAgentException):
    """A call to the billing provider failed.

    Answered with 500. ``retryable`` tells the caller whether trying again is sensible.
    """

    code = "provider_rejected"
    retryable: bool = False

    def __init__(self, service_name: str, message: Optional[str] = "External service failed"):
        """Create the error for a named external service.

        Args:
        ----
            service_name (str): The name of the external service.
            message (str, optional): The error message. Has default message.

        """
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}")

    def to_response(self) -> dict:
        """Add the retry hint to the JSON body."""
        return {**super().to_response(), "retryable": self.retryable}


class ProviderUnavailableError(ExternalServiceError):
    """The billing provider could not be reached, timed out or rate limited us.

    Nothing is known about the remote outcome; the caller may retry.
    """

    code = "provider_unavailable"
    retryable = True


class ProviderRejectedError(ExternalServiceError):
    """The billing provider received the request and declined it."""


def unpack_validation_error(exc: ValidationError) -> dict:
    """Flatten a validation error into ``{"errors": [{"<location>": "<message>"}]}``."""
    return {
        "errors": [
            {".".join(str(loc) for loc in error["loc"]): error["msg"]} for error in exc.errors()
        ]
    }
