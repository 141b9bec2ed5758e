from __future__ import annotations


class ThreeRecoError(Exception):
    """Base error for threereco; carries the HTTP status and a generic message."""

    status_code = 500
    title = "Internal Server Error"
    default_message = "An error occurred while processing your request."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequestError(ThreeRecoError):
    """Client-supplied data could not be parsed or has the wrong shape."""

    status_code = 400
    title = "Bad Request"
    default_message = "The request body is invalid."


class UnauthorizedError(ThreeRecoError):
    """No principal, expired session, wrong password or wrong MFA code."""

    status_code = 401
    title = "Unauthorized"
    default_message = "You must be logged in to access this resource."


class SessionMissing(UnauthorizedError):
    """No session exists for the presented token."""


class SessionExpired(UnauthorizedError):
    """The session exists but its expiry has passed."""


class ForbiddenError(ThreeRecoError):
    """Authenticated, but a permission or policy denies the request."""

    status_code = 403
    title = "Forbidden"
    default_message = "You do not have permission to access this resource."


class NotFoundError(ThreeRecoError):
    """Row does not exist or is not visible under the active policy."""

    status_code = 404
    title = "Not Found"
    default_message = "The requested resource was not found."


class ConflictError(ThreeRecoError):
    """Unique constraint violation."""

    status_code = 409
    title = "Conflict"
    default_message = "The resource already exists."


class AuditAttributionMissing(ThreeRecoError):
    """An audited mutation ran in a transaction without an acting user."""

    default_message = "Audit attribution is missing for this transaction."


class BackendError(ThreeRecoError):
    """Store or cryptographic primitive failure."""
