"""Error taxonomy for the access control service.

Every error raised by business logic carries an HTTP status and a
machine-readable code. The API boundary serializes them unchanged.
"""


class AccessControlError(Exception):
    """Base exception for the access control service."""

    code = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code.

        Args:
            message: Exception message
            status_code: HTTP status code
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class UnauthorizedError(AccessControlError):
    """No valid authenticated identity."""

    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, 401)


class ForbiddenError(AccessControlError):
    """Authenticated, but not allowed to perform the action."""

    code = "FORBIDDEN"

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, 403)


class NotFoundError(AccessControlError):
    """Referenced user, role or permission does not exist."""

    code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, 404)


class ConflictError(AccessControlError):
    """Uniqueness violation or a referential business rule."""

    code = "CONFLICT"

    def __init__(self, message: str = "Resource conflict"):
        super().__init__(message, 409)


class BadRequestError(AccessControlError):
    """Malformed input or a store-level rejection."""

    code = "BAD_REQUEST"

    def __init__(self, message: str = "Bad request"):
        super().__init__(message, 400)


class InternalServerError(AccessControlError):
    """Unexpected failure not classified above."""

    code = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message, 500)
