"""
Error taxonomy for the ride hailing API.

Every handler failure is raised as one of these and rendered by
`main.create_app` as a single-field body: {"error": "<message>"}.
"""


class RideHailingError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(RideHailingError):
    """Missing or malformed input, including ids that do not parse."""
    status_code = 400


class ConflictError(RideHailingError):
    """Email already registered."""
    status_code = 400


class AuthError(RideHailingError):
    status_code = 401


class NotFoundError(RideHailingError):
    status_code = 404


class InternalError(RideHailingError):
    """The store failed while serving the request."""
    status_code = 500
