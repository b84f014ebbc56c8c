"""
Domain errors raised by the service layer.

Routes never build HTTPExceptions for these; the handlers registered in
app.main translate each class to a status code and a uniform
``{"detail": ..., "code": ...}`` body.
"""


class ChimeoError(Exception):
    """Base class for every error the service layer raises on purpose."""

    status_code = 500
    code = "error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class UnauthenticatedError(ChimeoError):
    """No resolvable user id for an operation that needs one."""

    status_code = 401
    code = "unauthenticated"


class PermissionDeniedError(ChimeoError):
    status_code = 403
    code = "permission_denied"


class NotFoundError(ChimeoError):
    """Referenced organization, request, alert or user does not exist."""

    status_code = 404
    code = "not_found"


class InvalidInputError(ChimeoError):
    """Malformed identifier or empty required field."""

    status_code = 400
    code = "validation_error"


class InvalidStateError(ChimeoError):
    """Operation is not allowed from the document's current status."""

    status_code = 409
    code = "invalid_state"


class ExternalServiceError(ChimeoError):
    """Firestore, Auth, FCM, Storage or the geocoder failed."""

    status_code = 502
    code = "external_service_error"
