from fastapi import HTTPException, status


class ClinicError(HTTPException):
    """Base error rendered to clients as ``{"error": message}``."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str = None, headers: dict = None):
        super().__init__(
            status_code=self.status_code,
            detail=message or self.default_message,
            headers=headers,
        )

    @property
    def message(self) -> str:
        return self.detail


class Unauthorized(ClinicError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"

    def __init__(self, message: str = None):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(ClinicError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not enough permissions"


class NotFound(ClinicError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ValidationError(ClinicError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class SlotConflict(ClinicError):
    status_code = status.HTTP_409_CONFLICT
    default_message = (
        "This time slot has just been booked by another patient. "
        "Please select a different time."
    )


class InternalError(ClinicError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"


class DuplicatePrescription(ClinicError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "A prescription already exists for this appointment"
