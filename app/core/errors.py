from typing import Optional

from fastapi import HTTPException, status


class ServiceError(HTTPException):
    """Base for every error the API reports to clients as `{"detail": message}`."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str, headers: Optional[dict] = None) -> None:
        super().__init__(status_code=type(self).status_code, detail=detail, headers=headers)


class ValidationFailed(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN


class Forbidden(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class CreateFailed(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class UpdateFailed(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class DeleteFailed(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class Unauthorized(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, detail: str) -> None:
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class InvalidCredentials(Unauthorized):
    pass


class HumanCheckFailed(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN


class TokenInvalid(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class TokenExpired(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class TokenAlreadyUsed(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class TooManyRequests(ServiceError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class MessageNotSent(ServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class InternalError(ServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
