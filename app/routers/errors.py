from fastapi import HTTPException, status

from app.errors import (
    AuthenticationFailure,
    BusinessRuleViolation,
    NotFound,
    StorefrontError,
    UpstreamError,
    ValidationFailure,
)

STATUS_BY_ERROR = (
    (AuthenticationFailure, status.HTTP_401_UNAUTHORIZED),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (ValidationFailure, status.HTTP_400_BAD_REQUEST),
    (BusinessRuleViolation, status.HTTP_409_CONFLICT),
    (UpstreamError, status.HTTP_502_BAD_GATEWAY),
)


def to_http(error: StorefrontError) -> HTTPException:
    for error_type, code in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(status_code=code, detail=error.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error.message)
