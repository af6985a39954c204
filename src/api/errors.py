"""Translation of service results into HTTP errors."""

from fastapi import HTTPException, status

from src.services.results import ErrorKind, ServiceResult

_STATUS_CODES = {
    ErrorKind.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorKind.DUPLICATE_EMAIL: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.INVALID_TOKEN: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.INVALID_REFRESH_TOKEN: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.PAYMENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.GATEWAY_ERROR: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.GATEWAY_AUTH_ERROR: status.HTTP_502_BAD_GATEWAY,
}

_AUTHENTICATION_ERRORS = {
    ErrorKind.INVALID_CREDENTIALS,
    ErrorKind.INVALID_TOKEN,
    ErrorKind.INVALID_REFRESH_TOKEN,
}


def raise_for_result(result: ServiceResult) -> None:
    """Raise the HTTPException matching a failed result; do nothing on success."""
    if result.is_success:
        return

    headers = None
    if result.error in _AUTHENTICATION_ERRORS:
        headers = {"WWW-Authenticate": "Bearer"}

    raise HTTPException(
        status_code=_STATUS_CODES[result.error],
        detail=result.message,
        headers=headers,
    )
