from typing import NoReturn

from fastapi import HTTPException, status

from src.domain.errors import ErrorCode

STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.INVITE_INVALID: status.HTTP_404_NOT_FOUND,
    ErrorCode.INVITE_EXPIRED: status.HTTP_410_GONE,
    ErrorCode.INVITE_EXHAUSTED: 422,
    ErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.VALIDATION: 422,
    ErrorCode.ACCOUNT_FAILED: status.HTTP_400_BAD_REQUEST,
}


def status_for(error_code: ErrorCode | None) -> int:
    if error_code is None:
        return status.HTTP_400_BAD_REQUEST
    return STATUS_BY_CODE.get(error_code, status.HTTP_400_BAD_REQUEST)


def error_detail(error_code: ErrorCode | None, message: str | None) -> dict[str, str]:
    return {
        "code": error_code.value if error_code else "error",
        "message": message or "Request failed",
    }


def raise_for(error_code: ErrorCode | None, message: str | None) -> NoReturn:
    """Raise the HTTPException matching a component's typed failure."""
    raise HTTPException(status_code=status_for(error_code), detail=error_detail(error_code, message))
