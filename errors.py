"""
Application errors.

Handlers and services raise these; the exception handlers registered in
main.py turn them into the error envelope. The HTTP status comes from the
class, the machine-readable code from ``code``.
"""
from typing import Any, Optional

# Default messages per code, used when an error is raised without one
MESSAGES = {
    "en": {
        "BAD_REQUEST": "Bad request",
        "VALIDATION_ERROR": "Input data is not valid",
        "UNAUTHORIZED": "Authentication is required",
        "TOKEN_EXPIRED": "The token has expired",
        "INVALID_TOKEN": "The token is not valid",
        "USER_NOT_FOUND": "User not found",
        "USER_SUSPENDED": "The account is deactivated",
        "FORBIDDEN": "You do not have permission",
        "NOT_FOUND": "Resource not found",
        "STORE_NOT_FOUND": "Store not found",
        "ROUTE_NOT_FOUND": "Endpoint not found",
        "DUPLICATE_ENTRY": "Duplicate entry",
        "FILE_TOO_LARGE": "The file is too large",
        "UNSUPPORTED_FILE_TYPE": "Only image files can be uploaded",
        "INTERNAL_ERROR": "A server error occurred",
    },
    "ko": {
        "BAD_REQUEST": "잘못된 요청입니다",
        "VALIDATION_ERROR": "입력 데이터가 유효하지 않습니다",
        "UNAUTHORIZED": "인증이 필요합니다",
        "TOKEN_EXPIRED": "토큰이 만료되었습니다",
        "INVALID_TOKEN": "유효하지 않은 토큰입니다",
        "USER_NOT_FOUND": "사용자를 찾을 수 없습니다",
        "USER_SUSPENDED": "계정이 비활성화되었습니다",
        "FORBIDDEN": "권한이 없습니다",
        "NOT_FOUND": "리소스를 찾을 수 없습니다",
        "STORE_NOT_FOUND": "스토어를 찾을 수 없습니다",
        "ROUTE_NOT_FOUND": "존재하지 않는 엔드포인트입니다",
        "DUPLICATE_ENTRY": "중복된 데이터입니다",
        "FILE_TOO_LARGE": "파일 크기가 너무 큽니다",
        "UNSUPPORTED_FILE_TYPE": "이미지 파일만 업로드 가능합니다",
        "INTERNAL_ERROR": "서버 오류가 발생했습니다",
    },
}


def default_message(code: str, language: str = "en") -> str:
    catalog = MESSAGES.get(language, MESSAGES["en"])
    return catalog.get(code) or MESSAGES["en"].get(code) or code


class AppError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None, details: Any = None):
        if code:
            self.code = code
        self.message = message
        self.details = details
        super().__init__(message or self.code)

    def localized_message(self, language: str) -> str:
        return self.message or default_message(self.code, language)


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class Unauthorized(AppError):
    status_code = 401
    code = "UNAUTHORIZED"


class Forbidden(AppError):
    status_code = 403
    code = "FORBIDDEN"


class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"


class Conflict(AppError):
    status_code = 409
    code = "DUPLICATE_ENTRY"


class PayloadTooLarge(AppError):
    status_code = 413
    code = "FILE_TOO_LARGE"


class Internal(AppError):
    status_code = 500
    code = "INTERNAL_ERROR"
