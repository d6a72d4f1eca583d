from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    """Error surfaced to the immediate caller.

    4xx codes cover the two expected, recoverable classes: validation errors
    (malformed input, nothing mutated) and state conflicts (the transition was
    a no-op). Anything else propagates as a fault.
    """

    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message

    @property
    def is_conflict(self) -> bool:
        return self.status_code == 409


def validation_error(code: str, message: str) -> ApiError:
    return ApiError(status_code=422, code=code, message=message)


def not_found(code: str, message: str) -> ApiError:
    return ApiError(status_code=404, code=code, message=message)


def state_conflict(code: str, message: str) -> ApiError:
    return ApiError(status_code=409, code=code, message=message)


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    payload = {
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
        }
    }
    return JSONResponse(status_code=status_code, content=payload)
