import os

from fastapi import HTTPException, Request, status

DEBUG_TOKEN_ENV = "DEBUG_TOKEN"
DEBUG_VERBOSE_ENV = "DEBUG_VERBOSE"


def get_debug_token() -> str | None:
    return os.getenv(DEBUG_TOKEN_ENV) or None


def _deny(detail: str) -> HTTPException:
    # Hide the debug surface entirely unless verbose errors were asked for.
    if os.getenv(DEBUG_VERBOSE_ENV) == "1":
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")


def require_debug_token(request: Request) -> None:
    debug_token = get_debug_token()
    if not debug_token:
        raise _deny("Debug token not configured.")
    request_token = request.headers.get("X-Debug-Token")
    if not request_token:
        raise _deny("Missing debug token.")
    if request_token != debug_token:
        raise _deny("Invalid debug token.")
