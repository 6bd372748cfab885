from typing import Any, Mapping, Optional

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def api_body(
    *,
    success: bool,
    message: str,
    data: Optional[Any] = None,
    error: Optional[str] = None,
    **extra: Any,
) -> dict:
    """Build the JSON envelope shared by every waitlist endpoint."""
    body: dict = {"success": success, "message": message}
    if error is not None:
        body["error"] = error
    if data is not None:
        body["data"] = jsonable_encoder(data)
    for key, value in extra.items():
        if value is not None:
            body[key] = jsonable_encoder(value)
    return body


def api_response(
    *,
    data: Optional[Any] = None,
    message: str = "Operation successful",
    status_code: int = status.HTTP_200_OK,
    error: Optional[str] = None,
    headers: Optional[Mapping[str, str]] = None,
    **extra: Any,
) -> JSONResponse:
    """
    Single source of truth for ALL API responses.
    Automatically sets success = True if < 400 else False
    """
    return JSONResponse(
        status_code=status_code,
        content=api_body(
            success=status_code < 400,
            message=message,
            data=data,
            error=error,
            **extra,
        ),
        headers=dict(headers) if headers else None,
    )
