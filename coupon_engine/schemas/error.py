from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

VALIDATION_ERROR = "validation_error"
STORAGE_ERROR = "storage_error"


class ErrorResponse(BaseModel):
    """Body of every non-2xx response; ``code`` is machine-readable when the failure has a name."""

    detail: Any
    code: str | None = None


def error_response(status_code: int, detail: Any, code: str | None = None) -> JSONResponse:
    payload = ErrorResponse(detail=detail, code=code)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload.model_dump()))
