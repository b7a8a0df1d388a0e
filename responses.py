"""
Uniform response envelopes.

Success: {statusCode, data, message, success}
Error:   {statusCode, message, success: false, errors: []}
"""

import logging
from typing import Any, List, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, model_validator
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status_code: int, message: str = "Something went wrong", errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.errors = errors or []


class ApiResponse(BaseModel):
    statusCode: int
    data: Any = None
    message: str = "Success"
    success: bool = True

    @model_validator(mode="after")
    def _derive_success(self):
        self.success = self.statusCode < 400
        return self


def error_body(status_code: int, message: str, errors: Optional[List[Any]] = None) -> dict:
    return {
        "statusCode": status_code,
        "message": message,
        "success": False,
        "errors": errors or [],
    }


async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.status_code, exc.message, exc.errors))


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.status_code, str(exc.detail)))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors(), custom_encoder={Exception: str})
    fields = [".".join(str(p) for p in e.get("loc", []) if p != "body") for e in errors]
    message = "Invalid request: " + ", ".join(f for f in fields if f) if fields else "Invalid request"
    return JSONResponse(status_code=400, content=error_body(400, message, errors))


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_body(500, "Internal Server Error"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
