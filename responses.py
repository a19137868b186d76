"""Uniform response envelope and the exception handlers that produce it."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from bson import ObjectId
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

import errors
from schemas import PRIVATE_USER_FIELDS

logger = logging.getLogger(__name__)

ENCODERS = {ObjectId: str}


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _json(content: Dict[str, Any], status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content, custom_encoder=ENCODERS))


def success(data: Any = None, message: Optional[str] = None, status_code: int = 200) -> JSONResponse:
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    body["timestamp"] = _timestamp()
    return _json(body, status_code)


def error(code: str, message: str, details: Any = None, status_code: int = 400) -> JSONResponse:
    body: Dict[str, Any] = {"success": False, "error": {"code": code, "message": message}}
    if details is not None:
        body["error"]["details"] = details
    body["timestamp"] = _timestamp()
    return _json(body, status_code)


def to_public(doc: Optional[Dict[str, Any]], exclude: Iterable[str] = ()) -> Optional[Dict[str, Any]]:
    """Copy a Mongo document for output: ``_id`` becomes ``id``."""
    if not doc:
        return doc
    out = {k: v for k, v in doc.items() if k not in exclude}
    if "_id" in out:
        out["id"] = str(out.pop("_id"))
    return out


def public_user(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    return to_public(doc, exclude=PRIVATE_USER_FIELDS)


def request_language(request: Request) -> str:
    settings = getattr(request.app.state, "settings", None)
    fallback = settings.default_language if settings else "en"
    header = request.headers.get("accept-language", "")
    primary = header.split(",")[0].split(";")[0].split("-")[0].strip().lower()
    return primary if primary in errors.MESSAGES else fallback


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(errors.AppError)
    async def app_error_handler(request: Request, exc: errors.AppError):
        return error(exc.code, exc.localized_message(request_language(request)), exc.details, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = [
            {"field": ".".join(str(p) for p in e.get("loc", ()) if p != "body"), "message": e.get("msg")}
            for e in exc.errors()
        ]
        message = errors.default_message("VALIDATION_ERROR", request_language(request))
        return error("VALIDATION_ERROR", message, details, 400)

    @app.exception_handler(DuplicateKeyError)
    async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
        logger.warning("Duplicate key on %s %s: %s", request.method, request.url.path, exc)
        return error("DUPLICATE_ENTRY", errors.default_message("DUPLICATE_ENTRY", request_language(request)), None, 409)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        language = request_language(request)
        if exc.status_code == 404:
            return error("ROUTE_NOT_FOUND", f"{request.method} {request.url.path} is not a valid endpoint", None, 404)
        if exc.status_code == 405:
            return error("BAD_REQUEST", str(exc.detail), None, 405)
        code = "UNAUTHORIZED" if exc.status_code == 401 else "BAD_REQUEST"
        return error(code, errors.default_message(code, language), None, exc.status_code)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        settings = request.app.state.settings
        if settings.is_development:
            message = str(exc)
        else:
            message = errors.default_message("INTERNAL_ERROR", request_language(request))
        return error("INTERNAL_ERROR", message, None, 500)
