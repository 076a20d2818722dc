"""Application entrypoint."""

from __future__ import annotations

import json
import logging
import time
from http import HTTPStatus
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.routing import Match

from . import routers
from .config import Settings, configure_logging, get_settings
from .db import create_db_engine, init_db
from .errors import (
    AuthenticationError,
    DuplicateEmail,
    DuplicateReview,
    DuplicateSku,
    ForbiddenError,
    InvalidTransition,
    NotFoundError,
    StockConflict,
    StoreFailure,
    StorefrontError,
    UnavailableError,
    ValidationFailed,
)
from .schemas import ProblemDetail
from .version import APP_VERSION

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[StorefrontError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ValidationFailed: status.HTTP_400_BAD_REQUEST,
    UnavailableError: status.HTTP_400_BAD_REQUEST,
    StockConflict: status.HTTP_400_BAD_REQUEST,
    InvalidTransition: status.HTTP_400_BAD_REQUEST,
    DuplicateReview: status.HTTP_400_BAD_REQUEST,
    DuplicateEmail: status.HTTP_400_BAD_REQUEST,
    DuplicateSku: status.HTTP_400_BAD_REQUEST,
    AuthenticationError: status.HTTP_401_UNAUTHORIZED,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    StoreFailure: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

GENERIC_SERVER_ERROR = "Internal server error"


class UTF8JSONResponse(JSONResponse):
    """JSON response that always declares UTF-8."""

    media_type = "application/json; charset=utf-8"


def status_code_for(exc: StorefrontError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def problem_response(
    request: Request,
    status_code: int,
    detail: str,
    *,
    title: Optional[str] = None,
    type_: Optional[str] = None,
    details: Optional[list[str]] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    problem = ProblemDetail(
        error=detail,
        type=type_ or f"https://httpstatuses.com/{status_code}",
        title=title or HTTPStatus(status_code).phrase,
        status=status_code,
        detail=detail,
        instance=str(request.url.path),
        details=details,
    )
    return JSONResponse(
        status_code=status_code,
        content=json.loads(problem.model_dump_json(exclude_none=True)),
        media_type="application/problem+json",
        headers=headers,
    )


def _public_message(request: Request, status_code: int, message: str) -> str:
    settings: Settings = request.app.state.settings
    if status_code >= 500 and settings.is_production:
        return GENERIC_SERVER_ERROR
    return message


async def handle_storefront_error(request: Request, exc: StorefrontError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    details = getattr(exc, "details", None) or None
    return problem_response(request, status_code, _public_message(request, status_code, exc.message), details=details)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        f"{'.'.join(str(loc) for loc in error['loc'] if loc != 'body')}: {error['msg']}" for error in exc.errors()
    ]
    return problem_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        "Validation failed",
        type_="https://example.com/problems/validation-error",
        details=details,
    )


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) and exc.detail else HTTPStatus(exc.status_code).phrase
    return problem_response(request, exc.status_code, detail, headers=getattr(exc, "headers", None))


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return problem_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        _public_message(request, status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc) or GENERIC_SERVER_ERROR),
    )


async def ensure_allow_header(request: Request, call_next):  # type: ignore[override]
    response = await call_next(request)
    if response.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        allow = response.headers.get("Allow")
        if not allow:
            methods: set[str] = set()
            for route in request.app.routes:
                if isinstance(route, APIRoute):
                    match, _ = route.matches(request.scope)
                    if match in (Match.FULL, Match.PARTIAL):
                        methods.update(route.methods or [])
            if methods:
                response.headers["Allow"] = ", ".join(sorted(methods))
    return response


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the storefront API around the given settings."""

    settings = settings or get_settings()
    app = FastAPI(
        title="Storefront API",
        summary="Catalog, order lifecycle and inventory for a clothing storefront.",
        version=APP_VERSION,
        default_response_class=UTF8JSONResponse,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.engine = create_db_engine(settings.database_url)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(ensure_allow_header)

    @app.on_event("startup")
    def startup() -> None:
        configure_logging(settings)
        app.state.start_time = time.monotonic()
        init_db(app.state.engine, seed=settings.seed_demo_data, bcrypt_rounds=settings.bcrypt_rounds)
        logger.info(
            "Storefront %s started (%s, stock policy %s)",
            APP_VERSION,
            settings.environment,
            settings.stock_policy.value,
        )

    @app.on_event("shutdown")
    def shutdown() -> None:
        app.state.engine.dispose()

    app.add_exception_handler(StorefrontError, handle_storefront_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_unexpected_error)

    app.include_router(routers.health.router)
    app.include_router(routers.auth.router)
    app.include_router(routers.products.router)
    app.include_router(routers.orders.router)
    app.include_router(routers.users.router)
    return app


app = create_app()
