"""
ClinicFlow Automation API
Appointment-triggered workflow automation for multi-tenant clinics.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import Engine
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .automation import AutomationService
from .config import Settings, settings as default_settings
from .db import make_engine
from .errors import AutomationError
from .logging_config import configure_logging
from .routers import enrollments, execution_logs, messages, metrics, scheduled_actions, triggers, workflows
from .util.clock import Clock, now_ms
from .util.ids import new_id

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v0"

HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION",
}


def error_body(code: str, message: str, details=None) -> dict:
    return {"error": {"code": code, "message": message, "details": details or []}}


def create_app(settings: Optional[Settings] = None, engine: Optional[Engine] = None,
               clock: Clock = now_ms, service: Optional[AutomationService] = None) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.log_level)

    if service is None:
        service = AutomationService.from_settings(engine or make_engine(settings), settings, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service.create_schema()
        logger.info("ClinicFlow API started (%s)", settings.app_env)
        yield

    app = FastAPI(
        title="ClinicFlow Automation API",
        version=__version__,
        description="Appointment-triggered workflow automation",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.settings = settings

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(workflows.router, prefix=API_PREFIX, tags=["workflows"])
    app.include_router(triggers.router, prefix=API_PREFIX, tags=["triggers"])
    app.include_router(enrollments.router, prefix=API_PREFIX, tags=["enrollments"])
    app.include_router(execution_logs.router, prefix=API_PREFIX, tags=["execution-logs"])
    app.include_router(scheduled_actions.router, prefix=API_PREFIX, tags=["scheduled-actions"])
    app.include_router(messages.router, prefix=API_PREFIX, tags=["messages"])
    app.include_router(metrics.router, prefix=API_PREFIX, tags=["metrics"])

    @app.get(f"{API_PREFIX}/healthz")
    def healthz():
        return {"status": "ok"}

    @app.middleware("http")
    async def add_request_id_header(request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or new_id("req_")
        resp: Response = await call_next(request)
        resp.headers.setdefault("X-Request-Id", request_id)
        return resp

    @app.exception_handler(AutomationError)
    async def automation_error_handler(request: Request, exc: AutomationError):
        if exc.status_code >= 500:
            logger.error("Unhandled automation error on %s: %s", request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.code, exc.message, exc.details))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = [
            {"path": ".".join(str(p) for p in err.get("loc", ())), "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        return JSONResponse(status_code=422, content=error_body("VALIDATION", "Invalid request", details))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        code = HTTP_CODES.get(exc.status_code, "HTTP_ERROR")
        return JSONResponse(status_code=exc.status_code, content=error_body(code, str(exc.detail)),
                            headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def default_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_body("INTERNAL", "Unhandled error", [{"path": "", "msg": str(exc)}]),
        )

    return app


app = create_app()
