from fastapi import Depends, FastAPI, WebSocket, Response, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
import logging
import os
import time
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
import structlog
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from uuid import UUID
from . import pubsub
from .auth import PRINCIPAL_HEADER, PRINCIPAL_QUERY_PARAM, lookup_principal
from .database import get_db
from .errors import WorkflowError
from .metrics import REQUEST_COUNT, REQUEST_LATENCY
from .ratelimit import limiter
from .routes import (
    events,
    forum,
    resources,
    admin,
    notifications,
)

LOG_LEVEL = os.getenv("LOG_LEVEL", "info").lower()
LOG_FORMAT = os.getenv("LOG_FORMAT", "console").lower()
_LOG_LEVEL_MAP = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
        if LOG_FORMAT == "json"
        else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(_LOG_LEVEL_MAP.get(LOG_LEVEL, logging.INFO)),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

dsn = os.getenv("SENTRY_DSN")
if dsn:
    sentry_sdk.init(dsn=dsn, integrations=[FastApiIntegration()])

app = FastAPI(title="CampusConnect API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, lambda r, e: Response("Too Many Requests", status_code=429))
if os.getenv("TESTING") != "1":
    app.add_middleware(SlowAPIMiddleware)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    if exc.status_code >= 500:
        logger.error("workflow_error", path=request.url.path, code=exc.code, detail=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    endpoint = request.url.path
    REQUEST_COUNT.labels(request.method, endpoint).inc()
    REQUEST_LATENCY.labels(endpoint).observe(time.time() - start)
    return response


@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(events.router)
app.include_router(forum.router)
app.include_router(resources.router)
app.include_router(admin.router)
app.include_router(notifications.router)


def audit_routes():
    from fastapi.routing import APIRoute
    from .auth import get_current_user

    for route in app.routes:
        if isinstance(route, APIRoute) and route.path.startswith("/api"):
            calls = [dep.call for dep in route.dependant.dependencies]
            if get_current_user not in calls:
                raise RuntimeError(f"Route {route.path} missing authentication")


audit_routes()


@app.websocket("/ws/notifications/{user_id}")
async def notifications_socket(websocket: WebSocket, user_id: UUID, db: Session = Depends(get_db)):
    # a principal may only stream its own channel
    raw_principal = websocket.headers.get(PRINCIPAL_HEADER) or websocket.query_params.get(PRINCIPAL_QUERY_PARAM)
    principal = await run_in_threadpool(lookup_principal, db, raw_principal)
    allowed = principal is not None and principal.is_active and principal.id == user_id
    db.close()
    if not allowed:
        logger.warning("notification_socket_denied", user_id=str(user_id))
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()
    async for data in pubsub.iter_user_events(user_id):
        await websocket.send_text(data)
