"""ASGI app: middleware, error handling and router mounting."""
import logging

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from astralis.core.config import settings
from astralis.core.rate_limit import limiter
from astralis.db.session import engine
from astralis.routers import (
    agent,
    auth,
    availability_rules,
    calendar_chat,
    documents,
    events,
    intake,
    jobs,
    pipelines,
    tasks,
)

logger = logging.getLogger(__name__)


def _init_error_tracking() -> None:
    """Report unhandled errors to Sentry outside dev, when a DSN is configured."""
    if settings.is_dev or not settings.SENTRY_DSN:
        return
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        release=settings.VERSION,
        integrations=[FastApiIntegration(transaction_style="endpoint"), SqlalchemyIntegration()],
        traces_sample_rate=0.1,
        send_default_pii=False,
    )
    logger.info("Sentry enabled (env=%s)", settings.ENV)


_init_error_tracking()

app = FastAPI(
    title="Astralis One API",
    description="Calendar, intake routing and agent operations API",
    version=settings.VERSION,
    docs_url="/docs" if settings.is_dev else None,
    redoc_url="/redoc" if settings.is_dev else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Cookie sessions need credentials; X-Requested-With carries the CSRF check.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Requested-With", "X-Dev-Secret"],
    expose_headers=["Content-Disposition"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


ROUTES = [
    (auth.router, "/auth", "auth"),
    (events.router, "/events", "events"),
    (availability_rules.router, "/availability-rules", "availability"),
    (calendar_chat.router, "/calendar-chat", "calendar-chat"),
    (agent.router, "/agent", "agent"),
    (intake.router, "/intake", "intake"),
    (pipelines.router, "/pipelines", "pipelines"),
    (tasks.router, "/tasks", "tasks"),
    (documents.router, "/documents", "documents"),
    (jobs.router, "/jobs", "jobs"),
]

for router, prefix, tag in ROUTES:
    app.include_router(router, prefix=prefix, tags=[tag])

# Seeding and impersonation never ship outside dev
if settings.is_dev:
    from astralis.routers import dev

    app.include_router(dev.router, prefix="/dev", tags=["dev"])


@app.get("/health")
def health():
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
