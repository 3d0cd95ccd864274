import time
import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from crm.core.config import get_settings
from crm.core.exceptions import register_exception_handlers
from crm.core.logging import bind_request_id, configure_logging, get_logger
from crm.db.init import init_db
from crm.routers import campaigns, jobs, notifications
from crm.runtime import build_runtime

settings = get_settings()
configure_logging(debug=settings.debug)
log = get_logger(__name__)

app = FastAPI(
    title="CRM Campaigns API",
    version="1.0.0",
    default_response_class=ORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    bind_request_id(request_id)
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    log.info(
        "request",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )
    response.headers["X-Request-ID"] = request_id
    return response


register_exception_handlers(app)

# Routers
app.include_router(campaigns.router, prefix="/v1/campaigns", tags=["campaigns"])
app.include_router(jobs.router, prefix="/v1/jobs", tags=["jobs"])
app.include_router(notifications.router, prefix="/v1/notifications", tags=["notifications"])


@app.on_event("startup")
async def startup():
    if settings.sentry_dsn:
        import sentry_sdk
        sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.1)
        log.info("startup", msg="Sentry enabled")
    app.state.mongo = await init_db(settings)
    log.info("startup", msg="DB connected")
    runtime = build_runtime(settings)
    app.state.runtime = runtime
    # With arq dispatch the worker owns the scheduler cron and reconciliation
    if settings.scheduler_enabled and settings.scheduler_dispatch == "inline":
        await runtime.reconcile()
        runtime.scheduler.start(settings.scheduler_interval_seconds)
        log.info("startup", msg="Scheduler started", interval_seconds=settings.scheduler_interval_seconds)


@app.on_event("shutdown")
async def shutdown():
    runtime = getattr(app.state, "runtime", None)
    if runtime is not None:
        await runtime.close()
    mongo = getattr(app.state, "mongo", None)
    if mongo is not None:
        mongo.close()
    log.info("shutdown")


@app.get("/health")
async def health():
    """Health check for load balancers and monitoring."""
    return {"status": "ok"}
