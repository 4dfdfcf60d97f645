# main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.jobs.errors import JobEngineError
from db import close_pool
from middleware import RequestContextMiddleware
from routes.admin_audit import router as admin_audit_router
from routes.admin_jobs import router as admin_jobs_router
from routes.admin_payouts import router as admin_payouts_router
from routes.admin_revenue import router as admin_revenue_router
from routes.health import router as health_router
from routes.jobs import router as jobs_router
from routes.metrics import router as metrics_router
from services.http_errors import engine_error_handler, unhandled_error_handler
from settings import settings, validate_env_settings


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    close_pool()


def create_app() -> FastAPI:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    validate_env_settings()

    app = FastAPI(title="FirstClick Back Office API", version="1.0.0", lifespan=lifespan)

    app.add_middleware(RequestContextMiddleware)

    # -----------------------------
    # ROUTERS
    # -----------------------------
    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(jobs_router)
    app.include_router(admin_jobs_router)
    app.include_router(admin_payouts_router)
    app.include_router(admin_revenue_router)
    app.include_router(admin_audit_router)

    app.add_exception_handler(JobEngineError, engine_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    return app


app = create_app()
