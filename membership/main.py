import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from dotenv import load_dotenv

# Load env before settings are read
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from membership.core.config import settings, validate_config
from membership.core.logging import configure_logging
from membership.core.middleware.request_id import RequestIdMiddleware
from membership.core.validation import validate_env
from membership.core.database import create_all_tables
from membership.core.errors import (
    AppError,
    RedirectRequired,
    app_error_handler,
    http_error_handler,
    redirect_handler,
    unhandled_exception_handler,
)
from membership.api import billing, health, sprint_plans, tiers

configure_logging(settings.ENV)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("membership")
    logger.info("Starting membership service...")
    if settings.DB_AUTO_CREATE:
        create_all_tables()
    try:
        yield
    finally:
        logging.getLogger("membership").info("Stopping membership service...")


app = FastAPI(title="Membership - billing and tiers", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(RedirectRequired, redirect_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(billing.router, prefix="/api", tags=["billing"])
app.include_router(tiers.router, prefix="/api", tags=["tiers"])
app.include_router(sprint_plans.router, prefix="/api", tags=["sprint-plans"])
app.include_router(health.router, tags=["health"])
