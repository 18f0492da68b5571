import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

# Import after dotenv is loaded
from sheetgenius.api import billing, formulas, profile
from sheetgenius.core.config import Settings, settings as default_settings, validate_config
from sheetgenius.core.database import create_all_tables
from sheetgenius.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from sheetgenius.core.logging import configure_logging
from sheetgenius.core.middleware.request_id import RequestIdMiddleware
from sheetgenius.features.billing.provider import BillingProvider, BillingProviderError
from sheetgenius.features.billing.service import BillingService
from sheetgenius.features.billing.stripe_provider import StripeProvider
from sheetgenius.features.formulas.service import FormulaService, build_llm_client
from sheetgenius.features.profiles.service import ProfileStore


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("sheetgenius")
    logger.info("Starting SheetGenius backend...")
    if app.state.settings.DATABASE_URL:
        create_all_tables()
    try:
        yield
    finally:
        logger.info("Stopping SheetGenius backend...")


def _build_billing_service(settings: Settings, provider: Optional[BillingProvider], profiles: ProfileStore) -> Optional[BillingService]:
    if provider is None:
        try:
            provider = StripeProvider(settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET)
        except BillingProviderError as e:
            logging.getLogger("sheetgenius").warning(f"Billing disabled: {e}")
            return None
    return BillingService(provider, profiles, settings)


def create_app(
    settings: Optional[Settings] = None,
    *,
    billing_provider: Optional[BillingProvider] = None,
    llm_client: Optional[Any] = None,
    profile_store: Optional[ProfileStore] = None,
) -> FastAPI:
    """
    Build the application with explicit collaborators.

    Anything not passed in is constructed from ``settings``; tests pass fakes.
    """
    cfg = settings or default_settings
    configure_logging(cfg.ENV)
    validate_config(settings_obj=cfg)

    profiles = profile_store or ProfileStore()

    app = FastAPI(title="SheetGenius - Backend", lifespan=lifespan)
    app.state.settings = cfg
    app.state.profile_store = profiles
    app.state.billing_service = _build_billing_service(cfg, billing_provider, profiles)
    app.state.formula_service = FormulaService(
        llm_client if llm_client is not None else build_llm_client(cfg),
        profiles=profiles,
        settings=cfg,
    )

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(billing.router)
    app.include_router(formulas.router)
    app.include_router(profile.router)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    return app


app = create_app()
