"""FastAPI dependencies resolving the collaborators built in create_app."""

from typing import Optional

from fastapi import Header, Request

from sheetgenius.core.errors import ConfigurationError
from sheetgenius.features.billing.service import BillingService
from sheetgenius.features.formulas.service import FormulaService
from sheetgenius.features.profiles.service import ProfileStore


def get_billing_service(request: Request) -> BillingService:
    service = getattr(request.app.state, "billing_service", None)
    if service is None:
        raise ConfigurationError("Billing is not configured. Set STRIPE_SECRET_KEY.")
    return service


def get_formula_service(request: Request) -> FormulaService:
    return request.app.state.formula_service


def get_profile_store(request: Request) -> ProfileStore:
    return request.app.state.profile_store


def get_optional_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """User id forwarded by the frontend, if any."""
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()
    return None
