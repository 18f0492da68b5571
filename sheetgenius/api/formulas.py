"""Formula generation API."""

from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from sheetgenius.api.deps import get_formula_service, get_optional_user_id
from sheetgenius.features.formulas.service import FormulaService

router = APIRouter(prefix="/api", tags=["formulas"])


class GenerateFormulaRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")


class GenerateFormulaResponse(BaseModel):
    formula: str
    explanation: str


@router.post("/generate-formula", response_model=GenerateFormulaResponse)
def generate_formula(
    body: GenerateFormulaRequest,
    header_user_id: Optional[str] = Depends(get_optional_user_id),
    service: FormulaService = Depends(get_formula_service),
):
    """
    Generate a spreadsheet formula from a natural-language request.

    Usage is metered when the caller is identified (userId in the body or
    the X-User-Id header).

    Errors:
        400: Empty prompt
        403: Plan quota used up
        500: Model call failed or GROQ_API_KEY missing
    """
    result = service.generate(body.prompt, user_id=body.user_id or header_user_id)
    return {"formula": result.formula, "explanation": result.explanation}
