from pydantic import BaseModel, ConfigDict


class FormulaResult(BaseModel):
    """Parsed model output. Never persisted."""
    model_config = ConfigDict(frozen=True)

    formula: str
    explanation: str
