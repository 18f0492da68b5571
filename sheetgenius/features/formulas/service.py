"""
Formula generation service.

Sends the user's request to the language model, splits the completion into
a formula and an explanation, and meters usage against the plan quota.
"""

from typing import Any, Optional

import groq

from sheetgenius.core.config import Settings, settings as default_settings
from sheetgenius.core.errors import ConfigurationError, MissingPromptError, QuotaExceededError, UpstreamError
from sheetgenius.core.logging import log_event
from sheetgenius.features.formulas.prompts import build_messages
from sheetgenius.features.plans.service import quota_for
from sheetgenius.features.profiles.service import ProfileStore
from sheetgenius.models.formula import FormulaResult

DEFAULT_EXPLANATION = "Formula generated successfully."


def parse_formula_response(text: str) -> FormulaResult:
    """
    Split model output into formula and explanation.

    The first line starting with "=" is the formula; if there is none the
    first line is used verbatim. Every other non-"=" line is joined with
    spaces into the explanation.
    """
    lines = (text or "").split("\n")
    formula = next((line for line in lines if line.startswith("=")), lines[0])
    explanation = " ".join(line for line in lines if not line.startswith("=")).strip()
    return FormulaResult(formula=formula, explanation=explanation or DEFAULT_EXPLANATION)


def build_llm_client(settings: Optional[Settings] = None) -> Optional[groq.Groq]:
    """Groq client for the configured key, or None when no key is set."""
    cfg = settings or default_settings
    if not cfg.GROQ_API_KEY:
        return None
    return groq.Groq(api_key=cfg.GROQ_API_KEY)


class FormulaService:
    """Formula generation with a single authoritative quota check."""

    def __init__(
        self,
        llm_client: Optional[Any],
        profiles: Optional[ProfileStore] = None,
        settings: Optional[Settings] = None,
    ):
        self.llm_client = llm_client
        self.profiles = profiles
        self.settings = settings or default_settings

    def generate(self, prompt: Optional[str], user_id: Optional[str] = None) -> FormulaResult:
        """
        Generate a formula for ``prompt``.

        When ``user_id`` is given the user's quota is checked before the model
        is called, and usage is recorded with a compare-and-swap increment
        after a successful completion.

        Raises:
            MissingPromptError: Empty prompt (model is not called)
            ConfigurationError: GROQ_API_KEY not configured
            QuotaExceededError: Plan quota used up
            UpstreamError: Model call failed
        """
        if not prompt or not prompt.strip():
            raise MissingPromptError("No prompt provided")
        if self.llm_client is None:
            raise ConfigurationError("GROQ_API_KEY not configured")

        metered = bool(user_id and self.profiles)
        limit = None
        if metered:
            profile = self.profiles.get_or_create(user_id)
            limit = quota_for(profile.plan, self.settings)
            if limit is not None and profile.usage_count >= limit:
                log_event("info", "formula.quota_exceeded", user_id=user_id, extra={"plan": profile.plan.value, "limit": limit})
                raise QuotaExceededError(
                    f"Usage limit reached ({profile.usage_count}/{limit}). Upgrade your plan to keep generating."
                )

        text = self._complete(prompt, user_id)
        result = parse_formula_response(text)

        if metered:
            usage = self.profiles.record_usage(user_id, limit)
            log_event("info", "formula.generated", user_id=user_id, extra={"usage_count": usage, "limit": limit})
        else:
            log_event("info", "formula.generated", user_id=user_id)
        return result

    def _complete(self, prompt: str, user_id: Optional[str]) -> str:
        try:
            completion = self.llm_client.chat.completions.create(
                model=self.settings.LLM_MODEL,
                messages=build_messages(prompt),
                max_tokens=self.settings.LLM_MAX_TOKENS,
                temperature=self.settings.LLM_TEMPERATURE,
            )
        except groq.GroqError as e:
            log_event("error", "formula.upstream_failed", user_id=user_id, error_code="upstream_failure", extra={"error": e})
            raise UpstreamError("Failed to generate formula") from e

        if not completion.choices:
            return ""
        return completion.choices[0].message.content or ""
