"""Prompt templates for formula generation."""

SYSTEM_PROMPT = (
    "You are an expert Excel and Google Sheets formula generator. "
    "Generate ONLY the formula starting with = and a brief explanation. "
    "Keep formulas simple and practical."
)

USER_PROMPT_TEMPLATE = "Generate an Excel/Google Sheets formula for: {prompt}"


def build_messages(prompt: str) -> list[dict]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": USER_PROMPT_TEMPLATE.format(prompt=prompt)},
    ]
