"""Structured heirloom summaries from the OpenAI Responses API."""

import logging
import textwrap
from typing import Any, Dict

from jsonschema import ValidationError, validate as js_validate

from .errors import GenerationFailure, InvalidGeneration
from .openai_client import ResponsesClient, model_accepts_temperature, output_json

logger = logging.getLogger(__name__)

MIN_DESCRIPTION_LENGTH = 10
MAX_HIGHLIGHTS = 5

SUMMARY_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "description_markdown": {
            "type": "string",
            "minLength": MIN_DESCRIPTION_LENGTH,
            "description": "A concise, factual, warm heirloom description in markdown format",
        },
        "highlights": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Key highlights or memorable moments (max 5)",
        },
        "people": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Names of people mentioned or identified",
        },
        "places": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Locations or places mentioned",
        },
        "year_guess": {
            "type": "integer",
            "description": "Estimated year if determinable from context",
        },
        "tags": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Relevant tags or categories",
        },
    },
    "required": ["description_markdown"],
    "additionalProperties": False,
}

SYSTEM_PROMPT = (
    "You are an AI that generates structured summaries for family heirloom artifacts. "
    "Write concise, factual, warm descriptions. Never invent facts; use 'likely' or 'appears to' when unsure. "
    "Focus on what makes this artifact meaningful and memorable. Be specific but avoid speculation. "
    "You MUST provide a description_markdown field with at least 10 characters. "
    "Return valid JSON matching the schema."
)


def build_summary_prompt(context: str) -> str:
    return (
        "Based on the following content from a family heirloom artifact, generate a structured summary.\n\n"
        f"{context}\n\n"
        + textwrap.dedent(
            """
            Generate a JSON object with:
            - description_markdown: A warm, factual description (2-4 sentences) in markdown format (REQUIRED)
            - highlights: Array of key moments or details (optional, max 5)
            - people: Array of names mentioned (optional)
            - places: Array of locations mentioned (optional)
            - year_guess: Estimated year as integer (optional)
            - tags: Array of relevant tags (optional)
            """
        ).strip()
    )


def normalize_summary(parsed: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a parsed model response and trim it to the published shape."""
    description = parsed.get("description_markdown")
    if not isinstance(description, str) or len(description.strip()) < MIN_DESCRIPTION_LENGTH:
        raise InvalidGeneration()
    try:
        js_validate(instance=parsed, schema=SUMMARY_SCHEMA)
    except ValidationError as exc:
        raise GenerationFailure(f"AI response failed schema validation: {exc.message}") from exc

    summary: Dict[str, Any] = {"description_markdown": description.strip()}
    for key in ("highlights", "people", "places", "tags"):
        if key in parsed:
            summary[key] = [item.strip() for item in parsed[key] if item.strip()]
    if "highlights" in summary:
        summary["highlights"] = summary["highlights"][:MAX_HIGHLIGHTS]
    if "year_guess" in parsed:
        summary["year_guess"] = parsed["year_guess"]
    return summary


class SummaryGenerator:
    """Single-attempt structured summary generation. No retries."""

    def __init__(
        self,
        client: ResponsesClient,
        model: str = "gpt-4o-mini",
        max_output_tokens: int = 2000,
        temperature: float = 0.4,
    ) -> None:
        self.client = client
        self.model = model
        self.max_output_tokens = max_output_tokens
        self.temperature = temperature

    def build_request(self, context: str) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self.model,
            "input": [
                {"role": "system", "content": [{"type": "input_text", "text": SYSTEM_PROMPT}]},
                {"role": "user", "content": [{"type": "input_text", "text": build_summary_prompt(context)}]},
            ],
            "max_output_tokens": self.max_output_tokens,
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": "heirloom_summary",
                    "schema": SUMMARY_SCHEMA,
                    "strict": False,
                }
            },
        }
        if model_accepts_temperature(self.model):
            body["temperature"] = self.temperature
        return body

    def generate(self, context: str) -> Dict[str, Any]:
        logger.info("Requesting summary from %s (context length %d)", self.model, len(context))
        payload = self.client.create(self.build_request(context))
        parsed = output_json(payload)
        if parsed is None:
            if payload.get("status") == "incomplete":
                reason = (payload.get("incomplete_details") or {}).get("reason") or "unknown"
                raise GenerationFailure(f"AI response was incomplete ({reason})")
            raise GenerationFailure("AI response did not include a JSON object")
        return normalize_summary(parsed)
