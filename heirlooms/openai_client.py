"""Thin client for the OpenAI Responses API over httpx."""

import json
import logging
import re
from contextlib import suppress
from typing import Any, Dict, List, Optional

import httpx

from .errors import GenerationFailure

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = (
    "OPENAI_API_KEY is not configured. Please add it to your environment variables. "
    "You can get an API key from https://platform.openai.com/api-keys"
)


def model_accepts_temperature(model: str) -> bool:
    # gpt-5 variants reject 'temperature'
    return not str(model).startswith("gpt-5")


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Strip markdown code fences and parse the first balanced JSON object."""
    if not text:
        return None
    cleaned = re.sub(r"```+\s*json\s*|```+", "", text, flags=re.IGNORECASE)
    with suppress(json.JSONDecodeError):
        parsed = json.loads(cleaned)
        if isinstance(parsed, dict):
            return parsed
    start = cleaned.find("{")
    if start == -1:
        return None
    depth = 0
    for i in range(start, len(cleaned)):
        ch = cleaned[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                with suppress(json.JSONDecodeError):
                    parsed = json.loads(cleaned[start : i + 1])
                    if isinstance(parsed, dict):
                        return parsed
                return None
    return None


def output_text(payload: Dict[str, Any]) -> str:
    """Concatenate the text parts of a Responses API payload."""
    chunks: List[str] = []
    for item in payload.get("output") or []:
        for part in (item or {}).get("content") or []:
            if isinstance(part, dict) and part.get("type") in {"output_text", "text"}:
                text = part.get("text", "")
                if isinstance(text, str):
                    chunks.append(text)
    return "".join(chunks)


def output_json(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    for item in payload.get("output") or []:
        for part in (item or {}).get("content") or []:
            if isinstance(part, dict) and part.get("type") in {"output_json", "json"}:
                if isinstance(part.get("json"), dict):
                    return part["json"]
    return extract_json_object(output_text(payload))


def _error_detail(response: httpx.Response) -> str:
    with suppress(ValueError, AttributeError):
        body = response.json()
        message = (body.get("error") or {}).get("message")
        if message:
            return str(message)
    return f"HTTP {response.status_code}"


class ResponsesClient:
    """Posts request bodies to ``/responses`` and returns the decoded payload.

    One instance is created per application and shared; call ``close()`` on
    shutdown.
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.openai.com/v1",
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self._http = httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    def create(self, body: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise GenerationFailure(MISSING_KEY_MESSAGE)
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = self._http.post("/responses", headers=headers, json=body)
        except httpx.TimeoutException as exc:
            raise GenerationFailure(f"AI request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise GenerationFailure(f"AI request failed: {exc}") from exc
        if response.is_error:
            raise GenerationFailure(f"AI request failed: {_error_detail(response)}")
        try:
            payload = response.json()
        except json.JSONDecodeError as exc:
            raise GenerationFailure("AI response was not valid JSON") from exc
        if not isinstance(payload, dict):
            raise GenerationFailure("AI response was not a JSON object")
        logger.debug(
            "OpenAI response %s status=%s usage=%s",
            payload.get("id"),
            payload.get("status"),
            payload.get("usage", {}),
        )
        return payload

    def close(self) -> None:
        self._http.close()
