import base64
import logging
from io import BytesIO
from typing import Any, Dict, Optional

import httpx
from PIL import Image, UnidentifiedImageError

from .errors import GenerationFailure
from .openai_client import ResponsesClient, model_accepts_temperature, output_text

logger = logging.getLogger(__name__)

MAX_IMAGE_EDGE = 1024
MAX_CAPTION_LENGTH = 500

CAPTION_SYSTEM_PROMPT = (
    "You write short captions for photos of family heirlooms. "
    "Describe what is visible in one or two sentences. Be warm and factual; "
    "use 'likely' or 'appears to' for anything you cannot see clearly."
)


def image_to_data_url(raw: bytes) -> str:
    """Return a downscaled JPEG data URL suitable for vision models."""
    try:
        with Image.open(BytesIO(raw)) as img:
            if img.mode not in {"RGB", "L"}:
                img = img.convert("RGB")
            img.thumbnail((MAX_IMAGE_EDGE, MAX_IMAGE_EDGE))
            buffer = BytesIO()
            img.save(buffer, format="JPEG", quality=85)
    except (UnidentifiedImageError, OSError) as exc:
        raise GenerationFailure(f"Unable to read image: {exc}") from exc
    encoded = base64.b64encode(buffer.getvalue()).decode("utf-8")
    return f"data:image/jpeg;base64,{encoded}"


class CaptionGenerator:
    def __init__(
        self,
        client: ResponsesClient,
        model: str = "gpt-4o",
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.client = client
        self.model = model
        self._fetch = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=True,
            transport=transport,
        )

    def fetch_image(self, image_url: str) -> bytes:
        try:
            response = self._fetch.get(image_url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise GenerationFailure(f"Unable to download image: {exc}") from exc
        return response.content

    def build_request(self, data_url: str) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self.model,
            "input": [
                {"role": "system", "content": [{"type": "input_text", "text": CAPTION_SYSTEM_PROMPT}]},
                {
                    "role": "user",
                    "content": [
                        {"type": "input_text", "text": "Write a caption for this heirloom photo."},
                        {"type": "input_image", "image_url": data_url},
                    ],
                },
            ],
            "max_output_tokens": 300,
        }
        if model_accepts_temperature(self.model):
            body["temperature"] = 0.4
        return body

    def caption(self, image_url: str) -> str:
        logger.info("Requesting caption for %s from %s", image_url, self.model)
        data_url = image_to_data_url(self.fetch_image(image_url))
        text = output_text(self.client.create(self.build_request(data_url))).strip()
        if not text:
            raise GenerationFailure("AI did not generate a caption")
        return text[:MAX_CAPTION_LENGTH]

    def close(self) -> None:
        self._fetch.close()
