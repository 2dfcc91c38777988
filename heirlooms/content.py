"""Builds the text block handed to the summary generator."""

from typing import Any, Dict, List, Mapping, Optional

MAX_TRANSCRIPT_LENGTH = 10000
MAX_IMAGE_CAPTIONS = 3


def has_content(artifact: Dict[str, Any]) -> bool:
    """True when the artifact has a transcript or at least one image caption."""
    return bool(artifact.get("transcript")) or bool(artifact.get("image_captions"))


def assemble_context(
    transcript: Optional[str],
    image_captions: Optional[Mapping[str, str]],
) -> str:
    parts: List[str] = []

    if transcript:
        parts.append(f"## Transcript:\n{transcript[:MAX_TRANSCRIPT_LENGTH]}")
        if len(transcript) > MAX_TRANSCRIPT_LENGTH:
            parts.append(
                f"\n(Transcript truncated from {len(transcript)} to {MAX_TRANSCRIPT_LENGTH} characters)"
            )

    if image_captions:
        # Keys (image references) are not useful to the model; only caption text is sent.
        captions = list(image_captions.values())[:MAX_IMAGE_CAPTIONS]
        lines = "\n".join(f"{idx}. {caption}" for idx, caption in enumerate(captions, start=1))
        parts.append(f"\n## Image Captions:\n{lines}")

    return "\n\n".join(parts)
