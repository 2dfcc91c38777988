"""Artifact analysis: status tracking around a single summary generation call.

A run loads the artifact, checks it has something to summarize, marks it
``processing``, generates a summary, then stores the description and marks it
``done``. Any failure after the eligibility check is recorded on the artifact
as ``error`` with the failure message, best effort.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Protocol

from .content import assemble_context, has_content
from .errors import (
    AnalysisInProgress,
    HeirloomError,
    InvalidGeneration,
    InvalidRecord,
    NoContent,
)
from .storage import KeyedLease
from .store import ArtifactStore, age_seconds, utc_iso
from .summary import MIN_DESCRIPTION_LENGTH
from .views import ViewCache

logger = logging.getLogger(__name__)

STATUS_PROCESSING = "processing"
STATUS_DONE = "done"
STATUS_ERROR = "error"

STALE_MESSAGE = "Analysis did not complete (stale processing status)"


class Generator(Protocol):
    def generate(self, context: str) -> Dict[str, Any]:
        ...


class Captioner(Protocol):
    def caption(self, image_url: str) -> str:
        ...


def is_stale(artifact: Dict[str, Any], stale_after: float, now: Optional[float] = None) -> bool:
    if artifact.get("analysis_status") != STATUS_PROCESSING:
        return False
    age = age_seconds(artifact.get("analysis_started_at"), now)
    # No start stamp means the record predates stamping; treat it as abandoned.
    return age is None or age > stale_after


def describe_status(artifact: Dict[str, Any], stale_after: float, now: Optional[float] = None) -> Dict[str, Any]:
    """Status as shown to readers: stale ``processing`` is reported as ``error``."""
    if is_stale(artifact, stale_after, now):
        return {"analysis_status": STATUS_ERROR, "analysis_error": STALE_MESSAGE, "stale": True}
    return {
        "analysis_status": artifact.get("analysis_status"),
        "analysis_error": artifact.get("analysis_error"),
        "stale": False,
    }


def reset_stale(store: ArtifactStore, stale_after: float, now: Optional[float] = None) -> List[str]:
    """Rewrite stale ``processing`` records to ``error``. Returns the ids touched."""
    now = time.time() if now is None else now
    touched = []
    for artifact in store.all():
        if is_stale(artifact, stale_after, now):
            store.update(artifact["id"], {"analysis_status": STATUS_ERROR, "analysis_error": STALE_MESSAGE})
            touched.append(artifact["id"])
            logger.warning("Reset stale analysis for artifact %s", artifact["id"])
    return touched


class AnalysisPipeline:
    def __init__(
        self,
        store: ArtifactStore,
        generator: Generator,
        views: Optional[ViewCache] = None,
        lease: Optional[KeyedLease] = None,
        captioner: Optional[Captioner] = None,
    ) -> None:
        self.store = store
        self.generator = generator
        self.views = views
        self.lease = lease
        self.captioner = captioner

    def analyze(self, artifact_id: str) -> Dict[str, Any]:
        """Generate and store a summary for ``artifact_id``; returns the summary object.

        Raises a ``HeirloomError`` subclass on every failure path. ``NotFound``,
        ``NoContent`` and ``AnalysisInProgress`` leave the record untouched.
        """
        logger.info("Analysis requested for artifact %s", artifact_id)
        artifact = self.store.get(artifact_id)

        if not has_content(artifact):
            logger.info("Artifact %s has no transcript or image captions", artifact_id)
            raise NoContent()

        # Runtime config may swap self.lease mid-run; release the one acquired.
        lease = self.lease
        if lease is None:
            return self._run(artifact)
        if not lease.try_acquire(artifact_id):
            logger.info("Analysis for artifact %s already in progress", artifact_id)
            raise AnalysisInProgress()
        try:
            return self._run(artifact)
        finally:
            lease.release(artifact_id)

    def _run(self, artifact: Dict[str, Any]) -> Dict[str, Any]:
        artifact_id = artifact["id"]
        try:
            self.store.update(
                artifact_id,
                {
                    "analysis_status": STATUS_PROCESSING,
                    "analysis_error": None,
                    "analysis_started_at": utc_iso(),
                },
            )
            context = assemble_context(artifact.get("transcript"), artifact.get("image_captions"))
            logger.info("Starting generation for artifact %s (context length %d)", artifact_id, len(context))

            summary = self.generator.generate(context)
            description = summary.get("description_markdown") if isinstance(summary, dict) else None
            if not isinstance(description, str) or len(description) < MIN_DESCRIPTION_LENGTH:
                raise InvalidGeneration()

            self.store.update(
                artifact_id,
                {
                    "ai_description": description,
                    "analysis_status": STATUS_DONE,
                    "analysis_error": None,
                    "updated_at": utc_iso(),
                },
            )
        except HeirloomError as exc:
            logger.warning("Analysis failed for artifact %s: %s", artifact_id, exc.message)
            self._record_failure(artifact_id, exc.message)
            raise
        except Exception as exc:
            logger.exception("Unexpected analysis failure for artifact %s", artifact_id)
            message = str(exc) or "Summary generation failed"
            self._record_failure(artifact_id, message)
            raise HeirloomError(message) from exc

        logger.info("Analysis complete for artifact %s", artifact_id)
        self._invalidate(artifact_id)
        return summary

    def _record_failure(self, artifact_id: str, message: str) -> None:
        try:
            self.store.update(artifact_id, {"analysis_status": STATUS_ERROR, "analysis_error": message})
        except Exception:
            logger.exception("Failed to save error status for artifact %s", artifact_id)
            return
        self._invalidate(artifact_id)

    def _invalidate(self, artifact_id: str) -> None:
        if self.views is not None:
            self.views.invalidate_artifact(artifact_id)

    def caption_image(self, artifact_id: str, image_url: str) -> Dict[str, Any]:
        """Caption one of the artifact's images and store it under ``image_url``."""
        artifact = self.store.get(artifact_id)
        if image_url not in (artifact.get("media_urls") or []):
            raise InvalidRecord("Image does not belong to this artifact")
        if self.captioner is None:
            raise HeirloomError("Image captioning is not configured")
        caption = self.captioner.caption(image_url)
        captions = dict(artifact.get("image_captions") or {})
        captions[image_url] = caption
        updated = self.store.update(artifact_id, {"image_captions": captions, "updated_at": utc_iso()})
        self._invalidate(artifact_id)
        logger.info("Stored caption for %s on artifact %s", image_url, artifact_id)
        return updated
