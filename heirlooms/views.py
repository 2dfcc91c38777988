"""Rendered-page cache for artifact views.

Entries are tagged with a fingerprint of the data they were rendered from.
Readers pass the fingerprint of the record as it is on disk now, so a page
cached by one worker is re-rendered once another worker changes the record.
"""

import hashlib
import json
import logging
import threading
from typing import Any, Callable, Dict, List, Tuple

logger = logging.getLogger(__name__)


def artifact_view_paths(artifact_id: str) -> List[str]:
    return [f"/artifacts/{artifact_id}", f"/artifacts/{artifact_id}/edit"]


def fingerprint(*parts: Any) -> str:
    """Stable digest of the JSON-serializable ``parts`` a page is rendered from."""
    raw = json.dumps(parts, sort_keys=True, default=str, ensure_ascii=False)
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


class ViewCache:
    """Caches rendered HTML by request path and source fingerprint."""

    def __init__(self) -> None:
        self._pages: Dict[str, Tuple[str, str]] = {}
        self._lock = threading.Lock()

    def get_or_render(self, path: str, stamp: str, render: Callable[[], str]) -> str:
        with self._lock:
            cached = self._pages.get(path)
        if cached is not None and cached[0] == stamp:
            return cached[1]
        html = render()
        with self._lock:
            self._pages[path] = (stamp, html)
        return html

    def invalidate(self, path: str) -> None:
        with self._lock:
            dropped = self._pages.pop(path, None) is not None
        logger.debug("Invalidated view %s (cached=%s)", path, dropped)

    def invalidate_artifact(self, artifact_id: str) -> None:
        for path in artifact_view_paths(artifact_id):
            self.invalidate(path)

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return path in self._pages
