"""JSON-document store for artifacts and collections.

Each record lives in its own ``<id>.json`` file, validated against the JSON
Schemas in ``heirlooms/schemas`` and written atomically.
"""

import json
import logging
import re
import threading
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from jsonschema import ValidationError, validate as js_validate

from .config import SCHEMAS_DIR
from .errors import (
    ArtifactNotFound,
    CollectionNotFound,
    InvalidRecord,
    PersistenceFailure,
)
from .storage import atomic_write_json, safe_key

logger = logging.getLogger(__name__)

ARTIFACT_EDITABLE_FIELDS = {
    "title",
    "description",
    "origin",
    "year_acquired",
    "media_urls",
    "collection_id",
    "transcript",
    "image_captions",
}


def utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def load_schema(name: str) -> Dict[str, Any]:
    return json.loads((SCHEMAS_DIR / f"{name}.schema.json").read_text(encoding="utf-8"))


def apply_schema_defaults(data: Dict[str, Any], schema: Dict[str, Any]) -> Dict[str, Any]:
    """Fill missing properties from schema defaults and coerce legacy shapes."""
    for key, spec in schema.get("properties", {}).items():
        if key not in data and "default" in spec:
            default = spec["default"]
            data[key] = list(default) if isinstance(default, list) else default
    coerce_fields(data)
    if isinstance(data.get("media_urls"), list):
        data["media_urls"] = dedupe(str(u) for u in data["media_urls"])
    return data


def coerce_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Coerce form-style values (comma lists, numeric strings) to their stored types."""
    if isinstance(data.get("media_urls"), str):
        data["media_urls"] = [u.strip() for u in data["media_urls"].split(",") if u.strip()]
    if isinstance(data.get("year_acquired"), str):
        try:
            data["year_acquired"] = int(data["year_acquired"])
        except ValueError:
            data["year_acquired"] = None
    if isinstance(data.get("is_public"), str):
        lowered = data["is_public"].strip().lower()
        if lowered in {"true", "1", "yes", "y"}:
            data["is_public"] = True
        elif lowered in {"false", "0", "no", "n"}:
            data["is_public"] = False
    return data


def dedupe(values: Iterable[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return list(seen)


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug or "collection"


def _newest_first(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(records, key=lambda r: (r.get("created_at") or "", r.get("id") or ""), reverse=True)


class RecordStore:
    """One-file-per-record JSON store validated against a named schema."""

    schema_name = ""
    not_found = ArtifactNotFound

    def __init__(self, root: Path, clock: Callable[[], str] = utc_iso) -> None:
        self.root = root
        self.clock = clock
        self.schema = load_schema(self.schema_name)
        self._lock = threading.Lock()

    def _path(self, record_id: str) -> Path:
        return self.root / f"{safe_key(record_id)}.json"

    def _read(self, path: Path) -> Optional[Dict[str, Any]]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except json.JSONDecodeError as exc:
            logger.warning("Invalid JSON in %s: %s", path, exc)
            return None
        return data if isinstance(data, dict) else None

    def _write(self, record: Dict[str, Any]) -> None:
        try:
            js_validate(instance=record, schema=self.schema)
        except ValidationError as exc:
            raise InvalidRecord(f"Invalid {self.schema_name.lower()}: {exc.message}") from exc
        try:
            atomic_write_json(self._path(record["id"]), record)
        except OSError as exc:
            raise PersistenceFailure(f"Failed to save {self.schema_name.lower()}: {exc}") from exc

    def find(self, record_id: str) -> Optional[Dict[str, Any]]:
        if not record_id:
            return None
        data = self._read(self._path(record_id))
        if data is None or data.get("id") != record_id:
            return None
        return apply_schema_defaults(data, self.schema)

    def get(self, record_id: str) -> Dict[str, Any]:
        data = self.find(record_id)
        if data is None:
            raise self.not_found()
        return data

    def all(self) -> List[Dict[str, Any]]:
        if not self.root.is_dir():
            return []
        records = []
        for path in self.root.glob("*.json"):
            data = self._read(path)
            if data is not None and data.get("id"):
                records.append(apply_schema_defaults(data, self.schema))
        return _newest_first(records)

    def _insert(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        now = self.clock()
        record = apply_schema_defaults(dict(fields), self.schema)
        record["id"] = str(uuid.uuid4())
        record["created_at"] = now
        record["updated_at"] = now
        with self._lock:
            self._write(record)
        logger.info("Created %s %s", self.schema_name.lower(), record["id"])
        return record

    def update(self, record_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Merge ``fields`` into the stored record and return the new record."""
        with self._lock:
            current = self.get(record_id)
            current.update(fields)
            current["id"] = record_id
            self._write(current)
        return current

    def delete(self, record_id: str) -> None:
        with self._lock:
            self.get(record_id)
            try:
                self._path(record_id).unlink()
            except OSError as exc:
                raise PersistenceFailure(f"Failed to delete {self.schema_name.lower()}: {exc}") from exc
        logger.info("Deleted %s %s", self.schema_name.lower(), record_id)


class CollectionStore(RecordStore):
    schema_name = "Collection"
    not_found = CollectionNotFound

    def create(self, title: str, description: str = "", is_public: bool = False) -> Dict[str, Any]:
        title = (title or "").strip()
        if not title:
            raise InvalidRecord("Collection title is required")
        base = slugify(title)
        taken = {c.get("slug") for c in self.all()}
        slug, n = base, 2
        while slug in taken:
            slug = f"{base}-{n}"
            n += 1
        return self._insert(
            {"title": title, "slug": slug, "description": description or "", "is_public": bool(is_public)}
        )

    def get_by_slug(self, slug_or_id: str) -> Dict[str, Any]:
        for collection in self.all():
            if collection.get("slug") == slug_or_id or collection.get("id") == slug_or_id:
                return collection
        raise CollectionNotFound()


class ArtifactStore(RecordStore):
    schema_name = "Artifact"
    not_found = ArtifactNotFound

    def create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        clean = coerce_fields({k: v for k, v in fields.items() if k in ARTIFACT_EDITABLE_FIELDS})
        clean["title"] = str(clean.get("title") or "").strip()
        if not clean["title"]:
            raise InvalidRecord("Artifact title is required")
        clean["media_urls"] = self._unique_media(clean.get("media_urls") or [])
        clean["collection_id"] = clean.get("collection_id") or None
        return self._insert(clean)

    def edit(self, artifact_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Apply user edits; analysis fields are owned by the pipeline."""
        clean = coerce_fields({k: v for k, v in fields.items() if k in ARTIFACT_EDITABLE_FIELDS})
        if "title" in clean:
            clean["title"] = str(clean["title"] or "").strip()
        if "media_urls" in clean:
            clean["media_urls"] = self._unique_media(clean["media_urls"] or [])
        if "collection_id" in clean:
            clean["collection_id"] = clean["collection_id"] or None
        clean["updated_at"] = self.clock()
        return self.update(artifact_id, clean)

    def _unique_media(self, urls: Any) -> List[str]:
        if not isinstance(urls, list):
            raise InvalidRecord("media_urls must be a list of URLs or a comma-separated string")
        unique = dedupe(str(u) for u in urls)
        if len(unique) != len(urls):
            logger.info("Dropped %d duplicate media URLs", len(urls) - len(unique))
        return unique

    def list_by_collection(self, collection_id: str) -> List[Dict[str, Any]]:
        return [a for a in self.all() if a.get("collection_id") == collection_id]

    def list_public(self, collections: CollectionStore) -> List[Dict[str, Any]]:
        public_ids = {c["id"] for c in collections.all() if c.get("is_public")}
        return [a for a in self.all() if a.get("collection_id") in public_ids]

    def adjacent(self, artifact_id: str, collection_id: str) -> Dict[str, Any]:
        """Previous (newer) and next (older) artifacts within a collection."""
        siblings = [
            {"id": a["id"], "title": a["title"], "created_at": a["created_at"]}
            for a in self.list_by_collection(collection_id)
        ]
        ids = [a["id"] for a in siblings]
        if artifact_id not in ids:
            return {"previous": None, "next": None, "current_position": 0, "total_count": len(siblings)}
        index = ids.index(artifact_id)
        return {
            "previous": siblings[index - 1] if index > 0 else None,
            "next": siblings[index + 1] if index < len(siblings) - 1 else None,
            "current_position": index + 1,
            "total_count": len(siblings),
        }


def parse_iso(value: Optional[str]) -> Optional[float]:
    """Return epoch seconds for an ISO-8601 timestamp, or None."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def age_seconds(value: Optional[str], now: Optional[float] = None) -> Optional[float]:
    ts = parse_iso(value)
    if ts is None:
        return None
    return (now if now is not None else time.time()) - ts
