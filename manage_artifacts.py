#!/usr/bin/env python3
"""
Artifact management CLI

Validates and migrates artifact/collection JSON records to their schemas,
clears analyses stuck in 'processing', and runs an analysis from the shell.
Safe to run multiple times.

Usage:
  python manage_artifacts.py validate
  python manage_artifacts.py reset-stale [--older-than SECONDS]
  python manage_artifacts.py analyze ARTIFACT_ID
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from jsonschema import ValidationError, validate as js_validate

from heirlooms.config import data_dir_from_env, get_openai_api_key, load_ai_config
from heirlooms.errors import HeirloomError
from heirlooms.logging_setup import configure_logging
from heirlooms.openai_client import ResponsesClient
from heirlooms.pipeline import AnalysisPipeline, reset_stale
from heirlooms.storage import KeyedLease, atomic_write_json
from heirlooms.store import ArtifactStore, CollectionStore, RecordStore, apply_schema_defaults
from heirlooms.summary import SummaryGenerator


def _migrate_store(store: RecordStore) -> int:
    """Apply schema defaults to every record and rewrite the ones that changed."""
    if not store.root.is_dir():
        return 0
    changed = 0
    total = 0
    for path in sorted(store.root.glob("*.json")):
        total += 1
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            print(f"[warn] {path} invalid JSON, skipping: {exc}")
            continue
        if not isinstance(data, dict):
            print(f"[warn] {path} is not a JSON object, skipping")
            continue
        before = json.dumps(data, sort_keys=True)
        data = apply_schema_defaults(data, store.schema)
        try:
            js_validate(instance=data, schema=store.schema)
        except ValidationError as exc:
            print(f"[warn] {path} failed schema validation: {exc.message}")
            continue
        if json.dumps(data, sort_keys=True) != before:
            atomic_write_json(path, data)
            changed += 1
    print(f"Validated {total} {store.schema_name.lower()} records; updated {changed}.")
    return changed


def validate_and_migrate(data_dir: Path) -> int:
    _migrate_store(CollectionStore(data_dir / "collections"))
    _migrate_store(ArtifactStore(data_dir / "artifacts"))
    return 0


def reset_stale_analyses(data_dir: Path, older_than: Optional[int]) -> int:
    stale_after = older_than if older_than is not None else load_ai_config()["stale_processing_seconds"]
    touched = reset_stale(ArtifactStore(data_dir / "artifacts"), stale_after)
    print(f"Reset {len(touched)} stale analyses.")
    for artifact_id in touched:
        print(f"  {artifact_id}")
    return 0


def analyze(data_dir: Path, artifact_id: str) -> int:
    cfg = load_ai_config()
    client = ResponsesClient(get_openai_api_key(), cfg["base_url"], cfg["timeout_seconds"])
    try:
        generator = SummaryGenerator(
            client,
            model=cfg["summary_model"],
            max_output_tokens=cfg["max_output_tokens"],
            temperature=cfg["temperature"],
        )
        lease = KeyedLease(data_dir / "locks") if cfg["analysis_exclusive"] else None
        pipeline = AnalysisPipeline(ArtifactStore(data_dir / "artifacts"), generator, lease=lease)
        try:
            summary = pipeline.analyze(artifact_id)
        except HeirloomError as exc:
            print(f"[error] {exc.code}: {exc.message}")
            return 1
    finally:
        client.close()
    print(json.dumps(summary, indent=2, ensure_ascii=False))
    return 0


def main(argv: list[str]) -> int:
    parser = argparse.ArgumentParser(description="Manage heirloom artifact records.")
    parser.add_argument("--data-dir", type=Path, default=None, help="Data directory (default: HEIRLOOMS_DATA_DIR)")
    sub = parser.add_subparsers(dest="cmd", required=True)
    sub.add_parser("validate", help="Validate and migrate artifact and collection records")
    stale = sub.add_parser("reset-stale", help="Mark analyses stuck in 'processing' as 'error'")
    stale.add_argument("--older-than", type=int, default=None, help="Age in seconds (default from config)")
    run = sub.add_parser("analyze", help="Generate the AI summary for one artifact")
    run.add_argument("artifact_id")
    args = parser.parse_args(argv)

    data_dir = args.data_dir or data_dir_from_env()
    if args.cmd == "validate":
        return validate_and_migrate(data_dir)
    if args.cmd == "reset-stale":
        return reset_stale_analyses(data_dir, args.older_than)
    if args.cmd == "analyze":
        configure_logging()
        return analyze(data_dir, args.artifact_id)
    return 0


def cli() -> int:
    return main(sys.argv[1:])


if __name__ == "__main__":
    raise SystemExit(cli())
