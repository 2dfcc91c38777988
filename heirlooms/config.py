"""Runtime configuration: env vars with an optional persisted JSON override."""

import json
import os
import threading
from contextlib import suppress
from pathlib import Path
from typing import Any, Dict, Optional

from .storage import atomic_write_json

BASE_DIR = Path(__file__).resolve().parent.parent
PACKAGE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = PACKAGE_DIR / "templates"
SCHEMAS_DIR = PACKAGE_DIR / "schemas"

OPENAI_API_KEY_ENV = "OPENAI_API_KEY"
OPENAI_DEFAULT_BASE_URL = "https://api.openai.com/v1"
SUMMARY_MODEL_ENV = "AI_MODEL_SUMMARY"
SUMMARY_DEFAULT_MODEL = "gpt-4o-mini"
VISION_MODEL_ENV = "AI_MODEL_VISION"
VISION_DEFAULT_MODEL = "gpt-4o"
MODEL_CHOICES = [
    "gpt-4o-mini",
    "gpt-4o",
    "gpt-4.1-mini",
    "gpt-4.1",
    "gpt-5-mini",
    "gpt-5",
]

config_lock = threading.Lock()


def _parse_bool_env(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in {"1", "true", "yes", "y", "on"}:
        return True
    if candidate in {"0", "false", "no", "n", "off"}:
        return False
    try:
        return bool(int(candidate))
    except ValueError:
        return default


def _parse_float_env(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _parse_int_env(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def data_dir_from_env() -> Path:
    return Path(os.getenv("HEIRLOOMS_DATA_DIR", str(BASE_DIR / "data"))).expanduser()


def config_path_from_env() -> Path:
    return Path(os.getenv("HEIRLOOMS_CONFIG_PATH", str(BASE_DIR / "ai_config.json"))).expanduser()


def get_openai_api_key() -> Optional[str]:
    api_key = os.getenv(OPENAI_API_KEY_ENV, "").strip()
    return api_key or None


def default_ai_config_from_env() -> Dict[str, Any]:
    return {
        "summary_model": os.getenv(SUMMARY_MODEL_ENV, SUMMARY_DEFAULT_MODEL),
        "vision_model": os.getenv(VISION_MODEL_ENV, VISION_DEFAULT_MODEL),
        "temperature": _parse_float_env(os.getenv("AI_SUMMARY_TEMPERATURE"), 0.4),
        "max_output_tokens": _parse_int_env(os.getenv("AI_SUMMARY_MAX_TOKENS"), 2000),
        "timeout_seconds": max(5.0, _parse_float_env(os.getenv("OPENAI_TIMEOUT_SECONDS"), 30.0)),
        "base_url": os.getenv("OPENAI_BASE_URL", OPENAI_DEFAULT_BASE_URL).rstrip("/"),
        "analysis_exclusive": _parse_bool_env(os.getenv("ANALYSIS_EXCLUSIVE"), True),
        "stale_processing_seconds": max(60, _parse_int_env(os.getenv("STALE_PROCESSING_SECONDS"), 900)),
    }


def sanitize_ai_config(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``cfg`` over env defaults, dropping unknown keys and clamping ranges."""
    out = dict(default_ai_config_from_env())
    if not isinstance(cfg, dict):
        return out
    for key in ("summary_model", "vision_model", "base_url"):
        value = cfg.get(key)
        if isinstance(value, str) and value.strip():
            out[key] = value.strip().rstrip("/") if key == "base_url" else value.strip()
    try:
        t = float(cfg.get("temperature", out["temperature"]))
        out["temperature"] = max(0.0, min(2.0, t))
    except (TypeError, ValueError):
        pass
    try:
        tok = int(cfg.get("max_output_tokens", out["max_output_tokens"]))
        out["max_output_tokens"] = max(16, min(4000, tok))
    except (TypeError, ValueError):
        pass
    try:
        out["timeout_seconds"] = max(5.0, float(cfg.get("timeout_seconds", out["timeout_seconds"])))
    except (TypeError, ValueError):
        pass
    if "analysis_exclusive" in cfg:
        value = cfg["analysis_exclusive"]
        if isinstance(value, str):
            out["analysis_exclusive"] = _parse_bool_env(value, out["analysis_exclusive"])
        else:
            out["analysis_exclusive"] = bool(value)
    try:
        stale = int(cfg.get("stale_processing_seconds", out["stale_processing_seconds"]))
        out["stale_processing_seconds"] = max(60, stale)
    except (TypeError, ValueError):
        pass
    return out


def load_ai_config(path: Optional[Path] = None) -> Dict[str, Any]:
    path = path or config_path_from_env()
    base = default_ai_config_from_env()
    if path.exists():
        with suppress(json.JSONDecodeError, OSError):
            persisted = json.loads(path.read_text(encoding="utf-8"))
            return sanitize_ai_config({**base, **(persisted or {})})
    return base


def save_ai_config(cfg: Dict[str, Any], path: Optional[Path] = None) -> Dict[str, Any]:
    clean = sanitize_ai_config(cfg)
    with config_lock:
        atomic_write_json(path or config_path_from_env(), clean)
    return clean
