import json

import pytest

from heirlooms.config import default_ai_config_from_env, load_ai_config, sanitize_ai_config, save_ai_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "AI_MODEL_SUMMARY",
        "AI_MODEL_VISION",
        "AI_SUMMARY_TEMPERATURE",
        "AI_SUMMARY_MAX_TOKENS",
        "OPENAI_TIMEOUT_SECONDS",
        "OPENAI_BASE_URL",
        "ANALYSIS_EXCLUSIVE",
        "STALE_PROCESSING_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    cfg = default_ai_config_from_env()
    assert cfg["summary_model"] == "gpt-4o-mini"
    assert cfg["max_output_tokens"] == 2000
    assert cfg["analysis_exclusive"] is True
    assert cfg["stale_processing_seconds"] == 900


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("AI_MODEL_SUMMARY", "gpt-4.1-mini")
    monkeypatch.setenv("ANALYSIS_EXCLUSIVE", "off")
    monkeypatch.setenv("STALE_PROCESSING_SECONDS", "5")
    monkeypatch.setenv("OPENAI_BASE_URL", "http://localhost:8080/v1/")

    cfg = default_ai_config_from_env()
    assert cfg["summary_model"] == "gpt-4.1-mini"
    assert cfg["analysis_exclusive"] is False
    assert cfg["stale_processing_seconds"] == 60
    assert cfg["base_url"] == "http://localhost:8080/v1"


def test_sanitize_clamps_and_drops_unknown_keys():
    cfg = sanitize_ai_config(
        {
            "temperature": -1,
            "max_output_tokens": 99999,
            "timeout_seconds": 1,
            "analysis_exclusive": "no",
            "summary_model": "  gpt-5  ",
            "secret": "x",
        }
    )
    assert cfg["temperature"] == 0.0
    assert cfg["max_output_tokens"] == 4000
    assert cfg["timeout_seconds"] == 5.0
    assert cfg["analysis_exclusive"] is False
    assert cfg["summary_model"] == "gpt-5"
    assert "secret" not in cfg


def test_sanitize_ignores_garbage_numbers():
    cfg = sanitize_ai_config({"temperature": "warm", "max_output_tokens": None})
    assert cfg["temperature"] == 0.4
    assert cfg["max_output_tokens"] == 2000


def test_save_then_load(tmp_path):
    path = tmp_path / "ai_config.json"
    saved = save_ai_config({"summary_model": "gpt-4o", "temperature": 0.9}, path)

    assert json.loads(path.read_text(encoding="utf-8")) == saved
    assert load_ai_config(path) == saved


def test_load_tolerates_corrupt_file(tmp_path):
    path = tmp_path / "ai_config.json"
    path.write_text("{oops", encoding="utf-8")
    assert load_ai_config(path) == default_ai_config_from_env()
