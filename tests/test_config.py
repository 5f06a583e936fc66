from __future__ import annotations

from pathlib import Path

import pytest

from concept_crafter.config import AppSettings

ENV_VARS = (
    "CONCEPT_MODEL",
    "CONCEPT_MODEL_API_KEY",
    "CONCEPT_MODEL_PROVIDER",
    "CONCEPT_MODEL_ENDPOINT",
    "CONCEPT_MODEL_API_VERSION",
    "CONCEPT_REDIS_URL",
    "CONCEPT_MAX_DURATION_MINUTES",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> pytest.MonkeyPatch:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CONCEPT_OUTPUT_DIR", str(tmp_path / "out"))
    return monkeypatch


def test_defaults_without_credentials(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    settings = AppSettings.load()

    assert settings.model is None
    assert settings.redis_url is None
    assert settings.max_duration_minutes == 1.0
    assert settings.output_dir.is_dir()


def test_model_settings_from_environment(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("CONCEPT_MODEL", "gpt-4o-mini")
    clean_env.setenv("CONCEPT_MODEL_API_KEY", "secret")
    clean_env.setenv("CONCEPT_REDIS_URL", "redis://localhost:6379/0")
    clean_env.setenv("CONCEPT_MAX_DURATION_MINUTES", "2.5")

    settings = AppSettings.load()

    assert settings.model is not None
    assert settings.model.provider == "openai"
    assert settings.model.model == "gpt-4o-mini"
    assert settings.redis_url == "redis://localhost:6379/0"
    assert settings.max_duration_minutes == 2.5


@pytest.mark.parametrize("value", ["abc", "0", "-3"])
def test_invalid_duration_limit(clean_env: pytest.MonkeyPatch, value: str) -> None:
    clean_env.setenv("CONCEPT_MAX_DURATION_MINUTES", value)

    with pytest.raises(RuntimeError):
        AppSettings.load()
