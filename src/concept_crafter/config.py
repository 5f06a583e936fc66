"""Configuration helpers for the Concept Crafter service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from importlib import import_module
from pathlib import Path
from typing import Optional

DEFAULT_MAX_DURATION_MINUTES = 1.0


@dataclass(slots=True)
class ModelSettings:
    """Holds model-related configuration for the runtime."""

    provider: str
    model: str
    endpoint: Optional[str]
    api_key: str
    api_version: Optional[str]


@dataclass(slots=True)
class AppSettings:
    """Top-level application settings loaded from environment variables."""

    model: Optional[ModelSettings]
    output_dir: Path
    redis_url: Optional[str]
    max_duration_minutes: float = DEFAULT_MAX_DURATION_MINUTES

    @classmethod
    def load(cls) -> "AppSettings":
        """Load settings from the environment or .env file.

        Missing model credentials leave ``model`` unset; the generation
        gateways report the gap on each request instead of failing here.
        """
        _ensure_dotenv()
        output_dir = Path(os.getenv("CONCEPT_OUTPUT_DIR", "outputs"))
        output_dir.mkdir(parents=True, exist_ok=True)
        redis_url: Optional[str] = os.getenv("CONCEPT_REDIS_URL", "")
        if not redis_url or not redis_url.strip():
            redis_url = None
        duration_raw = os.getenv(
            "CONCEPT_MAX_DURATION_MINUTES",
            str(DEFAULT_MAX_DURATION_MINUTES),
        )
        try:
            max_duration = float(duration_raw)
        except ValueError as exc:
            raise RuntimeError(
                "CONCEPT_MAX_DURATION_MINUTES must be a number"
            ) from exc
        if max_duration <= 0:
            raise RuntimeError(
                "CONCEPT_MAX_DURATION_MINUTES must be greater than 0"
            )
        return cls(
            model=_load_model_settings(),
            output_dir=output_dir,
            redis_url=redis_url,
            max_duration_minutes=max_duration,
        )


def _load_model_settings() -> Optional[ModelSettings]:
    model = os.getenv("CONCEPT_MODEL", "").strip()
    api_key = os.getenv("CONCEPT_MODEL_API_KEY", "").strip()
    if not model or not api_key:
        return None
    return ModelSettings(
        provider=os.getenv("CONCEPT_MODEL_PROVIDER", "openai"),
        model=model,
        endpoint=os.getenv("CONCEPT_MODEL_ENDPOINT") or None,
        api_key=api_key,
        api_version=os.getenv("CONCEPT_MODEL_API_VERSION") or None,
    )


def _ensure_dotenv() -> None:
    """Load dotenv variables and provide a helpful error if missing."""

    try:
        dotenv_module = import_module("dotenv")
    except ModuleNotFoundError as exc:  # pragma: no cover - optional dep
        raise RuntimeError(
            "python-dotenv is required. Install with `pip install "
            "python-dotenv`."
        ) from exc

    load_dotenv = getattr(dotenv_module, "load_dotenv")
    load_dotenv()
