"""Configuration models for the text quality analyzer."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

BackendMode = Literal["auto", "server", "llm", "heuristic"]
SnrMethod = Literal["embedding", "llm"]
ReadabilityScript = Literal["cyrillic", "latin"]

_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
_TRUE_VALUES = {"1", "true", "yes", "on"}


class ColorConfig(BaseModel):
    """Gradient endpoints used by the color mapper."""

    snr_max_color: str = "#d1f9d1"
    complexity_min_color: str = "#cccccc"
    complexity_max_color: str = "#4c4c4c"
    normalize: bool = True

    @field_validator("snr_max_color", "complexity_min_color", "complexity_max_color")
    @classmethod
    def _check_hex(cls, value: str) -> str:
        value = value.strip()
        if not _HEX_COLOR.match(value):
            raise ValueError(f"expected a CSS hex color, got {value!r}")
        return value.lower()


class PipelineConfig(BaseModel):
    """Configures incremental recompute timing."""

    debounce_seconds: float = Field(default=1.0, ge=0.0)


class AnalyzerConfig(BaseModel):
    """Snapshot of backend settings read once per resolver call."""

    backend_mode: BackendMode = "auto"
    http_endpoint: str = "http://localhost:5000/analyze"
    http_timeout_seconds: float = Field(default=10.0, gt=0.0)
    topic: str = ""
    api_key: str = ""
    llm_base_url: str | None = None
    embedding_model: str = "text-embedding-ada-002"
    chat_model: str = "gpt-3.5-turbo"
    snr_method: SnrMethod = "embedding"
    classify_roles: bool = False
    readability_script: ReadabilityScript = "cyrillic"
    colors: ColorConfig = Field(default_factory=ColorConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    @field_validator("http_endpoint", "api_key", "embedding_model", "chat_model")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @classmethod
    def from_env(
        cls,
        *,
        env_file: str | Path | None = None,
        **overrides: object,
    ) -> "AnalyzerConfig":
        """Build a config from `TQA_*` environment variables.

        The credential is resolved from an explicit `api_key` override, then
        `LLM_API_KEY`, then `OPENAI_API_KEY`, then an `LLM_API_KEY=` line in
        `env_file` when one is given.
        """

        values: dict[str, object] = {}
        for field_name, env_name in (
            ("backend_mode", "TQA_BACKEND_MODE"),
            ("http_endpoint", "TQA_HTTP_ENDPOINT"),
            ("topic", "TQA_TOPIC"),
            ("embedding_model", "TQA_EMBEDDING_MODEL"),
            ("chat_model", "TQA_CHAT_MODEL"),
            ("snr_method", "TQA_SNR_METHOD"),
            ("llm_base_url", "TQA_LLM_BASE_URL"),
            ("readability_script", "TQA_READABILITY_SCRIPT"),
        ):
            raw = os.getenv(env_name)
            if raw:
                values[field_name] = raw

        roles = os.getenv("TQA_CLASSIFY_ROLES")
        if roles is not None:
            values["classify_roles"] = roles.strip().lower() in _TRUE_VALUES

        debounce = os.getenv("TQA_DEBOUNCE_SECONDS")
        if debounce:
            values["pipeline"] = PipelineConfig(debounce_seconds=float(debounce))

        api_key = os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY") or ""
        if not api_key and env_file is not None:
            api_key = read_api_key_from_env_file(env_file)
        if api_key:
            values["api_key"] = api_key

        values.update(overrides)
        return cls.model_validate(values)


def read_api_key_from_env_file(path: str | Path, key: str = "LLM_API_KEY") -> str:
    """Return the value of `key` from a dotenv-style file, or an empty string."""

    env_path = Path(path)
    if not env_path.is_file():
        return ""
    for line in env_path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        name, _, value = stripped.partition("=")
        if name.strip() == key and value.strip():
            return value.strip()
    return ""
