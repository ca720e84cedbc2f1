"""Runtime settings.

Every tunable has a default; ``Settings.from_env()`` overlays ``HGR_*``
environment variables, and the CLI overrides individual fields per
invocation.
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field

DEFAULT_BASE_URL = "https://api.openai.com/v1"

# Environment variable -> Settings field
_ENV_FIELDS = {
    "HGR_BASE_URL": "base_url",
    "HGR_API_KEY": "api_key",
    "HGR_CHAT_MODEL": "chat_model",
    "HGR_EMBEDDING_MODEL": "embedding_model",
    "HGR_TIMEOUT": "request_timeout",
    "HGR_MAX_RETRIES": "max_retries",
    "HGR_EMBEDDING_BATCH_SIZE": "embedding_batch_size",
    "HGR_SIMILARITY_THRESHOLD": "similarity_threshold",
    "HGR_MATCH_THRESHOLD": "match_threshold",
    "HGR_TOP_K": "top_k",
    "HGR_MAX_PATH_LENGTH": "max_path_length",
    "HGR_MAX_CONTEXT_TOKENS": "max_context_tokens",
}


class Settings(BaseModel):
    """Configuration shared by the CLI, MCP server and library callers."""

    base_url: str = DEFAULT_BASE_URL
    api_key: str | None = None
    chat_model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    request_timeout: float = Field(default=120.0, gt=0)
    max_retries: int = Field(default=2, ge=0)
    embedding_batch_size: int = Field(default=100, ge=1)

    similarity_threshold: float = Field(default=0.9, ge=-1.0, le=1.0)
    match_threshold: float = Field(default=0.5, ge=-1.0, le=1.0)
    top_k: int = Field(default=5, ge=1)
    max_path_length: int = Field(default=4, ge=1)
    max_context_tokens: int = Field(default=2000, ge=1)
    direct_edges_per_node: int = Field(default=5, ge=0)
    answer_temperature: float = 0.7
    keyword_temperature: float = 0.1

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: Any) -> Settings:
        """Build settings from ``HGR_*`` variables, then apply ``overrides``.

        ``OPENAI_API_KEY`` is used when ``HGR_API_KEY`` is unset.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for var, field_name in _ENV_FIELDS.items():
            raw = env.get(var)
            if raw:
                values[field_name] = raw
        if "api_key" not in values and env.get("OPENAI_API_KEY"):
            values["api_key"] = env["OPENAI_API_KEY"]
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)
