"""
Runtime configuration for overlay-translator.

Values come from the environment (optionally seeded from a ``.env`` file)
and are validated into a TranslatorConfig.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .glossary.matcher import DEFAULT_QUANTIFIERS
from .glossary.normalizer import safe_language
from .translation.cache import cache_path_for
from .translation.remote import DEFAULT_API_URL

logger = logging.getLogger("overlay-translator")

ENV_PREFIX = "OVERLAY_TRANSLATOR_"
DEFAULT_CACHE_DIR = Path.home() / ".overlay-translator"


class TranslatorConfig(BaseModel):
    """Settings for the resolution engine."""

    api_key: str = Field(
        default="",
        description="Remote translation credential; empty disables remote calls",
    )
    api_url: str = Field(default=DEFAULT_API_URL, description="Translate endpoint")
    target_language: str = Field(default="RU", description="Target language code")
    source_language: str = Field(default="EN", description="Source language code")
    request_timeout: float = Field(default=10.0, gt=0, description="Remote call timeout in seconds")
    cache_dir: Path = Field(default=DEFAULT_CACHE_DIR, description="Directory holding cache-<LANG>.json files")
    cache_capacity: int = Field(default=10_000, ge=1, description="Maximum cached translations")
    save_interval: float = Field(default=30.0, gt=0, description="Seconds between cache saves")
    glossary_dir: Path | None = Field(default=None, description="Directory with glossary TSV files")
    rate_limit_capacity: int = Field(default=4, ge=1, description="Token bucket size")
    rate_limit_refill: float = Field(default=0.3, gt=0, description="Seconds per refilled token")
    quantifiers: tuple[str, ...] = Field(
        default=DEFAULT_QUANTIFIERS,
        description="Words fused onto a preceding glossary term (digits always fuse)",
    )
    free_form_words: int = Field(
        default=6,
        ge=1,
        description="Texts with at least this many words only use exact glossary layers",
    )
    tick_interval: float = Field(default=0.7, gt=0, description="Seconds between driver ticks")
    log_level: str = Field(default="INFO", description="Logging level name")

    @field_validator("target_language")
    @classmethod
    def _target_code(cls, v: str) -> str:
        return safe_language(v)

    @field_validator("source_language")
    @classmethod
    def _source_code(cls, v: str) -> str:
        return safe_language(v, default="EN")

    @field_validator("quantifiers", mode="before")
    @classmethod
    def _split_quantifiers(cls, v):
        if isinstance(v, str):
            return tuple(q.strip() for q in v.split(",") if q.strip())
        return v

    @field_validator("log_level")
    @classmethod
    def _level_name(cls, v: str) -> str:
        level = (v or "INFO").strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {v}")
        return level

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key.strip())

    def cache_path(self, language: str | None = None) -> Path:
        return cache_path_for(self.cache_dir, language or self.target_language)


# (field name, environment suffix)
_ENV_FIELDS = [
    ("api_url", "API_URL"),
    ("target_language", "TARGET_LANG"),
    ("source_language", "SOURCE_LANG"),
    ("request_timeout", "REQUEST_TIMEOUT"),
    ("cache_dir", "CACHE_DIR"),
    ("cache_capacity", "CACHE_CAPACITY"),
    ("save_interval", "SAVE_INTERVAL"),
    ("glossary_dir", "GLOSSARY_DIR"),
    ("rate_limit_capacity", "RATE_LIMIT_CAPACITY"),
    ("rate_limit_refill", "RATE_LIMIT_REFILL"),
    ("quantifiers", "QUANTIFIERS"),
    ("free_form_words", "FREE_FORM_WORDS"),
    ("tick_interval", "TICK_INTERVAL"),
    ("log_level", "LOG_LEVEL"),
]


def load_config(env_file: Path | str | None = None, **overrides) -> TranslatorConfig:
    """Build a TranslatorConfig from the environment.

    Args:
        env_file: Optional ``.env`` path; by default ``load_dotenv`` searches
            upwards from the working directory. Existing variables win.
        **overrides: Field values that take precedence over the environment

    Raises:
        pydantic.ValidationError: If a value is out of range or malformed
    """
    if env_file is not None:
        if not load_dotenv(env_file):
            logger.warning(f".env file {env_file} not found or empty")
    else:
        load_dotenv()

    values: dict[str, object] = {}
    api_key = os.getenv(f"{ENV_PREFIX}API_KEY") or os.getenv("DEEPL_API_KEY")
    if api_key:
        values["api_key"] = api_key

    for field_name, suffix in _ENV_FIELDS:
        raw = os.getenv(f"{ENV_PREFIX}{suffix}")
        if raw is not None and raw.strip() != "":
            values[field_name] = raw.strip()

    for key in ("cache_dir", "glossary_dir"):
        if key in values:
            values[key] = Path(str(values[key])).expanduser()

    values.update({k: v for k, v in overrides.items() if v is not None})
    return TranslatorConfig(**values)


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for command-line use."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
