"""Runtime settings loaded from the environment and an optional `.env` file."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os

from dotenv import find_dotenv, load_dotenv


LOG_FORMAT = "[%(levelname)s] %(message)s"


@dataclass(slots=True)
class Settings:
    chunk_size: int = 1000
    overlap_words: int = 20
    top_k: int = 3
    max_keywords: int = 10
    cache_ttl_seconds: float = 30 * 60
    cache_max_entries: int | None = 128
    openai_model: str = "gpt-4o-mini"
    openai_api_key: str = ""
    log_level: str = "INFO"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def load_settings() -> Settings:
    """Build settings from `DOCQA_*` and `OPENAI_*` variables.

    A cache capacity of zero or less disables the LRU bound.
    """

    load_dotenv(find_dotenv(usecwd=True))
    defaults = Settings()
    max_entries = _int_env("DOCQA_CACHE_MAX_ENTRIES", defaults.cache_max_entries or 0)

    return Settings(
        chunk_size=_int_env("DOCQA_CHUNK_SIZE", defaults.chunk_size),
        overlap_words=_int_env("DOCQA_OVERLAP_WORDS", defaults.overlap_words),
        top_k=_int_env("DOCQA_TOP_K", defaults.top_k),
        max_keywords=_int_env("DOCQA_MAX_KEYWORDS", defaults.max_keywords),
        cache_ttl_seconds=_float_env("DOCQA_CACHE_TTL_SECONDS", defaults.cache_ttl_seconds),
        cache_max_entries=max_entries if max_entries > 0 else None,
        openai_model=os.getenv("OPENAI_MODEL", defaults.openai_model).strip() or defaults.openai_model,
        openai_api_key=os.getenv("OPENAI_API_KEY", "").strip(),
        log_level=os.getenv("DOCQA_LOG_LEVEL", defaults.log_level).strip().upper() or "INFO",
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
