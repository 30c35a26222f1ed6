"""
Engine Configuration Management

Centralized configuration for the workflow engine and its provider
collaborators, read from the environment.
"""

import os
from dataclasses import dataclass
from typing import Optional
import logging

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default


@dataclass
class EngineConfig:
    """Configuration for workflow execution."""

    # LLM provider (OpenAI-compatible chat completions)
    llm_api_url: str = "http://localhost:8080"
    llm_api_key: Optional[str] = None
    default_llm_model: str = "gpt-4o-mini"

    # Knowledge retrieval service
    retrieval_api_url: str = "http://localhost:8700"

    # Web search
    search_api_url: str = "https://api.search.brave.com/res/v1/web/search"
    search_api_key: Optional[str] = None
    search_provider: str = "brave"

    # Vector database service (LanceDB nodes)
    vector_api_url: str = "http://localhost:8700"

    # Provider HTTP behaviour
    provider_timeout: float = 120.0
    provider_retries: int = 2

    # Run behaviour
    workflow_timeout: Optional[float] = 300.0
    max_concurrency: int = 8
    strict_templates: bool = False

    log_level: str = "INFO"

    @property
    def search_enabled(self) -> bool:
        """Check if a search API key is configured."""
        return self.search_api_key is not None

    @classmethod
    def from_env(cls) -> "EngineConfig":
        defaults = cls()
        timeout = _env_float("WORKFLOW_TIMEOUT", defaults.workflow_timeout)
        return cls(
            llm_api_url=os.getenv("LLM_API_URL", defaults.llm_api_url),
            llm_api_key=os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY"),
            default_llm_model=os.getenv("DEFAULT_LLM_MODEL", defaults.default_llm_model),
            retrieval_api_url=os.getenv("RETRIEVAL_API_URL", defaults.retrieval_api_url),
            search_api_url=os.getenv("SEARCH_API_URL", defaults.search_api_url),
            search_api_key=os.getenv("SEARCH_API_KEY") or os.getenv("BRAVE_API_KEY"),
            search_provider=os.getenv("SEARCH_PROVIDER", defaults.search_provider),
            vector_api_url=os.getenv("VECTOR_API_URL", defaults.vector_api_url),
            provider_timeout=_env_float("PROVIDER_TIMEOUT", defaults.provider_timeout),
            provider_retries=_env_int("PROVIDER_RETRIES", defaults.provider_retries),
            # 0 disables the run timeout
            workflow_timeout=timeout if timeout else None,
            max_concurrency=max(1, _env_int("WORKFLOW_MAX_CONCURRENCY", defaults.max_concurrency)),
            strict_templates=_env_bool("STRICT_TEMPLATES", defaults.strict_templates),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
        )


_config: Optional[EngineConfig] = None


def get_engine_config() -> EngineConfig:
    """Get or create engine configuration from environment."""
    global _config

    if _config is None:
        _config = EngineConfig.from_env()
        logger.info(
            f"Engine config loaded: llm={_config.llm_api_url}, "
            f"retrieval={_config.retrieval_api_url}, "
            f"search_enabled={_config.search_enabled}, "
            f"max_concurrency={_config.max_concurrency}"
        )

    return _config


def reset_engine_config():
    """Forget the cached configuration (used by tests)."""
    global _config
    _config = None
