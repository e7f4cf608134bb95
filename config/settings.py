# settings.py — Runtime settings & logging setup
"""
settings.py — Application Settings

Settings are read once, at the edge (app startup / capability factory).
Lookup order per key: Streamlit secrets (when running under Streamlit),
then environment variables, then defaults.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass


# =============================================================================
# CONSTANTS
# =============================================================================

LLM_PROVIDERS = {"auto", "openai", "groq", "ollama", "none"}
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


# =============================================================================
# SETTINGS
# =============================================================================

@dataclass
class Settings:
    """Configuration for the generation capability and logging."""
    openai_api_key: str = ""
    groq_api_key: str = ""
    ollama_base_url: str = "http://localhost:11434"
    use_ollama: bool = False
    llm_provider: str = "auto"
    temperature: float = 0.7
    max_tokens: int = 1500
    log_level: str = "INFO"


def _get_secret(name: str) -> str | None:
    """Streamlit secrets first, then the environment."""
    try:
        import streamlit as st
        if hasattr(st, "secrets") and name in st.secrets:
            return str(st.secrets[name])
    except Exception:
        # No secrets file / not running under Streamlit
        pass
    return os.environ.get(name)


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_settings() -> Settings:
    """
    Build Settings from secrets / environment.

    Unknown LLM_PROVIDER values fall back to "auto"; unparseable numbers
    keep their defaults.
    """
    defaults = Settings()

    provider = (_get_secret("LLM_PROVIDER") or defaults.llm_provider).strip().lower()
    if provider not in LLM_PROVIDERS:
        provider = defaults.llm_provider

    try:
        temperature = float(_get_secret("LLM_TEMPERATURE") or defaults.temperature)
    except ValueError:
        temperature = defaults.temperature

    try:
        max_tokens = int(_get_secret("LLM_MAX_TOKENS") or defaults.max_tokens)
    except ValueError:
        max_tokens = defaults.max_tokens

    return Settings(
        openai_api_key=_get_secret("OPENAI_API_KEY") or "",
        groq_api_key=_get_secret("GROQ_API_KEY") or "",
        ollama_base_url=_get_secret("OLLAMA_BASE_URL") or defaults.ollama_base_url,
        use_ollama=_as_bool(_get_secret("USE_OLLAMA")),
        llm_provider=provider,
        temperature=temperature,
        max_tokens=max_tokens,
        log_level=(_get_secret("LOG_LEVEL") or defaults.log_level).upper(),
    )


# =============================================================================
# LOGGING
# =============================================================================

def configure_logging(level: str = "INFO") -> None:
    """Install the root handler once; later calls only adjust the level."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=LOG_FORMAT)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
