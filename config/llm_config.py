# llm_config.py — External generation clients & capability factory
# Handles provider selection (OpenAI / Groq / Ollama) and the explicit
# "no capability" marker used for the statistics-only fallback
"""
llm_config.py — LLM Configuration & Factory

Supports:
1. OpenAI chat completions (OPENAI_API_KEY)
2. Groq API, OpenAI-compatible (GROQ_API_KEY)
3. Ollama (local, opt-in with USE_OLLAMA)

The result of the factory is a GenerationCapability: either a callable
collaborator or GenerationCapability.unavailable(). Insight generation
receives it at construction and never looks at the environment itself.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Callable

from config.settings import Settings, load_settings


logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_GROQ_MODEL = "llama-3.1-8b-instant"
DEFAULT_OLLAMA_MODEL = "llama3.2"
OPENAI_API_BASE_URL = "https://api.openai.com/v1"
GROQ_API_BASE_URL = "https://api.groq.com/openai/v1"
DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1500
REQUEST_TIMEOUT = 60  # seconds
MOCK_MODEL_NAME = "statistical-fallback"


# =============================================================================
# EXCEPTIONS
# =============================================================================

class LLMError(Exception):
    """Base exception for LLM errors."""
    pass


class LLMConnectionError(LLMError):
    """Raised when the provider is not reachable."""
    pass


class LLMGenerationError(LLMError):
    """Raised when text generation fails."""
    pass


class ModelNotFoundError(LLMError):
    """Raised when requested model is not available."""
    pass


# =============================================================================
# OPENAI-COMPATIBLE CLIENT (OpenAI, Groq)
# =============================================================================

@dataclass
class ChatConfig:
    """Configuration for an OpenAI-compatible chat completions endpoint."""
    model: str = DEFAULT_OPENAI_MODEL
    api_key: str = ""
    base_url: str = OPENAI_API_BASE_URL
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    timeout: int = REQUEST_TIMEOUT


class ChatCompletionsLLM:
    """
    Client for /chat/completions.

    Uses only stdlib (urllib) for the HTTP call.
    """

    def __init__(self, config: ChatConfig | None = None):
        self.config = config or ChatConfig()

    @property
    def model(self) -> str:
        return self.config.model

    def is_available(self) -> bool:
        """Available when an API key is configured."""
        return bool(self.config.api_key)

    def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """
        Generate a chat completion.

        Returns:
            Content of the first choice

        Raises:
            LLMError: Missing key
            LLMGenerationError: HTTP error or malformed body
            LLMConnectionError: Network failure
        """
        if not self.config.api_key:
            raise LLMError("API key not configured")

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload = {
            "model": self.config.model,
            "messages": messages,
            "temperature": self.config.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.config.max_tokens,
        }

        request = urllib.request.Request(
            f"{self.config.base_url.rstrip('/')}/chat/completions",
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.config.api_key}",
            },
            method="POST",
        )

        try:
            with urllib.request.urlopen(request, timeout=self.config.timeout) as response:
                result = json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8", errors="replace") if e.fp else str(e)
            raise LLMGenerationError(f"API error ({e.code}): {error_body[:300]}") from e
        except urllib.error.URLError as e:
            raise LLMConnectionError(f"Cannot reach {self.config.base_url}: {e.reason}") from e
        except json.JSONDecodeError as e:
            raise LLMGenerationError(f"Invalid response body: {str(e)}") from e

        try:
            return (result["choices"][0]["message"]["content"] or "").strip()
        except (KeyError, IndexError, TypeError) as e:
            raise LLMGenerationError(f"Unexpected response shape: {str(e)}") from e


# =============================================================================
# OLLAMA CLIENT
# =============================================================================

@dataclass
class OllamaConfig:
    """Configuration for Ollama LLM."""
    model: str = DEFAULT_OLLAMA_MODEL
    base_url: str = DEFAULT_OLLAMA_BASE_URL
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    timeout: int = REQUEST_TIMEOUT


class OllamaLLM:
    """Lightweight Ollama client (non-streaming /api/generate)."""

    def __init__(self, config: OllamaConfig | None = None):
        self.config = config or OllamaConfig()

    @property
    def model(self) -> str:
        return self.config.model

    @property
    def base_url(self) -> str:
        return self.config.base_url.rstrip("/")

    def is_available(self) -> bool:
        """Check if Ollama server is running and reachable."""
        try:
            request = urllib.request.Request(f"{self.base_url}/api/tags", method="GET")
            with urllib.request.urlopen(request, timeout=5) as response:
                return response.status == 200
        except (urllib.error.URLError, OSError):
            return False

    def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """
        Generate text completion.

        Raises:
            LLMConnectionError: If server is not reachable
            ModelNotFoundError: If the model is not pulled
            LLMGenerationError: If generation fails
        """
        payload = {
            "model": self.config.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self.config.temperature if temperature is None else temperature,
                "num_predict": max_tokens or self.config.max_tokens,
            },
        }
        if system_prompt:
            payload["system"] = system_prompt

        request = urllib.request.Request(
            f"{self.base_url}/api/generate",
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )

        try:
            with urllib.request.urlopen(request, timeout=self.config.timeout) as response:
                result = json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            if e.code == 404:
                raise ModelNotFoundError(
                    f"Model '{self.config.model}' not found. "
                    f"Pull it with: `ollama pull {self.config.model}`"
                ) from e
            raise LLMGenerationError(f"HTTP error {e.code}: {e.reason}") from e
        except urllib.error.URLError as e:
            raise LLMConnectionError(
                f"Cannot connect to Ollama at {self.base_url}. "
                f"Ensure Ollama is running: `ollama serve`"
            ) from e
        except json.JSONDecodeError as e:
            raise LLMGenerationError(f"Invalid response from Ollama: {str(e)}") from e

        return str(result.get("response", "")).strip()


# =============================================================================
# GENERATION CAPABILITY
# =============================================================================

@dataclass(frozen=True)
class GenerationCapability:
    """
    Either a callable `generate(prompt, system_prompt) -> str` plus the
    model it talks to, or the explicit unavailable marker.
    """
    generate: Callable[[str, str], str] | None = None
    model: str = MOCK_MODEL_NAME
    provider: str | None = None

    @property
    def available(self) -> bool:
        return self.generate is not None

    @classmethod
    def unavailable(cls) -> "GenerationCapability":
        return cls()

    @classmethod
    def from_llm(cls, llm: ChatCompletionsLLM | OllamaLLM, provider: str) -> "GenerationCapability":
        def _generate(prompt: str, system_prompt: str) -> str:
            return llm.generate(prompt, system_prompt=system_prompt)

        return cls(generate=_generate, model=llm.model, provider=provider)


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================

def _openai_llm(settings: Settings) -> ChatCompletionsLLM:
    return ChatCompletionsLLM(ChatConfig(
        model=DEFAULT_OPENAI_MODEL,
        api_key=settings.openai_api_key,
        base_url=OPENAI_API_BASE_URL,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
    ))


def _groq_llm(settings: Settings) -> ChatCompletionsLLM:
    return ChatCompletionsLLM(ChatConfig(
        model=DEFAULT_GROQ_MODEL,
        api_key=settings.groq_api_key,
        base_url=GROQ_API_BASE_URL,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
    ))


def _ollama_llm(settings: Settings) -> OllamaLLM:
    return OllamaLLM(OllamaConfig(
        base_url=settings.ollama_base_url,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
    ))


def get_generation_capability(settings: Settings | None = None) -> GenerationCapability:
    """
    Pick the external generation provider.

    Priority order for provider "auto":
    1. OpenAI (if OPENAI_API_KEY is set)
    2. Groq (if GROQ_API_KEY is set)
    3. Ollama (if USE_OLLAMA and the server answers)
    4. Unavailable (mock insights)

    An explicit provider is used only when it is usable; otherwise the
    capability is unavailable. Provider "none" always yields unavailable.
    """
    settings = settings or load_settings()
    provider = settings.llm_provider

    candidates: list[tuple[str, Callable[[], ChatCompletionsLLM | OllamaLLM]]] = []
    if provider in ("auto", "openai"):
        candidates.append(("openai", lambda: _openai_llm(settings)))
    if provider in ("auto", "groq"):
        candidates.append(("groq", lambda: _groq_llm(settings)))
    if provider == "ollama" or (provider == "auto" and settings.use_ollama):
        candidates.append(("ollama", lambda: _ollama_llm(settings)))

    for name, build in candidates:
        llm = build()
        if llm.is_available():
            logger.info("Generation capability: %s (%s)", name, llm.model)
            return GenerationCapability.from_llm(llm, provider=name)

    logger.warning("No generation capability configured; insights will use statistical fallback")
    return GenerationCapability.unavailable()
