import io
import json
import urllib.error
import urllib.request

import pytest

from config.llm_config import (
    DEFAULT_GROQ_MODEL,
    DEFAULT_OPENAI_MODEL,
    ChatCompletionsLLM,
    ChatConfig,
    GenerationCapability,
    LLMConnectionError,
    LLMError,
    LLMGenerationError,
    get_generation_capability,
)
from config.settings import Settings, load_settings


class FakeResponse:
    def __init__(self, body: bytes, status: int = 200):
        self._body = body
        self.status = status

    def read(self):
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def _completion(content: str) -> bytes:
    return json.dumps({"choices": [{"message": {"content": content}}]}).encode("utf-8")


# =============================================================================
# CAPABILITY FACTORY
# =============================================================================

def test_no_keys_means_unavailable():
    capability = get_generation_capability(Settings())
    assert capability.available is False
    assert capability.provider is None


def test_provider_none_ignores_keys():
    capability = get_generation_capability(Settings(openai_api_key="sk-test", llm_provider="none"))
    assert capability.available is False


def test_auto_prefers_openai():
    capability = get_generation_capability(Settings(openai_api_key="sk-test", groq_api_key="gsk-test"))
    assert capability.available is True
    assert capability.provider == "openai"
    assert capability.model == DEFAULT_OPENAI_MODEL


def test_auto_falls_through_to_groq():
    capability = get_generation_capability(Settings(groq_api_key="gsk-test"))
    assert capability.provider == "groq"
    assert capability.model == DEFAULT_GROQ_MODEL


def test_explicit_provider_without_key_is_unavailable():
    capability = get_generation_capability(Settings(openai_api_key="sk-test", llm_provider="groq"))
    assert capability.available is False


def test_capability_calls_through_to_client(monkeypatch):
    captured = {}

    def fake_urlopen(request, timeout):
        captured["url"] = request.full_url
        captured["body"] = json.loads(request.data.decode("utf-8"))
        captured["auth"] = request.get_header("Authorization")
        return FakeResponse(_completion("  hello  "))

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)

    capability = get_generation_capability(Settings(openai_api_key="sk-test", temperature=0.2))
    reply = capability.generate("user prompt", "system prompt")

    assert reply == "hello"
    assert captured["url"] == "https://api.openai.com/v1/chat/completions"
    assert captured["auth"] == "Bearer sk-test"
    assert captured["body"]["model"] == DEFAULT_OPENAI_MODEL
    assert captured["body"]["temperature"] == 0.2
    assert captured["body"]["messages"] == [
        {"role": "system", "content": "system prompt"},
        {"role": "user", "content": "user prompt"},
    ]


def test_unavailable_marker():
    capability = GenerationCapability.unavailable()
    assert capability.generate is None
    assert capability.available is False


# =============================================================================
# CHAT COMPLETIONS CLIENT
# =============================================================================

def test_missing_key_raises():
    with pytest.raises(LLMError):
        ChatCompletionsLLM(ChatConfig(api_key="")).generate("hi")


def test_http_error_maps_to_generation_error(monkeypatch):
    def fake_urlopen(request, timeout):
        raise urllib.error.HTTPError(
            request.full_url, 429, "Too Many Requests", {}, io.BytesIO(b"quota exceeded")
        )

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)

    with pytest.raises(LLMGenerationError, match="429"):
        ChatCompletionsLLM(ChatConfig(api_key="sk-test")).generate("hi")


def test_network_error_maps_to_connection_error(monkeypatch):
    def fake_urlopen(request, timeout):
        raise urllib.error.URLError("unreachable")

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)

    with pytest.raises(LLMConnectionError):
        ChatCompletionsLLM(ChatConfig(api_key="sk-test")).generate("hi")


def test_unexpected_body_maps_to_generation_error(monkeypatch):
    monkeypatch.setattr(urllib.request, "urlopen", lambda request, timeout: FakeResponse(b'{"choices": []}'))
    with pytest.raises(LLMGenerationError):
        ChatCompletionsLLM(ChatConfig(api_key="sk-test")).generate("hi")

    monkeypatch.setattr(urllib.request, "urlopen", lambda request, timeout: FakeResponse(b"not json"))
    with pytest.raises(LLMGenerationError):
        ChatCompletionsLLM(ChatConfig(api_key="sk-test")).generate("hi")


# =============================================================================
# SETTINGS
# =============================================================================

@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "OPENAI_API_KEY", "GROQ_API_KEY", "OLLAMA_BASE_URL", "USE_OLLAMA",
        "LLM_PROVIDER", "LLM_TEMPERATURE", "LLM_MAX_TOKENS", "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_settings_from_environment(clean_env):
    clean_env.setenv("OPENAI_API_KEY", "sk-env")
    clean_env.setenv("USE_OLLAMA", "true")
    clean_env.setenv("LLM_PROVIDER", "OpenAI")
    clean_env.setenv("LLM_MAX_TOKENS", "800")
    clean_env.setenv("LOG_LEVEL", "debug")

    settings = load_settings()

    assert settings.openai_api_key == "sk-env"
    assert settings.use_ollama is True
    assert settings.llm_provider == "openai"
    assert settings.max_tokens == 800
    assert settings.log_level == "DEBUG"


def test_settings_fall_back_to_defaults(clean_env):
    clean_env.setenv("LLM_PROVIDER", "something-else")
    clean_env.setenv("LLM_TEMPERATURE", "warm")

    settings = load_settings()

    assert settings.llm_provider == "auto"
    assert settings.temperature == 0.7
    assert settings.openai_api_key == ""
    assert settings.use_ollama is False
