"""Completion provider abstractions used by the decision engine."""

from __future__ import annotations

import http.client
import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .config import LLMConfig
from .gateway import Transport, UrllibTransport

DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "llama3.2"
DEFAULT_TIMEOUT_SECONDS = 15


class CompletionError(RuntimeError):
    """Raised when a provider fails to return usable text."""


class LLMConfigError(ValueError):
    """Raised when the provider configuration cannot produce a client."""


@dataclass(frozen=True, slots=True)
class Prompt:
    system: str
    user: str

    def with_user_suffix(self, suffix: str) -> "Prompt":
        return Prompt(system=self.system, user=self.user + suffix)


class CompletionClient(ABC):
    """Abstract base class describing a minimal completion provider.

    Implementations perform exactly one request per :meth:`generate` call;
    retry policy belongs to the caller.
    """

    provider: str = ""
    model: str = ""

    @abstractmethod
    def generate(self, prompt: Prompt) -> str:
        """Generate a textual completion for ``prompt``."""


def _messages(prompt: Prompt) -> List[Dict[str, str]]:
    messages = []
    if prompt.system.strip():
        messages.append({"role": "system", "content": prompt.system})
    if prompt.user.strip():
        messages.append({"role": "user", "content": prompt.user})
    if not messages:
        raise CompletionError("empty prompt")
    return messages


class OpenAIResponsesClient(CompletionClient):
    """Adapter around the ``openai`` Python package (Responses API)."""

    provider = "openai"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = DEFAULT_OPENAI_BASE_URL,
        temperature: float = 0.0,
        max_output_tokens: int = 0,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: Any = None,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        if client is None:
            try:
                from openai import OpenAI
            except ModuleNotFoundError as exc:  # pragma: no cover - optional dependency
                raise CompletionError(
                    "The 'openai' package is required for OpenAIResponsesClient. Install it via 'pip install openai'."
                ) from exc
            client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)
        self._client = client

    def generate(self, prompt: Prompt) -> str:
        request: Dict[str, Any] = {"model": self.model, "input": _messages(prompt)}
        if self.temperature > 0:
            request["temperature"] = self.temperature
        if self.max_output_tokens > 0:
            request["max_output_tokens"] = self.max_output_tokens
        try:
            response = self._client.responses.create(**request)
        except Exception as exc:  # openai raises APIError, APITimeoutError, ...
            raise CompletionError(f"openai error: {exc}") from exc
        text = (getattr(response, "output_text", "") or "").strip()
        if not text:
            raise CompletionError("openai response had no output_text")
        return text


class OllamaChatClient(CompletionClient):
    """Client for a local Ollama server's ``/api/chat`` endpoint."""

    provider = "ollama"

    def __init__(
        self,
        model: str = DEFAULT_OLLAMA_MODEL,
        base_url: str = DEFAULT_OLLAMA_BASE_URL,
        temperature: float = 0.0,
        max_output_tokens: int = 0,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[Transport] = None,
    ) -> None:
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.timeout = timeout
        self.transport = transport or UrllibTransport()

    def generate(self, prompt: Prompt) -> str:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": _messages(prompt),
            "stream": False,
        }
        options: Dict[str, Any] = {}
        if self.temperature > 0:
            options["temperature"] = self.temperature
        if self.max_output_tokens > 0:
            options["num_predict"] = self.max_output_tokens
        if options:
            payload["options"] = options

        try:
            status, body = self.transport.request(
                "POST",
                f"{self.base_url}/api/chat",
                {"Content-Type": "application/json"},
                json.dumps(payload).encode(),
                self.timeout,
            )
        except (OSError, http.client.HTTPException) as exc:
            raise CompletionError(f"ollama request failed: {exc}") from exc
        text = body.decode(errors="replace") if body else ""
        if status >= 300:
            raise CompletionError(f"ollama error ({status}): {text.strip()}")
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            raise CompletionError("ollama returned invalid JSON") from exc
        if not isinstance(parsed, dict):
            raise CompletionError("ollama returned unexpected payload")
        if str(parsed.get("error") or "").strip():
            raise CompletionError(f"ollama error: {parsed['error']}")
        message = parsed.get("message") or {}
        if not isinstance(message, dict):
            raise CompletionError("ollama returned unexpected payload")
        content = str(message.get("content") or "").strip()
        if not content:
            raise CompletionError("ollama response had no content")
        return content


def create_completion_client(config: LLMConfig) -> Optional[CompletionClient]:
    """Build the configured provider, or ``None`` when none is configured."""

    provider = config.provider.strip().lower()
    if not provider:
        return None
    timeout = config.timeout_seconds if config.timeout_seconds > 0 else DEFAULT_TIMEOUT_SECONDS

    if provider == "openai":
        api_key = config.api_key.strip() or os.getenv("OPENAI_API_KEY", "").strip()
        if not api_key:
            raise LLMConfigError("openai selected but no API key provided (OPENAI_API_KEY)")
        model = config.model.strip()
        if not model:
            raise LLMConfigError("openai selected but no model configured")
        return OpenAIResponsesClient(
            api_key=api_key,
            model=model,
            base_url=config.base_url.strip().rstrip("/") or DEFAULT_OPENAI_BASE_URL,
            temperature=config.temperature,
            max_output_tokens=config.max_output_tokens,
            timeout=timeout,
        )
    if provider == "ollama":
        return OllamaChatClient(
            model=config.model.strip() or DEFAULT_OLLAMA_MODEL,
            base_url=config.base_url.strip() or DEFAULT_OLLAMA_BASE_URL,
            temperature=config.temperature,
            max_output_tokens=config.max_output_tokens,
            timeout=timeout,
        )
    raise LLMConfigError(f"unknown llm provider: {provider}")


__all__ = [
    "CompletionClient",
    "CompletionError",
    "LLMConfigError",
    "OllamaChatClient",
    "OpenAIResponsesClient",
    "Prompt",
    "create_completion_client",
]
