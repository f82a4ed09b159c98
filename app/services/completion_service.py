"""Chat-completion client for OpenAI-compatible APIs (OpenAI, OpenRouter)."""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings
from app.core.logging import logger

MAX_MESSAGES = 60
DEFAULT_TEMPERATURE = 0.2
MAX_OUTPUT_TOKENS = 4096
VALID_ROLES = ("system", "user", "assistant")


# ─── Errors ──────────────────────────────────────────────────────────────────

class CompletionError(Exception):
    """Base class for completion failures."""


class MessageValidationError(CompletionError):
    """The message list was rejected locally and never sent upstream."""


class ConfigurationError(CompletionError):
    """The client is missing a credential."""


class CompletionTimeout(CompletionError):
    """The upstream call exceeded the configured deadline and was cancelled."""


class UpstreamError(CompletionError):
    """The provider answered with a non-success status."""

    def __init__(self, status_code: int, body: Any):
        super().__init__(f"Upstream returned {status_code}")
        self.status_code = status_code
        self.body = body


@dataclass
class CompletionResult:
    text: str
    model: str
    provider: str
    usage: Optional[Dict[str, Any]] = None


# ─── Parameter handling ──────────────────────────────────────────────────────

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_messages(messages: Any) -> List[Dict[str, str]]:
    """Check a message list and return it as plain ``{role, content}`` dicts."""
    if not isinstance(messages, list) or not messages:
        raise MessageValidationError("Body must include { messages: Msg[] }")
    if len(messages) > MAX_MESSAGES:
        raise MessageValidationError("Too many messages. Please reduce conversation size.")

    safe: List[Dict[str, str]] = []
    for index, message in enumerate(messages):
        if hasattr(message, "model_dump"):
            message = message.model_dump()
        if not isinstance(message, dict):
            raise MessageValidationError(f"Message {index} is not an object")
        role = message.get("role")
        content = message.get("content")
        if role not in VALID_ROLES:
            raise MessageValidationError(f"Message {index} has invalid role {role!r}")
        if not isinstance(content, str) or not content:
            raise MessageValidationError(f"Message {index} must have non-empty string content")
        safe.append({"role": role, "content": content})
    return safe


def clamp_options(
    temperature: Any = None,
    top_p: Any = None,
    max_tokens: Any = None,
) -> Dict[str, Any]:
    """Out-of-range knobs fall back to defaults instead of failing the request."""
    options: Dict[str, Any] = {
        "temperature": temperature if _is_number(temperature) and 0 <= temperature <= 2 else DEFAULT_TEMPERATURE,
    }
    if _is_number(top_p) and 0 < top_p <= 1:
        options["top_p"] = top_p
    if _is_number(max_tokens) and max_tokens > 1:
        options["max_tokens"] = int(min(max_tokens, MAX_OUTPUT_TOKENS))
    return options


def extract_text(data: Any) -> str:
    """First choice's message content, falling back to the legacy ``text`` field."""
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices") or []
    first = choices[0] if isinstance(choices, list) and choices else {}
    if not isinstance(first, dict):
        return ""
    message = first.get("message") or {}
    text = message.get("content") if isinstance(message, dict) else None
    if text is None:
        text = first.get("text")
    return text if isinstance(text, str) else ""


# ─── Client ──────────────────────────────────────────────────────────────────

class CompletionClient:
    """Single-shot calls to a ``/chat/completions`` endpoint. No retries, no streaming."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.base_url = (base_url or settings.OPENAI_BASE_URL).rstrip("/")
        self.model = model or settings.OPENAI_MODEL
        self.timeout_ms = timeout_ms if timeout_ms is not None else settings.OPENAI_TIMEOUT_MS
        self._transport = transport

    @property
    def is_openrouter(self) -> bool:
        return "openrouter.ai" in self.base_url

    @property
    def provider(self) -> str:
        return "openrouter" if self.is_openrouter else "openai"

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self.is_openrouter:
            headers["HTTP-Referer"] = settings.OPENROUTER_REFERRER
            headers["X-Title"] = settings.OPENROUTER_TITLE
        return headers

    async def complete(
        self,
        messages: Any,
        *,
        model: Optional[str] = None,
        temperature: Any = None,
        top_p: Any = None,
        max_tokens: Any = None,
    ) -> CompletionResult:
        """
        Send a message list and return the assistant's reply.

        Raises:
            MessageValidationError: bad or oversized message list (nothing sent).
            ConfigurationError: no API key configured.
            CompletionTimeout: the call took longer than ``timeout_ms``.
            UpstreamError: the provider answered with status >= 400.
            CompletionError: transport failure or unreadable success body.
        """
        safe_messages = validate_messages(messages)
        if not self.api_key:
            raise ConfigurationError("Missing OPENAI_API_KEY")

        model = (model or self.model).strip()
        payload: Dict[str, Any] = {
            "model": model,
            "messages": safe_messages,
            **clamp_options(temperature, top_p, max_tokens),
            "stream": False,
        }
        url = f"{self.base_url}/chat/completions"
        timeout = self.timeout_ms / 1000.0

        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await asyncio.wait_for(
                    client.post(url, headers=self._headers(), json=payload),
                    timeout=timeout,
                )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning(f"Completion timed out after {self.timeout_ms}ms ({model})")
            raise CompletionTimeout("Upstream request timed out") from e
        except httpx.RequestError as e:
            logger.error(f"Completion request failed: {e.__class__.__name__}: {e}")
            raise CompletionError(f"Upstream request failed: {e}") from e

        if response.status_code >= 400:
            try:
                body: Any = response.json()
            except ValueError:
                body = response.text
            logger.error(f"LLM API error ({response.status_code}): {body}")
            raise UpstreamError(response.status_code, body)

        try:
            data = response.json()
        except ValueError as e:
            raise CompletionError("Upstream returned a non-JSON body") from e

        text = extract_text(data)
        usage = data.get("usage") if isinstance(data, dict) else None
        logger.info(f"Completion via {self.provider} ({model}): {len(text)} chars")

        return CompletionResult(
            text=text,
            model=model,
            provider=self.provider,
            usage=usage if isinstance(usage, dict) else None,
        )


def get_completion_client() -> CompletionClient:
    """Dependency that provides a client built from settings."""
    return CompletionClient()
