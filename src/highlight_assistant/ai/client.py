"""Async AI client wrapper built around OpenAI-compatible endpoints."""

from __future__ import annotations

import importlib
import json
import inspect
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Sequence

import httpx
from openai import APIConnectionError, APIError, APIStatusError, APITimeoutError, AsyncOpenAI, RateLimitError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .ai_types import AIResponse, TokenCounterProtocol, ToolInvocation
from .errors import ConfigurationError, TransportError
from .utils.tokens import CHARS_PER_TOKEN

LOGGER = logging.getLogger(__name__)
DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "anthropic/claude-sonnet-4"
_TRANSIENT_ERRORS = (
    APIError,
    APIStatusError,
    APIConnectionError,
    RateLimitError,
    httpx.TimeoutException,
    httpx.TransportError,
)


class ApproxCharCounter(TokenCounterProtocol):
    """Deterministic counter that estimates tokens via character length."""

    def __init__(self, *, model_name: str | None = None, chars_per_token: float = CHARS_PER_TOKEN) -> None:
        self.model_name = model_name
        self._chars_per_token = max(1.0, float(chars_per_token))

    def count(self, text: str) -> int:
        return self.estimate(text)

    def estimate(self, text: str) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self._chars_per_token)


class TiktokenCounter(TokenCounterProtocol):
    """Token counter backed by OpenAI's tiktoken package (``ai_tokenizers`` extra)."""

    def __init__(self, model_name: str, *, encoding_name: str | None = None) -> None:
        if not model_name:
            raise ValueError("model_name is required for TiktokenCounter")
        try:
            module = importlib.import_module("tiktoken")
        except ImportError as exc:
            raise RuntimeError("tiktoken is not installed; install the ai_tokenizers extra") from exc
        self.model_name = model_name
        self._encoding = self._load_encoding(module, model_name, encoding_name)
        self._fallback = ApproxCharCounter(model_name=model_name)

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self._encoding.encode(text))

    def estimate(self, text: str) -> int:
        return self._fallback.estimate(text)

    @staticmethod
    def _load_encoding(module: Any, model_name: str, encoding_name: str | None) -> Any:
        if encoding_name:
            return module.get_encoding(encoding_name)
        # OpenRouter ids carry a vendor prefix ("openai/gpt-4o")
        bare_name = model_name.split("/", 1)[-1]
        try:
            return module.encoding_for_model(bare_name)
        except KeyError:
            LOGGER.debug("Falling back to cl100k_base encoding for model %s", model_name)
            return module.get_encoding("cl100k_base")


class TokenCounterRegistry:
    """Registry maintaining tokenizer implementations per model."""

    _shared: TokenCounterRegistry | None = None

    def __init__(self, *, fallback: TokenCounterProtocol | None = None) -> None:
        self._fallback = fallback or ApproxCharCounter()
        self._counters: Dict[str, TokenCounterProtocol] = {}

    @classmethod
    def global_instance(cls) -> "TokenCounterRegistry":
        if cls._shared is None:
            cls._shared = TokenCounterRegistry()
        return cls._shared

    @property
    def fallback(self) -> TokenCounterProtocol:
        return self._fallback

    def register(self, model_name: str, counter: TokenCounterProtocol) -> None:
        key = self._normalize_key(model_name)
        if not key:
            raise ValueError("model_name is required for token counter registration")
        self._counters[key] = counter

    def unregister(self, model_name: str) -> None:
        self._counters.pop(self._normalize_key(model_name), None)

    def has(self, model_name: str | None) -> bool:
        key = self._normalize_key(model_name)
        return bool(key and key in self._counters)

    def get(self, model_name: str | None = None) -> TokenCounterProtocol:
        key = self._normalize_key(model_name)
        if key and key in self._counters:
            return self._counters[key]
        return self._fallback

    def count(self, model_name: str | None, text: str) -> int:
        return self.get(model_name).count(text)

    def estimate(self, text: str) -> int:
        return self._fallback.estimate(text)

    @staticmethod
    def _normalize_key(model_name: str | None) -> str:
        return (model_name or "").strip().lower()


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the AI client."""

    base_url: str = DEFAULT_BASE_URL
    api_key: str = ""
    model: str = DEFAULT_MODEL
    request_timeout: float | None = 60.0
    max_retries: int = 1
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    metadata: Mapping[str, str] | None = None
    debug_logging: bool = False


class AIClient:
    """Async chat-completions client that normalizes replies into :class:`AIResponse`.

    The API key may be supplied per call (it is resolved lazily by the
    engine on every turn); a separate ``AsyncOpenAI`` instance is kept for
    each distinct key.
    """

    def __init__(
        self,
        settings: ClientSettings,
        *,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._settings = settings
        self._clients: Dict[str, AsyncOpenAI] = {}
        self._shared_client = client

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def complete(
        self,
        messages: Iterable[Mapping[str, Any]],
        *,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        tools: Sequence[Mapping[str, Any]] | None = None,
        tool_choice: str | None = None,
        **extra_params: Any,
    ) -> AIResponse:
        """Run a single (non-streamed) chat completion.

        Raises:
            ConfigurationError: When no API key is available.
            TransportError: On network failures, timeouts and provider errors.
        """

        key = api_key if api_key is not None else self._settings.api_key
        if not key:
            raise ConfigurationError()
        payload = self._build_chat_payload(
            messages=self._coerce_messages(messages),
            model=model,
            tools=tools,
            tool_choice=tool_choice,
            temperature=temperature,
            max_tokens=max_tokens,
            extra_params=extra_params,
        )
        LOGGER.debug(
            "Starting chat completion via %s with %s message(s)",
            payload["model"],
            len(payload["messages"]),
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        client = self._client_for(key)
        try:
            async for attempt in self._retrying():
                with attempt:
                    completion = await client.chat.completions.create(**payload)
        except (APITimeoutError, httpx.TimeoutException) as exc:
            raise TransportError(
                message=f"AI API call timed out after {self._settings.request_timeout}s",
                details={"model": payload["model"]},
                timed_out=True,
            ) from exc
        except APIStatusError as exc:
            raise TransportError(
                message=f"AI API call failed: {exc.message}",
                details={"model": payload["model"], "body": getattr(exc, "body", None)},
                status_code=exc.status_code,
            ) from exc
        except (APIError, httpx.TransportError) as exc:
            raise TransportError(
                message=f"AI API call failed: {exc}",
                details={"model": payload["model"]},
            ) from exc
        return self._normalize_completion(completion, payload["model"])

    def _client_for(self, api_key: str) -> AsyncOpenAI:
        if self._shared_client is not None:
            return self._shared_client
        client = self._clients.get(api_key)
        if client is None:
            client = self._build_client(self._settings, api_key)
            self._clients[api_key] = client
        return client

    def _build_client(self, settings: ClientSettings, api_key: str) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=api_key,
            base_url=settings.base_url,
            timeout=settings.request_timeout,
            max_retries=0,
            default_headers=headers,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        )

    def _coerce_messages(self, messages: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        normalized: List[Dict[str, Any]] = []
        for message in messages:
            if isinstance(message, MutableMapping):
                normalized.append(dict(message))
            else:
                try:
                    normalized.append(dict(message))
                except TypeError as exc:
                    raise TypeError("Messages must be mapping-like objects") from exc
        if not normalized:
            raise ValueError("At least one message is required to start a chat")
        return normalized

    def _build_chat_payload(
        self,
        *,
        messages: Sequence[Mapping[str, Any]],
        model: str | None,
        tools: Sequence[Mapping[str, Any]] | None,
        tool_choice: str | None,
        temperature: float | None,
        max_tokens: int | None,
        extra_params: Mapping[str, Any],
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model or self._settings.model,
            "messages": list(messages),
        }
        if self._settings.metadata:
            payload["metadata"] = dict(self._settings.metadata)
        if tools:
            payload["tools"] = [dict(tool) for tool in tools]
        if tool_choice:
            payload["tool_choice"] = tool_choice
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if extra_params:
            payload.update(extra_params)
        return payload

    def _normalize_completion(self, completion: Any, model: str) -> AIResponse:
        choices = getattr(completion, "choices", None) or []
        if not choices:
            raise TransportError(message="AI response contained no choices", details={"model": model})
        choice = choices[0]
        message = getattr(choice, "message", None)
        content = getattr(message, "content", None)
        tool_calls: list[ToolInvocation] = []
        for call in getattr(message, "tool_calls", None) or []:
            function = getattr(call, "function", None)
            name = getattr(function, "name", None)
            if not name:
                continue
            tool_calls.append(
                ToolInvocation(
                    name=str(name),
                    arguments=str(getattr(function, "arguments", "") or ""),
                    call_id=getattr(call, "id", None),
                )
            )
        usage: dict[str, int] = {}
        raw_usage = getattr(completion, "usage", None)
        for attr in ("prompt_tokens", "completion_tokens", "total_tokens"):
            value = getattr(raw_usage, attr, None)
            if isinstance(value, int):
                usage[attr] = value
        return AIResponse(
            content=content if isinstance(content, str) else None,
            tool_calls=tool_calls,
            model=getattr(completion, "model", None) or model,
            finish_reason=getattr(choice, "finish_reason", None),
            usage=usage,
        )

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("AI prompt payload (unserializable): %s", payload)
        else:
            LOGGER.debug("AI prompt payload:\n%s", serialized)

    async def aclose(self) -> None:
        """Close the underlying OpenAI clients to release network resources."""

        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            close = getattr(client, "close", None)
            if close is None:
                continue
            result = close()
            if inspect.isawaitable(result):
                await result


__all__ = [
    "AIClient",
    "ClientSettings",
    "ApproxCharCounter",
    "TiktokenCounter",
    "TokenCounterRegistry",
    "DEFAULT_BASE_URL",
    "DEFAULT_MODEL",
]
