"""
Gemini transport, spoken over its OpenAI-compatible chat completions API.

  - one pooled httpx.AsyncClient per process, bounded read timeout
  - 429 / 5xx / timeouts / connection errors retried with exponential backoff
    and jitter; Retry-After is honoured when present
  - 401 / 403 fail immediately with AuthError naming the key variable
  - token usage comes back on every ChatResult, nothing is kept globally
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..core.config import get_settings
from ..core.errors import AuthError, ConfigurationError, MalformedResponseError, UpstreamError
from ..core.flags import get_flags

logger = logging.getLogger(__name__)

API_KEY_ENV = "GEMINI_API_KEY_AI"

# ── Shared client ────────────────────────────────────────────────────

_client: Optional[httpx.AsyncClient] = None


def _get_client() -> httpx.AsyncClient:
    global _client
    if _client is None or _client.is_closed:
        read_timeout = get_settings().analysis_timeout
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(read_timeout, connect=10.0),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        )
    return _client


async def close_client():
    global _client
    if _client is not None and not _client.is_closed:
        await _client.aclose()
    _client = None


# ── Provider ─────────────────────────────────────────────────────────

def _get_provider_config() -> tuple[str, str, str]:
    """(base_url, api_key, default_model) for the configured provider."""
    provider = get_flags().llm_provider.lower()
    if provider != "gemini":
        raise ConfigurationError(f"Unsupported LLM provider '{provider}'. Only 'gemini' is available.")
    settings = get_settings()
    return settings.gemini_base_url, settings.gemini_api_key.strip(), settings.analysis_model


def mask_key(api_key: str) -> str:
    if len(api_key) <= 14:
        return "***"
    return f"{api_key[:10]}...{api_key[-4:]}"


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class ChatResult:
    content: str
    model: str
    usage: Optional[TokenUsage] = None


# ── Retries ──────────────────────────────────────────────────────────

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
AUTH_STATUS = {401, 403}
MAX_RETRIES = 3
BASE_DELAY = 1.0
MAX_DELAY = 16.0


def _backoff_delay(attempt: int, retry_after: Optional[str] = None) -> float:
    if retry_after:
        try:
            return min(MAX_DELAY, float(retry_after))
        except ValueError:
            pass
    return min(MAX_DELAY, BASE_DELAY * (2 ** attempt) + random.uniform(0, 1))


async def _post_with_retries(client: httpx.AsyncClient, url: str, **kwargs) -> httpx.Response:
    attempts = MAX_RETRIES + 1
    failure: Exception = UpstreamError("LLM request was never attempted")

    for attempt in range(attempts):
        retry_after = None
        try:
            resp = await client.post(url, **kwargs)
        except (httpx.TimeoutException, httpx.TransportError) as e:
            logger.warning("LLM %s (attempt %d/%d): %s", type(e).__name__, attempt + 1, attempts, e)
            failure = UpstreamError(f"LLM request failed: {e}")
            failure.__cause__ = e
        else:
            if resp.status_code in AUTH_STATUS:
                logger.error("LLM API rejected credentials (%d): %s", resp.status_code, resp.text[:300])
                raise AuthError(
                    f"API key invalid or without permission. Check {API_KEY_ENV}.",
                    status_code=resp.status_code,
                )
            if resp.status_code not in RETRYABLE_STATUS:
                if resp.status_code >= 400:
                    logger.error("LLM API error %d: %s", resp.status_code, resp.text[:300])
                    raise UpstreamError(f"LLM API returned {resp.status_code}", status_code=resp.status_code)
                return resp
            logger.warning("LLM %d (attempt %d/%d)", resp.status_code, attempt + 1, attempts)
            failure = UpstreamError(f"LLM API returned {resp.status_code}", status_code=resp.status_code)
            retry_after = resp.headers.get("retry-after")

        if attempt < attempts - 1:
            await asyncio.sleep(_backoff_delay(attempt, retry_after))

    raise failure


# ── Completions ──────────────────────────────────────────────────────

def _build_messages(prompt: str, system: str = "", image_urls: Optional[list[str]] = None) -> list[dict]:
    user_content: Any = prompt
    if image_urls:
        user_content = [{"type": "text", "text": prompt}]
        user_content += [{"type": "image_url", "image_url": {"url": u}} for u in image_urls]

    messages = [{"role": "system", "content": system}] if system else []
    messages.append({"role": "user", "content": user_content})
    return messages


def _parse_usage(data: dict) -> Optional[TokenUsage]:
    raw = data.get("usage")
    if not isinstance(raw, dict):
        return None
    return TokenUsage(
        input_tokens=int(raw.get("prompt_tokens") or 0),
        output_tokens=int(raw.get("completion_tokens") or 0),
    )


async def chat(
    messages: list[dict],
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> ChatResult:
    """
    One chat completion. Raises ConfigurationError before any network call
    when the key is missing. `ChatResult.model` is the model that was asked
    for, which is also the one cost pricing is keyed on.
    """
    base_url, api_key, default_model = _get_provider_config()
    if not api_key:
        raise ConfigurationError(f"{API_KEY_ENV} is not configured. Set the Gemini API key to analyze files.")

    settings = get_settings()
    requested_model = model or default_model
    payload = {
        "model": requested_model,
        "messages": messages,
        "temperature": settings.analysis_temperature if temperature is None else temperature,
        "max_tokens": max_tokens or settings.analysis_max_tokens,
    }

    started = time.monotonic()
    resp = await _post_with_retries(
        _get_client(),
        f"{base_url.rstrip('/')}/chat/completions",
        json=payload,
        headers={"Authorization": f"Bearer {api_key}"},
    )

    try:
        data = resp.json()
        content = data["choices"][0]["message"]["content"] or ""
        usage = _parse_usage(data)
    except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
        raise MalformedResponseError(f"Unexpected completion payload: {e}") from e
    if not isinstance(content, str):
        raise MalformedResponseError(f"Completion content is {type(content).__name__}, expected text")

    logger.info(
        "LLM chat: %dms | in=%d out=%d tokens | model=%s | key=%s",
        int((time.monotonic() - started) * 1000),
        usage.input_tokens if usage else 0,
        usage.output_tokens if usage else 0,
        requested_model,
        mask_key(api_key),
    )
    return ChatResult(content=content, model=requested_model, usage=usage)


async def chat_with_vision(
    prompt: str,
    image_urls: list[str],
    system: str = "",
    model: Optional[str] = None,
    max_tokens: Optional[int] = None,
) -> ChatResult:
    """Prompt plus images/PDFs given as data URLs."""
    return await chat(_build_messages(prompt, system, image_urls), model=model, max_tokens=max_tokens)


async def chat_simple(
    prompt: str,
    system: str = "",
    model: Optional[str] = None,
    max_tokens: Optional[int] = None,
) -> ChatResult:
    return await chat(_build_messages(prompt, system), model=model, max_tokens=max_tokens)
