"""
SmoothBrains Backend: LLM Interactions

All LLM calls via litellm: completion, structured output validation,
fallback chain, provider state caching, response caching and retries.
"""

import hashlib
import json
import re
import time
import warnings

import litellm
from pydantic import BaseModel, ValidationError
from tenacity import AsyncRetrying, RetryError, stop_after_attempt, wait_exponential

from smoothbrains import db
from smoothbrains.config import LLM_CONFIG, generate_error_code, log

# ── Suppress noisy litellm warnings ──────────────────────────────────────────
# litellm internally creates VertexLLM coroutines that sometimes go un-awaited
# when the gemini/ prefix routes through a code path that raises before awaiting.
warnings.filterwarnings(
    "ignore",
    message="coroutine 'VertexLLM.async_completion' was never awaited",
)
litellm.suppress_debug_info = True
litellm.drop_params = True  # Prevent unsupported-param errors across providers

# Module-level state
_active_provider: str | None = None
_initialized: bool = False

# ── Rate-limit cooldown cache ────────────────────────────────────────────────
# Maps provider name → time.monotonic() deadline. Providers in this dict are
# skipped until the deadline passes.
_rate_limited_until: dict[str, float] = {}
RATE_LIMIT_COOLDOWN_SECONDS = 600  # Skip rate-limited provider for 10 minutes
LLM_CALL_TIMEOUT_SECONDS = 60

# fetch_with_retry backoff: 1s, 2s, 4s ... capped at RETRY_MAX_WAIT_SECONDS
RETRY_BASE_SECONDS = 1
RETRY_MAX_WAIT_SECONDS = 8


def _is_rate_limit_error(error: Exception) -> bool:
    """Check if an error is a rate-limit / quota error (transient)."""
    error_str = str(error).lower()
    return any(kw in error_str for kw in (
        "rate_limit", "ratelimit", "429", "quota", "resource_exhausted",
        "timeout", "timed out",
    ))


def _mark_rate_limited(provider: str) -> None:
    """Record that a provider just hit a rate limit."""
    _rate_limited_until[provider] = time.monotonic() + RATE_LIMIT_COOLDOWN_SECONDS
    log("WARN", "provider rate-limited, will skip for cooldown",
        provider=provider, cooldown_seconds=RATE_LIMIT_COOLDOWN_SECONDS)


def _is_in_cooldown(provider: str) -> bool:
    """Return True if the provider is still in rate-limit cooldown."""
    deadline = _rate_limited_until.get(provider)
    if deadline is None:
        return False
    if time.monotonic() >= deadline:
        del _rate_limited_until[provider]
        return False
    return True


# ─────────────────────────────────────────────────────────────────────────────
# Custom Exceptions
# ─────────────────────────────────────────────────────────────────────────────


class LLMError(Exception):
    """All providers in the fallback chain failed."""

    pass


class LLMValidationError(Exception):
    """LLM output failed Pydantic validation even after retry."""

    def __init__(self, raw_output: str, expected_schema: str, error: str):
        self.raw_output = raw_output
        self.expected_schema = expected_schema
        super().__init__(f"LLM validation failed: {error}")


# ─────────────────────────────────────────────────────────────────────────────
# Core Functions
# ─────────────────────────────────────────────────────────────────────────────


async def call_llm(
    messages: list[dict],
    session_id: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> str:
    """
    Call the LLM with automatic per-request fallback through the entire chain.

    Every request walks the chain from position 0. Rate-limit errors are
    transient: the provider is skipped for a cooldown but the switch is not
    persisted. Non-transient failures (auth errors, model not found) persist
    the switch via llm_state so the team can see which provider is serving.

    Args:
        messages: List of message dicts (without system prompt - injected here).
        session_id: Optional session ID for logging correlation.
        temperature: Overrides LLM_CONFIG["temperature"] for this call.
        max_tokens: Overrides LLM_CONFIG["max_tokens"] for this call.

    Returns:
        Raw response content string from the LLM.

    Raises:
        LLMError: If all providers in the fallback chain fail.
    """
    await _ensure_initialized()
    full_messages = _inject_system_prompt(messages)
    chain = LLM_CONFIG["fallback_chain"]
    last_error: Exception | None = None
    tried_any = False

    for idx, provider in enumerate(chain):
        if _is_in_cooldown(provider):
            log("INFO", "skipping rate-limited provider", session_id=session_id, provider=provider)
            continue

        tried_any = True
        log("INFO", "llm call started", session_id=session_id, provider=provider)
        start = time.perf_counter()

        try:
            response = await litellm.acompletion(
                model=provider,
                messages=full_messages,
                temperature=LLM_CONFIG["temperature"] if temperature is None else temperature,
                max_tokens=max_tokens or LLM_CONFIG["max_tokens"],
                timeout=LLM_CALL_TIMEOUT_SECONDS,
            )
            duration_ms = int((time.perf_counter() - start) * 1000)

            content = ""
            if response.choices:
                content = response.choices[0].message.content or ""

            tokens_used = None
            if hasattr(response, "usage") and response.usage:
                tokens_used = getattr(response.usage, "total_tokens", None)

            if not content:
                log("WARN", "llm returned empty content, will try next provider",
                    session_id=session_id, provider=provider, duration_ms=duration_ms)
                raise ValueError(f"Provider {provider} returned empty content")

            log(
                "INFO",
                "llm call succeeded",
                session_id=session_id,
                provider=provider,
                duration_ms=duration_ms,
                tokens_used=tokens_used,
            )

            if provider != chain[0] and last_error and not _is_rate_limit_error(last_error):
                global _active_provider
                _active_provider = provider
                await db.update_llm_state(provider, reason=f"Fallback after: {last_error!s}")

            return content

        except Exception as e:
            code = generate_error_code()
            log(
                "ERROR",
                "llm call failed",
                session_id=session_id,
                provider=provider,
                error=str(e),
                error_code=code,
            )
            last_error = e

            if _is_rate_limit_error(e):
                _mark_rate_limited(provider)

            next_provider = next((p for p in chain[idx + 1:] if not _is_in_cooldown(p)), None)
            if next_provider:
                log(
                    "WARN",
                    "llm provider fallback",
                    session_id=session_id,
                    from_provider=provider,
                    to_provider=next_provider,
                    reason=str(e),
                )
            continue

    # Every provider was cooling down: clear cooldowns and try once more
    if not tried_any:
        log("WARN", "all providers in cooldown, clearing cooldowns for retry", session_id=session_id)
        _rate_limited_until.clear()
        return await call_llm(messages, session_id=session_id, temperature=temperature, max_tokens=max_tokens)

    raise LLMError("All LLM providers failed")


async def call_llm_structured(
    messages: list[dict],
    response_model: type[BaseModel],
    session_id: str | None = None,
    cache_ttl_minutes: int | None = None,
    cache_key: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> BaseModel:
    """
    Call LLM and validate the response against a Pydantic model.

    Steps:
        1. If cache_ttl_minutes is set, look the request up in llm_cache
           (under cache_key, or the hash of the messages when none is given)
        2. Call call_llm(messages) to get raw response
        3. Strip markdown code fences, parse JSON (falling back to extract_json), validate
        4. On JSONDecodeError or ValidationError retry once with a fix-up prompt
           that carries the broken output and the expected schema
        5. Store the validated result in llm_cache when caching is on

    Raises:
        LLMError: If every provider fails.
        LLMValidationError: If validation fails after retry.
    """
    if cache_ttl_minutes:
        cache_key = cache_key or make_cache_key(messages)
        cached = await get_cached_structured(cache_key, response_model, session_id=session_id)
        if cached is not None:
            return cached
    else:
        cache_key = None

    raw = await call_llm(messages, session_id=session_id, temperature=temperature, max_tokens=max_tokens)

    try:
        result = response_model.model_validate(_parse_json(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        log(
            "ERROR",
            "llm output validation failed",
            session_id=session_id,
            raw_output=raw[:500] + "..." if len(raw) > 500 else raw,
            schema=response_model.__name__,
            validation_error=str(e)[:300],
            error_code=generate_error_code(),
        )
        schema = json.dumps(response_model.model_json_schema(), indent=2)
        fix_instruction = (
            f"\n\n---\n\n"
            f"Your previous response had a JSON error. Here is what you returned:\n\n"
            f"```\n{raw}\n```\n\n"
            f"The error was: {e!s}\n\n"
            f"Please output ONLY valid JSON matching this schema (no markdown, no explanation):\n"
            f"{schema}"
        )
        retry_messages = [dict(m) for m in messages]
        if retry_messages and retry_messages[-1].get("role") == "user":
            retry_messages[-1]["content"] += fix_instruction
        else:
            retry_messages.append({"role": "user", "content": fix_instruction})

        retry_raw = await call_llm(
            retry_messages, session_id=session_id, temperature=temperature, max_tokens=max_tokens
        )
        try:
            result = response_model.model_validate(_parse_json(retry_raw))
        except (json.JSONDecodeError, ValidationError) as retry_e:
            raise LLMValidationError(raw_output=retry_raw, expected_schema=schema, error=str(retry_e))

    if cache_key:
        await db.store_llm_response(
            cache_key,
            model=_active_provider or LLM_CONFIG["fallback_chain"][0],
            response=result.model_dump(),
            ttl_minutes=cache_ttl_minutes,
        )
    return result


async def get_cached_structured(
    cache_key: str,
    response_model: type[BaseModel],
    session_id: str | None = None,
) -> BaseModel | None:
    """Cached response for cache_key validated as response_model, or None."""
    cached = await db.get_cached_llm_response(cache_key)
    if cached is None:
        return None
    try:
        result = response_model.model_validate(cached)
    except ValidationError:
        log("WARN", "llm cache entry no longer matches schema", session_id=session_id,
            schema=response_model.__name__)
        return None
    log("INFO", "llm cache hit", session_id=session_id, schema=response_model.__name__)
    return result


async def fetch_with_retry(
    messages: list[dict],
    retries: int = 2,
    session_id: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> str:
    """
    call_llm with `retries` extra attempts and exponential backoff between them.

    Raises the last LLMError once every attempt has failed.
    """
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(retries + 1),
            wait=wait_exponential(multiplier=RETRY_BASE_SECONDS, max=RETRY_MAX_WAIT_SECONDS),
            reraise=False,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    log("WARN", "retrying llm call", session_id=session_id,
                        attempt=attempt.retry_state.attempt_number)
                return await call_llm(
                    messages, session_id=session_id, temperature=temperature, max_tokens=max_tokens
                )
    except RetryError as e:
        last = e.last_attempt.exception()
        raise LLMError(f"LLM call failed after {retries + 1} attempts: {last}") from last


# ─────────────────────────────────────────────────────────────────────────────
# Initialization & Fallback
# ─────────────────────────────────────────────────────────────────────────────


async def _ensure_initialized() -> None:
    """
    Load the active provider from the DB on first call.
    Called automatically by call_llm().
    """
    global _active_provider, _initialized
    if not _initialized:
        _active_provider = await db.get_llm_state()
        _initialized = True


# ─────────────────────────────────────────────────────────────────────────────
# Helper Functions
# ─────────────────────────────────────────────────────────────────────────────


def make_cache_key(messages: list[dict]) -> str:
    """sha256 over the provider chain and the messages, stable across dict ordering."""
    payload = json.dumps(
        {"chain": LLM_CONFIG["fallback_chain"], "messages": messages},
        sort_keys=True,
        ensure_ascii=False,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def extract_json(text: str) -> dict | list | None:
    """
    Pull the first JSON object or array out of free-form LLM text.

    Tries the whole (fence-stripped) text first, then the outermost {...},
    then the outermost [...]. Returns None if nothing parses.
    """
    if not text or not isinstance(text, str):
        return None
    candidates = [_strip_code_fences(text)]
    for pattern in (r"\{.*\}", r"\[.*\]"):
        match = re.search(pattern, text, re.DOTALL)
        if match:
            candidates.append(match.group(0))
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    return None


def _parse_json(raw: str) -> dict | list:
    """json.loads on the fence-stripped text, then extract_json for JSON wrapped in prose."""
    try:
        return json.loads(_strip_code_fences(raw))
    except json.JSONDecodeError:
        extracted = extract_json(raw)
        if extracted is None:
            raise
        return extracted


def _inject_system_prompt(messages: list[dict]) -> list[dict]:
    """
    Prepend the persona system prompt unless the caller supplied its own.
    Returns a new list (does not mutate the input).
    """
    if messages and messages[0].get("role") == "system":
        return list(messages)
    system_msg = {
        "role": "system",
        "content": LLM_CONFIG["persona"]["system_prompt"],
    }
    return [system_msg] + list(messages)


def _strip_code_fences(text: str) -> str:
    """
    Remove markdown code fences from LLM output.
    Handles: ```json\n...\n```, ```\n...\n```, and plain text.
    """
    if not text or not isinstance(text, str):
        return text
    stripped = text.strip()
    match = re.match(r"^```(?:json)?\s*\n?(.*?)\n?```\s*$", stripped, re.DOTALL)
    if match:
        return match.group(1).strip()
    return stripped
