"""
Novah: AI Engine
================
The single `(prompt) -> text` capability used by every pipeline stage,
backed by Gemini and Groq with automatic failover.

Features:
  - Multi-provider hybrid call with failover (no retry beyond that)
  - Per-call timeout
  - Robust JSON extraction from free-form model output
  - parse_or_fallback: typed parsing where every failure degrades to a
    caller-supplied fallback value
"""

import json
import re
import logging
import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

import google.generativeai as genai
from groq import AsyncGroq

from novah.core.config import settings
from novah.core.exceptions import MalformedUpstreamOutput, UpstreamFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Anything with the signature of `complete`; tests inject fakes here.
CompletionFn = Callable[..., Awaitable[str]]

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CLIENT INITIALIZATION
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

logger.info(f"[AI-ENGINE] Provider mode: {settings.AI_PROVIDER}")

groq_client: Optional[AsyncGroq] = None
if settings.GROQ_API_KEY:
    groq_client = AsyncGroq(api_key=settings.GROQ_API_KEY)
    logger.info("[AI-ENGINE] ✓ Groq client ready")
else:
    logger.warning("[AI-ENGINE] ✗ Groq API key missing")

if settings.GOOGLE_API_KEY:
    genai.configure(api_key=settings.GOOGLE_API_KEY, transport="rest")
    logger.info("[AI-ENGINE] ✓ Gemini client ready")
else:
    logger.warning("[AI-ENGINE] ✗ Google API key missing")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SYSTEM PROMPT
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

DEFAULT_SYSTEM_PROMPT = (
    "You are Novah, an expert research assistant.\n"
    "RULES:\n"
    "1. Follow the requested output format exactly.\n"
    "2. When JSON is requested, output ONLY valid JSON, without markdown fences or commentary.\n"
    "3. Do NOT invent citations you cannot attribute to a plausible public source.\n"
)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# JSON RECOVERY
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def clean_and_parse_json(raw_text: str) -> Any:
    """
    Robust JSON extractor:
    1. Strip markdown code fences (```json ... ```)
    2. Extract the outermost { ... } or [ ... ] block
    3. Parse with json.loads
    Raises MalformedUpstreamOutput on failure with diagnostic info.
    """
    if not raw_text or not raw_text.strip():
        raise MalformedUpstreamOutput("Empty AI response received")

    cleaned = raw_text.strip()

    # Strategy 1: Remove ```json ... ``` wrapper
    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)\n?\s*```", cleaned, re.DOTALL)
    if fence_match:
        cleaned = fence_match.group(1).strip()

    # Strategy 2: Find the first { ... } or [ ... ] block
    if not cleaned.startswith(("{", "[")):
        block_match = re.search(r"\{.*\}|\[.*\]", cleaned, re.DOTALL)
        if block_match:
            cleaned = block_match.group(0)

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"[AI-ENGINE] JSON parse failed. Raw (first 500 chars): {raw_text[:500]}")
        raise MalformedUpstreamOutput(f"AI returned invalid JSON: {e}") from e


def parse_or_fallback(
    raw_text: str,
    validator: Callable[[Any], T],
    fallback_factory: Callable[[], T],
    *,
    label: str = "AI",
) -> T:
    """
    Parse `raw_text` as JSON and hand it to `validator`. Any parse or
    validation failure returns `fallback_factory()` instead of raising.
    """
    try:
        return validator(clean_and_parse_json(raw_text))
    except (ValueError, TypeError, KeyError) as e:  # ValidationError is a ValueError
        logger.warning(f"[{label}] Malformed AI output, using fallback: {str(e)[:200]}")
        return fallback_factory()


async def complete_and_parse(
    llm: CompletionFn,
    prompt: str,
    validator: Callable[[Any], T],
    fallback_factory: Callable[[], T],
    *,
    label: str = "AI",
    **llm_kwargs,
) -> T:
    """One attempt of `llm`, then parse_or_fallback. Never raises."""
    try:
        raw = await llm(prompt, **llm_kwargs)
    except Exception as e:
        logger.warning(f"[{label}] AI call failed, using fallback: {str(e)[:200]}")
        return fallback_factory()
    return parse_or_fallback(raw, validator, fallback_factory, label=label)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PROVIDER CALLS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

async def _call_groq(system_prompt: str, user_prompt: str, json_mode: bool = True) -> str:
    """Call Groq (Llama 3), optionally in JSON mode."""
    if not groq_client:
        raise ValueError("Groq API Key missing")

    logger.info(f"[AI-ENGINE] Calling Groq ({settings.GROQ_MODEL})...")
    completion = await groq_client.chat.completions.create(
        model=settings.GROQ_MODEL,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        response_format={"type": "json_object"} if json_mode else None,
        temperature=0.3,
        max_tokens=8000,
    )
    result = completion.choices[0].message.content
    logger.info("[AI-ENGINE] ✓ Groq call succeeded")
    return result


async def _call_gemini(system_prompt: str, user_prompt: str, json_mode: bool = True) -> str:
    """Call Gemini, optionally in JSON mode."""
    if not settings.GOOGLE_API_KEY:
        raise ValueError("Google API Key missing")

    logger.info(f"[AI-ENGINE] Calling Gemini ({settings.GEMINI_MODEL})...")
    config: dict[str, Any] = {"temperature": 0.3}
    if json_mode:
        config["response_mime_type"] = "application/json"

    model = genai.GenerativeModel(
        model_name=settings.GEMINI_MODEL,
        generation_config=config,
    )
    full_prompt = f"{system_prompt}\n\nUser Task:\n{user_prompt}"
    response = await asyncio.to_thread(model.generate_content, full_prompt)
    logger.info("[AI-ENGINE] ✓ Gemini call succeeded")
    return response.text


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# HYBRID CALL WITH FAILOVER
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

async def _hybrid_call(
    system_prompt: str,
    user_prompt: str,
    primary: str = "gemini",
    json_mode: bool = True,
) -> str:
    """
    Execute AI call with automatic failover.
    In 'hybrid' mode: tries primary first, then the other.
    Each provider attempt is bounded by AI_CALL_TIMEOUT_SECONDS.
    """
    provider = settings.AI_PROVIDER

    if provider == "groq":
        callers = [("Groq", _call_groq)]
    elif provider == "gemini":
        callers = [("Gemini", _call_gemini)]
    else:  # hybrid
        if primary == "groq":
            callers = [("Groq", _call_groq), ("Gemini", _call_gemini)]
        else:
            callers = [("Gemini", _call_gemini), ("Groq", _call_groq)]

    last_error = None
    for name, caller in callers:
        try:
            return await asyncio.wait_for(
                caller(system_prompt, user_prompt, json_mode),
                timeout=settings.AI_CALL_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            last_error = TimeoutError(f"{name} timed out after {settings.AI_CALL_TIMEOUT_SECONDS}s")
            logger.warning(f"[AI-ENGINE] {name} timed out. Trying next...")
        except Exception as e:
            last_error = e
            logger.warning(f"[AI-ENGINE] {name} failed: {str(e)[:200]}. Trying next...")

    raise UpstreamFailure(f"All AI providers failed. Last error: {last_error}")


async def complete(
    prompt: str,
    *,
    system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    json_mode: bool = True,
    primary: str = "gemini",
) -> str:
    """The `(prompt) -> raw text` capability. Raises UpstreamFailure."""
    return await _hybrid_call(system_prompt, prompt, primary=primary, json_mode=json_mode)
