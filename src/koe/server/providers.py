"""Upstream calls made by the relay: language models and AivisSpeech."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
OPENAI_URL = "https://api.openai.com/v1/chat/completions"
GROQ_URL = "https://api.groq.com/openai/v1/chat/completions"
AIVIS_TTS_URL = "https://api.aivis-project.com/v1/tts/synthesize"

DEFAULT_MODELS = {
    "gemini": "gemini-2.0-flash-exp",
    "openai": "gpt-4o-mini",
    "groq": "llama-3.3-70b-versatile",
}
CHAT_PROVIDERS = tuple(DEFAULT_MODELS)
KEY_PROVIDERS = (*CHAT_PROVIDERS, "aivis")

DEFAULT_VOICE_MODEL_ID = "a59cb814-0083-4369-8542-f51a29e72af7"
VOICE_MODELS: list[dict[str, Any]] = [
    {
        "uuid": DEFAULT_VOICE_MODEL_ID,
        "name": "Default voice",
        "description": "Standard voice model",
        "voice_type": "female",
        "styles": ["normal"],
    }
]

QUALITY_PRESETS = {
    "low": (24000, 128),
    "medium": (44100, 192),
    "high": (48000, 320),
}

USER_AGENT = "koe-relay/0.3"
TEMPERATURE = 0.7


class ProviderError(Exception):
    """Raised when an upstream provider call fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class KeyCheck:
    """Outcome of an API key test."""

    valid: bool
    message: str


def build_instruction(max_length: int, character_setting: str = "") -> str:
    """Fixed instruction sent with every chat message."""
    instruction = (
        f"Reply in at most {max_length} characters, in a friendly and concise way. "
        "Avoid long explanations and give only the key points. "
        "Reply in the language of the user's message."
    )
    if character_setting.strip():
        instruction = (
            f"Respond according to this character setting: {character_setting.strip()}\n\n"
            f"{instruction}"
        )
    return instruction


def max_tokens_for(max_length: int) -> int:
    """Token budget for a reply of ``max_length`` characters."""
    return math.ceil(max_length * 1.5)


def _upstream_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return response.reason_phrase or "Unknown error"


async def _post_json(
    http: httpx.AsyncClient,
    url: str,
    body: dict[str, Any],
    provider: str,
    headers: dict[str, str] | None = None,
    params: dict[str, str] | None = None,
) -> dict[str, Any]:
    try:
        response = await http.post(url, json=body, headers=headers, params=params)
    except httpx.TimeoutException as e:
        raise ProviderError(f"{provider} API timed out") from e
    except httpx.HTTPError as e:
        raise ProviderError(f"{provider} API unreachable: {e}") from e

    if response.is_error:
        raise ProviderError(
            f"{provider} API error: {response.status_code} - {_upstream_message(response)}",
            status_code=response.status_code,
        )
    try:
        return response.json()
    except ValueError as e:
        raise ProviderError(f"{provider} API returned invalid JSON") from e


async def _gemini_reply(
    http: httpx.AsyncClient, api_key: str, model: str, instruction: str, message: str
) -> str:
    data = await _post_json(
        http,
        GEMINI_URL.format(model=model),
        {"contents": [{"parts": [{"text": f"{instruction}\n\nUser message: {message}"}]}]},
        "Gemini",
        params={"key": api_key},
    )
    try:
        parts = data["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError) as e:
        raise ProviderError("Gemini API returned no candidates") from e
    return "".join(part.get("text", "") for part in parts)


async def _openai_style_reply(
    http: httpx.AsyncClient,
    url: str,
    provider: str,
    api_key: str,
    model: str,
    instruction: str,
    message: str,
    max_length: int,
) -> str:
    data = await _post_json(
        http,
        url,
        {
            "model": model,
            "messages": [
                {"role": "system", "content": instruction},
                {"role": "user", "content": message},
            ],
            "max_tokens": max_tokens_for(max_length),
            "temperature": TEMPERATURE,
        },
        provider,
        headers={"Authorization": f"Bearer {api_key}"},
    )
    try:
        return str(data["choices"][0]["message"]["content"])
    except (KeyError, IndexError, TypeError) as e:
        raise ProviderError(f"{provider} API returned no choices") from e


async def generate_reply(
    http: httpx.AsyncClient,
    provider: str,
    api_key: str,
    message: str,
    model: str | None = None,
    max_length: int = 100,
    character_setting: str = "",
) -> str:
    """Ask a language model for a short reply.

    Args:
        http: Client for upstream calls
        provider: One of gemini, openai, groq
        api_key: Provider API key
        message: User message
        model: Provider model, default per provider if None
        max_length: Target reply length in characters
        character_setting: Persona description

    Returns:
        Reply text

    Raises:
        ProviderError: If the provider call fails
    """
    model = model or DEFAULT_MODELS[provider]
    instruction = build_instruction(max_length, character_setting)
    logger.info(f"Chat request to {provider} ({model})")

    if provider == "gemini":
        return await _gemini_reply(http, api_key, model, instruction, message)
    if provider == "openai":
        return await _openai_style_reply(
            http, OPENAI_URL, "OpenAI", api_key, model, instruction, message, max_length
        )
    if provider == "groq":
        return await _openai_style_reply(
            http, GROQ_URL, "Groq", api_key, model, instruction, message, max_length
        )
    raise ProviderError(f"Unsupported provider: {provider}")


def aivis_request(
    http: httpx.AsyncClient,
    api_key: str,
    text: str,
    model_id: str,
    quality: str = "medium",
    url: str = AIVIS_TTS_URL,
) -> httpx.Request:
    """Build an AivisSpeech synthesis request."""
    sample_rate, bitrate = QUALITY_PRESETS.get(quality, QUALITY_PRESETS["medium"])
    return http.build_request(
        "POST",
        url,
        json={
            "model_uuid": model_id,
            "text": text,
            "use_ssml": True,
            "output_format": "mp3",
            "output_sampling_rate": sample_rate,
            "output_audio_bitrate": bitrate,
        },
        headers={"Authorization": f"Bearer {api_key}", "User-Agent": USER_AGENT},
    )


async def check_api_key(
    http: httpx.AsyncClient, provider: str, api_key: str, tts_url: str = AIVIS_TTS_URL
) -> KeyCheck:
    """Make a minimal call to see whether a provider accepts a key."""
    if not api_key.strip():
        return KeyCheck(False, f"{provider} API key is empty")

    try:
        if provider == "gemini":
            await _gemini_reply(http, api_key, DEFAULT_MODELS["gemini"], "", "Hello")
        elif provider in ("openai", "groq"):
            url = OPENAI_URL if provider == "openai" else GROQ_URL
            await _post_json(
                http,
                url,
                {
                    "model": DEFAULT_MODELS[provider],
                    "messages": [{"role": "user", "content": "Hello"}],
                    "max_tokens": 10,
                },
                provider,
                headers={"Authorization": f"Bearer {api_key}"},
            )
        elif provider == "aivis":
            request = aivis_request(http, api_key, "テスト", DEFAULT_VOICE_MODEL_ID, url=tts_url)
            try:
                response = await http.send(request)
            except httpx.HTTPError as e:
                raise ProviderError(f"aivis API unreachable: {e}") from e
            if response.is_error:
                raise ProviderError(
                    f"aivis API error: {response.status_code} - {_upstream_message(response)}",
                    status_code=response.status_code,
                )
        else:
            raise ProviderError(f"Unsupported provider: {provider}")
    except ProviderError as e:
        logger.info(f"API key test failed for {provider}: {e}")
        return KeyCheck(False, f"{provider} API connection failed: {e}")

    return KeyCheck(True, f"{provider} API connection succeeded")


__all__ = [
    "AIVIS_TTS_URL",
    "CHAT_PROVIDERS",
    "DEFAULT_MODELS",
    "DEFAULT_VOICE_MODEL_ID",
    "KEY_PROVIDERS",
    "KeyCheck",
    "ProviderError",
    "QUALITY_PRESETS",
    "VOICE_MODELS",
    "aivis_request",
    "build_instruction",
    "check_api_key",
    "generate_reply",
    "max_tokens_for",
]
