"""Application factory for the koe relay server.

The relay keeps provider API keys and the shared password on the server,
hands out session tokens, limits request rates and forwards chat and
speech synthesis calls upstream.
"""

from __future__ import annotations

import hmac
import logging
import os
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from ..config import ServerConfig
from .providers import (
    CHAT_PROVIDERS,
    KEY_PROVIDERS,
    VOICE_MODELS,
    ProviderError,
    aivis_request,
    check_api_key,
    generate_reply,
)
from .rate_limit import RateLimiter
from .schemas import (
    ApiError,
    ChatRequest,
    ChatResponse,
    KeyCheckRequest,
    KeyCheckResponse,
    LoginRequest,
    LoginResponse,
    StatusResponse,
    TTSRequest,
    VoiceModelInfo,
)
from .sessions import SessionStore

logger = logging.getLogger(__name__)

MAX_TTS_TEXT_LENGTH = 5000
MAX_CHAT_MESSAGE_LENGTH = 2000
MIN_AUDIO_BYTES = 1000

KEY_ENV_VARS = {
    "gemini": "GEMINI_API_KEY",
    "openai": "OPENAI_API_KEY",
    "groq": "GROQ_API_KEY",
    "aivis": "AIVIS_API_KEY",
}


@dataclass
class RelaySecrets:
    """Password and provider keys held by the server."""

    master_password: str | None = None
    api_keys: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> RelaySecrets:
        """Read secrets from environment variables."""
        env = os.environ if env is None else env
        keys = {
            provider: env[name] for provider, name in KEY_ENV_VARS.items() if env.get(name)
        }
        return cls(master_password=env.get("MASTER_PASSWORD") or None, api_keys=keys)


@dataclass
class RelayState:
    """Everything the routes share."""

    config: ServerConfig
    secrets: RelaySecrets
    sessions: SessionStore
    general_limiter: RateLimiter
    api_limiter: RateLimiter
    http: httpx.AsyncClient


def get_state(request: Request) -> RelayState:
    return request.app.state.relay


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def require_session(request: Request, state: RelayState = Depends(get_state)) -> str:
    """Reject requests without a live session token; extend the session."""
    token = _bearer_token(request)
    if token is None:
        raise ApiError(401, "Authentication token required")
    if not state.sessions.touch(token):
        raise ApiError(401, "Invalid or expired authentication token")
    return token


def api_rate_limit(request: Request, state: RelayState = Depends(get_state)) -> None:
    """Stricter limit for endpoints that call upstream providers."""
    if not state.api_limiter.hit(client_key(request)):
        raise ApiError(429, "Too many API requests, please wait a moment")


def _resolve_key(state: RelayState, provider: str, override: str | None) -> str:
    key = override or state.secrets.api_keys.get(provider)
    if not key:
        raise ApiError(400, f"{provider} API key is not configured")
    return key


def create_app(
    config: ServerConfig | None = None,
    secrets: RelaySecrets | None = None,
    http: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Create the relay application.

    Args:
        config: Server configuration (defaults if None)
        secrets: Password and keys (read from the environment if None)
        http: Client for upstream calls (tests pass a mock transport)

    Returns:
        FastAPI application
    """
    config = config or ServerConfig()
    secrets = secrets or RelaySecrets.from_env()
    owns_http = http is None
    upstream = http or httpx.AsyncClient(timeout=config.upstream_timeout)

    if not secrets.master_password:
        logger.warning("MASTER_PASSWORD is not set; every login will be rejected")

    state = RelayState(
        config=config,
        secrets=secrets,
        sessions=SessionStore(duration_s=config.session_duration_s),
        general_limiter=RateLimiter(config.general_rate_limit, config.general_rate_window_s),
        api_limiter=RateLimiter(config.api_rate_limit, config.api_rate_window_s),
        http=upstream,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(f"Relay ready (providers with keys: {sorted(secrets.api_keys) or 'none'})")
        yield
        if owns_http:
            await upstream.aclose()

    app = FastAPI(title="koe relay", lifespan=lifespan)
    app.state.relay = state

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def general_rate_limit(request: Request, call_next):
        if not state.general_limiter.hit(client_key(request)):
            return JSONResponse(
                status_code=429,
                content=ApiError(429, "Too many requests, please try again later").body(),
            )
        return await call_next(request)

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.body())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=ApiError(400, "Invalid request body", errors).body(),
        )

    @app.post("/api/login", response_model=LoginResponse)
    async def login(payload: LoginRequest) -> LoginResponse:
        expected = secrets.master_password
        supplied = payload.password or ""
        if not expected or not hmac.compare_digest(supplied.encode(), expected.encode()):
            logger.info("Login rejected")
            raise ApiError(401, "Incorrect password")
        token = state.sessions.create()
        return LoginResponse(token=token, expiresIn=int(state.sessions.duration_s * 1000))

    @app.post("/api/logout", response_model=StatusResponse)
    async def logout(request: Request) -> StatusResponse:
        token = _bearer_token(request)
        if token is not None and state.sessions.revoke(token):
            logger.info("Session closed")
        return StatusResponse(message="Logged out")

    @app.get("/api/verify", response_model=StatusResponse)
    async def verify(_: str = Depends(require_session)) -> StatusResponse:
        return StatusResponse(message="Authenticated")

    @app.get("/api/models", response_model=list[VoiceModelInfo])
    async def list_models(_: str = Depends(require_session)) -> list[VoiceModelInfo]:
        return [VoiceModelInfo(**model) for model in VOICE_MODELS]

    @app.post(
        "/api/test-api-key",
        response_model=KeyCheckResponse,
        dependencies=[Depends(api_rate_limit)],
    )
    async def test_api_key(
        payload: KeyCheckRequest, _: str = Depends(require_session)
    ) -> KeyCheckResponse:
        if not payload.provider or not payload.apiKey:
            raise ApiError(400, "provider and apiKey are required")
        if payload.provider not in KEY_PROVIDERS:
            raise ApiError(400, f"Unsupported provider: {payload.provider}")
        result = await check_api_key(upstream, payload.provider, payload.apiKey, config.tts_api_url)
        return KeyCheckResponse(provider=payload.provider, valid=result.valid, message=result.message)

    @app.post("/api/chat", response_model=ChatResponse, dependencies=[Depends(api_rate_limit)])
    async def chat(payload: ChatRequest, _: str = Depends(require_session)) -> ChatResponse:
        if not payload.message or not payload.message.strip():
            raise ApiError(400, "message is required")
        if len(payload.message) > MAX_CHAT_MESSAGE_LENGTH:
            raise ApiError(400, f"message must be at most {MAX_CHAT_MESSAGE_LENGTH} characters")
        if payload.provider not in CHAT_PROVIDERS:
            raise ApiError(400, f"provider must be one of {', '.join(CHAT_PROVIDERS)}")

        api_key = _resolve_key(state, payload.provider, payload.apiKeys.get(payload.provider))
        try:
            reply = await generate_reply(
                upstream,
                payload.provider,
                api_key,
                payload.message,
                model=payload.model,
                max_length=payload.maxLength,
                character_setting=payload.characterSetting,
            )
        except ProviderError as e:
            raise ApiError(500, f"AI API error: {e}") from e
        return ChatResponse(response=reply)

    @app.post("/api/tts", dependencies=[Depends(api_rate_limit)])
    async def tts(payload: TTSRequest, _: str = Depends(require_session)) -> Response:
        if not payload.text:
            raise ApiError(400, "text is required")
        if len(payload.text) > MAX_TTS_TEXT_LENGTH:
            raise ApiError(400, f"text must be at most {MAX_TTS_TEXT_LENGTH} characters")
        if not payload.modelId:
            raise ApiError(400, "modelId is required")

        api_key = _resolve_key(state, "aivis", payload.apiKeys.get("aivis"))
        request = aivis_request(
            upstream,
            api_key,
            payload.text,
            payload.modelId,
            payload.quality,
            url=config.tts_api_url,
        )
        try:
            upstream_response = await upstream.send(request, stream=True)
        except httpx.HTTPError as e:
            raise ApiError(502, f"AIVIS API unreachable: {e}") from e

        if upstream_response.is_error:
            details = (await upstream_response.aread()).decode("utf-8", errors="replace")
            await upstream_response.aclose()
            logger.warning(f"AIVIS API error {upstream_response.status_code}")
            raise ApiError(
                upstream_response.status_code,
                f"AIVIS API error: {upstream_response.status_code} "
                f"{upstream_response.reason_phrase}",
                details,
            )

        content_type = upstream_response.headers.get("content-type", "audio/mpeg")
        if "application/json" in content_type:
            body = await upstream_response.aread()
            await upstream_response.aclose()
            return Response(content=body, media_type="application/json")

        if config.buffer_tts:
            audio = await upstream_response.aread()
            await upstream_response.aclose()
            if len(audio) < MIN_AUDIO_BYTES:
                raise ApiError(
                    503,
                    "AIVIS API returned too little audio data",
                    f"{len(audio)} bytes",
                )
            return Response(content=audio, media_type=content_type)

        return StreamingResponse(
            upstream_response.aiter_bytes(),
            media_type=content_type,
            headers={"Cache-Control": "no-cache"},
            background=BackgroundTask(upstream_response.aclose),
        )

    return app


__all__ = [
    "RelaySecrets",
    "RelayState",
    "api_rate_limit",
    "create_app",
    "get_state",
    "require_session",
]
