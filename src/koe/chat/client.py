"""Client for the koe relay server.

Holds the session token on a shared ``httpx.AsyncClient`` so the speech
request client can reuse the authenticated connection.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..errors import AuthError, TransportError, ValidationError
from ..tts.request import MAX_TEXT_LENGTH, SpeechRequestClient, error_from_response

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000
PROVIDERS = ("gemini", "openai", "groq")


@dataclass
class VoiceModel:
    """Voice offered by the synthesis service."""

    uuid: str
    name: str
    description: str = ""
    voice_type: str = ""
    styles: list[str] = field(default_factory=list)


class RelayClient:
    """Async client for the relay's session, chat and model endpoints."""

    def __init__(
        self,
        base_url: str = "http://localhost:3001",
        timeout: float = 30.0,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize relay client.

        Args:
            base_url: Relay server URL
            timeout: Request timeout in seconds
            http: Preconfigured client (tests pass one with a mock transport)
        """
        self._http = http or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._token: str | None = None

    @property
    def http(self) -> httpx.AsyncClient:
        """Shared HTTP client carrying the session token."""
        return self._http

    @property
    def is_authenticated(self) -> bool:
        """Return True once a session token is held."""
        return self._token is not None

    def speech_client(self, max_text_length: int = MAX_TEXT_LENGTH) -> SpeechRequestClient:
        """Create a speech request client sharing this connection."""
        return SpeechRequestClient(self._http, max_text_length=max_text_length)

    async def __aenter__(self) -> "RelayClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP connection pool."""
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransportError(f"Relay timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Relay unreachable: {e}") from e

        if response.status_code == 401:
            error = error_from_response(response)
            raise AuthError(str(error), status=401, detail=error.detail)
        if response.is_error:
            raise error_from_response(response)
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(
                f"Relay returned invalid JSON for {path}", status=response.status_code
            ) from e

    def _set_token(self, token: str | None) -> None:
        self._token = token
        if token is None:
            self._http.headers.pop("Authorization", None)
        else:
            self._http.headers["Authorization"] = f"Bearer {token}"

    async def login(self, password: str) -> str:
        """Open a session with the shared password.

        Returns:
            Session token

        Raises:
            ValidationError: If the password is empty
            AuthError: If the relay rejects the password
        """
        if not password:
            raise ValidationError("Password is empty")
        data = await self._request("POST", "/api/login", json={"password": password})
        token = data.get("token")
        if not token:
            raise AuthError("Relay did not return a session token")
        self._set_token(token)
        logger.info(f"Logged in to relay (session expires in {data.get('expiresIn')} ms)")
        return token

    async def logout(self) -> None:
        """Close the session. Does nothing without a token."""
        if self._token is None:
            return
        try:
            await self._request("POST", "/api/logout")
        finally:
            self._set_token(None)
        logger.info("Logged out of relay")

    async def verify(self) -> bool:
        """Check whether the held session token is still valid."""
        if self._token is None:
            return False
        try:
            await self._request("GET", "/api/verify")
        except AuthError:
            self._set_token(None)
            return False
        return True

    async def chat(
        self,
        message: str,
        provider: str = "groq",
        model: str | None = None,
        max_length: int = 100,
        character_setting: str = "",
        api_keys: dict[str, str] | None = None,
    ) -> str:
        """Send a message to a language model through the relay.

        Args:
            message: User message
            provider: One of gemini, openai, groq
            model: Provider model name, relay default if None
            max_length: Target reply length in characters
            character_setting: Persona description for the reply
            api_keys: Per-provider keys overriding the relay's own

        Returns:
            Reply text

        Raises:
            ValidationError: If the message or provider is invalid
            AuthError: If the session is missing or expired
            TransportError: On relay or provider failure
        """
        if not message or not message.strip():
            raise ValidationError("Message is empty")
        if len(message) > MAX_MESSAGE_LENGTH:
            raise ValidationError(f"Message exceeds {MAX_MESSAGE_LENGTH} characters")
        if provider not in PROVIDERS:
            raise ValidationError(f"Unknown provider: {provider}")

        body: dict[str, Any] = {
            "message": message,
            "provider": provider,
            "maxLength": max_length,
        }
        if model:
            body["model"] = model
        if character_setting:
            body["characterSetting"] = character_setting
        if api_keys:
            body["apiKeys"] = api_keys

        data = await self._request("POST", "/api/chat", json=body)
        reply = str(data.get("response", "")).strip()
        logger.debug(f"Chat reply ({provider}): '{reply[:50]}'")
        return reply

    async def list_voice_models(self) -> list[VoiceModel]:
        """List the voices the relay offers."""
        data = await self._request("GET", "/api/models")
        return [
            VoiceModel(
                uuid=item["uuid"],
                name=item.get("name", ""),
                description=item.get("description", ""),
                voice_type=item.get("voice_type", ""),
                styles=list(item.get("styles", [])),
            )
            for item in data
        ]

    async def test_api_key(self, provider: str, api_key: str) -> bool:
        """Ask the relay whether an API key works.

        Returns:
            True if the provider accepted the key
        """
        data = await self._request(
            "POST", "/api/test-api-key", json={"provider": provider, "apiKey": api_key}
        )
        return bool(data.get("valid"))


__all__ = ["MAX_MESSAGE_LENGTH", "PROVIDERS", "RelayClient", "VoiceModel"]
