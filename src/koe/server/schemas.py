"""Request and response bodies for the relay API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ApiError(Exception):
    """Error answered with ``{status: "error", message, details?}``."""

    def __init__(self, status_code: int, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.details = details

    def body(self) -> dict[str, Any]:
        """JSON body for this error."""
        payload: dict[str, Any] = {"status": "error", "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class LoginRequest(BaseModel):
    password: str | None = None


class LoginResponse(BaseModel):
    status: str = "success"
    token: str
    expiresIn: int


class StatusResponse(BaseModel):
    status: str = "success"
    message: str


class ApiKeys(BaseModel):
    """Per-request provider keys that override the server's own."""

    model_config = ConfigDict(extra="ignore")

    gemini: str | None = None
    openai: str | None = None
    groq: str | None = None
    aivis: str | None = None

    def get(self, provider: str) -> str | None:
        value = getattr(self, provider, None)
        return value or None


class TTSRequest(BaseModel):
    text: str | None = None
    modelId: str | None = None
    quality: str = "medium"
    apiKeys: ApiKeys = Field(default_factory=ApiKeys)


class ChatRequest(BaseModel):
    message: str | None = None
    provider: str | None = None
    model: str | None = None
    maxLength: int = Field(default=100, ge=1, le=2000)
    apiKeys: ApiKeys = Field(default_factory=ApiKeys)
    characterSetting: str = ""


class ChatResponse(BaseModel):
    status: str = "success"
    response: str


class KeyCheckRequest(BaseModel):
    provider: str | None = None
    apiKey: str | None = None


class KeyCheckResponse(BaseModel):
    status: str = "success"
    provider: str
    valid: bool
    message: str


class VoiceModelInfo(BaseModel):
    uuid: str
    name: str
    description: str = ""
    voice_type: str = ""
    styles: list[str] = Field(default_factory=list)


__all__ = [
    "ApiError",
    "ApiKeys",
    "ChatRequest",
    "ChatResponse",
    "LoginRequest",
    "LoginResponse",
    "StatusResponse",
    "TTSRequest",
    "KeyCheckRequest",
    "KeyCheckResponse",
    "VoiceModelInfo",
]
