"""Data models for relay requests and the outbound completion call."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chapterlens.config import Settings

MAX_CHAPTER_CHARS = 12_000
MAX_SELECTION_CHARS = 2_000

_CHAT_ROLES = ("user", "assistant")


class Message(BaseModel):
    """One chat turn as sent upstream."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant", "system"]
    content: str


class AISettings(BaseModel):
    """Per-call overrides supplied by the reader. Never persisted."""

    model_config = ConfigDict(populate_by_name=True)

    base_url: str | None = Field(None, alias="baseUrl")
    api_key: str | None = Field(None, alias="apiKey")
    model: str | None = None

    @field_validator("base_url", "api_key", "model", mode="before")
    @classmethod
    def drop_non_strings(cls, v: Any) -> str | None:
        return v if isinstance(v, str) else None


class ChatRequest(BaseModel):
    """Inbound relay body.

    Lenient parsing: wrong-typed optional fields
    degrade to empty values and history entries that are not plain
    user/assistant text are dropped without error.
    """

    model_config = ConfigDict(populate_by_name=True)

    messages: list[Message] = Field(default_factory=list)
    chapter_content: str = Field("", alias="chapterContent")
    selected_text: str = Field("", alias="selectedText")
    ai_settings: AISettings | None = Field(None, alias="aiSettings")

    @field_validator("messages", mode="before")
    @classmethod
    def keep_chat_turns(cls, v: Any) -> list[dict[str, str]]:
        if not isinstance(v, list):
            return []
        turns = []
        for item in v:
            if isinstance(item, Message):
                item = item.model_dump()
            if not isinstance(item, dict):
                continue
            role, content = item.get("role"), item.get("content")
            if role in _CHAT_ROLES and isinstance(content, str):
                turns.append({"role": role, "content": content})
        return turns

    @field_validator("chapter_content", mode="before")
    @classmethod
    def cap_chapter(cls, v: Any) -> str:
        return v[:MAX_CHAPTER_CHARS] if isinstance(v, str) else ""

    @field_validator("selected_text", mode="before")
    @classmethod
    def cap_selection(cls, v: Any) -> str:
        return v[:MAX_SELECTION_CHARS] if isinstance(v, str) else ""

    @field_validator("ai_settings", mode="before")
    @classmethod
    def drop_non_mapping(cls, v: Any) -> Any:
        if isinstance(v, AISettings):
            return v
        return v if isinstance(v, dict) else None


@dataclass(frozen=True, slots=True)
class RelayDefaults:
    """Process-wide fallbacks, read once from settings and passed in explicitly."""

    api_key: str
    base_url: str
    model: str
    temperature: float = 0.7

    @classmethod
    def from_settings(cls, settings: Settings) -> RelayDefaults:
        return cls(
            api_key=settings.openai_api_key.strip(),
            base_url=settings.openai_base_url.strip(),
            model=settings.openai_model.strip(),
            temperature=settings.relay_temperature,
        )


@dataclass(frozen=True, slots=True)
class CompletionRequest:
    """A fully resolved outbound streaming completion call."""

    url: str
    api_key: str
    model: str
    messages: tuple[Message, ...]
    temperature: float

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def to_body(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "temperature": self.temperature,
            "stream": True,
            "messages": [message.model_dump() for message in self.messages],
        }
