"""Value objects exchanged with the Discord REST API."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from .errors import DiscordPayloadError


def _require(payload: Mapping[str, Any], key: str, kind: str) -> Any:
    value = payload.get(key)
    if value is None:
        raise DiscordPayloadError(f"Discord {kind} payload missing {key!r}")
    return value


@dataclass(frozen=True)
class User:
    id: str
    username: str
    discriminator: str = "0"
    avatar: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "User":
        if not isinstance(payload, Mapping):
            raise DiscordPayloadError("Discord user payload must be a JSON object")
        avatar = payload.get("avatar")
        discriminator = payload.get("discriminator")
        return cls(
            id=str(_require(payload, "id", "user")),
            username=str(_require(payload, "username", "user")),
            discriminator=str(discriminator) if discriminator is not None else "0",
            avatar=str(avatar) if avatar is not None else None,
        )


@dataclass(frozen=True)
class Message:
    id: str
    content: str
    author: User

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Message":
        if not isinstance(payload, Mapping):
            raise DiscordPayloadError("Discord message payload must be a JSON object")
        content = payload.get("content")
        return cls(
            id=str(_require(payload, "id", "message")),
            content=content if isinstance(content, str) else "",
            author=User.from_payload(_require(payload, "author", "message")),
        )


@dataclass(frozen=True)
class EmbedField:
    name: str
    value: str
    inline: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {"name": self.name, "value": self.value, "inline": self.inline}


@dataclass(frozen=True)
class EmbedFooter:
    text: str
    icon_url: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"text": self.text}
        if self.icon_url is not None:
            payload["icon_url"] = self.icon_url
        return payload


@dataclass(frozen=True)
class Embed:
    title: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    color: Optional[int] = None
    fields: tuple[EmbedField, ...] = field(default_factory=tuple)
    footer: Optional[EmbedFooter] = None

    def to_payload(self) -> dict[str, Any]:
        """Render only the keys that were set, preserving field order."""
        payload: dict[str, Any] = {}
        for key in ("title", "description", "url", "color"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        if self.fields:
            payload["fields"] = [item.to_payload() for item in self.fields]
        if self.footer is not None:
            payload["footer"] = self.footer.to_payload()
        return payload


@dataclass(frozen=True)
class Attachment:
    name: str
    content: Union[bytes, str]

    def as_bytes(self) -> bytes:
        if isinstance(self.content, str):
            return self.content.encode("utf-8")
        return bytes(self.content)
