from __future__ import annotations

import base64
import json
import logging
from typing import Any, Optional, Union

import httpx

from .constants import DISCORD_ALL_INTENTS, DISCORD_API_BASE_URL
from .core.logging_utils import log_event
from .credentials import BotCredential
from .errors import DiscordPayloadError, GatewayUnavailable, RequestFailed
from .models import Attachment, Embed, Message, User

logger = logging.getLogger(__name__)

_IMAGE_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def encode_image_data(data: bytes) -> str:
    """Encode raw image bytes as the data URI Discord expects for avatars."""
    mime_type = "image/png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        mime_type = "image/webp"
    else:
        for signature, candidate in _IMAGE_SIGNATURES:
            if data.startswith(signature):
                mime_type = candidate
                break
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


class DiscordRestClient:
    """Authenticated request surface for the Discord REST API.

    Every operation is a single attempt: failures raise ``RequestFailed``
    labelled with the operation name and the cause is only logged.
    """

    def __init__(
        self,
        *,
        credential: BotCredential,
        timeout_seconds: float = 10.0,
        base_url: str = DISCORD_API_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._credential = credential
        self._client = httpx.AsyncClient(
            base_url=base_url, timeout=timeout_seconds, transport=transport
        )
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        self._closed = True
        await self._client.aclose()

    async def __aenter__(self) -> "DiscordRestClient":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        payload: Optional[dict[str, Any]] = None,
        data: Optional[dict[str, str]] = None,
        files: Optional[list[tuple[str, tuple[str, bytes, Optional[str]]]]] = None,
        expect_json: bool = True,
    ) -> Any:
        if self._closed:
            log_event(
                logger,
                logging.WARNING,
                "discord.rest.client_closed",
                operation=operation,
                method=method,
                path=path,
            )
            raise RequestFailed(operation)
        try:
            response = await self._client.request(
                method,
                path,
                json=payload,
                data=data,
                files=files,
                headers=self._credential.headers(),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            body_preview = (exc.response.text or "").strip().replace("\n", " ")[:200]
            log_event(
                logger,
                logging.WARNING,
                "discord.rest.request_failed",
                operation=operation,
                method=method,
                path=path,
                status=exc.response.status_code,
                body=body_preview,
            )
            raise RequestFailed(operation) from None
        except httpx.HTTPError as exc:
            log_event(
                logger,
                logging.WARNING,
                "discord.rest.network_error",
                operation=operation,
                method=method,
                path=path,
                exc=exc,
            )
            raise RequestFailed(operation) from None

        log_event(
            logger,
            logging.DEBUG,
            "discord.rest.request_ok",
            operation=operation,
            method=method,
            path=path,
            status=response.status_code,
        )
        if not expect_json:
            return None
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            log_event(
                logger,
                logging.WARNING,
                "discord.rest.invalid_json",
                operation=operation,
                method=method,
                path=path,
            )
            raise RequestFailed(operation) from None

    def _decode(self, operation: str, decoder: Any, payload: Any) -> Any:
        try:
            return decoder(payload)
        except DiscordPayloadError as exc:
            log_event(
                logger,
                logging.WARNING,
                "discord.rest.invalid_payload",
                operation=operation,
                exc=exc,
            )
            raise RequestFailed(operation) from None

    async def fetch_self(self) -> User:
        payload = await self._request("GET", "/users/@me", operation="fetch_self")
        return self._decode("fetch_self", User.from_payload, payload)

    async def fetch_gateway_url(self) -> str:
        try:
            payload = await self._request(
                "GET", "/gateway/bot", operation="fetch_gateway_url"
            )
        except RequestFailed:
            raise GatewayUnavailable() from None
        url = payload.get("url") if isinstance(payload, dict) else None
        if not isinstance(url, str) or not url:
            log_event(
                logger,
                logging.WARNING,
                "discord.rest.gateway_url_missing",
                payload_type=type(payload).__name__,
            )
            raise GatewayUnavailable()
        return url

    async def post_message(self, channel_id: str, content: str) -> Message:
        response = await self._request(
            "POST",
            f"/channels/{channel_id}/messages",
            operation="post_message",
            payload={"content": content},
        )
        return self._decode("post_message", Message.from_payload, response)

    async def post_message_with_embed(
        self, channel_id: str, content: str, embed: Embed
    ) -> Message:
        response = await self._request(
            "POST",
            f"/channels/{channel_id}/messages",
            operation="post_message_with_embed",
            payload={"content": content, "embed": embed.to_payload()},
        )
        return self._decode("post_message_with_embed", Message.from_payload, response)

    async def post_message_with_attachment(
        self, channel_id: str, content: str, attachment: Attachment
    ) -> Message:
        files = [("files[0]", (attachment.name, attachment.as_bytes(), None))]
        response = await self._request(
            "POST",
            f"/channels/{channel_id}/messages",
            operation="post_message_with_attachment",
            data={"payload_json": json.dumps({"content": content})},
            files=files,
        )
        return self._decode(
            "post_message_with_attachment", Message.from_payload, response
        )

    async def patch_avatar(self, avatar_data: Union[bytes, str]) -> User:
        avatar = (
            encode_image_data(avatar_data)
            if isinstance(avatar_data, (bytes, bytearray))
            else avatar_data
        )
        response = await self._request(
            "PATCH",
            "/users/@me",
            operation="patch_avatar",
            payload={"avatar": avatar},
        )
        return self._decode("patch_avatar", User.from_payload, response)

    async def patch_banner_color(self, color: int) -> User:
        response = await self._request(
            "PATCH",
            "/users/@me",
            operation="patch_banner_color",
            payload={"banner_color": color},
        )
        return self._decode("patch_banner_color", User.from_payload, response)

    async def patch_intents(self, all_intents: bool) -> None:
        if not all_intents:
            return None
        await self._request(
            "PATCH",
            "/applications/@me/bot",
            operation="patch_intents",
            payload={"intents": DISCORD_ALL_INTENTS},
            expect_json=False,
        )
        return None
