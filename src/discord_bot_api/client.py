from __future__ import annotations

import logging
from typing import Any, Optional, Union

from .core.config import DiscordClientConfig
from .core.logging_utils import log_event
from .credentials import BotCredential
from .errors import ConnectionNotReady, LoginFailed, RequestFailed
from .gateway import (
    CloseHandler,
    Connector,
    ErrorHandler,
    GatewaySession,
    MessageHandler,
    SessionSnapshot,
    SessionState,
)
from .models import Attachment, Embed, Message, User
from .rest import DiscordRestClient

logger = logging.getLogger(__name__)


class DiscordClient:
    """Entry point composing the REST transport and the gateway session.

    REST operations and gateway events run independently; the only state they
    share is the read-only bot credential.
    """

    def __init__(
        self,
        token: str,
        *,
        config: Optional[DiscordClientConfig] = None,
        rest: Optional[DiscordRestClient] = None,
        on_message: Optional[MessageHandler] = None,
        on_close: Optional[CloseHandler] = None,
        on_error: Optional[ErrorHandler] = None,
        connector: Optional[Connector] = None,
    ) -> None:
        self._credential = BotCredential(token)
        if rest is None:
            if config is not None:
                rest = DiscordRestClient(
                    credential=self._credential,
                    timeout_seconds=config.timeout_seconds,
                    base_url=config.api_base_url,
                )
            else:
                rest = DiscordRestClient(credential=self._credential)
        self._rest = rest
        self._gateway = GatewaySession(
            on_message=on_message,
            on_close=on_close,
            on_error=on_error,
            connector=connector,
            open_timeout=config.open_timeout_seconds if config is not None else None,
            logger=logging.getLogger(f"{__name__}.gateway"),
        )

    @classmethod
    def from_config(
        cls, config: DiscordClientConfig, **kwargs: Any
    ) -> "DiscordClient":
        return cls(config.require_token(), config=config, **kwargs)

    @property
    def session(self) -> SessionSnapshot:
        return self._gateway.snapshot()

    async def __aenter__(self) -> "DiscordClient":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    async def login(self) -> User:
        """Resolve the bot identity, then open the gateway session."""
        try:
            user = await self._rest.fetch_self()
        except RequestFailed:
            log_event(
                logger, logging.WARNING, "discord.client.login_failed", step="identity"
            )
            raise LoginFailed() from None
        await self._gateway.resolve_endpoint(self._rest)
        await self._gateway.connect()
        log_event(
            logger,
            logging.INFO,
            "discord.client.logged_in",
            user_id=user.id,
            username=user.username,
        )
        return user

    async def reconnect(self) -> None:
        """Open a fresh gateway connection on a closed session."""
        if self._gateway.state is not SessionState.CLOSED:
            raise ConnectionNotReady(
                "Gateway session must be closed before reconnecting."
            )
        await self._gateway.resolve_endpoint(self._rest)
        await self._gateway.connect()

    async def wait_closed(self) -> None:
        await self._gateway.wait_closed()

    async def close(self) -> None:
        await self._gateway.close()
        await self._rest.close()

    async def fetch_self(self) -> User:
        try:
            return await self._rest.fetch_self()
        except RequestFailed:
            raise RequestFailed("fetch_self") from None

    async def send_message(self, channel_id: str, content: str) -> Message:
        try:
            return await self._rest.post_message(channel_id, content)
        except RequestFailed:
            raise RequestFailed("send_message") from None

    async def send_message_with_embed(
        self, channel_id: str, content: str, embed: Embed
    ) -> Message:
        try:
            return await self._rest.post_message_with_embed(channel_id, content, embed)
        except RequestFailed:
            raise RequestFailed("send_message_with_embed") from None

    async def send_message_with_attachment(
        self, channel_id: str, content: str, attachment: Attachment
    ) -> Message:
        try:
            return await self._rest.post_message_with_attachment(
                channel_id, content, attachment
            )
        except RequestFailed:
            raise RequestFailed("send_message_with_attachment") from None

    async def update_avatar(self, avatar: Union[bytes, str]) -> User:
        try:
            return await self._rest.patch_avatar(avatar)
        except RequestFailed:
            raise RequestFailed("update_avatar") from None

    async def update_banner_color(self, color: int) -> User:
        try:
            return await self._rest.patch_banner_color(color)
        except RequestFailed:
            raise RequestFailed("update_banner_color") from None

    async def enable_all_intents(self, all_intents: bool = True) -> None:
        try:
            await self._rest.patch_intents(all_intents)
        except RequestFailed:
            raise RequestFailed("enable_all_intents") from None
