"""Discord bot API client: REST request surface plus a gateway session."""

from .client import DiscordClient
from .constants import DISCORD_ALL_INTENTS, DISCORD_API_BASE_URL
from .core.config import DiscordClientConfig, LogConfig, load_config
from .credentials import BotCredential
from .errors import (
    ConnectionNotReady,
    DiscordConfigError,
    DiscordError,
    DiscordPayloadError,
    GatewayConnectFailed,
    GatewayUnavailable,
    LoginFailed,
    RequestFailed,
)
from .gateway import (
    GatewayClosed,
    GatewayError,
    GatewayEventQueue,
    GatewayMessage,
    GatewaySession,
    SessionSnapshot,
    SessionState,
)
from .models import Attachment, Embed, EmbedField, EmbedFooter, Message, User
from .rest import DiscordRestClient

__all__ = [
    "DISCORD_ALL_INTENTS",
    "DISCORD_API_BASE_URL",
    "Attachment",
    "BotCredential",
    "ConnectionNotReady",
    "DiscordClient",
    "DiscordClientConfig",
    "DiscordConfigError",
    "DiscordError",
    "DiscordPayloadError",
    "DiscordRestClient",
    "Embed",
    "EmbedField",
    "EmbedFooter",
    "GatewayClosed",
    "GatewayConnectFailed",
    "GatewayError",
    "GatewayEventQueue",
    "GatewayMessage",
    "GatewaySession",
    "GatewayUnavailable",
    "LogConfig",
    "LoginFailed",
    "Message",
    "RequestFailed",
    "SessionSnapshot",
    "SessionState",
    "User",
    "load_config",
]
