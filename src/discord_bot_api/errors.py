from __future__ import annotations

from typing import Optional


class DiscordError(Exception):
    """Base error for the Discord bot API client."""

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message


class DiscordConfigError(DiscordError):
    """Client configuration is invalid or incomplete."""


class DiscordPayloadError(DiscordError):
    """The platform returned JSON without a required field."""


class LoginFailed(DiscordError):
    """Identity or gateway endpoint resolution failed during login."""

    def __init__(
        self,
        message: str = "Failed to log in to Discord.",
        *,
        user_message: Optional[str] = None,
    ) -> None:
        super().__init__(message, user_message=user_message)


class GatewayUnavailable(LoginFailed):
    """No gateway URL could be obtained."""

    def __init__(self, message: str = "Failed to fetch the gateway URL.") -> None:
        super().__init__(message)


class GatewayConnectFailed(LoginFailed):
    """The WebSocket open handshake to the gateway failed."""

    def __init__(self, message: str = "Failed to connect to the gateway.") -> None:
        super().__init__(message)


class ConnectionNotReady(DiscordError):
    """A gateway connection was requested in a state that cannot open one."""


class RequestFailed(DiscordError):
    """A REST operation failed.

    Only the operation name is exposed; the underlying HTTP status or
    transport exception is logged, never attached.
    """

    def __init__(self, operation: str) -> None:
        words = operation.replace("_", " ")
        super().__init__(f"Failed to {words}.")
        self.operation = operation
