from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class BotCredential:
    """Bot token shared read-only by the REST transport and gateway session."""

    token: str = field(repr=False)

    @property
    def authorization_header(self) -> str:
        return f"Bot {self.token}"

    def headers(self) -> dict[str, str]:
        return {"Authorization": self.authorization_header}
