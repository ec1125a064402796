from __future__ import annotations

DISCORD_API_BASE_URL = "https://discord.com/api/v9"

# Gateway intents bitflags (https://discord.com/developers/docs/topics/gateway#gateway-intents).
DISCORD_INTENT_GUILDS = 1 << 0
DISCORD_INTENT_GUILD_MEMBERS = 1 << 1
DISCORD_INTENT_GUILD_BANS = 1 << 2
DISCORD_INTENT_GUILD_EMOJIS_AND_STICKERS = 1 << 3
DISCORD_INTENT_GUILD_INTEGRATIONS = 1 << 4
DISCORD_INTENT_GUILD_WEBHOOKS = 1 << 5
DISCORD_INTENT_GUILD_INVITES = 1 << 6
DISCORD_INTENT_GUILD_VOICE_STATES = 1 << 7
DISCORD_INTENT_GUILD_PRESENCES = 1 << 8
DISCORD_INTENT_GUILD_MESSAGES = 1 << 9
DISCORD_INTENT_GUILD_MESSAGE_REACTIONS = 1 << 10
DISCORD_INTENT_GUILD_MESSAGE_TYPING = 1 << 11
DISCORD_INTENT_DIRECT_MESSAGES = 1 << 12
DISCORD_INTENT_DIRECT_MESSAGE_REACTIONS = 1 << 13
DISCORD_INTENT_DIRECT_MESSAGE_TYPING = 1 << 14

# Union of every intent bit above.
DISCORD_ALL_INTENTS = (1 << 15) - 1

DEFAULT_GATEWAY_CLOSE_CODE = 1000
