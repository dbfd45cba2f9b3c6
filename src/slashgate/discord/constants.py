from __future__ import annotations

from enum import IntEnum

DISCORD_API_BASE_URL = "https://discord.com/api/v10"
DISCORD_GATEWAY_URL = "wss://gateway.discord.gg/?v=10&encoding=json"

# Discord hard limits for message payloads.
DISCORD_MAX_MESSAGE_LENGTH = 2000
DISCORD_MAX_EMBEDS = 10

# Milliseconds since the Unix epoch at the first second of 2015.
DISCORD_EPOCH_MS = 1420070400000

DISCORD_EPHEMERAL_FLAG = 1 << 6

# Synchronous acknowledgment window before falling back to a deferred response.
DEFAULT_RESPONSE_TIMEOUT_SECONDS = 0.25

SIGNATURE_HEADER = "X-Signature-Ed25519"
TIMESTAMP_HEADER = "X-Signature-Timestamp"

INTERACTION_CREATE_EVENT = "INTERACTION_CREATE"


class InteractionType(IntEnum):
    PING = 1
    APPLICATION_COMMAND = 2
    MESSAGE_COMPONENT = 3
    APPLICATION_COMMAND_AUTOCOMPLETE = 4
    MODAL_SUBMIT = 5


class InteractionResponseType(IntEnum):
    PONG = 1
    CHANNEL_MESSAGE_WITH_SOURCE = 4
    DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE = 5


class OptionType(IntEnum):
    SUB_COMMAND = 1
    SUB_COMMAND_GROUP = 2
    STRING = 3
    INTEGER = 4
    BOOLEAN = 5
    USER = 6
    CHANNEL = 7
    ROLE = 8
