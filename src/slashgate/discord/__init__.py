"""Discord interactions: authentication, option trees, acknowledgment race."""

from .command_registry import (
    ApplicationCommand,
    create_command,
    fetch_commands,
    set_commands,
    sync_commands,
    transform_command,
)
from .config import (
    DiscordCommandRegistration,
    DiscordInteractionsConfig,
    DiscordInteractionsConfigError,
    DiscordWebhookConfig,
)
from .constants import (
    DISCORD_API_BASE_URL,
    DISCORD_GATEWAY_URL,
    DISCORD_MAX_MESSAGE_LENGTH,
    InteractionResponseType,
    InteractionType,
    OptionType,
)
from .dispatcher import InteractionDispatcher, InteractionHandler
from .entities import (
    CachingEntityResolver,
    Channel,
    EntityCache,
    EntityResolver,
    Member,
    Role,
    StandaloneEntityResolver,
    User,
)
from .errors import (
    DiscordAPIError,
    DiscordConfigError,
    DiscordError,
    DiscordPermanentError,
    DiscordTransientError,
)
from .gateway import DiscordGatewayClient, GatewayFrame
from .interaction import Interaction, ReplyChannel
from .message import MessageFile, OutboundMessage, build_message
from .options import (
    BooleanOption,
    ChannelOption,
    IntegerOption,
    OptionNode,
    RoleOption,
    StringOption,
    SubcommandGroupOption,
    SubcommandOption,
    UnknownOption,
    UserOption,
    resolve_options,
)
from .race import RaceState, ResponseEnvelope, ResponseRace
from .rest import DiscordRestClient
from .service import DiscordInteractionsService, create_interactions_service
from .signature import Ed25519Verifier, SignatureVerifier, verify_signature

__all__ = [
    "ApplicationCommand",
    "BooleanOption",
    "CachingEntityResolver",
    "Channel",
    "ChannelOption",
    "DISCORD_API_BASE_URL",
    "DISCORD_GATEWAY_URL",
    "DISCORD_MAX_MESSAGE_LENGTH",
    "DiscordAPIError",
    "DiscordCommandRegistration",
    "DiscordConfigError",
    "DiscordError",
    "DiscordGatewayClient",
    "DiscordInteractionsConfig",
    "DiscordInteractionsConfigError",
    "DiscordInteractionsService",
    "DiscordPermanentError",
    "DiscordRestClient",
    "DiscordTransientError",
    "DiscordWebhookConfig",
    "Ed25519Verifier",
    "EntityCache",
    "EntityResolver",
    "GatewayFrame",
    "IntegerOption",
    "Interaction",
    "InteractionDispatcher",
    "InteractionHandler",
    "InteractionResponseType",
    "InteractionType",
    "Member",
    "MessageFile",
    "OptionNode",
    "OptionType",
    "OutboundMessage",
    "RaceState",
    "ReplyChannel",
    "ResponseEnvelope",
    "ResponseRace",
    "Role",
    "RoleOption",
    "SignatureVerifier",
    "StandaloneEntityResolver",
    "StringOption",
    "SubcommandGroupOption",
    "SubcommandOption",
    "UnknownOption",
    "User",
    "UserOption",
    "build_message",
    "create_command",
    "create_interactions_service",
    "fetch_commands",
    "resolve_options",
    "set_commands",
    "sync_commands",
    "transform_command",
    "verify_signature",
]
