from __future__ import annotations

import asyncio
import logging

import pytest

from slashgate.discord.constants import InteractionResponseType
from slashgate.discord.dispatcher import InteractionDispatcher
from slashgate.discord.errors import DiscordTransientError
from slashgate.discord.interaction import Interaction
from slashgate.discord.message import MessageFile
from slashgate.discord.race import ResponseEnvelope
from tests.fixtures.discord_fakes import FakeInteractionRest, command_payload


@pytest.mark.anyio
async def test_ping_is_answered_with_pong_without_handlers() -> None:
    rest = FakeInteractionRest()
    dispatcher = InteractionDispatcher(rest)
    called: list[Interaction] = []

    @dispatcher.add_handler
    async def _handler(interaction: Interaction) -> None:
        called.append(interaction)

    envelope = await dispatcher.dispatch({"id": "1", "type": 1})
    await dispatcher.wait_idle()

    assert envelope == ResponseEnvelope.pong()
    assert envelope.to_dict() == {"type": 1}
    assert called == []
    assert rest.followups == [] and rest.callbacks == []


@pytest.mark.anyio
async def test_fast_reply_becomes_immediate_response() -> None:
    rest = FakeInteractionRest()
    dispatcher = InteractionDispatcher(rest, response_timeout=5.0)
    results: list[object] = []

    @dispatcher.add_handler
    async def _handler(interaction: Interaction) -> None:
        results.append(await interaction.reply("pong"))

    envelope = await dispatcher.dispatch(command_payload())
    await dispatcher.wait_idle()

    assert envelope is not None
    assert envelope.kind is InteractionResponseType.CHANNEL_MESSAGE_WITH_SOURCE
    assert envelope.to_dict() == {"type": 4, "data": {"content": "pong"}}
    assert results == [None]
    assert rest.followups == []


@pytest.mark.anyio
async def test_slow_reply_defers_then_sends_one_followup() -> None:
    rest = FakeInteractionRest()
    dispatcher = InteractionDispatcher(rest, response_timeout=0.01)
    release = asyncio.Event()

    @dispatcher.add_handler
    async def _handler(interaction: Interaction) -> None:
        await release.wait()
        await interaction.reply("done")

    envelope = await dispatcher.dispatch(command_payload())
    assert envelope == ResponseEnvelope.deferred()
    assert rest.followups == []

    release.set()
    await dispatcher.wait_idle()

    assert len(rest.followups) == 1
    followup = rest.followups[0]
    assert followup["application_id"] == "app-1"
    assert followup["interaction_token"] == "interaction-token"
    assert followup["payload"] == {"content": "done"}
    assert followup["wait"] is True


@pytest.mark.anyio
async def test_second_reply_goes_to_followup() -> None:
    rest = FakeInteractionRest()
    dispatcher = InteractionDispatcher(rest, response_timeout=5.0)

    @dispatcher.add_handler
    async def _handler(interaction: Interaction) -> None:
        await interaction.reply("first")
        await interaction.reply("second")

    envelope = await dispatcher.dispatch(command_payload())
    await dispatcher.wait_idle()

    assert envelope is not None
    assert envelope.payload == {"content": "first"}
    assert [item["payload"] for item in rest.followups] == [{"content": "second"}]


@pytest.mark.anyio
async def test_every_handler_sees_the_interaction() -> None:
    rest = FakeInteractionRest()
    dispatcher = InteractionDispatcher(rest, response_timeout=0.01)
    seen: list[tuple[str, tuple[str, ...]]] = []

    async def _first(interaction: Interaction) -> None:
        seen.append(("first", interaction.command_path))

    async def _second(interaction: Interaction) -> None:
        seen.append(("second", interaction.command_path))

    dispatcher.add_handler(_first)
    dispatcher.add_handler(_second)
    dispatcher.add_handler(_first)
    dispatcher.remove_handler(_first)

    envelope = await dispatcher.dispatch(
        command_payload(
            name="admin",
            options=[{"type": 1, "name": "kick", "options": []}],
        )
    )
    await dispatcher.wait_idle()

    assert envelope == ResponseEnvelope.deferred()
    assert sorted(seen) == [("first", ("admin", "kick")), ("second", ("admin", "kick"))]


@pytest.mark.anyio
async def test_unknown_interaction_type_returns_no_envelope() -> None:
    rest = FakeInteractionRest()
    dispatcher = InteractionDispatcher(rest)

    assert await dispatcher.dispatch({"id": "1", "type": 3}) is None
    assert await dispatcher.dispatch({"id": "1", "type": 99}) is None
    assert await dispatcher.dispatch({"id": "1"}) is None


@pytest.mark.anyio
async def test_handler_failure_is_logged_and_ack_still_sent(
    caplog: pytest.LogCaptureFixture,
) -> None:
    rest = FakeInteractionRest()
    logger = logging.getLogger("test.dispatcher")
    dispatcher = InteractionDispatcher(rest, logger=logger, response_timeout=0.01)

    @dispatcher.add_handler
    async def _handler(_interaction: Interaction) -> None:
        raise RuntimeError("boom")

    with caplog.at_level(logging.ERROR, logger="test.dispatcher"):
        envelope = await dispatcher.dispatch(command_payload())
        await dispatcher.wait_idle()

    assert envelope == ResponseEnvelope.deferred()
    assert any(
        "discord.interaction.handler_failed" in record.getMessage()
        for record in caplog.records
    )


@pytest.mark.anyio
async def test_gateway_dispatch_posts_callback() -> None:
    rest = FakeInteractionRest()
    dispatcher = InteractionDispatcher(rest, response_timeout=5.0)

    @dispatcher.add_handler
    async def _handler(interaction: Interaction) -> None:
        await interaction.reply("via gateway", ephemeral=True)

    await dispatcher.on_gateway_dispatch("INTERACTION_CREATE", command_payload())
    await dispatcher.wait_idle()

    assert rest.callbacks == [
        {
            "interaction_id": "1100000000000000000",
            "interaction_token": "interaction-token",
            "payload": {"type": 4, "data": {"content": "via gateway", "flags": 64}},
            "wait": True,
        }
    ]


@pytest.mark.anyio
async def test_gateway_dispatch_ignores_other_events_and_unknown_types() -> None:
    rest = FakeInteractionRest()
    dispatcher = InteractionDispatcher(rest)

    await dispatcher.on_gateway_dispatch("MESSAGE_CREATE", command_payload())
    await dispatcher.on_gateway_dispatch("INTERACTION_CREATE", {"id": "1", "type": 3})
    await dispatcher.wait_idle()

    assert rest.callbacks == []


@pytest.mark.anyio
async def test_webhook_followup_waits_until_envelope_is_returned() -> None:
    rest = FakeInteractionRest()
    dispatcher = InteractionDispatcher(rest, response_timeout=5.0)

    @dispatcher.add_handler
    async def _handler(interaction: Interaction) -> None:
        await interaction.reply("first")
        await interaction.reply("second")

    envelope = await dispatcher.dispatch(command_payload())
    assert envelope is not None and envelope.payload == {"content": "first"}
    assert rest.followups == []

    await dispatcher.wait_idle()
    assert [item["payload"] for item in rest.followups] == [{"content": "second"}]


@pytest.mark.anyio
async def test_gateway_second_reply_is_posted_after_callback_completes() -> None:
    rest = FakeInteractionRest(callback_delay=0.05)
    dispatcher = InteractionDispatcher(rest, response_timeout=5.0)

    @dispatcher.add_handler
    async def _handler(interaction: Interaction) -> None:
        await interaction.reply("first")
        await interaction.reply("second")

    await dispatcher.on_gateway_dispatch("INTERACTION_CREATE", command_payload())
    await dispatcher.wait_idle()

    assert rest.calls == ["callback:start", "callback:done", "followup"]
    assert rest.callbacks[0]["payload"] == {"type": 4, "data": {"content": "first"}}


@pytest.mark.anyio
async def test_gateway_file_reply_is_posted_after_deferred_callback() -> None:
    rest = FakeInteractionRest(callback_delay=0.05)
    dispatcher = InteractionDispatcher(rest, response_timeout=0.01)

    @dispatcher.add_handler
    async def _handler(interaction: Interaction) -> None:
        await interaction.reply(
            "report", files=[MessageFile(source=b"data", name="r.txt")]
        )

    await dispatcher.on_gateway_dispatch("INTERACTION_CREATE", command_payload())
    await dispatcher.wait_idle()

    assert rest.calls == ["callback:start", "callback:done", "followup"]
    assert rest.callbacks[0]["payload"] == {"type": 5}
    assert [item.name for item in rest.followups[0]["files"]] == ["r.txt"]


@pytest.mark.anyio
async def test_gateway_callback_failure_drops_pending_followups(
    caplog: pytest.LogCaptureFixture,
) -> None:
    rest = FakeInteractionRest(
        callback_delay=0.01, callback_error=DiscordTransientError("unavailable")
    )
    logger = logging.getLogger("test.dispatcher")
    dispatcher = InteractionDispatcher(rest, logger=logger, response_timeout=5.0)

    @dispatcher.add_handler
    async def _handler(interaction: Interaction) -> None:
        await interaction.reply("first")
        await interaction.reply("second")

    with caplog.at_level(logging.ERROR, logger="test.dispatcher"):
        await dispatcher.on_gateway_dispatch("INTERACTION_CREATE", command_payload())
        await dispatcher.wait_idle()

    assert rest.calls == ["callback:start", "callback:failed"]
    assert rest.followups == []
    messages = [record.getMessage() for record in caplog.records]
    assert any("discord.interaction.callback.failed" in message for message in messages)
    assert any("discord.interaction.handler_failed" in message for message in messages)
