from datetime import datetime, timedelta, timezone

import pytest

from conftest import MOD_ROLE_ID, SpyResponder, make_message, sent_messages
from Warden import repos, text
from Warden.commanding import CommandRegistry
from Warden.discord_schemas import MessageUpdateEvent
from Warden.dispatcher import DispatchOutcome, Dispatcher, strip_prefix
from Warden.errors import ExternalServiceError, UserError
from Warden.metrics import get_counter, get_counters


def test_strip_prefix_first_match():
    assert strip_prefix("?help", ["??", "?"]) == ("?", "help")
    assert strip_prefix("??help", ["??", "?"]) == ("??", "help")
    assert strip_prefix("help", ["?"]) is None
    assert strip_prefix("help", [""]) is None


@pytest.mark.asyncio
async def test_bot_and_unprefixed_messages_ignored(dispatcher, gateway):
    assert await dispatcher.handle_message(make_message("?help", bot=True)) == (
        DispatchOutcome.IGNORED
    )
    assert await dispatcher.handle_message(make_message("help")) == DispatchOutcome.IGNORED
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_ban_without_user_gives_usage_hint_and_no_record(dispatcher, gateway, state):
    outcome = await dispatcher.handle_message(make_message("?ban", roles=[MOD_ROLE_ID]))
    assert outcome == DispatchOutcome.UNKNOWN_COMMAND
    [reply] = sent_messages(gateway)
    assert "Usage:" in reply
    assert "`?ban {user}`" in reply
    assert "`?ban {user} {duration} [reason]`" in reply
    assert gateway.calls_to("ban") == []
    async with state.session() as s:
        assert await repos.list_expired_bans(s) == []
    assert get_counter("dispatch.unknown_command") == 1


@pytest.mark.asyncio
async def test_unknown_first_word_is_silent(dispatcher, gateway):
    outcome = await dispatcher.handle_message(make_message("?nothing here"))
    assert outcome == DispatchOutcome.UNKNOWN_COMMAND
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_unparseable_argument_is_usage_error(dispatcher, gateway):
    outcome = await dispatcher.handle_message(
        make_message("?slowmode general sixty", roles=[MOD_ROLE_ID])
    )
    assert outcome == DispatchOutcome.USAGE_ERROR
    [reply] = sent_messages(gateway)
    assert "sixty" in reply
    assert "`?slowmode {channel} {seconds}`" in reply
    assert gateway.calls_to("set_channel_slowmode") == []


@pytest.mark.asyncio
async def test_moderator_command_denied_without_role(dispatcher, gateway):
    outcome = await dispatcher.handle_message(make_message("?ban <@5>", roles=[1, 2]))
    assert outcome == DispatchOutcome.PERMISSION_DENIED
    assert sent_messages(gateway) == [text.PERMISSION_DENIED]
    assert gateway.calls_to("ban") == []


@pytest.mark.asyncio
async def test_moderator_roles_fetched_when_event_lacks_them(dispatcher, gateway):
    gateway.roles[1] = (MOD_ROLE_ID,)
    outcome = await dispatcher.handle_message(make_message("?kick <@5>"))
    assert outcome == DispatchOutcome.COMPLETED
    assert gateway.calls_to("get_member_roles") == [("get_member_roles", 100, 1)]
    assert gateway.calls_to("kick") == [("kick", 100, 5)]


@pytest.mark.asyncio
async def test_moderator_command_denied_in_dms(dispatcher, gateway):
    outcome = await dispatcher.handle_message(
        make_message("?kick <@5>", guild_id=None, roles=[MOD_ROLE_ID])
    )
    assert outcome == DispatchOutcome.PERMISSION_DENIED


@pytest.mark.asyncio
async def test_moderator_command_denied_without_configured_role(
    registry, state, gateway, settings
):
    settings.mod_role_id = None
    d = Dispatcher(registry=registry, state=state, gateway=gateway, settings=settings)
    outcome = await d.handle_message(make_message("?kick <@5>", roles=[MOD_ROLE_ID]))
    assert outcome == DispatchOutcome.PERMISSION_DENIED


@pytest.mark.asyncio
async def test_case_insensitive_static_words(dispatcher, gateway):
    outcome = await dispatcher.handle_message(make_message("?SOURCE"))
    assert outcome == DispatchOutcome.COMPLETED
    assert sent_messages(gateway) == [text.SOURCE_URL]


@pytest.mark.asyncio
async def test_user_prefix_is_honoured(dispatcher, gateway, state):
    await state.add_prefix(1, "hey warden ")
    outcome = await dispatcher.handle_message(make_message("hey warden source"))
    assert outcome == DispatchOutcome.COMPLETED
    # Other users don't get it
    outcome = await dispatcher.handle_message(make_message("hey warden source", user_id=2))
    assert outcome == DispatchOutcome.IGNORED


def _handler_registry(handler) -> CommandRegistry:
    reg = CommandRegistry()
    reg.register("boom", handler)
    return reg


@pytest.mark.asyncio
async def test_service_failure_gives_generic_reply(state, gateway, settings):
    async def boom(inv):
        raise ExternalServiceError("godbolt", "timed out")

    d = Dispatcher(
        registry=_handler_registry(boom), state=state, gateway=gateway, settings=settings
    )
    assert await d.handle_message(make_message("?boom")) == DispatchOutcome.FAILED
    assert sent_messages(gateway) == [text.GENERIC_FAILURE]
    assert "timed out" not in sent_messages(gateway)[0]
    assert get_counter("dispatch.failed") == 1


@pytest.mark.asyncio
async def test_handler_bug_is_contained(state, gateway, settings):
    async def boom(inv):
        raise RuntimeError("internal detail")

    d = Dispatcher(
        registry=_handler_registry(boom), state=state, gateway=gateway, settings=settings
    )
    assert await d.handle_message(make_message("?boom")) == DispatchOutcome.FAILED
    assert sent_messages(gateway) == [text.GENERIC_FAILURE]


@pytest.mark.asyncio
async def test_user_error_message_shown(state, gateway, settings):
    async def refuse(inv):
        raise UserError("Not today.")

    d = Dispatcher(
        registry=_handler_registry(refuse), state=state, gateway=gateway, settings=settings
    )
    assert await d.handle_message(make_message("?boom")) == DispatchOutcome.USER_ERROR
    assert sent_messages(gateway) == ["Not today."]


@pytest.mark.asyncio
async def test_reply_failure_does_not_escape(state, gateway, settings):
    async def refuse(inv):
        raise UserError("Not today.")

    gateway.fail["send_message"] = 500
    d = Dispatcher(
        registry=_handler_registry(refuse), state=state, gateway=gateway, settings=settings
    )
    assert await d.handle_message(make_message("?boom")) == DispatchOutcome.USER_ERROR


@pytest.mark.asyncio
async def test_duration_histogram_recorded(dispatcher):
    await dispatcher.handle_message(make_message("?source"))
    assert get_counters()["histo.dispatch.duration_ms.count"] == 1


@pytest.mark.asyncio
async def test_interaction_resolves_structured_options(dispatcher, state):
    await state.put_tag(100, "motd", "Welcome")
    responder = SpyResponder()
    outcome = await dispatcher.handle_interaction(
        event_id="1",
        path="tag",
        options={"key": "motd"},
        user_id=1,
        channel_id=200,
        guild_id=100,
        member_roles=(),
        responder=responder,
    )
    assert outcome == DispatchOutcome.COMPLETED
    assert responder.messages == [("Welcome", False)]


@pytest.mark.asyncio
async def test_interaction_unresolved_is_ephemeral(dispatcher):
    responder = SpyResponder()
    outcome = await dispatcher.handle_interaction(
        event_id="1",
        path="nope",
        options={},
        user_id=1,
        channel_id=200,
        guild_id=100,
        member_roles=(),
        responder=responder,
    )
    assert outcome == DispatchOutcome.UNKNOWN_COMMAND
    assert responder.messages == [("Unknown command `/nope`.", True)]


@pytest.mark.asyncio
async def test_spawned_events_drain(dispatcher, gateway):
    for _ in range(3):
        dispatcher.spawn_message(make_message("?source"))
    await dispatcher.drain()
    assert sent_messages(gateway) == [text.SOURCE_URL] * 3


def _edited(content: str, minutes_after: float | None, **kwargs) -> MessageUpdateEvent:
    base = make_message(content, **kwargs)
    sent = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
    return MessageUpdateEvent.model_validate(
        {
            **base.model_dump(),
            "timestamp": sent,
            "edited_timestamp": (
                None if minutes_after is None else sent + timedelta(minutes=minutes_after)
            ),
        }
    )


@pytest.mark.asyncio
async def test_recent_edit_runs_command_again(dispatcher, gateway):
    outcome = await dispatcher.handle_edit(_edited("?go", minutes_after=5))
    assert outcome == DispatchOutcome.COMPLETED
    assert sent_messages(gateway) == ["No"]
    assert get_counter("dispatch.edit.replayed") == 1


@pytest.mark.asyncio
async def test_old_or_unedited_messages_not_replayed(dispatcher, gateway):
    assert await dispatcher.handle_edit(_edited("?go", minutes_after=60)) == (
        DispatchOutcome.IGNORED
    )
    assert await dispatcher.handle_edit(_edited("?go", minutes_after=None)) == (
        DispatchOutcome.IGNORED
    )
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_edit_window_follows_settings(registry, state, gateway, settings):
    settings.edit_replay_window_minutes = 1
    d = Dispatcher(registry=registry, state=state, gateway=gateway, settings=settings)
    assert await d.handle_edit(_edited("?go", minutes_after=2)) == DispatchOutcome.IGNORED
    assert await d.handle_edit(_edited("?go", minutes_after=0.5)) == DispatchOutcome.COMPLETED


@pytest.mark.asyncio
async def test_spawned_edit_is_drained(dispatcher, gateway):
    dispatcher.spawn_edit(_edited("?go", minutes_after=1))
    await dispatcher.drain()
    assert sent_messages(gateway) == ["No"]
