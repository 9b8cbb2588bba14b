from __future__ import annotations

import asyncio
import logging

import pytest

from adapters.sqlite_storage import SQLiteStorage
from core.config import KudosConfig
from core.dispatch import Router, command_dispatcher, notification_dispatcher
from core.errors import SendError
from core.kudos import INVALID_NUMBER_MESSAGE, NO_KUDOS_MESSAGE, KudosHandlers, parse_top_count
from core.tenants import TenantConnection, TenantManager

from fakes import (
    FakeApi,
    FakeFactory,
    FakeStream,
    command_envelope,
    make_credentials,
    message_envelope,
    wait_until,
)


def _storage(tmp_path, *team_ids: str) -> SQLiteStorage:
    storage = SQLiteStorage(str(tmp_path / "kudos.db"))
    storage.init_db()
    for team_id in team_ids:
        storage.save_credentials(make_credentials(team_id))
    return storage


def _router(storage: SQLiteStorage, config: KudosConfig = KudosConfig()) -> Router:
    handlers = KudosHandlers(storage, config)
    return Router(
        notification_dispatcher(handlers.message_handlers()),
        command_dispatcher(handlers.command_handlers()),
    )


def _send(router: Router, envelope, team_id: str = "T1") -> FakeApi:
    api = FakeApi()
    connection = TenantConnection(team_id, FakeStream(), api)
    asyncio.run(router.dispatch(envelope, connection))
    return api


def test_kudos_message_increments_and_replies(tmp_path) -> None:
    storage = _storage(tmp_path, "T1")

    async def scenario():
        factory = FakeFactory()
        manager = TenantManager(_router(storage), factory)
        await manager.add_tenant(make_credentials("T1"))
        api = factory.apis[0]

        factory.streams[0].feed(message_envelope("<@U123> ++", "e1"))
        await wait_until(lambda: len(api.sent) == 1)
        factory.streams[0].feed(message_envelope("<@U123> ++", "e2"))
        await wait_until(lambda: len(api.sent) == 2)

        await manager.shutdown(1)
        return api.sent, factory.streams[0].acked

    sent, acked = asyncio.run(scenario())

    assert acked == ["e1", "e2"]
    first_channel, first_text = sent[0]
    assert first_channel == "C1"
    assert "U123" in first_text and "1" in first_text
    assert "Now has 2 kudos" in sent[1][1]
    assert storage.top_n("T1", 1)[0].count == 2


def test_kudos_for_unknown_workspace_replies_not_set_up(tmp_path) -> None:
    storage = _storage(tmp_path)

    api = _send(_router(storage), message_envelope("<@U123> ++", team_id="T404"), team_id="T404")

    assert len(api.sent) == 1
    assert "not set up" in api.sent[0][1]
    assert storage.top_n("T404", 5) == []


def test_plain_messages_are_ignored(tmp_path) -> None:
    storage = _storage(tmp_path, "T1")

    api = _send(_router(storage), message_envelope("thanks <@U123>!"))

    assert api.sent == []


def test_leaderboard_lists_top_users_in_order(tmp_path) -> None:
    storage = _storage(tmp_path, "T1")
    for user_id, times in (("A", 5), ("B", 3), ("C", 1)):
        for _ in range(times):
            storage.increment_or_create("T1", user_id)

    api = _send(_router(storage), command_envelope("3"))

    assert len(api.sent) == 1
    lines = api.sent[0][1].splitlines()
    assert lines == [
        "Top 3 kudos users:",
        "<@A> - 5 kudos",
        "<@B> - 3 kudos",
        "<@C> - 1 kudos",
    ]


def test_leaderboard_truncates_to_requested_count(tmp_path) -> None:
    storage = _storage(tmp_path, "T1")
    for user_id, times in (("A", 5), ("B", 3), ("C", 1)):
        for _ in range(times):
            storage.increment_or_create("T1", user_id)

    api = _send(_router(storage), command_envelope("2"))

    assert "<@C>" not in api.sent[0][1]
    assert api.sent[0][1].startswith("Top 2 kudos users:")


def test_leaderboard_without_kudos_says_so(tmp_path) -> None:
    storage = _storage(tmp_path, "T1")

    api = _send(_router(storage), command_envelope(""))

    assert api.sent == [("C1", NO_KUDOS_MESSAGE)]


def test_leaderboard_rejects_invalid_number(tmp_path) -> None:
    storage = _storage(tmp_path, "T1")

    api = _send(_router(storage), command_envelope("lots"))

    assert api.sent == [("C1", INVALID_NUMBER_MESSAGE)]


def test_leaderboard_for_unknown_workspace(tmp_path) -> None:
    storage = _storage(tmp_path)

    api = _send(_router(storage), command_envelope("", team_id="T404"), team_id="T404")

    assert "not set up" in api.sent[0][1]


def test_parse_top_count() -> None:
    config = KudosConfig(default_top_count=5, max_top_count=10)

    assert parse_top_count("", config) == 5
    assert parse_top_count("3", config) == 3
    assert parse_top_count("  7 extra", config) == 7
    assert parse_top_count("500", config) == 10
    assert parse_top_count("0", config) is None
    assert parse_top_count("-2", config) is None
    assert parse_top_count("abc", config) is None


def test_kudos_counted_under_event_workspace_not_receiving_connection(tmp_path) -> None:
    storage = _storage(tmp_path, "T1", "T2")

    _send(_router(storage), message_envelope("<@U9> ++", team_id="T2"), team_id="T1")

    assert storage.top_n("T2", 5)[0].user_id == "U9"
    assert storage.top_n("T1", 5) == []


def test_leaderboard_reads_event_workspace(tmp_path) -> None:
    storage = _storage(tmp_path, "T1", "T2")
    storage.increment_or_create("T2", "B")

    api = _send(_router(storage), command_envelope("", team_id="T2"), team_id="T1")

    assert api.sent[0][1].splitlines()[1] == "<@B> - 1 kudos"


def test_cross_workspace_event_is_acked_locally_and_answered_by_owner(tmp_path) -> None:
    storage = _storage(tmp_path, "T1", "T2")

    async def scenario():
        factory = FakeFactory()
        router = _router(storage)
        manager = TenantManager(router, factory)
        router.use_lookup(manager.get_tenant)
        await manager.add_tenant(make_credentials("T1", token="xoxb-t1"))
        await manager.add_tenant(make_credentials("T2", token="xoxb-t2"))
        t1_stream = factory.streams[0]
        t1_api, t2_api = factory.apis

        t1_stream.feed(message_envelope("<@U9> ++", "e1", team_id="T2"))
        await wait_until(lambda: len(t2_api.sent) == 1)

        await manager.shutdown(1)
        return t1_stream.acked, t1_api.sent, t2_api.sent

    acked, t1_sent, t2_sent = asyncio.run(scenario())

    assert acked == ["e1"]
    assert t1_sent == []
    assert "Now has 1 kudos" in t2_sent[0][1]
    assert storage.top_n("T1", 5) == []
    assert storage.top_n("T2", 5)[0].count == 1


def test_send_failure_propagates_from_router(tmp_path) -> None:
    storage = _storage(tmp_path, "T1")
    api = FakeApi()
    api.failures.append(SendError("channel_not_found"))
    connection = TenantConnection("T1", FakeStream(), api)

    with pytest.raises(SendError):
        asyncio.run(_router(storage).dispatch(message_envelope("<@U1> ++"), connection))

    # The increment happened before the reply failed.
    assert storage.top_n("T1", 1)[0].count == 1


def test_pump_survives_send_failure(tmp_path, caplog) -> None:
    storage = _storage(tmp_path, "T1")

    async def scenario():
        factory = FakeFactory()
        manager = TenantManager(_router(storage), factory)
        await manager.add_tenant(make_credentials("T1"))
        api = factory.apis[0]
        api.failures.append(SendError("channel_not_found"))

        factory.streams[0].feed(message_envelope("<@U1> ++", "e1"))
        factory.streams[0].feed(message_envelope("<@U1> ++", "e2"))
        await wait_until(lambda: len(api.sent) == 1)

        await manager.shutdown(1)
        return api.sent, factory.streams[0].acked

    with caplog.at_level(logging.ERROR, logger="core.tenants"):
        sent, acked = asyncio.run(scenario())

    assert acked == ["e1", "e2"]
    assert "Now has 2 kudos" in sent[0][1]
    assert any("Error processing" in record.getMessage() for record in caplog.records)
