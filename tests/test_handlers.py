from __future__ import annotations

import asyncio
import re

from core.dispatch import notification_dispatcher
from core.handlers import HandlerRegistry, RegexHandler
from core.models import MessageEvent


def _event(text: str) -> MessageEvent:
    return MessageEvent(team_id="T1", channel="C1", user="U1", text=text, ts="1.0")


def _recording_handler(name: str, pattern: str, calls: list[str]) -> RegexHandler[MessageEvent]:
    async def action(connection, event: MessageEvent) -> None:
        calls.append(name)

    return RegexHandler(name, re.compile(pattern), action)


def test_first_registered_handler_wins_when_both_match() -> None:
    calls: list[str] = []
    dispatcher = notification_dispatcher(
        [
            _recording_handler("first", r"\+\+", calls),
            _recording_handler("second", r"<@\w+>", calls),
        ]
    )

    handled = asyncio.run(dispatcher.dispatch(None, _event("<@U1> ++")))

    assert handled is True
    assert calls == ["first"]


def test_registration_order_decides_not_specificity() -> None:
    calls: list[str] = []
    dispatcher = notification_dispatcher(
        [
            _recording_handler("generic", r".", calls),
            _recording_handler("specific", r"<@U1> \+\+", calls),
        ]
    )

    asyncio.run(dispatcher.dispatch(None, _event("<@U1> ++")))

    assert calls == ["generic"]


def test_unmatched_event_is_dropped_silently() -> None:
    calls: list[str] = []
    dispatcher = notification_dispatcher([_recording_handler("kudos", r"\+\+", calls)])

    handled = asyncio.run(dispatcher.dispatch(None, _event("just chatting")))

    assert handled is False
    assert calls == []


def test_registry_is_fixed_at_construction() -> None:
    calls: list[str] = []
    source = [_recording_handler("a", r"a", calls)]
    registry = HandlerRegistry(source)
    source.append(_recording_handler("b", r"b", calls))

    assert len(registry) == 1
    assert registry.first_match("b") is None
    assert registry.first_match("a").name == "a"
