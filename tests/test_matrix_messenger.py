# tests/test_matrix_messenger.py

from __future__ import annotations

from types import SimpleNamespace

import pytest
from nio import RoomCreateResponse

from taskdesk.connectors.matrix_connector import MatrixMessenger


class FakeClient:
    """Just enough of nio.AsyncClient for outbound delivery."""

    def __init__(self, rooms=None) -> None:
        self.rooms = rooms or {}
        self.sent: list[tuple[str, str]] = []
        self.created: list[list[str]] = []

    async def room_send(self, *, room_id, message_type, content, ignore_unverified_devices=False):
        self.sent.append((room_id, content["body"]))

    async def room_create(self, *, is_direct, invite, preset):
        self.created.append(list(invite))
        return RoomCreateResponse.from_dict({"room_id": f"!dm-{len(self.created)}:test"})


def _room(room_id: str, *users: str):
    return SimpleNamespace(room_id=room_id, users={u: None for u in users}, invited_users={})


@pytest.mark.asyncio
async def test_explicit_room_wins() -> None:
    client = FakeClient()
    await MatrixMessenger(client).send_text(text="hi", room_id="!room:test", to_user_id="@a:test")
    assert client.sent == [("!room:test", "hi")]
    assert client.created == []


@pytest.mark.asyncio
async def test_existing_dm_room_is_reused() -> None:
    client = FakeClient({"!dm:test": _room("!dm:test", "@bot:test", "@a:test")})
    await MatrixMessenger(client).send_text(text="ping", to_user_id="@a:test")
    assert client.sent == [("!dm:test", "ping")]
    assert client.created == []


@pytest.mark.asyncio
async def test_dm_room_is_created_once() -> None:
    client = FakeClient({"!group:test": _room("!group:test", "@bot:test", "@a:test", "@b:test")})
    messenger = MatrixMessenger(client)

    await messenger.send_text(text="one", to_user_id="@a:test")
    await messenger.send_text(text="two", to_user_id="@a:test")

    assert client.created == [["@a:test"]]
    assert client.sent == [("!dm-1:test", "one"), ("!dm-1:test", "two")]


@pytest.mark.asyncio
async def test_needs_a_target() -> None:
    with pytest.raises(ValueError):
        await MatrixMessenger(FakeClient()).send_text(text="lost")
