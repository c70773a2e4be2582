# src/taskdesk/connectors/matrix_connector.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import time

from nio import AsyncClient, InviteMemberEvent, MatrixRoom, RoomCreateResponse, RoomMessageText
from nio.api import RoomPreset

from ..cli.commands import registry as command_registry
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ms_now() -> int:
    return int(time.time() * 1000)


def _room_allowlist(settings_rooms: list[str]) -> set[str] | None:
    rooms = [r.strip() for r in (settings_rooms or []) if str(r).strip()]
    return set(rooms) if rooms else None


async def _send_text(client: AsyncClient, *, room_id: str, text: str) -> None:
    await client.room_send(
        room_id=room_id,
        message_type="m.room.message",
        content={"msgtype": "m.text", "body": text},
        ignore_unverified_devices=True,
    )


class MatrixMessenger:
    """
    OutboundMessenger over Matrix.

    room_id wins when given; otherwise the message goes to a direct-message room
    with to_user_id, which is reused or created on first use.
    """

    def __init__(self, client: AsyncClient) -> None:
        self._client = client
        self._dm_rooms: dict[str, str] = {}
        self._dm_lock = asyncio.Lock()

    def _find_dm_room(self, user_id: str) -> str | None:
        for room in self._client.rooms.values():
            members = set(room.users) | set(getattr(room, "invited_users", {}) or {})
            if user_id in members and len(members) <= 2:
                return room.room_id
        return None

    async def _dm_room(self, user_id: str) -> str:
        async with self._dm_lock:
            room_id = self._dm_rooms.get(user_id) or self._find_dm_room(user_id)
            if room_id is None:
                resp = await self._client.room_create(
                    is_direct=True,
                    invite=[user_id],
                    preset=RoomPreset.trusted_private_chat,
                )
                if not isinstance(resp, RoomCreateResponse):
                    raise RuntimeError(f"Could not open a DM with {user_id}: {resp!r}")
                room_id = resp.room_id
                logger.info("Opened DM room %s with %s", room_id, user_id)
            self._dm_rooms[user_id] = room_id
            return room_id

    async def send_text(
        self,
        *,
        text: str,
        room_id: str | None = None,
        to_user_id: str | None = None,
    ) -> None:
        target = (room_id or "").strip()
        if not target:
            if not to_user_id:
                raise ValueError("send_text needs room_id or to_user_id")
            target = await self._dm_room(to_user_id)
        await _send_text(self._client, room_id=target, text=text)


async def run_matrix_connector(state: AppState, client: AsyncClient, stop_event: asyncio.Event) -> None:
    """
    Matrix connector (async):

    callbacks -> initial sync -> sync loop until stop_event

    Commands arriving as "/name args" are routed through the command registry and
    answered in the same room. Invites are auto-accepted so users can DM the bot.
    """
    settings = state.settings
    startup_ts = _ms_now()

    allowed_rooms = _room_allowlist(getattr(settings, "matrix_rooms", []) or [])
    logger.info("Matrix allowed_rooms=%s", allowed_rooms if allowed_rooms is not None else "ALL")

    async def invite_callback(room: MatrixRoom, event: InviteMemberEvent) -> None:
        if event.state_key != client.user_id or event.membership != "invite":
            return
        try:
            await client.join(room.room_id)
            logger.info("Joined %s after invite from %s", room.room_id, event.sender)
        except Exception:
            logger.exception("Failed to join %s", room.room_id)

    async def message_callback(room: MatrixRoom, event: RoomMessageText) -> None:
        # 1) Ignore messages sent before bot startup.
        ts = getattr(event, "server_timestamp", None)
        if ts is not None and ts <= startup_ts:
            return

        # 2) Ignore own messages.
        if event.sender == client.user_id:
            return

        # 3) Room allowlist filter (DM rooms with the bot are always allowed).
        is_dm = room.member_count <= 2
        if allowed_rooms is not None and room.room_id not in allowed_rooms and not is_dm:
            return

        body = (event.body or "").strip()
        if not body.startswith("/"):
            return

        logger.info("Matrix <%s> %s: %r", room.display_name, event.sender, body)

        try:
            resp = await command_registry.handle(
                state,
                body,
                user_id=event.sender,
                display_name=room.user_name(event.sender) or event.sender,
                room_id=room.room_id,
            )
        except Exception:
            logger.exception("Command handler crashed.")
            resp = "Internal error while handling a command."

        if resp:
            try:
                await _send_text(client, room_id=room.room_id, text=resp)
            except Exception:
                logger.exception("Failed to send command reply.")

    client.add_event_callback(message_callback, RoomMessageText)
    client.add_event_callback(invite_callback, InviteMemberEvent)

    # ---- Sync loop ----

    try:
        logger.info("Matrix initial sync...")
        await client.sync(timeout=30000, full_state=True)
        logger.info("Matrix initial sync done. Joined rooms: %d", len(client.rooms))

        while not stop_event.is_set():
            await client.sync(timeout=30000, full_state=False)

    except asyncio.CancelledError:
        logger.info("Matrix connector cancelled.")
        raise
    except Exception:
        logger.exception("Matrix connector crashed.")
    finally:
        with contextlib.suppress(Exception):
            await client.close()

        logger.info("Matrix connector stopped.")
