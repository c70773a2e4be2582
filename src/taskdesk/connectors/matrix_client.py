# src/taskdesk/connectors/matrix_client.py

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path

from nio import AsyncClient, AsyncClientConfig, LoginResponse

logger = logging.getLogger(__name__)

SESSION_FILE = "session.json"


@dataclass(slots=True, frozen=True)
class MatrixSession:
    """
    Access token + device id of the bot account.

    Persisted under the (gitignored) matrix store dir so restarts skip the
    password login. The file is a secret: it is written with 0600 permissions.
    """

    user_id: str
    device_id: str
    access_token: str

    @classmethod
    def load(cls, path: Path) -> MatrixSession | None:
        if not path.exists():
            return None
        try:
            raw = json.loads(path.read_text("utf-8"))
            session = cls(
                user_id=str(raw["user_id"]),
                device_id=str(raw["device_id"]),
                access_token=str(raw["access_token"]),
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable Matrix session %s: %r", path, e)
            return None
        if not (session.user_id and session.device_id and session.access_token):
            logger.warning("Ignoring incomplete Matrix session %s", path)
            return None
        return session

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(asdict(self), ensure_ascii=False), "utf-8")
        os.replace(tmp, path)
        try:
            os.chmod(path, 0o600)
        except OSError:
            logger.debug("chmod 0600 not supported for %s", path)

    def apply(self, client: AsyncClient) -> None:
        client.user_id = self.user_id
        client.device_id = self.device_id
        client.access_token = self.access_token


async def _password_login(client: AsyncClient, password: str, device_name: str) -> MatrixSession | None:
    logger.info("Logging in to Matrix to bootstrap a new session (device_name=%r)...", device_name)
    resp = await client.login(password=password, device_name=device_name)
    if not isinstance(resp, LoginResponse):
        logger.error("Matrix login failed: %r", resp)
        return None
    return MatrixSession(user_id=resp.user_id, device_id=resp.device_id, access_token=resp.access_token)


async def create_matrix_client(settings) -> AsyncClient | None:
    """
    Build the bot's AsyncClient.

    A stored session wins; otherwise TASKDESK_MATRIX_PASSWORD is used once to
    log in and the resulting session is stored. Returns None when neither works.
    Rooms are unencrypted; reminders go out as plain DMs.
    """
    homeserver = (getattr(settings, "matrix_homeserver", "") or "").strip()
    user_id = (getattr(settings, "matrix_user_id", "") or "").strip()
    password = (getattr(settings, "matrix_password", "") or "").strip()
    store_dir = Path(getattr(settings, "matrix_store_path", Path(".local/taskdesk/matrix_store")))

    if not homeserver or not user_id:
        logger.error("Matrix is not configured: set TASKDESK_MATRIX_HOMESERVER and TASKDESK_MATRIX_USER_ID")
        return None

    session_path = store_dir / SESSION_FILE
    client = AsyncClient(homeserver, user_id, config=AsyncClientConfig(store_sync_tokens=True))

    session = MatrixSession.load(session_path)
    if session is not None:
        session.apply(client)
        logger.info("Matrix session restored for %s", session.user_id)
        return client

    if not password:
        logger.error(
            "No stored Matrix session at %s and no password set. "
            "Set TASKDESK_MATRIX_PASSWORD once to bootstrap a session.",
            session_path,
        )
        await client.close()
        return None

    session = await _password_login(client, password, f"{getattr(settings, 'app_name', 'taskdesk')} bot")
    if session is None:
        await client.close()
        return None

    try:
        session.save(session_path)
        logger.info("Matrix session saved to %s (user=%s)", session_path, session.user_id)
    except OSError:
        logger.exception("Failed to store Matrix session at %s; the next start will log in again", session_path)
    return client
