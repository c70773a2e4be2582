# tests/test_logging_and_session.py

from __future__ import annotations

import json
import logging
from pathlib import Path
from types import SimpleNamespace

import pytest

from taskdesk.connectors.matrix_client import MatrixSession, create_matrix_client
from taskdesk.logging_setup import _ConsoleNoiseFilter


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


def test_console_filter_floors() -> None:
    f = _ConsoleNoiseFilter()
    assert f.filter(_record("taskdesk.tasks.reminders", logging.DEBUG))
    assert not f.filter(_record("taskdesk.connectors.matrix_connector", logging.INFO))
    assert f.filter(_record("taskdesk.connectors.matrix_connector", logging.WARNING))
    assert not f.filter(_record("nio.responses", logging.WARNING))
    assert f.filter(_record("nio.responses", logging.ERROR))
    assert not f.filter(_record("py.warnings", logging.WARNING))


def test_session_load_rejects_incomplete(tmp_path: Path) -> None:
    path = tmp_path / "session.json"
    assert MatrixSession.load(path) is None

    path.write_text(json.dumps({"user_id": "@bot:test", "device_id": "", "access_token": "x"}), "utf-8")
    assert MatrixSession.load(path) is None

    path.write_text("not json", "utf-8")
    assert MatrixSession.load(path) is None


@pytest.mark.asyncio
async def test_client_restores_stored_session(tmp_path: Path) -> None:
    MatrixSession(user_id="@bot:test", device_id="DEV", access_token="secret").save(tmp_path / "session.json")
    settings = SimpleNamespace(
        matrix_homeserver="https://matrix.test",
        matrix_user_id="@bot:test",
        matrix_password="",
        matrix_store_path=tmp_path,
        app_name="taskdesk-test",
    )

    client = await create_matrix_client(settings)
    try:
        assert client is not None
        assert client.access_token == "secret"
        assert client.device_id == "DEV"
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_client_needs_session_or_password(tmp_path: Path) -> None:
    unconfigured = SimpleNamespace(matrix_homeserver="", matrix_user_id="", matrix_store_path=tmp_path)
    assert await create_matrix_client(unconfigured) is None

    no_password = SimpleNamespace(
        matrix_homeserver="https://matrix.test",
        matrix_user_id="@bot:test",
        matrix_password="",
        matrix_store_path=tmp_path,
    )
    assert await create_matrix_client(no_password) is None
