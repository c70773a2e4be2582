# tests/test_json_state.py

from __future__ import annotations

import json
import os
import stat
from pathlib import Path

import pytest

from taskdesk.errors import PersistenceFailure
from taskdesk.storage import json_state
from taskdesk.storage.json_state import BackupPolicy, JsonStateFile


def _state_file(tmp_path: Path, retention: int = 3) -> JsonStateFile:
    return JsonStateFile(
        tmp_path / "tasks.json",
        backup_dir=tmp_path / "backups" / "tasks",
        policy=BackupPolicy(retention=retention),
    )


def test_load_missing_corrupt_and_non_object_fall_back_to_default(tmp_path: Path) -> None:
    sf = _state_file(tmp_path)
    assert sf.load() == {}

    sf.path.write_text("{not json", "utf-8")
    assert sf.load() == {}

    sf.path.write_text("[1, 2, 3]", "utf-8")
    assert sf.load() == {}


def test_write_is_atomic_and_leaves_no_temp_file(tmp_path: Path) -> None:
    sf = _state_file(tmp_path)
    sf.write({"u1": [{"id": 1, "title": "a"}]})
    sf.write({"u1": [{"id": 1, "title": "b"}]})

    assert json.loads(sf.path.read_text("utf-8")) == {"u1": [{"id": 1, "title": "b"}]}
    assert not list(tmp_path.glob("*.tmp"))


def test_backup_retention_keeps_most_recent(tmp_path: Path) -> None:
    sf = _state_file(tmp_path, retention=3)
    created: list[Path] = []
    for i in range(5):
        sf.path.write_text(json.dumps({"n": i}), "utf-8")
        path = sf.backup()
        assert path is not None
        created.append(path)

    remaining = sf.list_backups()
    assert len(remaining) == 3
    assert remaining == created[-3:]
    assert [json.loads(p.read_text("utf-8"))["n"] for p in remaining] == [2, 3, 4]


def test_every_write_creates_a_backup(tmp_path: Path) -> None:
    sf = _state_file(tmp_path, retention=10)
    for i in range(4):
        sf.write({"n": i})
    assert len(sf.list_backups()) == 4


def test_retention_change_applies_on_next_backup(tmp_path: Path) -> None:
    sf = _state_file(tmp_path, retention=10)
    for i in range(6):
        sf.write({"n": i})
    sf.policy.retention = 2
    sf.write({"n": 99})
    backups = sf.list_backups()
    assert len(backups) == 2
    assert json.loads(backups[-1].read_text("utf-8")) == {"n": 99}


def test_backup_failure_does_not_block_write(tmp_path: Path) -> None:
    blocker = tmp_path / "backups"
    blocker.write_text("i am a file, not a directory", "utf-8")
    sf = _state_file(tmp_path)

    sf.write({"ok": True})

    assert json.loads(sf.path.read_text("utf-8")) == {"ok": True}
    assert sf.backup() is None


def test_write_failure_raises_persistence_failure(tmp_path: Path) -> None:
    parent = tmp_path / "not_a_dir"
    parent.write_text("x", "utf-8")
    sf = JsonStateFile(parent / "tasks.json", backup_dir=tmp_path / "b")

    with pytest.raises(PersistenceFailure):
        sf.write({"a": 1})


def test_unserializable_state_raises_persistence_failure(tmp_path: Path) -> None:
    sf = _state_file(tmp_path)
    with pytest.raises(PersistenceFailure):
        sf.write({"bad": object()})
    assert not sf.path.exists()


@pytest.mark.skipif(os.name != "posix", reason="directory fsync is POSIX only")
def test_write_syncs_file_and_parent_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    synced: list[bool] = []
    real_fsync = os.fsync

    def spy(fd: int) -> None:
        synced.append(stat.S_ISDIR(os.fstat(fd).st_mode))
        real_fsync(fd)

    monkeypatch.setattr(json_state.os, "fsync", spy)
    sf = _state_file(tmp_path)
    sf.write({"n": 1})

    assert synced == [False, True]


@pytest.mark.skipif(os.name != "posix", reason="directory fsync is POSIX only")
def test_directory_fsync_failure_does_not_fail_write(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    real_fsync = os.fsync

    def flaky(fd: int) -> None:
        if stat.S_ISDIR(os.fstat(fd).st_mode):
            raise OSError("EINVAL")
        real_fsync(fd)

    monkeypatch.setattr(json_state.os, "fsync", flaky)
    sf = _state_file(tmp_path)
    sf.write({"ok": True})

    assert json.loads(sf.path.read_text("utf-8")) == {"ok": True}
