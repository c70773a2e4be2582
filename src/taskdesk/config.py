# src/taskdesk/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Every path lives under a gitignored local data dir unless overridden.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "TASKDESK"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    parts = [p.strip() for p in raw.replace(",", " ").split() if p.strip()]
    return parts


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Principals ----
    owner_id: str | None
    admin_ids: list[str]

    # ---- Connector flags ----
    console_enabled: bool
    console_user_id: str
    matrix_enabled: bool

    # ---- Matrix ----
    matrix_homeserver: str
    matrix_user_id: str
    matrix_password: str
    matrix_rooms: list[str]

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    matrix_store_path: Path
    tasks_path: Path
    departments_path: Path
    managers_path: Path
    config_path: Path
    backup_dir: Path
    export_dir: Path

    # ---- Persistence / reminders ----
    backup_retention: int
    reminder_windows: list[str]
    reminder_interval_seconds: float

    # ---- Health check ----
    health_enabled: bool
    health_host: str
    health_port: int

    # ---- Remote replication (optional) ----
    sync_repo: str | None
    sync_token: str | None
    sync_branch: str
    sync_path_prefix: str

    @property
    def sync_enabled(self) -> bool:
        return bool(self.sync_repo and self.sync_token)

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskdesk") or "taskdesk"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        owner_id = (_first_env(_k("OWNER_ID"), default="") or "").strip() or None
        admin_ids = _env_list(_k("ADMIN_IDS"), [])

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        console_user_id = _env(_k("CONSOLE_USER_ID"), "console").strip() or "console"
        matrix_enabled = _env_bool(_k("MATRIX_ENABLED"), False)

        matrix_homeserver = (_first_env(_k("MATRIX_HOMESERVER"), "MATRIX_HOMESERVER", default="") or "").strip()
        matrix_user_id = (_first_env(_k("MATRIX_USER_ID"), "MATRIX_USER_ID", default="") or "").strip()
        matrix_password = (_first_env(_k("MATRIX_PASSWORD"), "MATRIX_PASSWORD", default="") or "").strip()
        matrix_rooms = _env_list(_k("MATRIX_ROOMS"), [])

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskdesk"))
        matrix_store_path = _env_path(_k("MATRIX_STORE_PATH"), data_dir / "matrix_store")
        tasks_path = _env_path(_k("TASKS_PATH"), data_dir / "tasks.json")
        departments_path = _env_path(_k("DEPARTMENTS_PATH"), data_dir / "departments.json")
        managers_path = _env_path(_k("MANAGERS_PATH"), data_dir / "managers.json")
        config_path = _env_path(_k("CONFIG_PATH"), data_dir / "config.json")
        backup_dir = _env_path(_k("BACKUP_DIR"), data_dir / "backups")
        export_dir = _env_path(_k("EXPORT_DIR"), data_dir / "exports")

        backup_retention = max(1, _env_int(_k("BACKUP_RETENTION"), 10))
        reminder_windows = _env_list(_k("REMINDER_WINDOWS"), ["1d", "1h"])
        reminder_interval_seconds = _env_float(_k("REMINDER_INTERVAL_SECONDS"), 300.0)

        health_enabled = _env_bool(_k("HEALTH_ENABLED"), True)
        health_host = _env(_k("HEALTH_HOST"), "0.0.0.0")
        # PORT is what most hosting platforms inject.
        health_port = _env_int(_k("HEALTH_PORT"), _env_int("PORT", 3000))

        sync_repo = (_env(_k("SYNC_REPO"), "").strip() or None)
        sync_token = (_first_env(_k("SYNC_TOKEN"), "GITHUB_TOKEN", default="") or "").strip() or None
        sync_branch = _env(_k("SYNC_BRANCH"), "main").strip() or "main"
        sync_path_prefix = _env(_k("SYNC_PATH_PREFIX"), "taskdesk").strip("/ ")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            owner_id=owner_id,
            admin_ids=admin_ids,
            console_enabled=console_enabled,
            console_user_id=console_user_id,
            matrix_enabled=matrix_enabled,
            matrix_homeserver=matrix_homeserver,
            matrix_user_id=matrix_user_id,
            matrix_password=matrix_password,
            matrix_rooms=matrix_rooms,
            data_dir=data_dir,
            matrix_store_path=matrix_store_path,
            tasks_path=tasks_path,
            departments_path=departments_path,
            managers_path=managers_path,
            config_path=config_path,
            backup_dir=backup_dir,
            export_dir=export_dir,
            backup_retention=backup_retention,
            reminder_windows=reminder_windows,
            reminder_interval_seconds=reminder_interval_seconds,
            health_enabled=health_enabled,
            health_host=health_host,
            health_port=health_port,
            sync_repo=sync_repo,
            sync_token=sync_token,
            sync_branch=sync_branch,
            sync_path_prefix=sync_path_prefix,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
