# src/taskdesk/storage/remote_sync.py

"""
Optional replication of state files to a GitHub repository.

The hook runs after a successful local write. It is strictly best-effort:
the caller logs and swallows any exception raised here.
"""

from __future__ import annotations

import base64
import logging
from pathlib import Path

import httpx

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


class GitHubSync:
    """Push files through the GitHub contents API (one commit per file write)."""

    def __init__(
        self,
        *,
        repo: str,
        token: str,
        branch: str = "main",
        path_prefix: str = "",
        base_url: str = GITHUB_API_URL,
        timeout_seconds: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if "/" not in repo:
            raise ValueError("repo must look like 'owner/name'")
        self.repo = repo
        self.branch = branch
        self.path_prefix = path_prefix.strip("/")
        self._base_url = base_url.rstrip("/")
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        self._timeout = httpx.Timeout(timeout_seconds, connect=5.0)
        self._transport = transport

    def _remote_path(self, name: str) -> str:
        return f"{self.path_prefix}/{name}" if self.path_prefix else name

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def push(self, name: str, path: Path) -> None:
        remote = self._remote_path(name)
        url = f"/repos/{self.repo}/contents/{remote}"
        content = base64.b64encode(Path(path).read_bytes()).decode("ascii")

        async with self._client() as client:
            sha: str | None = None
            resp = await client.get(url, params={"ref": self.branch})
            if resp.status_code == 200:
                sha = resp.json().get("sha")
            elif resp.status_code != 404:
                resp.raise_for_status()

            body: dict[str, str] = {
                "message": f"Update {remote}",
                "content": content,
                "branch": self.branch,
            }
            if sha:
                body["sha"] = sha

            resp = await client.put(url, json=body)
            resp.raise_for_status()

        logger.info("Replicated %s to %s@%s", remote, self.repo, self.branch)


def create_remote_sync(settings) -> GitHubSync | None:
    if not getattr(settings, "sync_enabled", False):
        return None
    try:
        return GitHubSync(
            repo=settings.sync_repo,
            token=settings.sync_token,
            branch=settings.sync_branch,
            path_prefix=settings.sync_path_prefix,
        )
    except ValueError:
        logger.exception("Remote sync misconfigured; replication disabled")
        return None
