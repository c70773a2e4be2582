# src/taskdesk/core/access.py

from __future__ import annotations

from collections.abc import Iterable

from ..tasks.registry import ManagerRegistry


class AccessPolicy:
    """
    admin      = server owner or static allow-list
    manager    = present in the manager registry
    privileged = admin or manager
    """

    def __init__(
        self,
        *,
        managers: ManagerRegistry,
        owner_id: str | None = None,
        admin_ids: Iterable[str] = (),
    ) -> None:
        self._managers = managers
        self.owner_id = owner_id
        self.admin_ids = frozenset(a for a in admin_ids if a)

    def is_admin(self, user_id: str | None) -> bool:
        if not user_id:
            return False
        return user_id == self.owner_id or user_id in self.admin_ids

    def is_manager(self, user_id: str | None) -> bool:
        return self._managers.is_manager(user_id)

    def is_privileged(self, user_id: str | None) -> bool:
        return self.is_admin(user_id) or self.is_manager(user_id)
