"""Role / page-access lookup consumed by the roleIs and auth.verify blocks.

User accounts, roles and page grants belong to the platform's identity
service; the engine reads them through :class:`AccessLookup`.
"""

from __future__ import annotations

from typing import Any, Protocol


class AccessLookup(Protocol):
    async def get_role(self, tenant_id: str, user_id: str | None) -> str | None: ...

    async def get_page_grants(self, tenant_id: str, user_id: str | None) -> list[str]: ...

    async def get_user(self, tenant_id: str, user_id: Any) -> dict[str, Any] | None: ...

    async def is_token_revoked(self, token: str) -> bool: ...


class StaticAccessLookup:
    """In-memory lookup seeded with users: ``{user_id: {"role", "pages", "email", ...}}``."""

    def __init__(
        self,
        users: dict[str, dict[str, Any]] | None = None,
        revoked_tokens: set[str] | None = None,
    ) -> None:
        self._users = {str(k): dict(v) for k, v in (users or {}).items()}
        self._revoked = set(revoked_tokens or ())

    def add_user(self, user_id: Any, **fields: Any) -> None:
        self._users[str(user_id)] = {"id": user_id, **fields}

    def revoke(self, token: str) -> None:
        self._revoked.add(token)

    async def get_role(self, tenant_id: str, user_id: str | None) -> str | None:
        user = self._users.get(str(user_id)) if user_id is not None else None
        return user.get("role") if user else None

    async def get_page_grants(self, tenant_id: str, user_id: str | None) -> list[str]:
        user = self._users.get(str(user_id)) if user_id is not None else None
        return list(user.get("pages", [])) if user else []

    async def get_user(self, tenant_id: str, user_id: Any) -> dict[str, Any] | None:
        user = self._users.get(str(user_id))
        return dict(user) if user else None

    async def is_token_revoked(self, token: str) -> bool:
        return token in self._revoked
