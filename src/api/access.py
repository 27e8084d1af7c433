# src/api/access.py — v1
"""Caller identity and query authorization.

The identity is produced by an upstream authentication layer; this module
only decides whether that identity may query a (zone, development) scope
and which user id the query is attributed to.
"""

from __future__ import annotations

import logging
from typing import Iterable

from pydantic import BaseModel, Field

from ragtiers.core.errors import AccessDeniedError
from ragtiers.core.models import QueryScope

logger = logging.getLogger(__name__)

QUERY_PERMISSION = "query_agent"
ALL_DEVELOPMENTS = "*"


class UserIdentity(BaseModel, frozen=True):
    """A verified caller."""

    user_id: str = Field(min_length=1)
    role: str = "sales"
    permissions: frozenset[str] = frozenset()
    # zone -> developments the user may query ("*" = every development)
    zone_access: dict[str, frozenset[str]] = Field(default_factory=dict)

    def is_admin(self, admin_roles: Iterable[str]) -> bool:
        return self.role in set(admin_roles)

    def can_access(self, zone: str, development: str) -> bool:
        allowed = self.zone_access.get(zone, frozenset())
        return ALL_DEVELOPMENTS in allowed or development in allowed


def ensure_can_query(
    identity: UserIdentity, scope: QueryScope, admin_roles: Iterable[str] = ("admin", "ceo")
) -> None:
    """Raise AccessDeniedError unless ``identity`` may query ``scope``.

    Admin roles may query any scope.
    """
    if identity.is_admin(admin_roles):
        return
    if QUERY_PERMISSION not in identity.permissions or not identity.can_access(
        scope.zone, scope.development
    ):
        logger.warning(
            "Access denied: user=%s zone=%s development=%s",
            identity.user_id, scope.zone, scope.development,
        )
        raise AccessDeniedError("No tienes permisos para consultar este desarrollo")


def effective_user_id(
    identity: UserIdentity,
    on_behalf_of_user_id: str | None,
    admin_roles: Iterable[str] = ("admin", "ceo"),
) -> str:
    """User id a query is attributed to; only admins may act for another user."""
    if on_behalf_of_user_id and identity.is_admin(admin_roles):
        return on_behalf_of_user_id
    return identity.user_id
