"""Ownership preconditions.

Authorization is answered by the identity layer; the engine only asks
"does this actor own the shop / rental" and raises AuthorizationError
when not.
"""

from __future__ import annotations

from dataclasses import dataclass

from psycopg2.extensions import cursor as PgCursor

from siargao_rides.domain.errors import AuthorizationError, NotFoundError
from siargao_rides.infra.repositories.shops_repository import get_shop_owner_id

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Actor:
    """Who is calling: a user id plus their platform role."""

    user_id: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def assert_owns_shop(cur: PgCursor, actor: Actor, shop_id: str) -> None:
    """Shop owner or admin, otherwise AuthorizationError."""
    if actor.is_admin:
        return
    owner_id = get_shop_owner_id(cur, shop_id)
    if owner_id is None:
        raise NotFoundError(f"Shop {shop_id} not found")
    if owner_id != actor.user_id:
        raise AuthorizationError("You do not own this shop")


def assert_can_cancel(cur: PgCursor, actor: Actor, rental: dict) -> None:
    """Either party may cancel: the renter, the shop owner or an admin."""
    if actor.is_admin:
        return
    if rental.get("user_id") is not None and rental["user_id"] == actor.user_id:
        return
    assert_owns_shop(cur, actor, rental["shop_id"])
