"""Request principal, taken from headers set by the upstream auth layer.

The gateway in front of this service authenticates the session and forwards
``X-User-Id``, ``X-User-Role`` and ``X-User-Name``. Requests without a valid
identity are rejected with ``Unauthorized``.
"""

from dataclasses import dataclass

from fastapi import Header

from ordering.catalog import get_catalog
from ordering.exceptions import Forbidden, Unauthorized
from ordering.order.lifecycle import Actor, ActorRole

# Roles a request may claim; ``system`` is internal only
REQUEST_ROLES = (ActorRole.BUYER, ActorRole.SELLER, ActorRole.ADMIN)


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: ActorRole
    name: str | None = None

    def to_actor(self) -> Actor:
        if self.role is ActorRole.SELLER:
            return Actor.seller(self.user_id, get_catalog().products_owned_by(self.user_id))
        if self.role is ActorRole.ADMIN:
            return Actor.admin(self.user_id)
        return Actor.buyer(self.user_id)

    def require(self, *roles: ActorRole) -> "Principal":
        if self.role not in roles:
            raise Forbidden(
                f"Role {self.role.value} may not perform this operation",
                role=self.role.value,
            )
        return self


def get_principal(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
    x_user_name: str | None = Header(default=None),
) -> Principal:
    if not x_user_id or not x_user_id.strip():
        raise Unauthorized("Authentication required")
    try:
        role = ActorRole((x_user_role or "").strip().lower())
    except ValueError:
        raise Unauthorized(f"Unknown user role '{x_user_role}'") from None
    if role not in REQUEST_ROLES:
        raise Unauthorized(f"Unknown user role '{x_user_role}'")
    return Principal(user_id=x_user_id.strip(), role=role, name=x_user_name)
