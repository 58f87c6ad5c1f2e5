"""
Contrôle de capacités, appelé avant chaque opération du cœur.

Le cœur ne lit jamais d'utilisateur "courant" : l'acteur est résolu ici puis
son id est passé explicitement (actor_id) aux services.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import User
from backend.app.db.models.core_types import Role
from backend.services.errors import PermissionDenied


class Capability(str, enum.Enum):
    create_sale = "create_sale"
    view_sales = "view_sales"
    cancel_sale = "cancel_sale"
    adjust_stock = "adjust_stock"
    manage_catalog = "manage_catalog"
    view_reports = "view_reports"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.admin: frozenset(Capability),
    Role.employee: frozenset({Capability.create_sale, Capability.view_sales, Capability.view_reports}),
}


@dataclass(frozen=True, slots=True)
class Actor:
    id: int
    name: str
    role: Role

    def can(self, capability: Capability) -> bool:
        return capability in ROLE_CAPABILITIES.get(self.role, frozenset())


def load_actor(db: Session, user_id: int) -> Actor | None:
    """Acteur actif correspondant à user_id, sinon None."""
    user = db.get(User, user_id)
    if user is None or not user.active:
        return None
    return Actor(id=int(user.id), name=user.name, role=user.role)


def ensure_capability(actor: Actor, capability: Capability) -> Actor:
    if not actor.can(capability):
        raise PermissionDenied(
            f"Role '{actor.role.value}' is not allowed to {capability.value}",
            required=capability.value,
            role=actor.role.value,
        )
    return actor


__all__ = ["Capability", "ROLE_CAPABILITIES", "Actor", "load_actor", "ensure_capability"]
