from __future__ import annotations

from typing import Callable, Generator

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from backend.app.db.session import SessionLocal
from backend.services.authorization import Actor, Capability, ensure_capability, load_actor
from backend.services.errors import Unauthenticated

def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_actor(
    x_user_id: int | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> Actor:
    """
    Acteur authentifié.
    L'authentification réelle est en amont (gateway) : ici on ne fait que
    résoudre l'id transmis en utilisateur actif.
    """
    if x_user_id is None:
        raise Unauthenticated("Missing X-User-Id header")
    actor = load_actor(db, x_user_id)
    if actor is None:
        raise Unauthenticated("Unknown or inactive user", user_id=x_user_id)
    return actor


def require_capability(capability: Capability) -> Callable[..., Actor]:
    def _dependency(actor: Actor = Depends(get_actor)) -> Actor:
        return ensure_capability(actor, capability)

    return _dependency
