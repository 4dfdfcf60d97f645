# deps/auth.py
from fastapi import Depends, Header, HTTPException

from app.jobs.errors import ValidationError
from app.jobs.model import Actor, ActorRole


class CurrentActor:
    """Caller identity as forwarded by the gateway's auth layer."""

    def __init__(self, role: ActorRole, actor_id: str | None):
        self.role = role
        self.actor_id = actor_id

    def as_actor(self) -> Actor:
        return Actor(role=self.role, id=self.actor_id)


def get_current_actor(
    x_actor_role: str | None = Header(default=None),
    x_actor_id: str | None = Header(default=None),
) -> CurrentActor:
    if not x_actor_role:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")
    try:
        role = ActorRole.parse(x_actor_role, field_name="X-Actor-Role")
    except ValidationError:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")

    actor_id = (x_actor_id or "").strip() or None
    if role != ActorRole.SYSTEM and not actor_id:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")
    return CurrentActor(role=role, actor_id=actor_id)


def require_contractor(actor: CurrentActor = Depends(get_current_actor)) -> CurrentActor:
    if actor.role != ActorRole.CONTRACTOR:
        raise HTTPException(status_code=403, detail="CONTRACTOR_REQUIRED")
    return actor
