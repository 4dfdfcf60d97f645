# deps/admin.py
from fastapi import Depends, HTTPException, status

from app.jobs.model import ActorRole
from deps.auth import CurrentActor, get_current_actor


def require_admin(actor: CurrentActor = Depends(get_current_actor)) -> CurrentActor:
    if actor.role != ActorRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="ADMIN_REQUIRED",
        )
    return actor
