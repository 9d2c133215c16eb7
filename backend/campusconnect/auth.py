from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .database import get_db
from . import models

# purpose: resolve the authenticated principal handed over by the upstream identity gateway
# inputs: X-User-Id header set by the gateway after it verified the session
# outputs: active models.User for route and websocket dependencies
# status: active

PRINCIPAL_HEADER = "X-User-Id"
# browsers cannot set headers on a websocket handshake
PRINCIPAL_QUERY_PARAM = "principal_id"


def lookup_principal(db: Session, raw_user_id: Optional[str]) -> Optional[models.User]:
    """Return the user named by a gateway principal id, or None when it does not resolve."""

    if not raw_user_id:
        return None
    try:
        user_id = UUID(raw_user_id)
    except ValueError:
        return None
    return db.get(models.User, user_id)


def get_current_user(
    x_user_id: Optional[str] = Header(None, alias=PRINCIPAL_HEADER),
    db: Session = Depends(get_db),
) -> models.User:
    user = lookup_principal(db, x_user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Could not validate credentials")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account is deactivated")
    return user
