import uuid

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from orgledger.core.errors import Unauthorized
from orgledger.core.security import decode_token
from orgledger.database import get_db
from orgledger.logging_config import set_request_context
from orgledger.models.user import User
from orgledger.services import membership_store
from orgledger.services.membership import MembershipOrchestrator

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the bearer token to an authenticated ``User``."""
    if credentials is None:
        raise Unauthorized("Not authenticated")

    payload = decode_token(credentials.credentials)
    if not payload or "sub" not in payload:
        raise Unauthorized("Invalid or expired token")

    try:
        user_id = uuid.UUID(payload["sub"])
    except ValueError as e:
        raise Unauthorized("Invalid or expired token") from e

    user = await membership_store.get_user(db, user_id)
    if user is None:
        raise Unauthorized("User not found")
    set_request_context(user_id=str(user.id))
    return user


def get_orchestrator(db: AsyncSession = Depends(get_db)) -> MembershipOrchestrator:
    return MembershipOrchestrator(db)
