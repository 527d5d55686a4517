"""Access-token helpers.

Tokens are minted by the identity service; this subsystem only needs to
verify them and, in tests and local tooling, to mint one for a known user.
"""

import uuid
from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from orgledger.config import settings


def create_access_token(user_id: uuid.UUID, **claims) -> str:
    to_encode = {"sub": str(user_id), **claims}
    expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict | None:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    if payload.get("type") != "access":
        return None
    return payload
