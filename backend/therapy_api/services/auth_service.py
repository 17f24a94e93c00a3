import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from therapy_api.config import JWT_SECRET, JWT_ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from therapy_api.db import get_db
from therapy_api.errors import UnauthorizedError
from therapy_api.models import User, Session
from therapy_api.schemas import UserPublic

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
# auto_error=False: a missing header is reported through UnauthorizedError like every other auth failure
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(password: str, password_hash: str) -> bool:
    """False for a wrong password and for a stored hash passlib cannot identify."""
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        logger.warning("Unrecognised password hash format")
        return False

def token_expiry(now: Optional[datetime] = None, lifetime: Optional[timedelta] = None) -> datetime:
    """Expiry shared by the signed token and its session row (24h by default)."""
    if lifetime is None:
        lifetime = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    return (now or datetime.now(timezone.utc)) + lifetime

def sign_token(claims: dict, expires_at: datetime) -> str:
    # jti keeps two tokens minted in the same second distinct (sessions.token is unique)
    return jwt.encode(
        {**claims, "exp": expires_at, "jti": uuid.uuid4().hex},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    return sign_token(data, token_expiry(lifetime=expires_delta))

async def get_user_by_email(db: AsyncSession, email: str):
    res = await db.execute(select(User).where(User.email == email.strip().lower()))
    return res.scalar_one_or_none()

async def open_session(db: AsyncSession, user: User, device_info: Optional[str] = None) -> str:
    """
    Sign a token for `user` and persist the matching session row.
    Both carry the same expiry; the guard only ever checks the token's `exp`.
    """
    now = datetime.now(timezone.utc)
    expires_at = token_expiry(now)
    token = sign_token({"sub": str(user.id)}, expires_at)
    db.add(Session(
        user_id=user.id,
        token=token,
        expires_at=expires_at,
        device_info=device_info.strip() if device_info else None,
        last_active=now,
    ))
    await db.commit()
    return token

async def close_session(db: AsyncSession, token: str) -> int:
    """Delete the session row for `token`. Deleting an unknown token is a no-op."""
    res = await db.execute(delete(Session).where(Session.token == token))
    await db.commit()
    return res.rowcount or 0

async def delete_expired_sessions(db: AsyncSession) -> int:
    res = await db.execute(
        delete(Session).where(Session.expires_at < datetime.now(timezone.utc))
    )
    await db.commit()
    if res.rowcount:
        logger.info("Pruned %s expired sessions", res.rowcount)
    return res.rowcount or 0

async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> UserPublic:
    """
    Bearer-token guard for protected routes.

    Verifies the signature and expiry, loads the user named by `sub` and
    returns the public identity projection (id, name, email). The session
    store is not consulted: logging out deletes the session row but an
    issued token stays valid until its own expiry.
    """
    if not token:
        raise UnauthorizedError("Authentication required")
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise UnauthorizedError("Invalid or expired token")

    user_id_str = payload.get("sub")
    try:
        user_id = int(user_id_str)
    except (TypeError, ValueError):
        raise UnauthorizedError("Invalid or expired token")

    user = await db.get(User, user_id)
    if user is None:
        raise UnauthorizedError("User not found")
    return UserPublic.model_validate(user)
