import logging
from typing import Optional
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from therapy_api.db import get_db
from therapy_api.errors import ConflictError, UnauthorizedError
from therapy_api.models import User
from therapy_api.services.auth_service import (
    verify_password, hash_password, get_current_user, get_user_by_email,
    open_session, close_session, delete_expired_sessions, oauth2_scheme,
)
from therapy_api.schemas import (
    UserCreate, LoginRequest, UserPublic, RegisterResp, LoginResp, MeResp, MessageResp,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

@router.post("/register", response_model=RegisterResp, status_code=status.HTTP_201_CREATED)
async def register_user(user_in: UserCreate, db: AsyncSession = Depends(get_db)):
    email = user_in.email.strip().lower()
    if await get_user_by_email(db, email):
        raise ConflictError("Email already in use.")

    try:
        res = await db.execute(
            insert(User)
            .values(name=user_in.name, email=email, password_hash=hash_password(user_in.password))
            .returning(User)
        )
        user = res.scalar_one()
        await db.commit()
    except IntegrityError:
        # lost a race with a concurrent registration of the same email
        await db.rollback()
        raise ConflictError("Email already in use.")

    logger.info("User registered: id=%s", user.id)
    return RegisterResp(user=UserPublic.model_validate(user))

@router.post("/login", response_model=LoginResp)
async def login(req: LoginRequest, request: Request, db: AsyncSession = Depends(get_db)):
    user = await get_user_by_email(db, req.email)
    if not user or not verify_password(req.password, user.password_hash):
        raise UnauthorizedError("Invalid email or password.")

    await delete_expired_sessions(db)
    token = await open_session(db, user, device_info=request.headers.get("user-agent"))
    logger.info("User logged in: id=%s", user.id)
    return LoginResp(user=UserPublic.model_validate(user), token=token)

@router.post("/logout", response_model=MessageResp)
async def logout(
    token: Optional[str] = Depends(oauth2_scheme),
    current_user: UserPublic = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Delete the session row for the presented token.
    Repeating the call is harmless and returns the same message.
    """
    if token:
        await close_session(db, token)
    return MessageResp(message="Logged out successfully")

@router.get("/me", response_model=MeResp)
async def get_my_info(current_user: UserPublic = Depends(get_current_user)):
    return MeResp(user=current_user)
