from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional

from fastapi import Depends, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import config, models
from .database import get_db_async
from .errors import AuthError

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="login")

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict):
    to_encode = data.copy()

    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire, "iat": now.timestamp()})

    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


async def user_from_token(token: Optional[str], db: AsyncSession) -> models.User:
    """Verify a bearer token and load its user.

    Shared by the REST dependency and the live-update handshake.
    """
    if not token:
        raise AuthError(
            code="token_missing",
            message="Authentication required",
            status=status.HTTP_401_UNAUTHORIZED,
        )

    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError:
        raise AuthError(
            code="token_expired_or_invalid",
            message="Token is invalid or expired",
            status=status.HTTP_401_UNAUTHORIZED,
        )

    username: Optional[str] = payload.get("sub")
    if username is None:
        raise AuthError(
            code="token_invalid",
            message="Token payload missing user",
            status=status.HTTP_401_UNAUTHORIZED,
        )

    stmt = select(models.User).where(models.User.username == username)
    result = await db.execute(stmt)
    user = result.scalar_one_or_none()

    if user is None:
        raise AuthError(
            code="user_not_found",
            message="User associated with token not found",
            status=status.HTTP_401_UNAUTHORIZED,
        )

    return user


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: AsyncSession = Depends(get_db_async),
):
    return await user_from_token(token, db)
