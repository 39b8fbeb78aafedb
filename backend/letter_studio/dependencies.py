from fastapi import Depends, HTTPException, status, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
import logging
import os
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from letter_studio.db import get_db
from letter_studio.models_db import User
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)

JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

if not JWT_SECRET:
    logger.error("JWT_SECRET is not set. All bearer tokens will be rejected.")

SESSION_COOKIE_NAMES = [
    '__session',
    'session',
]


def extract_token_from_request(request: Request, token_from_header: Optional[str] = None) -> Optional[str]:
    """
    Extract the bearer token from either the Authorization header or cookies.

    Args:
        request: FastAPI request object
        token_from_header: Token from OAuth2 scheme (Authorization header)

    Returns:
        Token string or None if not found
    """
    if token_from_header:
        return token_from_header

    for cookie_name in SESSION_COOKIE_NAMES:
        token = request.cookies.get(cookie_name)
        if token:
            logger.info(f"Found token in cookie: {cookie_name}")
            return token

    logger.warning("No authentication token found in request")
    return None


def decode_token(token: str) -> Dict[str, Any]:
    """Verify the token signature and return its claims."""
    if not JWT_SECRET:
        raise JWTError("JWT_SECRET is not configured")
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])


async def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Verify the auth token and get the current user.
    Users seen for the first time are provisioned from the token claims.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    auth_token = extract_token_from_request(request, token)
    if not auth_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        claims = decode_token(auth_token)
    except JWTError as e:
        logger.warning(f"Rejected token: {e}")
        raise credentials_exception

    subject = claims.get("sub")
    if not subject:
        raise credentials_exception

    result = await db.execute(select(User).where(User.external_id == subject))
    user = result.scalar_one_or_none()

    if user is None:
        logger.info(f"User with external_id {subject} not found. Creating new user.")
        user = User(
            external_id=subject,
            email=claims.get("email"),
            name=claims.get("name") or "New User",
            active=True
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
    elif not user.email and claims.get("email"):
        # Enrich only empty fields so profile edits are never overwritten
        user.email = claims["email"]
        await db.commit()
        await db.refresh(user)

    return user


async def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    """
    Get the current active user.
    This is used for regular HTTP endpoints.
    """
    if not current_user.active:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user
