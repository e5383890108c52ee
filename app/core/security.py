"""
Security utilities module.
Provides token creation and the authentication dependencies for ledger routes.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import AppError, ErrorCode
from app.db.session import get_db
from app.models.user import User

logger = logging.getLogger(__name__)

# Bearer scheme for token authentication
bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a new JWT access token.

    Args:
        data: The data to encode in the token, `sub` being the userId
        expires_delta: Optional expiration time

    Returns:
        str: The encoded JWT token
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})

    encoded_jwt = jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )

    return encoded_jwt


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db)
) -> User:
    """
    Get the current authenticated user.

    Args:
        credentials: The bearer credentials
        db: Database session

    Returns:
        User: The authenticated user

    Raises:
        HTTPException: If the token is missing or invalid
        AppError: If the token's user doesn't exist
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    try:
        # Decode the JWT token
        payload = jwt.decode(
            credentials.credentials,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
        user_id: Optional[str] = payload.get("sub")

        if user_id is None:
            logger.warning("Missing user_id in token")
            raise credentials_exception
    except JWTError as e:
        logger.warning(f"JWT error: {str(e)}")
        raise credentials_exception

    user = db.query(User).filter(User.user_id == user_id).first()

    if user is None:
        logger.warning(f"User not found: {user_id}")
        raise AppError(f"User {user_id} not found", ErrorCode.PERMISSION_NO_USER)

    return user


def require_user_access(user_id: str, current_user: User = Depends(get_current_user)) -> str:
    """
    Ensure the authenticated user is the user named in the path.

    Args:
        user_id: The userId path parameter
        current_user: The authenticated user

    Returns:
        str: The userId

    Raises:
        HTTPException: If the path names another user
    """
    if current_user.user_id != user_id:
        logger.warning(f"User {current_user.user_id} denied access to {user_id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions"
        )
    return user_id
