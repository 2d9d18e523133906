"""
feedesk/core/security.py
Authentication and security utilities
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from feedesk.core.config import settings
from feedesk.models.schemas import AdminSession
import logging

logger = logging.getLogger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
security = HTTPBearer()

def hash_password(password: str) -> str:
    """Hash a password"""
    return pwd_context.hash(password)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        logger.error("Stored admin password hash is malformed")
        return False

def authenticate_admin(email: str, password: str) -> bool:
    """Check credentials against the configured admin allowlist"""
    hashed = {k.lower(): v for k, v in settings.ADMIN_ACCOUNTS.items()}.get(email.lower())
    if not hashed:
        return False
    return verify_password(password, hashed)

def create_access_token(email: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token for an admin session"""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {"sub": email, "exp": expire, "type": "access"}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def verify_token(token: str) -> AdminSession:
    """Verify and decode JWT token"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.error(f"JWT verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials"
        )

    email = payload.get("sub")
    if email is None or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload"
        )

    session = AdminSession(
        email=email,
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
    )
    if session.is_expired:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired"
        )
    return session

async def require_admin(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> AdminSession:
    """Require a valid admin session"""
    session = verify_token(credentials.credentials)
    if session.email.lower() not in {k.lower() for k in settings.ADMIN_ACCOUNTS}:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return session
