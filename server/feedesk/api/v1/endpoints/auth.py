"""
feedesk/api/v1/endpoints/auth.py
Admin login endpoints
"""
from fastapi import APIRouter, HTTPException, status, Depends
from feedesk.models.schemas import AdminLogin, AdminSession, Token
from feedesk.core.security import authenticate_admin, create_access_token, require_admin
from feedesk.core.config import settings
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/login", response_model=Token)
async def login(credentials: AdminLogin):
    """
    Login with an allowlisted admin email and password
    Returns a bearer token for the admin session
    """
    if not authenticate_admin(credentials.email, credentials.password):
        logger.warning(f"Failed login attempt for {credentials.email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password"
        )

    logger.info(f"Admin logged in: {credentials.email}")
    return Token(
        access_token=create_access_token(credentials.email),
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    )


@router.get("/me", response_model=AdminSession)
async def current_session(session: AdminSession = Depends(require_admin)):
    """Return the current admin session"""
    return session
