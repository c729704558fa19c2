"""FastAPI dependencies for authentication and tenant lookup."""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from services.auth_service import AuthError, decode_access_token
from services.supabase_client import SupabaseClient, get_supabase_client
from services.telnyx_service import TelnyxService, get_telnyx_service

logger = logging.getLogger(__name__)

# Security scheme for JWT bearer tokens
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> dict:
    """
    Get the authenticated user from the bearer token.

    Returns:
        {"user_id", "business_id", "role"}

    Raises:
        HTTPException: 401 if the token is missing or invalid
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_access_token(credentials.credentials)
    except AuthError as e:
        logger.warning(f"Rejected token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )

    return {
        "user_id": payload["sub"],
        "business_id": payload["business_id"],
        "role": payload.get("role", "owner"),
    }


async def get_current_business(
    user: dict = Depends(get_current_user),
    db: SupabaseClient = Depends(get_supabase_client),
) -> dict:
    """Load the authenticated user's business row."""
    business = await db.get_business(user["business_id"])
    if not business:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Business not found")
    return business


def get_optional_telnyx() -> Optional[TelnyxService]:
    """Telnyx client, or None when TELNYX_API_KEY isn't configured."""
    try:
        return get_telnyx_service()
    except ValueError:
        logger.warning("TELNYX_API_KEY not configured, SMS features disabled")
        return None
