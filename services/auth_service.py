"""Account registration, login and password reset."""

import hashlib
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
from jose import jwt, JWTError

from config import get_settings
from models.schemas import MAX_PASSWORD_BYTES
from services.business_hours import DEFAULT_BUSINESS_HOURS
from services.email_service import get_email_service
from services.phone import validate_and_format_phone
from services.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

RESET_TOKEN_TTL = timedelta(hours=1)


class AuthError(Exception):
    """Raised for authentication and registration failures."""

    def __init__(self, message: str, status_code: int = 401):
        self.status_code = status_code
        super().__init__(message)


def normalize_password(password: str) -> str:
    """Passwords are stored and checked without surrounding whitespace."""
    return password.strip()


def hash_password(password: str) -> str:
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise AuthError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes", status_code=400)
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(encoded, salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_access_token(
    user_id: str,
    business_id: str,
    role: str,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a signed access token.

    Args:
        user_id: The user's UUID
        business_id: The tenant the user belongs to
        role: The user's role (owner, staff)
        expires_delta: Optional custom lifetime

    Returns:
        Encoded JWT
    """
    settings = get_settings()
    if not settings.jwt_secret:
        raise ValueError("JWT_SECRET must be set")

    issued_at = datetime.now(timezone.utc)
    expire = issued_at + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))

    payload = {
        "sub": str(user_id),
        "business_id": str(business_id),
        "role": role,
        "type": "access",
        "exp": expire,
        "iat": issued_at,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and validate an access token.

    Raises:
        AuthError: If the token is invalid, expired or not an access token
    """
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise AuthError(f"Invalid token: {e}")

    if payload.get("type") != "access":
        raise AuthError("Invalid token type")
    if not payload.get("sub") or not payload.get("business_id"):
        raise AuthError("Invalid token data")

    return payload


def _public_user(user: dict) -> dict:
    return {
        "id": user.get("id"),
        "email": user.get("email"),
        "name": user.get("name"),
        "role": user.get("role"),
        "business_id": user.get("business_id"),
    }


class AuthService:
    """Registration, login and password reset against the users table."""

    def __init__(self, db: SupabaseClient):
        self.db = db

    async def register(self, request) -> dict:
        """
        Create a business and its owner account.

        The business row is created first; if the user insert fails the
        business is deleted again so no orphan tenant is left behind.
        """
        email = request.email.lower().strip()
        phone = validate_and_format_phone(request.phone)
        if not phone:
            raise AuthError("Invalid phone number format", status_code=400)

        if await self.db.get_user_by_email(email):
            logger.info(f"Registration attempt with existing email {email}")
            raise AuthError("An account with this email already exists", status_code=409)

        business_name = request.business_name.strip()
        settings = get_settings()

        business = await self.db.create_business({
            "business_name": business_name,
            "business_type": request.business_type,
            "owner_name": request.owner_name.strip(),
            "email": email,
            "phone": phone,
            "notification_phone": phone,
            "website": request.website,
            "address": request.address,
            "services": request.services,
            "service_areas": request.service_areas,
            "business_hours": DEFAULT_BUSINESS_HOURS,
            "timezone": request.timezone or settings.default_timezone,
            "greeting_message": f"Thank you for calling {business_name}. How can I help you today?",
            "ai_tone": "professional",
            "after_hours_policy": "voicemail",
            "sms_forwarding_enabled": False,
            "onboarding_completed": False,
            "subscription_status": "inactive",
        })

        if not business:
            raise AuthError("Business creation failed", status_code=500)

        try:
            user = await self.db.create_user({
                "email": email,
                "name": request.owner_name.strip(),
                "password_hash": hash_password(normalize_password(request.password)),
                "business_id": business["id"],
                "role": "owner",
                "status": "active",
            })
            if not user:
                raise AuthError("User creation failed", status_code=500)
        except Exception:
            await self.db.delete_business(business["id"])
            raise

        await self.db.update_business(business["id"], {"owner_id": user["id"]})

        try:
            get_email_service().send_welcome(email, request.owner_name.strip(), business_name)
        except Exception as e:
            logger.warning(f"Welcome email failed for {email}: {e}")

        token = create_access_token(user["id"], business["id"], "owner")
        logger.info(f"Registered business {business['id']} for {email}")

        return {"token": token, "user": _public_user(user), "business": business}

    async def login(self, email: str, password: str) -> dict:
        user = await self.db.get_user_by_email(email.lower().strip())

        if not user or not verify_password(normalize_password(password), user.get("password_hash")):
            raise AuthError("Invalid email or password")

        if user.get("status") != "active":
            raise AuthError("Account is not active")

        business = await self.db.get_business(user["business_id"]) or {}
        await self.db.update_user(user["id"], {"last_login": datetime.now(timezone.utc).isoformat()})

        token = create_access_token(user["id"], user["business_id"], user.get("role", "owner"))
        return {"token": token, "user": _public_user(user), "business": business}

    async def request_password_reset(self, email: str) -> None:
        """Email a reset link if the account exists; silent otherwise."""
        user = await self.db.get_user_by_email(email.lower().strip())
        if not user:
            logger.info("Password reset requested for unknown email")
            return

        token = secrets.token_urlsafe(32)
        expires_at = datetime.now(timezone.utc) + RESET_TOKEN_TTL
        await self.db.update_user(user["id"], {
            "reset_token_hash": hash_token(token),
            "reset_token_expires_at": expires_at.isoformat(),
        })

        reset_url = f"{get_settings().base_url}/reset-password?token={token}"
        try:
            get_email_service().send_password_reset(user["email"], user.get("name"), reset_url)
        except Exception as e:
            logger.error(f"Password reset email failed for user {user['id']}: {e}")

    async def reset_password(self, token: str, new_password: str) -> None:
        user = await self.db.get_user_by_reset_token(hash_token(token))
        if not user or not user.get("reset_token_expires_at"):
            raise AuthError("Invalid or expired reset token", status_code=400)

        expires_at = datetime.fromisoformat(str(user["reset_token_expires_at"]).replace("Z", "+00:00"))
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at < datetime.now(timezone.utc):
            raise AuthError("Invalid or expired reset token", status_code=400)

        await self.db.update_user(user["id"], {
            "password_hash": hash_password(normalize_password(new_password)),
            "reset_token_hash": None,
            "reset_token_expires_at": None,
        })
        logger.info(f"Password reset for user {user['id']}")
