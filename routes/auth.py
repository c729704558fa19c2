"""Authentication API routes: register, login and password reset."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from models.schemas import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SuccessResponse,
)
from services.auth_service import AuthError, AuthService
from services.supabase_client import SupabaseClient, get_supabase_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=AuthResponse)
async def register(request: RegisterRequest, db: SupabaseClient = Depends(get_supabase_client)):
    """Create a business and its owner account."""
    try:
        result = await AuthService(db).register(request)
    except AuthError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return AuthResponse(**result)


@router.post("/login", response_model=AuthResponse)
async def login(request: LoginRequest, db: SupabaseClient = Depends(get_supabase_client)):
    try:
        result = await AuthService(db).login(request.email, request.password)
    except AuthError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return AuthResponse(**result)


@router.post("/forgot-password", response_model=SuccessResponse)
async def forgot_password(request: ForgotPasswordRequest, db: SupabaseClient = Depends(get_supabase_client)):
    """Always succeeds so callers can't tell which emails have accounts."""
    await AuthService(db).request_password_reset(request.email)
    return SuccessResponse(message="If an account exists for that email, a reset link has been sent.")


@router.post("/reset-password", response_model=SuccessResponse)
async def reset_password(request: ResetPasswordRequest, db: SupabaseClient = Depends(get_supabase_client)):
    try:
        await AuthService(db).reset_password(request.token, request.password)
    except AuthError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return SuccessResponse(message="Password has been reset.")
