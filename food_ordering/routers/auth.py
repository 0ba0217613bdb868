# food_ordering/routers/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm

from food_ordering.core.responses import ok
from food_ordering.deps import get_auth_service, get_current_user
from food_ordering.models.user import User
from food_ordering.schemas.auth import LoginPayload, RefreshPayload, RegisterPayload
from food_ordering.services.auth_service import AuthService
from food_ordering.services.serializers import user_to_dict

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _session_body(result: dict) -> dict:
    return {
        "user": user_to_dict(result["user"]),
        "access_token": result["access_token"],
        "refresh_token": result["refresh_token"],
        "token_type": result["token_type"],
    }


@router.post("/register", status_code=201)
def register(payload: RegisterPayload, service: AuthService = Depends(get_auth_service)):
    result = service.register(payload)
    return ok("User registered successfully", **_session_body(result))


@router.post("/login")
def login(payload: LoginPayload, service: AuthService = Depends(get_auth_service)):
    result = service.login(payload.email, payload.password)
    return ok("Login successful", **_session_body(result))


@router.post("/token")
def token(form_data: OAuth2PasswordRequestForm = Depends(), service: AuthService = Depends(get_auth_service)):
    """Used by the Swagger UI Authorize button (form fields: username, password)."""
    result = service.login(form_data.username, form_data.password)
    return {"access_token": result["access_token"], "token_type": "bearer"}


@router.post("/refresh")
def refresh(payload: RefreshPayload, service: AuthService = Depends(get_auth_service)):
    result = service.refresh(payload.refresh_token)
    return ok("Token refreshed successfully", **_session_body(result))


@router.get("/me")
def me(user: User = Depends(get_current_user), service: AuthService = Depends(get_auth_service)):
    profile = service.get_profile(user.id)
    return ok("Profile retrieved successfully", user=user_to_dict(profile))
