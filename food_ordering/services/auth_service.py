from __future__ import annotations

import logging
from typing import Any, Dict

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from food_ordering.core.errors import ConflictError, NotFoundError, UnauthorizedError
from food_ordering.models.enums import UserRole
from food_ordering.models.user import User
from food_ordering.schemas.auth import RegisterPayload
from food_ordering.services.auth import (
    create_token_pair,
    decode_refresh_token,
    extract_user_id,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


class AuthService:
    """Registration, login and token refresh for platform users."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def register(self, payload: RegisterPayload) -> Dict[str, Any]:
        email = payload.email.lower()
        if self.db.query(User).filter(User.email == email).first():
            raise ConflictError("User with this email already exists")

        user = User(
            email=email,
            password_hash=hash_password(payload.password),
            first_name=payload.first_name,
            last_name=payload.last_name,
            phone=payload.phone or None,
            role=(payload.role or UserRole.CUSTOMER).value,
            is_active=True,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as exc:
            # concurrent registration with the same email
            self.db.rollback()
            raise ConflictError("User with this email already exists") from exc
        self.db.refresh(user)
        logger.info("User registered id=%s role=%s", user.id, user.role)

        return {"user": user, **create_token_pair(user)}

    def login(self, email: str, password: str) -> Dict[str, Any]:
        user = self.db.query(User).filter(User.email == email.lower()).first()
        # Same message for every failure so callers cannot tell which check failed.
        if not user or not user.is_active:
            raise UnauthorizedError(INVALID_CREDENTIALS)
        if not verify_password(password, user.password_hash):
            raise UnauthorizedError(INVALID_CREDENTIALS)

        return {"user": user, **create_token_pair(user)}

    def refresh(self, refresh_token: str) -> Dict[str, Any]:
        try:
            payload = decode_refresh_token(refresh_token)
        except ValueError as exc:
            raise UnauthorizedError("Invalid or expired token") from exc

        user_id = extract_user_id(payload)
        user = self.db.get(User, user_id) if user_id is not None else None
        if not user or not user.is_active:
            raise UnauthorizedError("Invalid or expired token")

        return {"user": user, **create_token_pair(user)}

    def get_profile(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user
