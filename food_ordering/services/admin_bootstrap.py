from __future__ import annotations

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from food_ordering.models.enums import UserRole
from food_ordering.models.user import User
from food_ordering.services.auth import hash_password


def ensure_users_table(engine: Engine) -> None:
    inspector = inspect(engine)
    if not inspector.has_table("users"):
        raise RuntimeError("Table users not found. Run `alembic upgrade head` first.")


def upsert_admin_user(
    db: Session,
    *,
    email: str,
    first_name: str,
    last_name: str,
    password: str | None,
) -> tuple[User, bool]:
    """Create an admin, or promote and reactivate an existing user with that email."""
    email = email.strip().lower()
    existing = db.query(User).filter(User.email == email).first()
    if existing:
        existing.role = UserRole.ADMIN.value
        existing.is_active = True
        if password:
            existing.password_hash = hash_password(password)
        db.commit()
        db.refresh(existing)
        return existing, False

    if not password:
        raise ValueError("A password is required to create a new admin.")

    admin = User(
        email=email,
        first_name=first_name,
        last_name=last_name,
        password_hash=hash_password(password),
        role=UserRole.ADMIN.value,
        is_active=True,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    return admin, True
