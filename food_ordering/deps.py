# food_ordering/deps.py
from __future__ import annotations

import logging
from typing import Callable, Optional

from fastapi import BackgroundTasks, Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from food_ordering.core.cache import CacheGateway
from food_ordering.core.config import ORDER_STATUS_STRICT_TRANSITIONS, PAYMENT_SETTLEMENT_MODE
from food_ordering.core.database import get_db, get_session_factory
from food_ordering.core.errors import ForbiddenError, UnauthorizedError
from food_ordering.core.request_context import set_request_context
from food_ordering.models.enums import UserRole
from food_ordering.models.user import User
from food_ordering.services.auth import decode_access_token, extract_user_id
from food_ordering.services.auth_service import AuthService
from food_ordering.services.menu_cache import MenuCache
from food_ordering.services.menu_service import MenuService
from food_ordering.services.notifications import NotificationPublisher
from food_ordering.services.order_service import OrderWorkflow
from food_ordering.services.payments import PaymentGateway, PaymentSimulator
from food_ordering.services.restaurant_service import RestaurantService

# Swagger "Authorize" (OAuth2 password flow) posts to this endpoint
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)

logger = logging.getLogger(__name__)


def authenticate_token(db: Session, token: str | None) -> User:
    """Resolve a bearer access token to an active user or raise UnauthorizedError."""
    if not token:
        raise UnauthorizedError("Authentication required")
    try:
        payload = decode_access_token(token)
    except ValueError as exc:
        raise UnauthorizedError("Invalid or expired token") from exc

    user_id = extract_user_id(payload)
    if user_id is None:
        raise UnauthorizedError("Invalid or expired token")

    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise UnauthorizedError("User not found or inactive")
    return user


def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    user = authenticate_token(db, token)
    request.state.user = user
    set_request_context(user_id=str(user.id))
    return user


def require_roles(*roles: UserRole) -> Callable[..., User]:
    allowed = {role.value for role in roles}

    def _dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            logger.info("Role check failed user_id=%s role=%s allowed=%s", user.id, user.role, sorted(allowed))
            raise ForbiddenError("Insufficient permissions")
        return user

    return _dependency


# =========================
# Shared infrastructure (app.state)
# =========================
def get_cache_gateway(request: Request) -> CacheGateway | None:
    return getattr(request.app.state, "cache", None)


def get_notification_publisher(request: Request) -> NotificationPublisher | None:
    return getattr(request.app.state, "notifications", None)


def get_payment_gateway(request: Request) -> PaymentGateway:
    gateway = getattr(request.app.state, "payment_gateway", None)
    return gateway if gateway is not None else PaymentSimulator()


def get_menu_cache(gateway: CacheGateway | None = Depends(get_cache_gateway)) -> MenuCache:
    return MenuCache(gateway)


# =========================
# Services
# =========================
def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    return AuthService(db)


def get_restaurant_service(db: Session = Depends(get_db)) -> RestaurantService:
    return RestaurantService(db)


def get_menu_service(
    db: Session = Depends(get_db),
    cache: MenuCache = Depends(get_menu_cache),
) -> MenuService:
    return MenuService(db, cache)


def get_order_workflow(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    publisher: NotificationPublisher | None = Depends(get_notification_publisher),
    session_factory=Depends(get_session_factory),
    payment_gateway: PaymentGateway = Depends(get_payment_gateway),
) -> OrderWorkflow:
    schedule = background_tasks.add_task if PAYMENT_SETTLEMENT_MODE == "background" else None
    return OrderWorkflow(
        db,
        publisher,
        session_factory,
        payment_gateway,
        schedule_settlement=schedule,
        strict_transitions=ORDER_STATUS_STRICT_TRANSITIONS,
    )
