from __future__ import annotations

import logging
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from food_ordering.core.errors import ConflictError, ForbiddenError, InvalidRequestError, NotFoundError
from food_ordering.models.enums import UserRole
from food_ordering.models.restaurant import Restaurant
from food_ordering.models.user import User
from food_ordering.schemas.restaurant import RestaurantCreate, RestaurantUpdate
from food_ordering.utils.slug import slugify

logger = logging.getLogger(__name__)

CREATOR_ROLES = {UserRole.ADMIN.value, UserRole.RESTAURANT_OWNER.value}


def is_admin(user: User | None) -> bool:
    return user is not None and user.role == UserRole.ADMIN.value


def can_manage_restaurant(user: User | None, restaurant: Restaurant) -> bool:
    """Owner of the restaurant or an admin."""
    if user is None:
        return False
    return is_admin(user) or restaurant.owner_id == user.id


class RestaurantService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _derive_slug(self, name: str, *, exclude_id: int | None = None) -> str:
        slug = slugify(name)
        if not slug:
            raise InvalidRequestError("Restaurant name must contain letters or digits")
        query = self.db.query(Restaurant.id).filter(Restaurant.slug == slug)
        if exclude_id is not None:
            query = query.filter(Restaurant.id != exclude_id)
        if query.first():
            raise ConflictError("Restaurant with this name already exists")
        return slug

    def _load(self, restaurant_id: int) -> Restaurant:
        restaurant = (
            self.db.query(Restaurant)
            .options(joinedload(Restaurant.owner))
            .filter(Restaurant.id == restaurant_id)
            .first()
        )
        if not restaurant:
            raise NotFoundError("Restaurant not found")
        return restaurant

    def _load_requester(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def _commit(self, restaurant: Restaurant) -> Restaurant:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError("Restaurant with this name already exists") from exc
        self.db.refresh(restaurant)
        return restaurant

    def create_restaurant(self, payload: RestaurantCreate, owner_id: int) -> Restaurant:
        owner = self.db.get(User, owner_id)
        if not owner:
            raise NotFoundError("Owner not found")
        if owner.role not in CREATOR_ROLES:
            raise ForbiddenError("Only admin and restaurant owners can create restaurants")

        restaurant = Restaurant(
            name=payload.name,
            slug=self._derive_slug(payload.name),
            description=payload.description or None,
            address=payload.address or None,
            city=payload.city or None,
            state=payload.state or None,
            zip_code=payload.zip_code or None,
            phone=payload.phone or None,
            image=payload.image or None,
            is_active=True,
            owner_id=owner.id,
        )
        self.db.add(restaurant)
        self._commit(restaurant)
        logger.info("Restaurant created id=%s slug=%s owner_id=%s", restaurant.id, restaurant.slug, owner.id)
        return restaurant

    def get_restaurant_by_id(self, restaurant_id: int) -> Restaurant:
        restaurant = self._load(restaurant_id)
        if not restaurant.is_active:
            raise NotFoundError("Restaurant not found")
        return restaurant

    def get_restaurant_by_slug(self, slug: str) -> Restaurant:
        restaurant = (
            self.db.query(Restaurant)
            .options(joinedload(Restaurant.owner))
            .filter(Restaurant.slug == slug, Restaurant.is_active.is_(True))
            .first()
        )
        if not restaurant:
            raise NotFoundError("Restaurant not found")
        return restaurant

    def get_all_restaurants(self) -> List[Restaurant]:
        return (
            self.db.query(Restaurant)
            .options(joinedload(Restaurant.owner))
            .filter(Restaurant.is_active.is_(True))
            .order_by(Restaurant.created_at.asc(), Restaurant.id.asc())
            .all()
        )

    def update_restaurant(self, restaurant_id: int, payload: RestaurantUpdate, user_id: int) -> Restaurant:
        restaurant = self._load(restaurant_id)
        user = self._load_requester(user_id)
        if not can_manage_restaurant(user, restaurant):
            raise ForbiddenError("You do not have permission to update this restaurant")

        if payload.name is not None:
            restaurant.slug = self._derive_slug(payload.name, exclude_id=restaurant.id)
            restaurant.name = payload.name
        if payload.description is not None:
            restaurant.description = payload.description
        if payload.address is not None:
            restaurant.address = payload.address
        if payload.city is not None:
            restaurant.city = payload.city
        if payload.state is not None:
            restaurant.state = payload.state
        if payload.zip_code is not None:
            restaurant.zip_code = payload.zip_code
        if payload.phone is not None:
            restaurant.phone = payload.phone
        if payload.image is not None:
            restaurant.image = payload.image
        if payload.is_active is not None:
            restaurant.is_active = payload.is_active

        return self._commit(restaurant)

    def delete_restaurant(self, restaurant_id: int, user_id: int) -> None:
        restaurant = self._load(restaurant_id)
        user = self._load_requester(user_id)
        if not can_manage_restaurant(user, restaurant):
            raise ForbiddenError("You do not have permission to delete this restaurant")

        restaurant.is_active = False
        self.db.commit()
        logger.info("Restaurant deactivated id=%s by user_id=%s", restaurant.id, user.id)
