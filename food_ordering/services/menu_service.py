from __future__ import annotations

import logging
from typing import Any, List

from sqlalchemy.orm import Session, joinedload

from food_ordering.core.errors import ForbiddenError, NotFoundError
from food_ordering.models.menu_item import MenuItem
from food_ordering.models.restaurant import Restaurant
from food_ordering.models.user import User
from food_ordering.schemas.menu import MenuItemCreate, MenuItemUpdate
from food_ordering.services.menu_cache import MenuCache
from food_ordering.services.restaurant_service import can_manage_restaurant
from food_ordering.services.serializers import menu_item_to_dict

logger = logging.getLogger(__name__)


class MenuService:
    def __init__(self, db: Session, cache: MenuCache) -> None:
        self.db = db
        self.cache = cache

    def _ensure_can_manage(self, restaurant: Restaurant, user: User) -> None:
        if not can_manage_restaurant(user, restaurant):
            raise ForbiddenError("You do not have permission to manage this restaurant's menu")

    def _load_item(self, item_id: int) -> MenuItem:
        item = (
            self.db.query(MenuItem)
            .options(joinedload(MenuItem.restaurant))
            .filter(MenuItem.id == item_id)
            .first()
        )
        if not item:
            raise NotFoundError("Menu item not found")
        return item

    def create_menu_item(self, payload: MenuItemCreate, user: User) -> MenuItem:
        restaurant = self.db.get(Restaurant, payload.restaurant_id)
        if not restaurant:
            raise NotFoundError("Restaurant not found")
        self._ensure_can_manage(restaurant, user)

        item = MenuItem(
            restaurant_id=restaurant.id,
            name=payload.name,
            description=payload.description or None,
            price=payload.price,
            category=payload.category.value,
            image=payload.image or None,
            is_active=payload.is_active,
            is_available=payload.is_available,
        )
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        logger.info("Menu item created id=%s restaurant_id=%s", item.id, restaurant.id)

        self.cache.invalidate(restaurant.id)
        return item

    def get_menu_item_by_id(self, item_id: int) -> MenuItem:
        return self._load_item(item_id)

    def get_menu_by_restaurant_id(self, restaurant_id: int) -> List[dict[str, Any]]:
        cached = self.cache.get_menu(restaurant_id)
        if cached is not None:
            return cached

        items = (
            self.db.query(MenuItem)
            .filter(
                MenuItem.restaurant_id == restaurant_id,
                MenuItem.is_active.is_(True),
                MenuItem.is_available.is_(True),
            )
            .order_by(MenuItem.created_at.asc(), MenuItem.id.asc())
            .all()
        )
        menu = [menu_item_to_dict(item) for item in items]
        self.cache.store_menu(restaurant_id, menu)
        return menu

    def update_menu_item(self, item_id: int, payload: MenuItemUpdate, user: User) -> MenuItem:
        item = self._load_item(item_id)
        self._ensure_can_manage(item.restaurant, user)

        if payload.name is not None:
            item.name = payload.name
        if payload.description is not None:
            item.description = payload.description
        if payload.price is not None:
            item.price = payload.price
        if payload.category is not None:
            item.category = payload.category.value
        if payload.image is not None:
            item.image = payload.image
        if payload.is_active is not None:
            item.is_active = payload.is_active
        if payload.is_available is not None:
            item.is_available = payload.is_available

        self.db.commit()
        self.db.refresh(item)

        self.cache.invalidate(item.restaurant_id)
        return item

    def delete_menu_item(self, item_id: int, user: User) -> None:
        item = self._load_item(item_id)
        self._ensure_can_manage(item.restaurant, user)

        item.is_active = False
        self.db.commit()
        logger.info("Menu item deactivated id=%s restaurant_id=%s", item.id, item.restaurant_id)

        self.cache.invalidate(item.restaurant_id)
