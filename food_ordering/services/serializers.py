from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict

from food_ordering.models.menu_item import MenuItem
from food_ordering.models.order import Order
from food_ordering.models.order_item import OrderItem
from food_ordering.models.restaurant import Restaurant
from food_ordering.models.user import User


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _money(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def user_to_dict(user: User) -> Dict[str, Any]:
    """Public view of a user; never includes the password hash."""
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "phone": user.phone,
        "role": user.role,
        "is_active": user.is_active,
        "created_at": _iso(user.created_at),
        "updated_at": _iso(user.updated_at),
    }


def restaurant_to_dict(restaurant: Restaurant, *, include_owner: bool = False) -> Dict[str, Any]:
    data = {
        "id": restaurant.id,
        "owner_id": restaurant.owner_id,
        "name": restaurant.name,
        "slug": restaurant.slug,
        "description": restaurant.description,
        "address": restaurant.address,
        "city": restaurant.city,
        "state": restaurant.state,
        "zip_code": restaurant.zip_code,
        "phone": restaurant.phone,
        "image": restaurant.image,
        "is_active": restaurant.is_active,
        "created_at": _iso(restaurant.created_at),
        "updated_at": _iso(restaurant.updated_at),
    }
    if include_owner and restaurant.owner is not None:
        data["owner"] = user_to_dict(restaurant.owner)
    return data


def menu_item_to_dict(item: MenuItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "restaurant_id": item.restaurant_id,
        "name": item.name,
        "description": item.description,
        "price": _money(item.price),
        "category": item.category,
        "image": item.image,
        "is_active": item.is_active,
        "is_available": item.is_available,
        "created_at": _iso(item.created_at),
        "updated_at": _iso(item.updated_at),
    }


def order_item_to_dict(item: OrderItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "order_id": item.order_id,
        "menu_item_id": item.menu_item_id,
        "quantity": item.quantity,
        "price": _money(item.price),
        "created_at": _iso(item.created_at),
        "updated_at": _iso(item.updated_at),
        "menu_item": menu_item_to_dict(item.menu_item) if item.menu_item is not None else None,
    }


def order_to_dict(order: Order, *, include_customer: bool = True, include_restaurant: bool = True) -> Dict[str, Any]:
    data = {
        "id": order.id,
        "customer_id": order.customer_id,
        "restaurant_id": order.restaurant_id,
        "status": order.status,
        "payment_status": order.payment_status,
        "total_price": _money(order.total_price),
        "customer_note": order.customer_note,
        "delivery_address": order.delivery_address,
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
        "order_items": [order_item_to_dict(item) for item in order.order_items],
    }
    if include_customer and order.customer is not None:
        data["customer"] = user_to_dict(order.customer)
    if include_restaurant and order.restaurant is not None:
        data["restaurant"] = restaurant_to_dict(order.restaurant)
    return data
