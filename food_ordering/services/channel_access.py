from __future__ import annotations

import re
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from food_ordering.models.order import Order
from food_ordering.models.restaurant import Restaurant
from food_ordering.models.user import User
from food_ordering.services.restaurant_service import is_admin

_CHANNEL_RE = re.compile(r"^(restaurant|order|user)_(\d+)$")


def parse_channel(channel: str) -> Optional[Tuple[str, int]]:
    match = _CHANNEL_RE.match(channel or "")
    if not match:
        return None
    return match.group(1), int(match.group(2))


def can_join_channel(db: Session, user: User, channel: str) -> bool:
    """Who may listen where.

    restaurant_{id}: the restaurant's owner or an admin.
    order_{id}: the order's customer, the restaurant's owner or an admin.
    user_{id}: that user or an admin.
    Anything else is rejected.
    """
    parsed = parse_channel(channel)
    if parsed is None:
        return False
    kind, entity_id = parsed

    if is_admin(user):
        return True

    if kind == "user":
        return entity_id == user.id

    if kind == "restaurant":
        restaurant = db.get(Restaurant, entity_id)
        return restaurant is not None and restaurant.owner_id == user.id

    order = db.get(Order, entity_id)
    if order is None:
        return False
    if order.customer_id == user.id:
        return True
    restaurant = db.get(Restaurant, order.restaurant_id)
    return restaurant is not None and restaurant.owner_id == user.id
