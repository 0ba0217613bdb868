from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from food_ordering.models.enums import OrderStatus


class OrderItemRequest(BaseModel):
    menu_item_id: int
    quantity: int = Field(..., ge=1)


class OrderCreate(BaseModel):
    restaurant_id: int
    order_items: List[OrderItemRequest] = Field(..., min_length=1)
    customer_note: Optional[str] = None
    delivery_address: Optional[str] = None


class StatusUpdate(BaseModel):
    status: OrderStatus
