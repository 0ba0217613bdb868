from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from food_ordering.models.enums import MenuItemCategory


class MenuItemCreate(BaseModel):
    restaurant_id: int
    name: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = None
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    category: MenuItemCategory
    image: Optional[str] = None
    is_active: bool = True
    is_available: bool = True


class MenuItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    category: Optional[MenuItemCategory] = None
    image: Optional[str] = None
    is_active: Optional[bool] = None
    is_available: Optional[bool] = None
