# food_ordering/routers/menu.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from food_ordering.core.responses import ok
from food_ordering.deps import get_menu_service, require_roles
from food_ordering.models.enums import UserRole
from food_ordering.models.user import User
from food_ordering.schemas.menu import MenuItemCreate, MenuItemUpdate
from food_ordering.services.menu_service import MenuService
from food_ordering.services.serializers import menu_item_to_dict

router = APIRouter(prefix="/api/menu", tags=["menu"])

require_menu_manager = require_roles(UserRole.ADMIN, UserRole.RESTAURANT_OWNER)


@router.get("/restaurant/{restaurant_id}")
def get_restaurant_menu(restaurant_id: int, service: MenuService = Depends(get_menu_service)):
    # already plain dicts: identical shape on cache hit and miss
    menu = service.get_menu_by_restaurant_id(restaurant_id)
    return ok("Menu retrieved successfully", menu=menu)


@router.get("/{item_id}")
def get_menu_item(item_id: int, service: MenuService = Depends(get_menu_service)):
    item = service.get_menu_item_by_id(item_id)
    return ok("Menu item retrieved successfully", menu_item=menu_item_to_dict(item))


@router.post("", status_code=201)
def create_menu_item(
    payload: MenuItemCreate,
    user: User = Depends(require_menu_manager),
    service: MenuService = Depends(get_menu_service),
):
    item = service.create_menu_item(payload, user)
    return ok("Menu item created successfully", menu_item=menu_item_to_dict(item))


@router.put("/{item_id}")
def update_menu_item(
    item_id: int,
    payload: MenuItemUpdate,
    user: User = Depends(require_menu_manager),
    service: MenuService = Depends(get_menu_service),
):
    item = service.update_menu_item(item_id, payload, user)
    return ok("Menu item updated successfully", menu_item=menu_item_to_dict(item))


@router.delete("/{item_id}")
def delete_menu_item(
    item_id: int,
    user: User = Depends(require_menu_manager),
    service: MenuService = Depends(get_menu_service),
):
    service.delete_menu_item(item_id, user)
    return ok("Menu item deleted successfully")
