# food_ordering/routers/restaurants.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from food_ordering.core.responses import ok
from food_ordering.deps import get_current_user, get_restaurant_service, require_roles
from food_ordering.models.enums import UserRole
from food_ordering.models.user import User
from food_ordering.schemas.restaurant import RestaurantCreate, RestaurantUpdate
from food_ordering.services.restaurant_service import RestaurantService
from food_ordering.services.serializers import restaurant_to_dict

router = APIRouter(prefix="/api/restaurants", tags=["restaurants"])

require_restaurant_creator = require_roles(UserRole.ADMIN, UserRole.RESTAURANT_OWNER)


@router.get("")
def list_restaurants(service: RestaurantService = Depends(get_restaurant_service)):
    restaurants = service.get_all_restaurants()
    return ok(
        "Restaurants retrieved successfully",
        restaurants=[restaurant_to_dict(r, include_owner=True) for r in restaurants],
    )


@router.get("/slug/{slug}")
def get_restaurant_by_slug(slug: str, service: RestaurantService = Depends(get_restaurant_service)):
    restaurant = service.get_restaurant_by_slug(slug)
    return ok("Restaurant retrieved successfully", restaurant=restaurant_to_dict(restaurant, include_owner=True))


@router.get("/{restaurant_id}")
def get_restaurant(restaurant_id: int, service: RestaurantService = Depends(get_restaurant_service)):
    restaurant = service.get_restaurant_by_id(restaurant_id)
    return ok("Restaurant retrieved successfully", restaurant=restaurant_to_dict(restaurant, include_owner=True))


@router.post("", status_code=201)
def create_restaurant(
    payload: RestaurantCreate,
    user: User = Depends(require_restaurant_creator),
    service: RestaurantService = Depends(get_restaurant_service),
):
    restaurant = service.create_restaurant(payload, owner_id=user.id)
    return ok("Restaurant created successfully", restaurant=restaurant_to_dict(restaurant))


@router.put("/{restaurant_id}")
def update_restaurant(
    restaurant_id: int,
    payload: RestaurantUpdate,
    user: User = Depends(get_current_user),
    service: RestaurantService = Depends(get_restaurant_service),
):
    restaurant = service.update_restaurant(restaurant_id, payload, user_id=user.id)
    return ok("Restaurant updated successfully", restaurant=restaurant_to_dict(restaurant))


@router.delete("/{restaurant_id}")
def delete_restaurant(
    restaurant_id: int,
    user: User = Depends(get_current_user),
    service: RestaurantService = Depends(get_restaurant_service),
):
    service.delete_restaurant(restaurant_id, user_id=user.id)
    return ok("Restaurant deleted successfully")
