# food_ordering/routers/orders.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from food_ordering.core.responses import ok
from food_ordering.deps import get_current_user, get_order_workflow, require_roles
from food_ordering.models.enums import UserRole
from food_ordering.models.user import User
from food_ordering.schemas.order import OrderCreate, StatusUpdate
from food_ordering.services.order_service import OrderWorkflow
from food_ordering.services.serializers import order_to_dict

router = APIRouter(prefix="/api/orders", tags=["orders"])

require_customer = require_roles(UserRole.CUSTOMER, UserRole.ADMIN)
require_restaurant_staff = require_roles(UserRole.RESTAURANT_OWNER, UserRole.ADMIN)


@router.post("", status_code=201)
def create_order(
    payload: OrderCreate,
    user: User = Depends(require_customer),
    workflow: OrderWorkflow = Depends(get_order_workflow),
):
    order = workflow.create_order(user.id, payload)
    return ok("Order created successfully", order=order_to_dict(order))


@router.get("")
def list_my_orders(
    user: User = Depends(require_customer),
    workflow: OrderWorkflow = Depends(get_order_workflow),
):
    orders = workflow.get_orders_by_customer_id(user.id)
    return ok("Orders retrieved successfully", orders=[order_to_dict(o, include_customer=False) for o in orders])


@router.get("/restaurant/{restaurant_id}")
def list_restaurant_orders(
    restaurant_id: int,
    user: User = Depends(require_restaurant_staff),
    workflow: OrderWorkflow = Depends(get_order_workflow),
):
    orders = workflow.get_orders_by_restaurant_id(restaurant_id, user)
    return ok("Orders retrieved successfully", orders=[order_to_dict(o, include_restaurant=False) for o in orders])


@router.get("/{order_id}")
def get_order(
    order_id: int,
    user: User = Depends(get_current_user),
    workflow: OrderWorkflow = Depends(get_order_workflow),
):
    order = workflow.get_order_by_id(order_id, user)
    return ok("Order retrieved successfully", order=order_to_dict(order))


@router.put("/{order_id}/status")
def update_order_status(
    order_id: int,
    body: StatusUpdate,
    user: User = Depends(require_restaurant_staff),
    workflow: OrderWorkflow = Depends(get_order_workflow),
):
    order = workflow.update_order_status(order_id, body.status, user)
    return ok("Order status updated successfully", order=order_to_dict(order))
