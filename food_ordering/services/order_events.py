from __future__ import annotations

from food_ordering.models.order import Order
from food_ordering.services.notifications import (
    NotificationPublisher,
    order_channel,
    restaurant_channel,
    safe_publish,
    user_channel,
)
from food_ordering.services.serializers import order_to_dict

ORDER_CREATED = "orderCreated"
ORDER_STATUS_UPDATED = "orderStatusUpdated"
PAYMENT_STATUS_UPDATED = "paymentStatusUpdated"


def build_order_created_payload(order: Order) -> dict:
    return {
        "order": order_to_dict(order),
        "message": "New order received",
    }


def build_status_payload(order: Order, previous_status: str | None) -> dict:
    return {
        "orderId": order.id,
        "status": order.status,
        "previousStatus": previous_status,
        "message": f"Order status updated to {order.status}",
    }


def build_payment_payload(order: Order) -> dict:
    return {
        "orderId": order.id,
        "paymentStatus": order.payment_status,
        "message": f"Payment {order.payment_status}",
    }


def emit_order_created(publisher: NotificationPublisher | None, order: Order) -> None:
    safe_publish(
        publisher,
        restaurant_channel(order.restaurant_id),
        ORDER_CREATED,
        lambda: build_order_created_payload(order),
    )


def emit_order_status_changed(publisher: NotificationPublisher | None, order: Order, previous_status: str | None) -> None:
    def payload():
        return build_status_payload(order, previous_status)

    safe_publish(publisher, order_channel(order.id), ORDER_STATUS_UPDATED, payload)
    safe_publish(publisher, user_channel(order.customer_id), ORDER_STATUS_UPDATED, payload)


def emit_payment_status_updated(publisher: NotificationPublisher | None, order: Order) -> None:
    def payload():
        return build_payment_payload(order)

    safe_publish(publisher, order_channel(order.id), PAYMENT_STATUS_UPDATED, payload)
    safe_publish(publisher, user_channel(order.customer_id), PAYMENT_STATUS_UPDATED, payload)
