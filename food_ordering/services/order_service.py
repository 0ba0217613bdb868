from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable, Dict, FrozenSet, List, Optional

from sqlalchemy.orm import Session, joinedload, selectinload

from food_ordering.core.errors import ConflictError, ForbiddenError, InvalidRequestError, NotFoundError
from food_ordering.models.enums import OrderStatus, PaymentStatus
from food_ordering.models.menu_item import MenuItem
from food_ordering.models.order import Order
from food_ordering.models.order_item import OrderItem
from food_ordering.models.restaurant import Restaurant
from food_ordering.models.user import User
from food_ordering.schemas.order import OrderCreate
from food_ordering.services.notifications import NotificationPublisher
from food_ordering.services.order_events import (
    emit_order_created,
    emit_order_status_changed,
    emit_payment_status_updated,
)
from food_ordering.services.payments import PaymentGateway
from food_ordering.services.restaurant_service import can_manage_restaurant, is_admin

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

SettlementScheduler = Callable[[Callable[[int], object], int], None]

# Used only when strict transitions are enabled.
ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    OrderStatus.PENDING.value: frozenset({OrderStatus.PREPARING.value, OrderStatus.CANCELLED.value}),
    OrderStatus.PREPARING.value: frozenset({OrderStatus.READY.value, OrderStatus.CANCELLED.value}),
    OrderStatus.READY.value: frozenset({OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value}),
    OrderStatus.DELIVERED.value: frozenset(),
    OrderStatus.CANCELLED.value: frozenset(),
}


def is_transition_allowed(current: str, target: str) -> bool:
    if current == target:
        return True
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class OrderWorkflow:
    """Order creation, payment settlement and status changes.

    Orders are committed with payment ``pending``; the payment gateway is
    called afterwards, outside any transaction, and its outcome is written by
    ``settle_payment`` in a separate short session. When ``schedule_settlement``
    is None settlement runs inline before ``create_order`` returns.
    """

    def __init__(
        self,
        db: Session,
        publisher: NotificationPublisher | None,
        session_factory: Callable[[], Session],
        payment_gateway: PaymentGateway,
        schedule_settlement: Optional[SettlementScheduler] = None,
        strict_transitions: bool = False,
    ) -> None:
        self.db = db
        self.publisher = publisher
        self.session_factory = session_factory
        self.payment_gateway = payment_gateway
        self.schedule_settlement = schedule_settlement
        self.strict_transitions = strict_transitions

    def _detail_query(self, db: Session | None = None):
        return (db or self.db).query(Order).options(
            joinedload(Order.customer),
            joinedload(Order.restaurant),
            selectinload(Order.order_items).joinedload(OrderItem.menu_item),
        )

    def _load_detail(self, order_id: int) -> Order | None:
        return self._detail_query().filter(Order.id == order_id).first()

    def create_order(self, customer_id: int, payload: OrderCreate) -> Order:
        try:
            customer = self.db.get(User, customer_id)
            if not customer:
                raise NotFoundError("Customer not found")

            restaurant = self.db.get(Restaurant, payload.restaurant_id)
            if not restaurant or not restaurant.is_active:
                raise NotFoundError("Restaurant not found")

            requested_ids = {line.menu_item_id for line in payload.order_items}
            menu_items = (
                self.db.query(MenuItem)
                .filter(
                    MenuItem.id.in_(requested_ids),
                    MenuItem.restaurant_id == restaurant.id,
                    MenuItem.is_active.is_(True),
                    MenuItem.is_available.is_(True),
                )
                .all()
            )
            if len(menu_items) != len(requested_ids):
                raise InvalidRequestError("One or more menu items are not available")
            by_id = {item.id: item for item in menu_items}

            order = Order(
                customer_id=customer.id,
                restaurant_id=restaurant.id,
                status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                customer_note=payload.customer_note or None,
                delivery_address=payload.delivery_address or None,
            )
            total = Decimal("0")
            for line in payload.order_items:
                unit_price = Decimal(str(by_id[line.menu_item_id].price)).quantize(CENTS)
                order.order_items.append(
                    OrderItem(menu_item_id=line.menu_item_id, quantity=line.quantity, price=unit_price)
                )
                total += unit_price * line.quantity
            order.total_price = total.quantize(CENTS)

            self.db.add(order)
            self.db.flush()
            order_id = order.id
            total_price = order.total_price
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Order created id=%s restaurant_id=%s customer_id=%s total=%s",
            order_id,
            payload.restaurant_id,
            customer_id,
            total_price,
        )

        if self.schedule_settlement is None:
            self.settle_payment(order_id)
        else:
            self.schedule_settlement(self.settle_payment, order_id)

        # settlement may have written through another session
        self.db.expire_all()
        created = self._load_detail(order_id)
        emit_order_created(self.publisher, created)
        return created

    def settle_payment(self, order_id: int) -> Optional[PaymentStatus]:
        """Charge the order and record the outcome. Idempotent: settled orders are left as they are."""
        db = self.session_factory()
        try:
            order = db.get(Order, order_id)
            if not order:
                logger.warning("Payment settlement skipped: order %s not found", order_id)
                return None
            if order.payment_status != PaymentStatus.PENDING.value:
                return PaymentStatus(order.payment_status)
            amount = order.total_price
        finally:
            db.close()

        try:
            outcome = self.payment_gateway.process(order_id, amount)
        except Exception:
            logger.exception("Payment gateway error for order %s", order_id)
            outcome = PaymentStatus.FAILED

        db = self.session_factory()
        try:
            updated = (
                db.query(Order)
                .filter(Order.id == order_id, Order.payment_status == PaymentStatus.PENDING.value)
                .update({Order.payment_status: outcome.value}, synchronize_session=False)
            )
            db.commit()
            order = db.get(Order, order_id)
            if not updated:
                return PaymentStatus(order.payment_status) if order else None
            logger.info("Payment settled order_id=%s status=%s", order_id, outcome.value)
            emit_payment_status_updated(self.publisher, order)
            return outcome
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def settle_pending_orders(self, limit: int | None = None) -> int:
        """Settle orders whose payment never resolved (e.g. a lost background task). Returns how many were settled."""
        db = self.session_factory()
        try:
            query = (
                db.query(Order.id)
                .filter(Order.payment_status == PaymentStatus.PENDING.value)
                .order_by(Order.id.asc())
            )
            if limit is not None:
                query = query.limit(limit)
            pending_ids = [row.id for row in query.all()]
        finally:
            db.close()

        if not pending_ids:
            return 0
        logger.info("Reconciling %s pending payments", len(pending_ids))

        settled = 0
        for order_id in pending_ids:
            try:
                outcome = self.settle_payment(order_id)
            except Exception:
                logger.exception("Payment reconciliation failed for order %s", order_id)
                continue
            if outcome is not None and outcome != PaymentStatus.PENDING:
                settled += 1
        return settled

    def get_order_by_id(self, order_id: int, requester: User) -> Order:
        order = self._load_detail(order_id)
        # Missing and not-yours look the same to the caller.
        if not order or (not is_admin(requester) and order.customer_id != requester.id):
            raise NotFoundError("Order not found")
        return order

    def get_orders_by_customer_id(self, customer_id: int) -> List[Order]:
        return (
            self._detail_query()
            .filter(Order.customer_id == customer_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )

    def get_orders_by_restaurant_id(self, restaurant_id: int, requester: User) -> List[Order]:
        if not is_admin(requester):
            restaurant = self.db.get(Restaurant, restaurant_id)
            if not restaurant or restaurant.owner_id != requester.id:
                raise ForbiddenError("You do not have permission to view orders for this restaurant")
        return (
            self._detail_query()
            .filter(Order.restaurant_id == restaurant_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )

    def update_order_status(self, order_id: int, new_status: OrderStatus, updated_by: User) -> Order:
        order = (
            self.db.query(Order)
            .options(joinedload(Order.restaurant))
            .filter(Order.id == order_id)
            .first()
        )
        if not order:
            raise NotFoundError("Order not found")
        if not can_manage_restaurant(updated_by, order.restaurant):
            raise ForbiddenError("You do not have permission to update this order status")

        previous_status = order.status
        target = OrderStatus(new_status).value
        if self.strict_transitions and not is_transition_allowed(previous_status, target):
            raise ConflictError(f"Cannot change order status from {previous_status} to {target}")

        order.status = target
        self.db.commit()
        logger.info("Order %s status %s -> %s by user_id=%s", order_id, previous_status, target, updated_by.id)

        self.db.expire_all()
        updated = self._load_detail(order_id)
        emit_order_status_changed(self.publisher, updated, previous_status)
        return updated
