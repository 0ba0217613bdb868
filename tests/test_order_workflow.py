from decimal import Decimal

import pytest

from food_ordering.core.errors import ConflictError, ForbiddenError, InvalidRequestError, NotFoundError
from food_ordering.models.enums import OrderStatus, PaymentStatus
from food_ordering.models.order import Order
from food_ordering.models.order_item import OrderItem
from food_ordering.schemas.order import OrderCreate
from food_ordering.services.order_service import OrderWorkflow, is_transition_allowed
from food_ordering.services.payments import PaymentGateway
from tests.factories import (
    ExplodingPublisher,
    RecordingPublisher,
    build_session_factory,
    create_menu_item,
    create_restaurant,
    create_user,
    instant_payments,
)


class CountingGateway(PaymentGateway):
    def __init__(self, outcome=PaymentStatus.SUCCESS, request_db=None):
        self.outcome = outcome
        self.request_db = request_db
        self.calls = []
        self.request_session_idle = []

    def process(self, order_id, amount):
        self.calls.append((order_id, amount))
        if self.request_db is not None:
            self.request_session_idle.append(not self.request_db.in_transaction())
        return self.outcome


class BrokenGateway(PaymentGateway):
    def process(self, order_id, amount):
        raise TimeoutError("gateway timeout")


@pytest.fixture()
def world():
    SessionLocal = build_session_factory()
    db = SessionLocal()
    owner = create_user(db, email="owner@example.com", role="restaurant_owner")
    other_owner = create_user(db, email="rival@example.com", role="restaurant_owner")
    customer = create_user(db, email="customer@example.com")
    other_customer = create_user(db, email="someone@example.com")
    admin = create_user(db, email="admin@example.com", role="admin")
    restaurant = create_restaurant(db, owner)
    burger = create_menu_item(db, restaurant)
    yield {
        "SessionLocal": SessionLocal,
        "db": db,
        "owner": owner,
        "other_owner": other_owner,
        "customer": customer,
        "other_customer": other_customer,
        "admin": admin,
        "restaurant": restaurant,
        "burger": burger,
    }
    db.close()


def _workflow(world, *, publisher=None, gateway=None, **kwargs):
    return OrderWorkflow(
        world["db"],
        publisher if publisher is not None else RecordingPublisher(),
        world["SessionLocal"],
        gateway or instant_payments(),
        **kwargs,
    )


def _payload(world, *lines, **extra):
    items = [{"menu_item_id": item.id, "quantity": qty} for item, qty in lines]
    return OrderCreate(restaurant_id=world["restaurant"].id, order_items=items, **extra)


def _count(world, model):
    session = world["SessionLocal"]()
    try:
        return session.query(model).count()
    finally:
        session.close()


def test_two_burgers_cost_19_98_with_one_snapshotted_line(world):
    workflow = _workflow(world)

    order = workflow.create_order(world["customer"].id, _payload(world, (world["burger"], 2)))

    assert world["restaurant"].slug == "bob-s-diner"
    assert order.total_price == Decimal("19.98")
    assert order.status == OrderStatus.PENDING.value
    assert order.payment_status in {PaymentStatus.SUCCESS.value, PaymentStatus.FAILED.value}
    assert len(order.order_items) == 1
    line = order.order_items[0]
    assert line.price == Decimal("9.99")
    assert line.quantity == 2
    assert line.menu_item.name == "Burger"
    assert order.customer.email == "customer@example.com"
    assert order.restaurant.id == world["restaurant"].id


def test_price_snapshot_survives_menu_price_change(world):
    workflow = _workflow(world)
    order = workflow.create_order(world["customer"].id, _payload(world, (world["burger"], 2)))

    world["burger"].price = Decimal("12.50")
    world["db"].commit()

    reloaded = workflow.get_order_by_id(order.id, world["customer"])
    assert reloaded.order_items[0].price == Decimal("9.99")
    assert reloaded.total_price == Decimal("19.98")


def test_order_item_price_and_quantity_are_write_once(world):
    order = _workflow(world).create_order(world["customer"].id, _payload(world, (world["burger"], 1)))
    line = order.order_items[0]

    with pytest.raises(ValueError):
        line.price = Decimal("1.00")
    with pytest.raises(ValueError):
        line.quantity = 5


def test_repeated_lines_for_same_item_are_kept_separately(world):
    fries = create_menu_item(world["db"], world["restaurant"], name="Fries", price="3.50", category="side")
    payload = _payload(world, (world["burger"], 1), (fries, 2), (world["burger"], 2))

    order = _workflow(world).create_order(world["customer"].id, payload)

    assert len(order.order_items) == 3
    assert order.total_price == Decimal("36.97")


def test_unavailable_item_fails_and_writes_nothing(world):
    sold_out = create_menu_item(world["db"], world["restaurant"], name="Shake", price="4.00", is_available=False)

    with pytest.raises(InvalidRequestError) as exc:
        _workflow(world).create_order(world["customer"].id, _payload(world, (world["burger"], 1), (sold_out, 1)))

    assert exc.value.status_code == 400
    assert exc.value.message == "One or more menu items are not available"
    assert _count(world, Order) == 0
    assert _count(world, OrderItem) == 0


def test_inactive_item_fails(world):
    retired = create_menu_item(world["db"], world["restaurant"], name="Old Burger", is_active=False)

    with pytest.raises(InvalidRequestError):
        _workflow(world).create_order(world["customer"].id, _payload(world, (retired, 1)))
    assert _count(world, Order) == 0


def test_item_from_another_restaurant_counts_as_unavailable(world):
    elsewhere = create_restaurant(world["db"], world["other_owner"], name="Taco Town")
    taco = create_menu_item(world["db"], elsewhere, name="Taco", price="2.00")

    with pytest.raises(InvalidRequestError):
        _workflow(world).create_order(world["customer"].id, _payload(world, (world["burger"], 1), (taco, 1)))
    assert _count(world, Order) == 0


def test_missing_customer_or_restaurant_is_not_found(world):
    workflow = _workflow(world)

    with pytest.raises(NotFoundError, match="Customer not found"):
        workflow.create_order(9999, _payload(world, (world["burger"], 1)))

    missing_restaurant = OrderCreate(restaurant_id=9999, order_items=[{"menu_item_id": world["burger"].id, "quantity": 1}])
    with pytest.raises(NotFoundError, match="Restaurant not found"):
        workflow.create_order(world["customer"].id, missing_restaurant)


def test_inactive_restaurant_is_not_found(world):
    world["restaurant"].is_active = False
    world["db"].commit()

    with pytest.raises(NotFoundError):
        _workflow(world).create_order(world["customer"].id, _payload(world, (world["burger"], 1)))


def test_order_created_event_goes_to_restaurant_channel(world):
    publisher = RecordingPublisher()
    order = _workflow(world, publisher=publisher).create_order(
        world["customer"].id,
        _payload(world, (world["burger"], 2), customer_note="no onions"),
    )

    created = publisher.on(f"restaurant_{world['restaurant'].id}")
    assert len(created) == 1
    event, payload = created[0]
    assert event == "orderCreated"
    assert payload["message"] == "New order received"
    assert payload["order"]["id"] == order.id
    assert payload["order"]["total_price"] == 19.98
    assert payload["order"]["customer_note"] == "no onions"


def test_notification_failure_does_not_undo_the_order(world):
    order = _workflow(world, publisher=ExplodingPublisher()).create_order(
        world["customer"].id, _payload(world, (world["burger"], 1))
    )

    assert order.id is not None
    assert _count(world, Order) == 1


def test_event_serialization_failure_does_not_fail_the_request(world, monkeypatch):
    def broken_serializer(order, **kwargs):
        raise TypeError("cannot serialize order")

    monkeypatch.setattr("food_ordering.services.order_events.order_to_dict", broken_serializer)
    publisher = RecordingPublisher()

    order = _workflow(world, publisher=publisher).create_order(
        world["customer"].id, _payload(world, (world["burger"], 1))
    )

    assert _count(world, Order) == 1
    assert publisher.on(f"restaurant_{world['restaurant'].id}") == []
    assert publisher.on(f"order_{order.id}")[0][0] == "paymentStatusUpdated"


def test_payment_runs_after_commit_outside_the_request_transaction(world):
    gateway = CountingGateway(request_db=world["db"])

    order = _workflow(world, gateway=gateway).create_order(world["customer"].id, _payload(world, (world["burger"], 2)))

    assert gateway.calls == [(order.id, Decimal("19.98"))]
    assert gateway.request_session_idle == [True]
    assert order.payment_status == PaymentStatus.SUCCESS.value


def test_scheduled_settlement_leaves_order_pending_until_it_runs(world):
    scheduled = []
    publisher = RecordingPublisher()
    gateway = CountingGateway(outcome=PaymentStatus.FAILED)
    workflow = _workflow(
        world,
        publisher=publisher,
        gateway=gateway,
        schedule_settlement=lambda fn, order_id: scheduled.append((fn, order_id)),
    )

    order = workflow.create_order(world["customer"].id, _payload(world, (world["burger"], 1)))

    assert order.payment_status == PaymentStatus.PENDING.value
    assert gateway.calls == []
    assert len(scheduled) == 1

    settle, order_id = scheduled[0]
    assert settle(order_id) == PaymentStatus.FAILED

    world["db"].expire_all()
    assert workflow.get_order_by_id(order.id, world["customer"]).payment_status == PaymentStatus.FAILED.value
    payment_events = publisher.on(f"order_{order.id}")
    assert payment_events == [
        ("paymentStatusUpdated", {"orderId": order.id, "paymentStatus": "failed", "message": "Payment failed"})
    ]
    assert publisher.on(f"user_{world['customer'].id}")[0][0] == "paymentStatusUpdated"


def test_settlement_is_idempotent(world):
    gateway = CountingGateway()
    workflow = _workflow(world, gateway=gateway)
    order = workflow.create_order(world["customer"].id, _payload(world, (world["burger"], 1)))

    assert workflow.settle_payment(order.id) == PaymentStatus.SUCCESS
    assert len(gateway.calls) == 1
    assert workflow.settle_payment(424242) is None


def test_pending_payments_are_settled_after_a_restart(world):
    lost_tasks = []
    first_run = _workflow(world, schedule_settlement=lambda fn, order_id: lost_tasks.append(order_id))
    first = first_run.create_order(world["customer"].id, _payload(world, (world["burger"], 1)))
    second = first_run.create_order(world["customer"].id, _payload(world, (world["burger"], 2)))
    assert first.payment_status == second.payment_status == PaymentStatus.PENDING.value

    # scheduled tasks never ran; a fresh workflow picks the orders up
    publisher = RecordingPublisher()
    gateway = CountingGateway(outcome=PaymentStatus.SUCCESS)
    restarted = _workflow(world, publisher=publisher, gateway=gateway)

    assert restarted.settle_pending_orders() == 2
    assert [order_id for order_id, _ in gateway.calls] == [first.id, second.id]

    world["db"].expire_all()
    for order in (first, second):
        assert restarted.get_order_by_id(order.id, world["customer"]).payment_status == PaymentStatus.SUCCESS.value
        assert publisher.on(f"order_{order.id}")[0][0] == "paymentStatusUpdated"

    assert restarted.settle_pending_orders() == 0
    assert len(gateway.calls) == 2


def test_reconciliation_continues_past_a_failing_order(world, monkeypatch):
    workflow = _workflow(world, schedule_settlement=lambda fn, order_id: None)
    first = workflow.create_order(world["customer"].id, _payload(world, (world["burger"], 1)))
    second = workflow.create_order(world["customer"].id, _payload(world, (world["burger"], 1)))

    real_settle = workflow.settle_payment

    def flaky_settle(order_id):
        if order_id == first.id:
            raise RuntimeError("database went away")
        return real_settle(order_id)

    monkeypatch.setattr(workflow, "settle_payment", flaky_settle)

    assert workflow.settle_pending_orders() == 1
    world["db"].expire_all()
    assert workflow.get_order_by_id(first.id, world["customer"]).payment_status == PaymentStatus.PENDING.value
    assert workflow.get_order_by_id(second.id, world["customer"]).payment_status != PaymentStatus.PENDING.value


def test_gateway_error_marks_payment_failed(world):
    order = _workflow(world, gateway=BrokenGateway()).create_order(
        world["customer"].id, _payload(world, (world["burger"], 1))
    )

    assert order.payment_status == PaymentStatus.FAILED.value


def test_get_order_hides_existence_from_other_customers(world):
    workflow = _workflow(world)
    order = workflow.create_order(world["customer"].id, _payload(world, (world["burger"], 1)))

    with pytest.raises(NotFoundError) as foreign:
        workflow.get_order_by_id(order.id, world["other_customer"])
    with pytest.raises(NotFoundError) as missing:
        workflow.get_order_by_id(order.id + 100, world["other_customer"])

    assert foreign.value.message == missing.value.message == "Order not found"
    assert workflow.get_order_by_id(order.id, world["customer"]).id == order.id
    assert workflow.get_order_by_id(order.id, world["admin"]).id == order.id


def test_status_update_by_stranger_is_forbidden_and_changes_nothing(world):
    publisher = RecordingPublisher()
    workflow = _workflow(world, publisher=publisher)
    order = workflow.create_order(world["customer"].id, _payload(world, (world["burger"], 1)))

    for stranger in (world["other_owner"], world["customer"]):
        with pytest.raises(ForbiddenError):
            workflow.update_order_status(order.id, OrderStatus.DELIVERED, stranger)

    world["db"].expire_all()
    assert world["db"].get(Order, order.id).status == OrderStatus.PENDING.value
    assert all(event != "orderStatusUpdated" for event, _ in publisher.on(f"order_{order.id}"))


def test_status_update_by_owner_emits_event(world):
    publisher = RecordingPublisher()
    workflow = _workflow(world, publisher=publisher)
    order = workflow.create_order(world["customer"].id, _payload(world, (world["burger"], 1)))

    updated = workflow.update_order_status(order.id, OrderStatus.PREPARING, world["owner"])

    assert updated.status == "preparing"
    status_events = [p for e, p in publisher.on(f"order_{order.id}") if e == "orderStatusUpdated"]
    assert status_events == [
        {
            "orderId": order.id,
            "status": "preparing",
            "previousStatus": "pending",
            "message": "Order status updated to preparing",
        }
    ]
    assert any(e == "orderStatusUpdated" for e, _ in publisher.on(f"user_{world['customer'].id}"))


def test_status_update_missing_order_is_not_found(world):
    with pytest.raises(NotFoundError, match="Order not found"):
        _workflow(world).update_order_status(999, OrderStatus.READY, world["admin"])


def test_loose_transitions_allow_any_move(world):
    workflow = _workflow(world)
    order = workflow.create_order(world["customer"].id, _payload(world, (world["burger"], 1)))

    workflow.update_order_status(order.id, OrderStatus.DELIVERED, world["owner"])
    back = workflow.update_order_status(order.id, OrderStatus.PENDING, world["admin"])

    assert back.status == "pending"


def test_strict_transitions_reject_skips_and_reversals(world):
    workflow = _workflow(world, strict_transitions=True)
    order = workflow.create_order(world["customer"].id, _payload(world, (world["burger"], 1)))

    with pytest.raises(ConflictError):
        workflow.update_order_status(order.id, OrderStatus.DELIVERED, world["owner"])

    for step in (OrderStatus.PREPARING, OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.DELIVERED):
        workflow.update_order_status(order.id, step, world["owner"])

    with pytest.raises(ConflictError):
        workflow.update_order_status(order.id, OrderStatus.PENDING, world["owner"])


def test_transition_table():
    assert is_transition_allowed("pending", "cancelled")
    assert is_transition_allowed("ready", "ready")
    assert not is_transition_allowed("cancelled", "pending")
    assert not is_transition_allowed("preparing", "delivered")


def test_customer_orders_are_newest_first(world):
    workflow = _workflow(world)
    first = workflow.create_order(world["customer"].id, _payload(world, (world["burger"], 1)))
    second = workflow.create_order(world["customer"].id, _payload(world, (world["burger"], 3)))
    workflow.create_order(world["other_customer"].id, _payload(world, (world["burger"], 1)))

    orders = workflow.get_orders_by_customer_id(world["customer"].id)

    assert [o.id for o in orders] == [second.id, first.id]


def test_restaurant_orders_require_owner_or_admin(world):
    workflow = _workflow(world)
    order = workflow.create_order(world["customer"].id, _payload(world, (world["burger"], 1)))
    restaurant_id = world["restaurant"].id

    assert [o.id for o in workflow.get_orders_by_restaurant_id(restaurant_id, world["owner"])] == [order.id]
    assert [o.id for o in workflow.get_orders_by_restaurant_id(restaurant_id, world["admin"])] == [order.id]
    with pytest.raises(ForbiddenError):
        workflow.get_orders_by_restaurant_id(restaurant_id, world["other_owner"])
    with pytest.raises(ForbiddenError):
        workflow.get_orders_by_restaurant_id(9999, world["owner"])
    assert workflow.get_orders_by_restaurant_id(9999, world["admin"]) == []
