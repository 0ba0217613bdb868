import asyncio
import json

import pytest
from starlette.websockets import WebSocketDisconnect

from food_ordering.schemas.order import OrderCreate
from food_ordering.services.channel_access import can_join_channel, parse_channel
from food_ordering.services.notifications import (
    ChannelHub,
    FanoutPublisher,
    RedisNotificationPublisher,
    order_channel,
    restaurant_channel,
    safe_publish,
    user_channel,
)
from food_ordering.services.order_service import OrderWorkflow
from tests.factories import (
    ExplodingPublisher,
    RecordingPublisher,
    auth_headers,
    build_client,
    build_session_factory,
    create_menu_item,
    create_restaurant,
    create_user,
    instant_payments,
)


class FakeRedis:
    def __init__(self):
        self.published = []

    def publish(self, channel, message):
        self.published.append((channel, json.loads(message)))
        return 1


def test_channel_names():
    assert restaurant_channel(3) == "restaurant_3"
    assert order_channel(9) == "order_9"
    assert user_channel(1) == "user_1"
    assert parse_channel("order_12") == ("order", 12)
    assert parse_channel("orders_12") is None
    assert parse_channel("user_") is None


def test_hub_delivers_only_to_channel_members():
    async def scenario():
        hub = ChannelHub()
        kitchen = hub.subscribe()
        diner = hub.subscribe()
        hub.join(kitchen, "restaurant_1")
        hub.join(diner, "order_5")

        hub.publish("restaurant_1", "orderCreated", {"order": {"id": 5}})
        message = await asyncio.wait_for(kitchen.next_message(), timeout=1)
        await asyncio.sleep(0)
        return message, diner.queue.qsize()

    message, diner_pending = asyncio.run(scenario())

    assert message == {
        "type": "event",
        "channel": "restaurant_1",
        "event": "orderCreated",
        "payload": {"order": {"id": 5}},
    }
    assert diner_pending == 0


def test_hub_has_no_replay_and_forgets_on_leave():
    async def scenario():
        hub = ChannelHub()
        hub.publish("order_1", "orderStatusUpdated", {"orderId": 1})
        late = hub.subscribe()
        hub.join(late, "order_1")
        await asyncio.sleep(0)
        before = late.queue.qsize()

        hub.unsubscribe(late)
        hub.publish("order_1", "orderStatusUpdated", {"orderId": 1})
        await asyncio.sleep(0)
        return before, late.queue.qsize(), hub.subscriber_count("order_1")

    assert asyncio.run(scenario()) == (0, 0, 0)


def test_safe_publish_and_fanout_swallow_backend_errors():
    recorder = RecordingPublisher()
    fanout = FanoutPublisher([ExplodingPublisher(), recorder])

    safe_publish(ExplodingPublisher(), "order_1", "orderStatusUpdated", {})
    fanout.publish("order_1", "orderStatusUpdated", {"orderId": 1})
    safe_publish(None, "order_1", "orderStatusUpdated", {})

    assert recorder.events == [("order_1", "orderStatusUpdated", {"orderId": 1})]


def test_redis_publisher_sends_json_envelope():
    client = FakeRedis()

    RedisNotificationPublisher(client).publish("user_4", "paymentStatusUpdated", {"orderId": 2})

    assert client.published == [
        (
            "user_4",
            {"type": "event", "channel": "user_4", "event": "paymentStatusUpdated", "payload": {"orderId": 2}},
        )
    ]


@pytest.fixture()
def people():
    SessionLocal = build_session_factory()
    db = SessionLocal()
    owner = create_user(db, email="owner@example.com", role="restaurant_owner")
    rival = create_user(db, email="rival@example.com", role="restaurant_owner")
    customer = create_user(db, email="customer@example.com")
    stranger = create_user(db, email="stranger@example.com")
    admin = create_user(db, email="admin@example.com", role="admin")
    restaurant = create_restaurant(db, owner)
    burger = create_menu_item(db, restaurant)
    order = OrderWorkflow(db, None, SessionLocal, instant_payments()).create_order(
        customer.id,
        OrderCreate(restaurant_id=restaurant.id, order_items=[{"menu_item_id": burger.id, "quantity": 1}]),
    )
    yield {
        "SessionLocal": SessionLocal,
        "db": db,
        "owner": owner,
        "rival": rival,
        "customer": customer,
        "stranger": stranger,
        "admin": admin,
        "restaurant": restaurant,
        "order": order,
    }
    db.close()


def test_channel_join_rules(people):
    db = people["db"]
    restaurant = f"restaurant_{people['restaurant'].id}"
    order = f"order_{people['order'].id}"
    customer_inbox = f"user_{people['customer'].id}"

    assert can_join_channel(db, people["owner"], restaurant)
    assert not can_join_channel(db, people["rival"], restaurant)
    assert not can_join_channel(db, people["customer"], restaurant)

    assert can_join_channel(db, people["customer"], order)
    assert can_join_channel(db, people["owner"], order)
    assert not can_join_channel(db, people["stranger"], order)

    assert can_join_channel(db, people["customer"], customer_inbox)
    assert not can_join_channel(db, people["stranger"], customer_inbox)

    for channel in (restaurant, order, customer_inbox, "restaurant_999"):
        assert can_join_channel(db, people["admin"], channel)
    assert not can_join_channel(db, people["admin"], "lobby")
    assert not can_join_channel(db, people["owner"], "order_999")


def test_websocket_rejects_missing_token(people):
    client = build_client(people["SessionLocal"])

    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/notifications"):
            pass


def test_websocket_join_and_receive_order_created(people):
    client = build_client(people["SessionLocal"])
    token = auth_headers(people["owner"])["Authorization"].split(" ", 1)[1]
    channel = f"restaurant_{people['restaurant'].id}"

    with client.websocket_connect(f"/ws/notifications?token={token}") as ws:
        ws.send_json({"action": "join", "channel": channel})
        assert ws.receive_json() == {"type": "joined", "channel": channel}

        ws.send_json({"action": "join", "channel": f"user_{people['customer'].id}"})
        assert ws.receive_json()["type"] == "error"

        created = client.post(
            "/api/orders",
            json={"restaurant_id": people["restaurant"].id, "order_items": [{"menu_item_id": people["order"].order_items[0].menu_item_id, "quantity": 3}]},
            headers=auth_headers(people["customer"]),
        )
        assert created.status_code == 201

        message = ws.receive_json()
        assert message["event"] == "orderCreated"
        assert message["channel"] == channel
        assert message["payload"]["order"]["id"] == created.json()["data"]["order"]["id"]

        ws.send_json({"action": "leave", "channel": channel})
        assert ws.receive_json() == {"type": "left", "channel": channel}


def test_websocket_rejects_malformed_messages(people):
    client = build_client(people["SessionLocal"])
    token = auth_headers(people["customer"])["Authorization"].split(" ", 1)[1]

    with client.websocket_connect(f"/ws/notifications?token={token}") as ws:
        ws.send_text("not json")
        assert ws.receive_json() == {"type": "error", "message": "Invalid JSON"}
        ws.send_json({"action": "subscribe"})
        assert ws.receive_json()["type"] == "error"
