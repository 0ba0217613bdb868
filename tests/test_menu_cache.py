import json
from decimal import Decimal

import pytest

from food_ordering.core.cache import InMemoryCacheGateway
from food_ordering.core.errors import ForbiddenError, NotFoundError
from food_ordering.models.enums import MenuItemCategory
from food_ordering.schemas.menu import MenuItemCreate, MenuItemUpdate
from food_ordering.services.menu_cache import MenuCache, menu_cache_key
from food_ordering.services.menu_service import MenuService
from tests.factories import ExplodingCache, build_session_factory, create_menu_item, create_restaurant, create_user


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture()
def catalog():
    SessionLocal = build_session_factory()
    db = SessionLocal()
    owner = create_user(db, email="owner@example.com", role="restaurant_owner")
    stranger = create_user(db, email="stranger@example.com", role="restaurant_owner")
    restaurant = create_restaurant(db, owner)
    burger = create_menu_item(db, restaurant)
    create_menu_item(db, restaurant, name="Secret Menu", is_available=False)
    create_menu_item(db, restaurant, name="Retired", is_active=False)
    yield db, owner, stranger, restaurant, burger
    db.close()


def test_in_memory_gateway_expires_entries():
    clock = FakeClock()
    gateway = InMemoryCacheGateway(clock=clock)

    gateway.set("menu:1", "[]", 600)
    assert gateway.get("menu:1") == "[]"

    clock.now += 601
    assert gateway.get("menu:1") is None


def test_miss_reads_database_and_fills_cache(catalog):
    db, _, _, restaurant, burger = catalog
    gateway = InMemoryCacheGateway()
    service = MenuService(db, MenuCache(gateway))

    menu = service.get_menu_by_restaurant_id(restaurant.id)

    assert [item["name"] for item in menu] == ["Burger"]
    assert menu[0]["price"] == 9.99
    assert json.loads(gateway.get(menu_cache_key(restaurant.id))) == menu


def test_hit_returns_cached_list_verbatim(catalog):
    db, _, _, restaurant, _ = catalog
    gateway = InMemoryCacheGateway()
    gateway.set(menu_cache_key(restaurant.id), json.dumps([{"name": "from cache"}]), 600)

    menu = MenuService(db, MenuCache(gateway)).get_menu_by_restaurant_id(restaurant.id)

    assert menu == [{"name": "from cache"}]


def test_mutations_invalidate_the_restaurant_menu(catalog):
    db, owner, _, restaurant, burger = catalog
    gateway = InMemoryCacheGateway()
    service = MenuService(db, MenuCache(gateway))
    key = menu_cache_key(restaurant.id)

    service.get_menu_by_restaurant_id(restaurant.id)
    service.update_menu_item(burger.id, MenuItemUpdate(price=Decimal("11.00")), owner)
    assert gateway.get(key) is None

    assert service.get_menu_by_restaurant_id(restaurant.id)[0]["price"] == 11.0
    created = service.create_menu_item(
        MenuItemCreate(restaurant_id=restaurant.id, name="Fries", price=Decimal("3.50"), category=MenuItemCategory.SIDE),
        owner,
    )
    assert gateway.get(key) is None

    assert [i["name"] for i in service.get_menu_by_restaurant_id(restaurant.id)] == ["Burger", "Fries"]
    service.delete_menu_item(created.id, owner)
    assert gateway.get(key) is None
    assert [i["name"] for i in service.get_menu_by_restaurant_id(restaurant.id)] == ["Burger"]


def test_partial_update_only_touches_given_fields(catalog):
    db, owner, _, _, burger = catalog
    service = MenuService(db, MenuCache(None))

    updated = service.update_menu_item(burger.id, MenuItemUpdate(is_available=False), owner)

    assert updated.is_available is False
    assert updated.name == "Burger"
    assert updated.price == Decimal("9.99")


def test_broken_cache_never_fails_reads_or_writes(catalog):
    db, owner, _, restaurant, burger = catalog
    service = MenuService(db, MenuCache(ExplodingCache()))

    assert [i["name"] for i in service.get_menu_by_restaurant_id(restaurant.id)] == ["Burger"]
    service.update_menu_item(burger.id, MenuItemUpdate(name="Cheeseburger"), owner)
    assert [i["name"] for i in service.get_menu_by_restaurant_id(restaurant.id)] == ["Cheeseburger"]


def test_undecodable_cache_entry_falls_through(catalog):
    db, _, _, restaurant, _ = catalog
    gateway = InMemoryCacheGateway()
    gateway.set(menu_cache_key(restaurant.id), "not json", 600)

    menu = MenuService(db, MenuCache(gateway)).get_menu_by_restaurant_id(restaurant.id)

    assert [i["name"] for i in menu] == ["Burger"]


def test_only_owner_or_admin_may_change_a_menu(catalog):
    db, _, stranger, restaurant, burger = catalog
    admin = create_user(db, email="admin@example.com", role="admin")
    service = MenuService(db, MenuCache(InMemoryCacheGateway()))

    with pytest.raises(ForbiddenError):
        service.update_menu_item(burger.id, MenuItemUpdate(name="Hijacked"), stranger)
    with pytest.raises(ForbiddenError):
        service.delete_menu_item(burger.id, stranger)

    assert service.update_menu_item(burger.id, MenuItemUpdate(name="Admin Burger"), admin).name == "Admin Burger"


def test_missing_restaurant_or_item_is_not_found(catalog):
    db, owner, _, _, _ = catalog
    service = MenuService(db, MenuCache(None))

    with pytest.raises(NotFoundError):
        service.create_menu_item(
            MenuItemCreate(restaurant_id=999, name="Ghost", price=Decimal("1.00"), category=MenuItemCategory.DESSERT),
            owner,
        )
    with pytest.raises(NotFoundError):
        service.get_menu_item_by_id(999)
