from food_ordering.models.user import User
from food_ordering.models.restaurant import Restaurant
from food_ordering.models.menu_item import MenuItem
from food_ordering.models.order import Order
from food_ordering.models.order_item import OrderItem
