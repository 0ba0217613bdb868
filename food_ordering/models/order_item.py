from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, func
from sqlalchemy.orm import relationship, validates

from food_ordering.core.database import Base


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),)

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), index=True, nullable=False)

    quantity = Column(Integer, nullable=False, default=1)
    # Price at the time of order; never recomputed from the current menu price.
    price = Column(Numeric(10, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    order = relationship("Order", back_populates="order_items")
    menu_item = relationship("MenuItem")

    @validates("price", "quantity")
    def _write_once(self, key, value):
        if getattr(self, key) is not None:
            raise ValueError(f"OrderItem.{key} cannot change after creation")
        return value
