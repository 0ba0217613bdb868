from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import relationship

from food_ordering.core.database import Base
from food_ordering.models.enums import OrderStatus, PaymentStatus


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), index=True, nullable=False)

    # pending / preparing / ready / delivered / cancelled
    status = Column(String(20), default=OrderStatus.PENDING.value, nullable=False)
    # pending / success / failed
    payment_status = Column(String(20), default=PaymentStatus.PENDING.value, nullable=False)

    # Computed once at creation from the item snapshots.
    total_price = Column(Numeric(10, 2), nullable=False)
    customer_note = Column(Text, nullable=True)
    delivery_address = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    customer = relationship("User", back_populates="orders")
    restaurant = relationship("Restaurant", back_populates="orders")
    order_items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
