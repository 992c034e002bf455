from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey, DateTime, JSON, func
from sqlalchemy.orm import relationship
from database import Base

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String, default="pending", nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Shipping address ({address, city, postalCode, country}) and payment method tag
    shipping_address = Column(JSON, nullable=True)
    payment_method = Column(String, nullable=False, default="stripe")

    # Prices are fixed at creation and never re-derived from the catalog
    items_price = Column(Float, nullable=False, default=0)
    tax_price = Column(Float, nullable=False, default=0)
    shipping_price = Column(Float, nullable=False, default=0)
    total_price = Column(Float, nullable=False, default=0)

    # Payment state; payment_result = {id, status, update_time, email_address}
    is_paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    payment_result = Column(JSON, nullable=True)
    # Settlement idempotence key
    payment_intent_id = Column(String, unique=True, nullable=True, index=True)

    # Fulfillment state
    is_delivered = Column(Boolean, nullable=False, default=False)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    # Set once stock of a cancelled/deleted order was given back
    stock_restored = Column(Boolean, nullable=False, default=False)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id")
    user = relationship("User")

class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    # Snapshot: no foreign key so the line survives catalog deletions
    product_id = Column(Integer, nullable=False)
    name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Float, nullable=False)
    image = Column(String, nullable=True)

    order = relationship("Order", back_populates="items")
