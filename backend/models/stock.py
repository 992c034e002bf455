# backend/models/stock.py
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, CheckConstraint, func
from sqlalchemy.orm import relationship
from database import Base

RESERVATION_HELD = "held"
RESERVATION_COMMITTED = "committed"
RESERVATION_RELEASED = "released"

class StockReservation(Base):
    __tablename__ = "stock_reservations"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)

    # Quantity held against the product
    quantity = Column(Integer, CheckConstraint("quantity > 0"), nullable=False)

    # Lifecycle: held -> committed | released
    status = Column(String, nullable=False, default=RESERVATION_HELD, index=True)

    # What the reservation was taken for (e.g. "order", "pi_123")
    reference = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    product = relationship("Product")
