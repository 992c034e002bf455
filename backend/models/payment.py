# backend/models/payment.py
from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, JSON, func
from sqlalchemy.orm import relationship
from database import Base

# One row per payment intent created through the orchestrator
class PaymentAttempt(Base):
    __tablename__ = "payment_attempts"

    id = Column(Integer, primary_key=True, index=True)
    intent_id = Column(String, unique=True, nullable=False, index=True)
    correlation_id = Column(String, unique=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Priced item snapshot: [{product, name, quantity, price, image}]
    items = Column(JSON, nullable=False)
    items_price = Column(Float, nullable=False)
    tax_price = Column(Float, nullable=False)
    shipping_price = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)

    # Amount in minor currency units as sent to the gateway
    amount = Column(Integer, nullable=False)
    currency = Column(String, nullable=False)

    shipping_address = Column(JSON, nullable=True)

    # requires_payment | settled | failed | settlement_failed
    status = Column(String, nullable=False, default="requires_payment", index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User")


# Gateway events already handled, keyed by the gateway's event id
class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String, unique=True, nullable=False, index=True)
    type = Column(String, nullable=False)
    # settled | already_settled | settlement_failed | not_succeeded | unknown_intent
    # | failed_recorded | ignored
    outcome = Column(String, nullable=False)
    received_at = Column(DateTime(timezone=True), server_default=func.now())
