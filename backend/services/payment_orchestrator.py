# backend/services/payment_orchestrator.py
"""Payment intent orchestration around the external gateway.

The gateway client is passed in; nothing here reaches for a global client.
Gateway state is never taken from the caller: every settlement re-reads the
intent from the gateway first.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from config import settings
from models.order import Order
from models.payment import PaymentAttempt
from services.cart_store import CartStore
from services.catalog import get_product
from services.order_service import OrderService
from services.pricing import calculate_prices
from utils.errors import (
    InsufficientStock,
    NotFound,
    PaymentNotSuccessful,
    Unauthorized,
    ValidationFailed,
)
from utils.stripe_client import StripeClient

logger = logging.getLogger(__name__)


class PaymentStatus(str, Enum):
    REQUIRES_ACTION = "requires_action"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Gateway intent status -> domain status
GATEWAY_STATUSES = {
    "requires_payment_method": PaymentStatus.REQUIRES_ACTION,
    "requires_confirmation": PaymentStatus.REQUIRES_ACTION,
    "requires_action": PaymentStatus.REQUIRES_ACTION,
    "processing": PaymentStatus.PROCESSING,
    "requires_capture": PaymentStatus.PROCESSING,
    "succeeded": PaymentStatus.SUCCEEDED,
    "canceled": PaymentStatus.CANCELLED,
}


def map_gateway_status(intent: dict) -> PaymentStatus:
    raw = intent.get("status")
    # A declined attempt sends the intent back to requires_payment_method
    if raw == "requires_payment_method" and intent.get("last_payment_error"):
        return PaymentStatus.FAILED
    return GATEWAY_STATUSES.get(raw, PaymentStatus.FAILED)


@dataclass
class IntentHandle:
    id: str
    client_secret: Optional[str]
    amount: int
    currency: str


@dataclass
class VerifiedIntent:
    id: str
    status: PaymentStatus
    gateway_status: str
    amount: int
    currency: str
    metadata: dict = field(default_factory=dict)
    receipt_email: Optional[str] = None


class PaymentOrchestrator:
    def __init__(
        self,
        db: Session,
        gateway: StripeClient,
        order_service: Optional[OrderService] = None,
        currency: str = settings.PAYMENT_CURRENCY,
    ):
        self.db = db
        self.gateway = gateway
        self.orders = order_service or OrderService(db)
        self.currency = currency

    async def create_intent(
        self,
        user,
        items: Optional[List[Tuple[int, int]]] = None,
        shipping_price: Optional[float] = None,
        shipping_address: Optional[dict] = None,
        payment_method_type: str = "card",
    ) -> IntentHandle:
        """Price the items (or the user's cart) and open a gateway intent for the total.

        Stock is only checked here, not reserved; reservation happens at settlement.
        """
        if items is None:
            cart = CartStore(self.db).get_or_create(user.id)
            items = [(it.product_id, it.quantity) for it in cart.items]
        if not items:
            raise ValidationFailed("No items in cart")

        # Same product listed twice is one line
        merged = {}
        for product_id, quantity in items:
            if quantity is None or quantity < 1:
                raise ValidationFailed("Quantity must be at least 1")
            merged[product_id] = merged.get(product_id, 0) + quantity

        snapshot = []
        for product_id, quantity in merged.items():
            product = get_product(self.db, product_id)
            if product.available < quantity:
                raise InsufficientStock(product.id, quantity, product.available, product.name)
            snapshot.append({
                "product": product.id,
                "name": product.name,
                "quantity": quantity,
                "price": product.price,
                "image": product.image_url or "",
            })

        prices = calculate_prices(
            [(it["price"], it["quantity"]) for it in snapshot], shipping_price=shipping_price
        )
        amount = prices.to_minor_units()
        if amount <= 0:
            raise ValidationFailed("Order total must be positive")

        correlation_id = uuid.uuid4().hex
        intent = await self.gateway.create_payment_intent(
            amount=amount,
            currency=self.currency,
            metadata={"userId": user.id, "correlationId": correlation_id},
            payment_method_types=[payment_method_type or "card"],
            idempotency_key=correlation_id,
        )

        attempt = PaymentAttempt(
            intent_id=intent["id"],
            correlation_id=correlation_id,
            user_id=user.id,
            items=snapshot,
            amount=amount,
            currency=self.currency,
            shipping_address=shipping_address,
            status="requires_payment",
            **prices.as_floats(),
        )
        self.db.add(attempt)
        self.db.commit()

        logger.info("Payment intent %s created for user %s, amount %s %s", intent["id"], user.id, amount, self.currency)
        return IntentHandle(
            id=intent["id"],
            client_secret=intent.get("client_secret"),
            amount=amount,
            currency=self.currency,
        )

    async def verify(self, intent_id: str) -> VerifiedIntent:
        intent = await self.gateway.retrieve_payment_intent(intent_id)
        return VerifiedIntent(
            id=intent.get("id", intent_id),
            status=map_gateway_status(intent),
            gateway_status=intent.get("status", ""),
            amount=intent.get("amount", 0),
            currency=intent.get("currency", ""),
            metadata=intent.get("metadata") or {},
            receipt_email=intent.get("receipt_email"),
        )

    def find_attempt(self, intent_id: str) -> Optional[PaymentAttempt]:
        return self.db.query(PaymentAttempt).filter(PaymentAttempt.intent_id == intent_id).first()

    async def confirm_and_settle(self, intent_id: str, shipping_address: Optional[dict], user) -> Tuple[Order, bool]:
        attempt = self.find_attempt(intent_id)
        if attempt is None:
            raise NotFound(f"Payment intent not found: {intent_id}")
        if attempt.user_id != user.id:
            raise Unauthorized("Not authorized to settle this payment")

        verified = await self.verify(intent_id)
        return self.settle_verified(attempt, verified, shipping_address, email=user.email)

    async def settle_from_gateway(self, attempt: PaymentAttempt) -> Optional[Tuple[Order, bool]]:
        """Webhook path: settle only if the gateway itself reports success."""
        verified = await self.verify(attempt.intent_id)
        if verified.status != PaymentStatus.SUCCEEDED:
            logger.warning(
                "Intent %s reported succeeded but gateway says %s; not settling",
                attempt.intent_id, verified.gateway_status,
            )
            return None
        email = verified.receipt_email or (attempt.user.email if attempt.user else None)
        return self.settle_verified(attempt, verified, None, email=email)

    def settle_verified(
        self,
        attempt: PaymentAttempt,
        verified: VerifiedIntent,
        shipping_address: Optional[dict],
        email: Optional[str] = None,
    ) -> Tuple[Order, bool]:
        if verified.status != PaymentStatus.SUCCEEDED:
            raise PaymentNotSuccessful(attempt.intent_id, verified.gateway_status)
        if verified.amount != attempt.amount:
            logger.error(
                "Amount mismatch for intent %s: gateway %s, quoted %s",
                attempt.intent_id, verified.amount, attempt.amount,
            )
            raise ValidationFailed("Payment amount does not match the quoted total")

        payment_result = {
            "id": attempt.intent_id,
            "status": verified.gateway_status,
            "update_time": datetime.now(timezone.utc).isoformat(),
            "email_address": email,
        }
        try:
            return self.orders.settle(attempt, payment_result, shipping_address)
        except (InsufficientStock, NotFound) as e:
            # Paid but no longer fulfillable; leave a trace for a refund
            attempt.status = "settlement_failed"
            self.db.commit()
            logger.error("Settlement of intent %s failed: %s", attempt.intent_id, e.message)
            raise
