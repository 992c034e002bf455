# backend/services/webhook_processor.py
import hashlib
import hmac
import json
import logging
import time
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import settings
from models.payment import WebhookEvent
from services.payment_orchestrator import PaymentOrchestrator
from utils.errors import ShopError, UpstreamUnavailable, ValidationFailed, WebhookSignatureInvalid

logger = logging.getLogger(__name__)


def verify_signature(payload: bytes, header: Optional[str], secret: str, tolerance: int, now: Optional[int] = None) -> None:
    """Checks a ``t=<ts>,v1=<hex>`` signature header over ``<ts>.<raw body>``."""
    if not header:
        raise WebhookSignatureInvalid("Missing Stripe-Signature header")
    if not secret:
        raise WebhookSignatureInvalid("Webhook secret is not configured")

    timestamp, signatures = None, []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)
    if not timestamp or not signatures:
        raise WebhookSignatureInvalid("Unable to extract timestamp and signatures from header")

    try:
        ts = int(timestamp)
    except ValueError:
        raise WebhookSignatureInvalid("Invalid timestamp in signature header")

    signed = timestamp.encode("utf-8") + b"." + payload
    expected = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        raise WebhookSignatureInvalid("No signatures found matching the expected signature for payload")

    current = int(time.time()) if now is None else now
    if tolerance and current - ts > tolerance:
        raise WebhookSignatureInvalid("Timestamp outside the tolerance zone")


class WebhookProcessor:
    """Authenticates gateway events and dispatches them by type.

    Each handler returns a short outcome string. Events are remembered by id,
    so a replayed delivery is acknowledged without running its handler again.
    """

    def __init__(
        self,
        db: Session,
        orchestrator: PaymentOrchestrator,
        secret: str = None,
        tolerance: int = None,
    ):
        self.db = db
        self.orchestrator = orchestrator
        self.secret = settings.STRIPE_WEBHOOK_SECRET if secret is None else secret
        self.tolerance = settings.STRIPE_WEBHOOK_TOLERANCE if tolerance is None else tolerance
        self.handlers = {
            "payment_intent.succeeded": self._on_payment_succeeded,
            "payment_intent.payment_failed": self._on_payment_failed,
        }

    async def process(self, payload: bytes, signature: Optional[str]) -> dict:
        verify_signature(payload, signature, self.secret, self.tolerance)

        try:
            event = json.loads(payload)
        except ValueError:
            raise ValidationFailed("Webhook payload is not valid JSON")
        event_id, event_type = event.get("id"), event.get("type")
        if not event_id or not event_type:
            raise ValidationFailed("Webhook event is missing id or type")

        if self.db.query(WebhookEvent).filter(WebhookEvent.event_id == event_id).first():
            logger.info("Duplicate webhook event %s (%s) acknowledged", event_id, event_type)
            return {"id": event_id, "type": event_type, "outcome": "duplicate"}

        handler = self.handlers.get(event_type)
        if handler is None:
            logger.info("Unhandled event type %s", event_type)
            outcome = "ignored"
        else:
            outcome = await handler(event)

        self.db.add(WebhookEvent(event_id=event_id, type=event_type, outcome=outcome))
        try:
            self.db.commit()
        except IntegrityError:
            # Concurrent delivery of the same event recorded it first
            self.db.rollback()
            logger.info("Webhook event %s recorded concurrently", event_id)
            outcome = "duplicate"

        return {"id": event_id, "type": event_type, "outcome": outcome}

    def _intent_id(self, event: dict) -> Optional[str]:
        return ((event.get("data") or {}).get("object") or {}).get("id")

    async def _on_payment_succeeded(self, event: dict) -> str:
        intent_id = self._intent_id(event)
        logger.info("PaymentIntent was successful: %s", intent_id)
        attempt = self.orchestrator.find_attempt(intent_id) if intent_id else None
        if attempt is None:
            logger.warning("No checkout attempt for intent %s; ignoring", intent_id)
            return "unknown_intent"

        try:
            result = await self.orchestrator.settle_from_gateway(attempt)
        except UpstreamUnavailable:
            # Not acknowledged; the gateway retries the delivery
            raise
        except ShopError as e:
            # Acknowledged anyway; a retry would fail the same way
            logger.error("Settlement of intent %s failed: %s", intent_id, e.message)
            return "settlement_failed"

        if result is None:
            return "not_succeeded"
        order, created = result
        if not created:
            logger.info("Intent %s already settled as order %s", intent_id, order.id)
            return "already_settled"
        return "settled"

    async def _on_payment_failed(self, event: dict) -> str:
        intent_id = self._intent_id(event)
        logger.warning("Payment failed: %s", intent_id)
        attempt = self.orchestrator.find_attempt(intent_id) if intent_id else None
        if attempt is None:
            return "unknown_intent"
        # A late failure notice never undoes a settlement
        if attempt.status == "requires_payment":
            attempt.status = "failed"
        return "failed_recorded"
