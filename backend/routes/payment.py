# backend/routes/payment.py
import logging
from fastapi import APIRouter, Request, Depends, Header, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from database import get_db
from models.users import User
from routes.orders import _order_to_out
from schemas.common import ApiResponse
from schemas.order import OrderResponse
from schemas.payment import CreateIntentPayload, PaymentIntentOut, ProcessPaymentPayload
from services.payment_orchestrator import PaymentOrchestrator
from services.webhook_processor import WebhookProcessor
from utils.audit import write_log
from utils.errors import WebhookSignatureInvalid
from utils.stripe_client import StripeClient
from utils.tokenJWT import get_current_user

router = APIRouter(prefix="/payment", tags=["Payment"])
logger = logging.getLogger(__name__)

def _client_ip(request: Request):
    return request.client.host if request.client else None

# Gateway client built at startup (see main.py); overridable in tests
def get_payment_gateway(request: Request) -> StripeClient:
    return request.app.state.payment_gateway

def get_payment_orchestrator(
    db: Session = Depends(get_db),
    gateway: StripeClient = Depends(get_payment_gateway),
) -> PaymentOrchestrator:
    return PaymentOrchestrator(db, gateway)


@router.post("/create-payment-intent", response_model=PaymentIntentOut)
async def create_payment_intent(
    payload: CreateIntentPayload,
    request: Request,
    db: Session = Depends(get_db),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
    current_user: User = Depends(get_current_user)
):
    handle = await orchestrator.create_intent(
        current_user,
        items=[(it.product, it.quantity) for it in payload.items] if payload.items is not None else None,
        shipping_price=payload.shipping.price if payload.shipping else None,
        shipping_address=payload.shipping_address.model_dump(by_alias=True) if payload.shipping_address else None,
        payment_method_type=payload.payment_method_type,
    )
    write_log(db, user_id=current_user.id, action="PAYMENT_INTENT_CREATE", resource="payment", status="SUCCESS",
        ip=_client_ip(request), meta={"intent_id": handle.id, "amount": handle.amount, "currency": handle.currency})
    return PaymentIntentOut(client_secret=handle.client_secret, amount=handle.amount, id=handle.id)


# Synchronous completion: verify with the gateway, then settle the checkout
@router.post("/process-payment", response_model=ApiResponse[OrderResponse], status_code=status.HTTP_201_CREATED)
async def process_payment(
    payload: ProcessPaymentPayload,
    request: Request,
    db: Session = Depends(get_db),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
    current_user: User = Depends(get_current_user)
):
    order, created = await orchestrator.confirm_and_settle(
        payload.payment_intent_id,
        payload.shipping_address.model_dump(by_alias=True) if payload.shipping_address else None,
        current_user,
    )
    out = _order_to_out(order)
    write_log(db, user_id=current_user.id, action="PAYMENT_SETTLE", resource="payment", status="SUCCESS",
        ip=_client_ip(request), meta={"intent_id": payload.payment_intent_id, "order_id": out.id, "created": created})
    return {"data": out}


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    db: Session = Depends(get_db),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
    stripe_signature: str = Header(None, alias="Stripe-Signature")
):
    # Signature covers the raw bytes, so the body must not be parsed first
    body = await request.body()
    processor = WebhookProcessor(db, orchestrator)
    try:
        result = await processor.process(body, stripe_signature)
    except WebhookSignatureInvalid as e:
        logger.warning("Webhook signature verification failed: %s", e.message)
        return PlainTextResponse(f"Webhook Error: {e.message}", status_code=400)

    write_log(db, user_id=None, action="WEBHOOK_RECEIVED", resource="payment", status="SUCCESS",
        ip=_client_ip(request), meta=result)
    return {"received": True}
