from pydantic import Field
from typing import List, Optional

from schemas.common import CamelModel
from schemas.order import ShippingAddress


class IntentItemIn(CamelModel):
    product: int
    quantity: int = Field(gt=0)


class ShippingCharge(CamelModel):
    price: float = Field(ge=0)


# Body of POST /payment/create-payment-intent; items default to the caller's cart
class CreateIntentPayload(CamelModel):
    items: Optional[List[IntentItemIn]] = None
    shipping: Optional[ShippingCharge] = None
    payment_method_type: str = "card"
    shipping_address: Optional[ShippingAddress] = None


class PaymentIntentOut(CamelModel):
    success: bool = True
    client_secret: Optional[str] = None
    amount: int
    id: str


class ProcessPaymentPayload(CamelModel):
    payment_intent_id: str = Field(min_length=1)
    shipping_address: Optional[ShippingAddress] = None
