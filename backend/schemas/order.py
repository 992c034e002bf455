from pydantic import Field
from typing import List, Literal, Optional
from datetime import datetime

from schemas.common import CamelModel

OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]


class ShippingAddress(CamelModel):
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    postal_code: str = Field(min_length=1)
    country: str = Field(min_length=1)


# Input line for itemized checkout
class OrderItemIn(CamelModel):
    product: int
    quantity: int = Field(gt=0)


# Input schema for creating a new order
class OrderCreatePayload(CamelModel):
    order_items: List[OrderItemIn] = []
    shipping_address: ShippingAddress
    payment_method: str = "stripe"
    items_price: float = Field(ge=0)
    tax_price: float = Field(ge=0)
    shipping_price: float = Field(ge=0)
    total_price: float = Field(ge=0)


# Gateway confirmation applied through PUT /orders/{id}/pay
class PaymentResultIn(CamelModel):
    id: str = Field(min_length=1)
    status: Optional[str] = None
    update_time: Optional[str] = None
    email_address: Optional[str] = None


class OrderStatusPatch(CamelModel):
    status: OrderStatus
    waive_payment: bool = False


class OrderDeliverPayload(CamelModel):
    waive_payment: bool = False


# Output schema for an individual order line item
class OrderItemOut(CamelModel):
    product: int
    name: str
    quantity: int
    price: float
    image: Optional[str] = None
    line_total: float


# Output schema representing the full order details
class OrderResponse(CamelModel):
    id: int
    user_id: int
    status: str
    items: List[OrderItemOut]
    shipping_address: Optional[dict] = None
    payment_method: str
    payment_result: Optional[dict] = None
    items_price: float
    tax_price: float
    shipping_price: float
    total_price: float
    is_paid: bool
    paid_at: Optional[datetime] = None
    is_delivered: bool
    delivered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
