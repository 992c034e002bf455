# backend/routes/orders.py
import math
from typing import Optional
from fastapi import APIRouter, Depends, Request, Query, status
from sqlalchemy.orm import Session

from database import get_db
from utils.tokenJWT import get_current_user, role_required
from utils.audit import write_log
from models.users import User
from models.order import Order
from services.order_service import OrderService
from schemas.common import ApiResponse, ApiListResponse, ApiPageResponse, Pagination
from schemas.order import (
    OrderResponse, OrderItemOut, OrderCreatePayload, OrderStatusPatch,
    OrderDeliverPayload, PaymentResultIn,
)

router = APIRouter(prefix="/orders", tags=["Orders"])

admin_only = role_required("admin")

def _client_ip(request: Request):
    return request.client.host if request.client else None

# Map Order model to OrderResponse schema
def _order_to_out(order: Order) -> OrderResponse:
    items = [OrderItemOut(
        product=it.product_id,
        name=it.name,
        quantity=it.quantity,
        price=it.price,
        image=it.image,
        line_total=round(it.quantity * it.price, 2),
    ) for it in order.items]
    return OrderResponse(
        id=order.id,
        user_id=order.user_id,
        status=order.status,
        items=items,
        shipping_address=order.shipping_address,
        payment_method=order.payment_method,
        payment_result=order.payment_result,
        items_price=order.items_price,
        tax_price=order.tax_price,
        shipping_price=order.shipping_price,
        total_price=order.total_price,
        is_paid=order.is_paid,
        paid_at=order.paid_at,
        is_delivered=order.is_delivered,
        delivered_at=order.delivered_at,
        created_at=order.created_at,
    )


# Itemized checkout: reserve and commit stock, persist order
@router.post("", response_model=ApiResponse[OrderResponse], status_code=status.HTTP_201_CREATED)
def create_order(
    payload: OrderCreatePayload,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    order = OrderService(db).create_order(
        user_id=current_user.id,
        items=[(it.product, it.quantity) for it in payload.order_items],
        shipping_address=payload.shipping_address.model_dump(by_alias=True),
        payment_method=payload.payment_method,
        declared_prices={
            "items_price": payload.items_price,
            "tax_price": payload.tax_price,
            "shipping_price": payload.shipping_price,
            "total_price": payload.total_price,
        },
    )
    out = _order_to_out(order)
    write_log(db, user_id=current_user.id, action="ORDER_CREATE", resource="orders", status="SUCCESS",
        ip=_client_ip(request), meta={"order_id": out.id, "total": out.total_price})
    return {"data": out}


# List all orders (Admin only)
@router.get("", response_model=ApiPageResponse[OrderResponse])
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only)
):
    orders, total = OrderService(db).get_orders(page=page, limit=limit)
    return {
        "count": len(orders),
        "data": [_order_to_out(o) for o in orders],
        "pagination": Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit) if total else 0),
    }


# List the caller's own orders
@router.get("/myorders", response_model=ApiListResponse[OrderResponse])
def list_my_orders(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    orders = OrderService(db).get_my_orders(current_user.id)
    return {"count": len(orders), "data": [_order_to_out(o) for o in orders]}


# Get details of a specific order (owner or admin)
@router.get("/{order_id}", response_model=ApiResponse[OrderResponse])
def get_order_detail(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return {"data": _order_to_out(OrderService(db).get_order_by_id(order_id, current_user))}


# Record a gateway payment confirmation on the order (idempotent per transaction id)
@router.put("/{order_id}/pay", response_model=ApiResponse[OrderResponse])
def update_order_to_paid(
    order_id: int,
    payload: PaymentResultIn,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    order = OrderService(db).mark_paid(order_id, payload.model_dump(), requester=current_user)
    out = _order_to_out(order)
    write_log(db, user_id=current_user.id, action="ORDER_PAY", resource="orders", status="SUCCESS",
        ip=_client_ip(request), meta={"order_id": order_id, "transaction_id": payload.id})
    return {"data": out}


@router.put("/{order_id}/deliver", response_model=ApiResponse[OrderResponse])
def update_order_to_delivered(
    order_id: int,
    request: Request,
    payload: Optional[OrderDeliverPayload] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only)
):
    waive = payload.waive_payment if payload else False
    order = OrderService(db).mark_delivered(order_id, waive_payment=waive)
    out = _order_to_out(order)
    write_log(db, user_id=current_user.id, action="ORDER_DELIVER", resource="orders", status="SUCCESS",
        ip=_client_ip(request), meta={"order_id": order_id, "waive_payment": waive})
    return {"data": out}


# Update order status through the transition table (Admin only)
@router.put("/{order_id}/status", response_model=ApiResponse[OrderResponse])
def update_order_status(
    order_id: int,
    payload: OrderStatusPatch,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only)
):
    service = OrderService(db)
    old_status = service.get_order(order_id).status
    order = service.set_status(order_id, payload.status, waive_payment=payload.waive_payment)
    out = _order_to_out(order)
    write_log(db, user_id=current_user.id, action="ORDER_STATUS_CHANGE", resource="orders", status="SUCCESS",
        ip=_client_ip(request), meta={"order_id": order_id, "old": old_status, "new": payload.status})
    return {"data": out}


@router.delete("/{order_id}", response_model=ApiResponse[dict])
def delete_order(
    order_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only)
):
    OrderService(db).delete_order(order_id)
    write_log(db, user_id=current_user.id, action="ORDER_DELETE", resource="orders", status="SUCCESS",
        ip=_client_ip(request), meta={"order_id": order_id})
    return {"data": {}}
