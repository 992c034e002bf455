# backend/routes/cart.py
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from database import get_db
from utils.tokenJWT import get_current_user
from utils.audit import write_log
from models.users import User
from models.cart import Cart
from services.cart_store import CartStore
from schemas.cart import CartAddItem, CartUpdateItem, CartOut, CartItemOut
from schemas.common import ApiResponse

router = APIRouter(prefix="/cart", tags=["Cart"])

def _client_ip(request: Request):
    return request.client.host if request.client else None

def _cart_to_out(cart: Cart) -> CartOut:
    items_out = []
    for it in cart.items:
        product = it.product
        items_out.append(CartItemOut(
            id=it.id,
            product_id=it.product_id,
            name=product.name if product else "",
            image=product.image_url if product else None,
            quantity=it.quantity,
            price=it.price, # Price snapshot taken when the item was added
            line_total=round(it.price * it.quantity, 2),
        ))
    return CartOut(id=cart.id, user_id=cart.user_id, items=items_out, total_price=round(cart.total_price or 0, 2))

@router.get("", response_model=ApiResponse[CartOut])
def get_cart(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    cart = CartStore(db).get_or_create(current_user.id)
    return {"data": _cart_to_out(cart)}

@router.post("", response_model=ApiResponse[CartOut])
def add_to_cart(
    payload: CartAddItem,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    cart = CartStore(db).add_item(current_user.id, payload.product_id, payload.quantity)
    out = _cart_to_out(cart)
    write_log(
        db,
        user_id=current_user.id,
        action="CART_ADD",
        resource="cart",
        status="SUCCESS",
        ip=_client_ip(request),
        meta={"product_id": payload.product_id, "quantity": payload.quantity, "total": out.total_price},
    )
    return {"data": out}

@router.put("/{item_id}", response_model=ApiResponse[CartOut])
def update_cart_item(
    item_id: int,
    payload: CartUpdateItem,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    cart = CartStore(db).update_item(current_user.id, item_id, payload.quantity)
    out = _cart_to_out(cart)
    write_log(
        db,
        user_id=current_user.id,
        action="CART_UPDATE",
        resource="cart",
        status="SUCCESS",
        ip=_client_ip(request),
        meta={"item_id": item_id, "quantity": payload.quantity, "total": out.total_price},
    )
    return {"data": out}

@router.delete("/{item_id}", response_model=ApiResponse[CartOut])
def delete_cart_item(
    item_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    cart = CartStore(db).remove_item(current_user.id, item_id)
    out = _cart_to_out(cart)
    write_log(
        db,
        user_id=current_user.id,
        action="CART_DELETE",
        resource="cart",
        status="SUCCESS",
        ip=_client_ip(request),
        meta={"item_id": item_id, "cart_items": len(out.items), "total": out.total_price},
    )
    return {"data": out}

@router.delete("", response_model=ApiResponse[CartOut])
def clear_cart(
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    store = CartStore(db)
    store.clear(current_user.id)
    cart = store.get_or_create(current_user.id)
    write_log(db, user_id=current_user.id, action="CART_CLEAR", resource="cart", status="SUCCESS", ip=_client_ip(request))
    return {"data": _cart_to_out(cart)}
