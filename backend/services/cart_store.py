# backend/services/cart_store.py
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.cart import Cart, CartItem
from services.catalog import get_product
from services.pricing import items_total
from utils.errors import InsufficientStock, NotFound, ValidationFailed

logger = logging.getLogger(__name__)


def recalculate_total(cart: Cart) -> float:
    """Keep Cart.total_price equal to sum(price * quantity) of its items."""
    cart.total_price = float(items_total((it.price, it.quantity) for it in cart.items))
    return cart.total_price


class CartStore:
    """One cart per user; every mutation re-checks availability and recomputes the total."""

    def __init__(self, db: Session):
        self.db = db

    def find(self, user_id: int):
        return self.db.query(Cart).filter(Cart.user_id == user_id).first()

    def get_or_create(self, user_id: int) -> Cart:
        # Retrieve the user's cart or create a new one
        cart = self.find(user_id)
        if cart:
            return cart
        cart = Cart(user_id=user_id, total_price=0)
        self.db.add(cart)
        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent request created it first
            self.db.rollback()
            return self.find(user_id)
        self.db.refresh(cart)
        return cart

    def add_item(self, user_id: int, product_id: int, quantity: int) -> Cart:
        if quantity is None or quantity < 1:
            raise ValidationFailed("Quantity must be at least 1")

        cart = self.get_or_create(user_id)
        product = get_product(self.db, product_id)

        item = next((it for it in cart.items if it.product_id == product.id), None)
        new_quantity = quantity + (item.quantity if item else 0)
        if new_quantity > product.available:
            raise InsufficientStock(product.id, new_quantity, product.available, product.name)

        if item:
            item.quantity = new_quantity
            # Price snapshot is refreshed only when the product is added again
            item.price = product.price
        else:
            cart.items.append(CartItem(product_id=product.id, quantity=quantity, price=product.price))

        return self._save(cart)

    def update_item(self, user_id: int, item_id: int, quantity: int) -> Cart:
        cart = self.get_or_create(user_id)
        item = self._item(cart, item_id)

        if quantity <= 0:
            cart.items.remove(item)
            return self._save(cart)

        product = get_product(self.db, item.product_id)
        if quantity > product.available:
            raise InsufficientStock(product.id, quantity, product.available, product.name)

        item.quantity = quantity
        return self._save(cart)

    def remove_item(self, user_id: int, item_id: int) -> Cart:
        cart = self.get_or_create(user_id)
        cart.items.remove(self._item(cart, item_id))
        return self._save(cart)

    def clear(self, user_id: int, commit: bool = True):
        """Empty the cart. A missing or already empty cart is not an error."""
        cart = self.find(user_id)
        if cart is None or not cart.items:
            return cart
        cart.items.clear()
        recalculate_total(cart)
        if commit:
            self.db.commit()
            self.db.refresh(cart)
        return cart

    def _item(self, cart: Cart, item_id: int) -> CartItem:
        item = next((it for it in cart.items if it.id == item_id), None)
        if not item:
            raise NotFound("Item not found in cart")
        return item

    def _save(self, cart: Cart) -> Cart:
        recalculate_total(cart)
        self.db.commit()
        self.db.refresh(cart)
        return cart
