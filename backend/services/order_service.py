# backend/services/order_service.py
import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from models.order import Order, OrderItem, ORDER_STATUSES
from models.payment import PaymentAttempt
from services.cart_store import CartStore
from services.catalog import get_product
from services.pricing import totals_match, to_money
from services.stock_ledger import StockLedger
from utils.errors import NotFound, ShopError, Unauthorized, ValidationFailed
from utils.tokenJWT import is_admin

logger = logging.getLogger(__name__)

# Allowed Order.status moves; delivered and cancelled are terminal
ALLOWED_TRANSITIONS = {
    "pending": {"processing", "cancelled"},
    "processing": {"shipped", "delivered", "cancelled"},
    "shipped": {"delivered", "cancelled"},
    "delivered": set(),
    "cancelled": set(),
}

# Orders whose goods have not left the warehouse give stock back when dropped
RESTOCKABLE_STATUSES = {"pending", "processing"}


def _now():
    return datetime.now(timezone.utc)


class OrderService:
    def __init__(self, db: Session, ledger: Optional[StockLedger] = None):
        self.db = db
        self.ledger = ledger or StockLedger(db)

    # ---- creation ----

    def create_order(
        self,
        user_id: int,
        items: List[Tuple[int, int]],
        shipping_address: dict,
        payment_method: str,
        declared_prices: dict,
    ) -> Order:
        """Itemized checkout: reserve every line, commit all of them, persist the order.

        ``items`` are (product id, quantity) pairs. Either every line is
        reserved and committed or the stock is left exactly as it was.
        """
        if not items:
            raise ValidationFailed("No order items")
        for _, quantity in items:
            if quantity is None or quantity < 1:
                raise ValidationFailed("Quantity must be at least 1")
        if not totals_match(
            declared_prices["items_price"],
            declared_prices["tax_price"],
            declared_prices["shipping_price"],
            declared_prices["total_price"],
        ):
            raise ValidationFailed("totalPrice must equal itemsPrice + taxPrice + shippingPrice")

        try:
            reservations, products = self._reserve_items(items, reference="order")
            for reservation in reservations:
                self.ledger.commit(reservation)

            order = Order(
                user_id=user_id,
                status="pending",
                shipping_address=shipping_address,
                payment_method=payment_method,
                items_price=float(to_money(declared_prices["items_price"])),
                tax_price=float(to_money(declared_prices["tax_price"])),
                shipping_price=float(to_money(declared_prices["shipping_price"])),
                total_price=float(to_money(declared_prices["total_price"])),
                items=[
                    OrderItem(
                        product_id=product.id,
                        name=product.name,
                        quantity=reservation.quantity,
                        price=product.price,
                        image=product.image_url or "",
                    )
                    for product, reservation in zip(products, reservations)
                ],
            )
            self.db.add(order)
            self.db.flush()
            for reservation in reservations:
                reservation.reference = f"order:{order.id}"
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(order)
        logger.info("Order %s created for user %s (%s lines)", order.id, user_id, len(order.items))
        return order

    def settle(
        self,
        attempt: PaymentAttempt,
        payment_result: dict,
        shipping_address: Optional[dict] = None,
    ) -> Tuple[Order, bool]:
        """Turn a paid checkout attempt into an order exactly once.

        Returns (order, created). A second call for the same payment intent
        returns the existing order with ``created`` False and touches no stock.
        """
        existing = self.find_by_intent(attempt.intent_id)
        if existing:
            return self._fill_address(existing, shipping_address), False

        try:
            # Serialize settlements of the same intent
            locked = (
                self.db.query(PaymentAttempt)
                .filter(PaymentAttempt.id == attempt.id)
                .with_for_update()
                .one()
            )
            if locked.status == "settled":
                existing = self.find_by_intent(attempt.intent_id)
                self.db.rollback()
                if existing is None:
                    # Settled earlier and the order was deleted since
                    raise ValidationFailed(f"Payment intent {attempt.intent_id} is already settled")
                return self._fill_address(existing, shipping_address), False

            lines = [(it["product"], it["quantity"]) for it in locked.items]
            reservations, _ = self._reserve_items(lines, reference=locked.intent_id)
            for reservation in reservations:
                self.ledger.commit(reservation)

            order = Order(
                user_id=locked.user_id,
                status="processing",
                shipping_address=shipping_address or locked.shipping_address,
                payment_method="stripe",
                # Charged amounts, not live catalog prices
                items_price=locked.items_price,
                tax_price=locked.tax_price,
                shipping_price=locked.shipping_price,
                total_price=locked.total_price,
                is_paid=True,
                paid_at=_now(),
                payment_result=payment_result,
                payment_intent_id=locked.intent_id,
                items=[
                    OrderItem(
                        product_id=it["product"],
                        name=it["name"],
                        quantity=it["quantity"],
                        price=it["price"],
                        image=it.get("image") or "",
                    )
                    for it in locked.items
                ],
            )
            self.db.add(order)
            locked.status = "settled"
            CartStore(self.db).clear(locked.user_id, commit=False)
            self.db.commit()
        except IntegrityError:
            # Lost the race against another settlement of the same intent
            self.db.rollback()
            existing = self.find_by_intent(attempt.intent_id)
            if existing is None:
                raise
            logger.info("Payment intent %s already settled as order %s", attempt.intent_id, existing.id)
            return existing, False
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(order)
        logger.info("Payment intent %s settled as order %s", order.payment_intent_id, order.id)
        return order, True

    def _reserve_items(self, lines, reference):
        # Sequential, fail fast; anything already held is released before re-raising
        reservations, products = [], []
        try:
            for product_id, quantity in lines:
                product = get_product(self.db, product_id)
                reservations.append(self.ledger.try_reserve(product.id, quantity, reference))
                products.append(product)
        except ShopError:
            for reservation in reservations:
                self.ledger.release(reservation)
            raise
        return reservations, products

    def _fill_address(self, order: Order, shipping_address: Optional[dict]) -> Order:
        if shipping_address and not order.shipping_address:
            order.shipping_address = shipping_address
            self.db.commit()
            self.db.refresh(order)
        return order

    # ---- reads ----

    def _query(self):
        return self.db.query(Order).options(joinedload(Order.items))

    def find_by_intent(self, intent_id: str) -> Optional[Order]:
        return self._query().filter(Order.payment_intent_id == intent_id).first()

    def get_orders(self, page: int = 1, limit: int = 20) -> Tuple[List[Order], int]:
        total = self.db.query(Order).count()
        orders = (
            self._query()
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return orders, total

    def get_my_orders(self, user_id: int) -> List[Order]:
        return self._query().filter(Order.user_id == user_id).order_by(Order.id.desc()).all()

    def get_order(self, order_id: int) -> Order:
        order = self._query().filter(Order.id == order_id).first()
        if not order:
            raise NotFound(f"Order not found with id of {order_id}")
        return order

    def get_order_by_id(self, order_id: int, requester) -> Order:
        order = self.get_order(order_id)
        # Make sure requester is the order owner or admin
        if order.user_id != requester.id and not is_admin(requester):
            raise Unauthorized("Not authorized to access this order")
        return order

    # ---- transitions ----

    def mark_paid(self, order_id: int, payment_result: dict, requester=None) -> Order:
        order = self.get_order_by_id(order_id, requester) if requester else self.get_order(order_id)
        transaction_id = payment_result.get("id")
        if not transaction_id:
            raise ValidationFailed("Payment result id is required")

        if order.is_paid:
            previous = (order.payment_result or {}).get("id")
            if previous == transaction_id:
                return order
            raise ValidationFailed(f"Order {order.id} is already paid")

        order.is_paid = True
        order.paid_at = _now()
        order.payment_result = payment_result
        if order.status == "pending":
            order.status = "processing"
        self.db.commit()
        self.db.refresh(order)
        return order

    def mark_delivered(self, order_id: int, waive_payment: bool = False) -> Order:
        return self.set_status(order_id, "delivered", waive_payment=waive_payment)

    def set_status(self, order_id: int, status: str, waive_payment: bool = False) -> Order:
        if status not in ORDER_STATUSES:
            raise ValidationFailed(f"Invalid order status: {status}")

        order = self.get_order(order_id)
        if order.status == status:
            return order
        if status not in ALLOWED_TRANSITIONS[order.status]:
            raise ValidationFailed(f"Cannot change status from {order.status} to {status}")

        if status == "delivered":
            if not order.is_paid and not waive_payment:
                raise ValidationFailed(f"Order {order.id} is not paid")
            order.is_delivered = True
            order.delivered_at = _now()
        elif status == "cancelled":
            self._restore_stock(order)

        order.status = status
        self.db.commit()
        self.db.refresh(order)
        return order

    def delete_order(self, order_id: int) -> None:
        order = self.get_order(order_id)
        if order.status in RESTOCKABLE_STATUSES:
            self._restore_stock(order)
        self.db.delete(order)
        self.db.commit()

    def _restore_stock(self, order: Order) -> None:
        if order.stock_restored:
            return
        for item in order.items:
            self.ledger.restock(item.product_id, item.quantity)
        order.stock_restored = True
