# backend/services/stock_ledger.py
"""Per-product stock accounting.

Every change to the stock counters is a single conditional UPDATE, so two
concurrent reservations on the same product can never jointly exceed what is
available: the second one either sees the first one's ``reserved`` increment
or waits on the row lock until it is committed.
"""
import logging

from sqlalchemy import true, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key

from models.product import Product
from models.stock import (
    StockReservation,
    RESERVATION_HELD,
    RESERVATION_COMMITTED,
    RESERVATION_RELEASED,
)
from services.catalog import catalog_call, get_product
from utils.errors import InsufficientStock, ValidationFailed

logger = logging.getLogger(__name__)


class StockLedger:
    def __init__(self, db: Session):
        self.db = db

    def available(self, product_id: int) -> int:
        product = get_product(self.db, product_id, refresh=True)
        return product.available

    def try_reserve(self, product_id: int, quantity: int, reference: str = None) -> StockReservation:
        if quantity is None or quantity <= 0:
            raise ValidationFailed("Quantity must be a positive integer")

        rowcount = self._update(
            product_id,
            (Product.stock - Product.reserved) >= quantity,
            reserved=Product.reserved + quantity,
        )
        if rowcount != 1:
            # Either the product is unknown (NotFound) or it is short
            product = get_product(self.db, product_id, refresh=True)
            raise InsufficientStock(product_id, quantity, product.available, product.name)

        reservation = StockReservation(
            product_id=product_id, quantity=quantity, status=RESERVATION_HELD, reference=reference
        )
        self.db.add(reservation)
        self.db.flush()
        return reservation

    def commit(self, reservation: StockReservation) -> StockReservation:
        if reservation.status != RESERVATION_HELD:
            raise ValidationFailed(f"Reservation {reservation.id} is already {reservation.status}")

        qty = reservation.quantity
        rowcount = self._update(
            reservation.product_id,
            (Product.reserved >= qty) & (Product.stock >= qty),
            stock=Product.stock - qty,
            reserved=Product.reserved - qty,
        )
        if rowcount != 1:
            product = get_product(self.db, reservation.product_id, refresh=True)
            logger.error(
                "Reservation %s cannot be committed: stock=%s reserved=%s qty=%s",
                reservation.id, product.stock, product.reserved, qty,
            )
            raise InsufficientStock(product.id, qty, product.available, product.name)

        reservation.status = RESERVATION_COMMITTED
        self.db.flush()
        return reservation

    def release(self, reservation: StockReservation) -> StockReservation:
        # Releasing twice, or after commit, changes nothing
        if reservation.status != RESERVATION_HELD:
            return reservation

        qty = reservation.quantity
        rowcount = self._update(
            reservation.product_id,
            Product.reserved >= qty,
            reserved=Product.reserved - qty,
        )
        if rowcount != 1:
            logger.warning("Release of reservation %s matched no product row", reservation.id)

        reservation.status = RESERVATION_RELEASED
        self.db.flush()
        return reservation

    def restock(self, product_id: int, quantity: int) -> bool:
        """Give committed units back to the product. False if it left the catalog."""
        if quantity <= 0:
            return False
        rowcount = self._update(product_id, true(), stock=Product.stock + quantity)
        if rowcount != 1:
            logger.warning("Restock skipped, product %s no longer exists", product_id)
            return False
        return True

    def _update(self, product_id: int, condition, **values) -> int:
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .where(condition)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with catalog_call():
            result = self.db.execute(stmt)

        # Loaded Product instances must not keep the old counters
        product = self.db.identity_map.get(identity_key(Product, product_id))
        if product is not None:
            self.db.expire(product, ["stock", "reserved"])
        return result.rowcount
