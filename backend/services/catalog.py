# backend/services/catalog.py
"""Read-only access to the product catalog."""
import logging
from contextlib import contextmanager

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session

from models.product import Product
from utils.errors import NotFound, UpstreamTimeout, UpstreamUnavailable

logger = logging.getLogger(__name__)

# PostgreSQL "query_canceled", raised when statement_timeout fires
PG_QUERY_CANCELED = "57014"


@contextmanager
def catalog_call():
    # Translate database failures into retryable upstream errors
    try:
        yield
    except sa_exc.TimeoutError as e:
        logger.error("Catalog connection pool timeout: %s", e)
        raise UpstreamTimeout("Catalog timed out") from e
    except sa_exc.OperationalError as e:
        if getattr(e.orig, "pgcode", None) == PG_QUERY_CANCELED or "database is locked" in str(e.orig):
            logger.error("Catalog query timeout: %s", e)
            raise UpstreamTimeout("Catalog timed out") from e
        logger.error("Catalog unavailable: %s", e)
        raise UpstreamUnavailable("Catalog unavailable") from e


def get_product(db: Session, product_id: int, refresh: bool = False) -> Product:
    with catalog_call():
        query = db.query(Product).filter(Product.id == product_id)
        if refresh:
            query = query.populate_existing()
        product = query.first()
    if not product:
        raise NotFound(f"Product not found with id: {product_id}")
    return product
