# backend/models/product.py
from sqlalchemy import Column, Integer, String, Float, CheckConstraint
from database import Base

# Model Product
# Owned by the catalog; this service reads name/price/image and keeps the
# stock counters consistent. `reserved` holds units taken by reservations
# that were not committed or released yet.
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    description = Column(String)

    price = Column(Float, CheckConstraint("price >= 0"), nullable=False)

    # Stock counters
    stock = Column(Integer, CheckConstraint("stock >= 0"), nullable=False, default=0)
    reserved = Column(Integer, CheckConstraint("reserved >= 0"), nullable=False, default=0)

    # Optional image URL supplied by image storage
    image_url = Column(String, nullable=True)

    @property
    def available(self) -> int:
        return (self.stock or 0) - (self.reserved or 0)
