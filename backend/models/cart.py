# backend/models/cart.py
from sqlalchemy import Column, Integer, ForeignKey, DateTime, Float, UniqueConstraint, CheckConstraint, func
from sqlalchemy.orm import relationship
from database import Base

# Represents the user's shopping cart (one per user)
class Cart(Base):
    __tablename__ = "carts" # Table name

    id = Column(Integer, primary_key=True, index=True) # Primary key
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, index=True, nullable=False) # Owner
    total_price = Column(Float, nullable=False, default=0) # Sum of price * quantity over items
    created_at = Column(DateTime, server_default=func.now()) # Creation timestamp
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # One-to-many relationship with cart items, kept in insertion order
    items = relationship(
        "CartItem", back_populates="cart", cascade="all, delete-orphan", order_by="CartItem.id"
    )


# Represents a single item (product + quantity) within a cart
class CartItem(Base):
    __tablename__ = "cart_items" # Table name

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id"), index=True, nullable=False) # Foreign key to parent cart
    product_id = Column(Integer, ForeignKey("products.id"), index=True, nullable=False) # Foreign key to product
    quantity = Column(Integer, CheckConstraint("quantity >= 1"), nullable=False, default=1) # Product quantity
    price = Column(Float, nullable=False) # Unit price at the moment of addition

    cart = relationship("Cart", back_populates="items") # Relationship back to Cart
    product = relationship("Product") # Relationship to Product

    __table_args__ = (
        # Unique constraint to prevent duplicate product entries in the same cart
        UniqueConstraint("cart_id", "product_id", name="uq_cartitem_cart_product"),
    )
