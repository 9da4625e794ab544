# storefront/models/cart.py
import uuid

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, UniqueConstraint, CheckConstraint, func
from sqlalchemy.orm import relationship
from storefront.database import Base

# Server cart; exactly one per user identity
class Cart(Base):
    __tablename__ = "carts" # Table name

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), unique=True, index=True, nullable=False) # Owning identity
    created_at = Column(DateTime, server_default=func.now()) # Creation timestamp

    # One-to-many relationship with cart items
    items = relationship("CartItem", back_populates="cart", cascade="all, delete-orphan")


# Represents a single line (variant + quantity) within a cart
class CartItem(Base):
    __tablename__ = "cart_items" # Table name

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(String(36), ForeignKey("carts.id"), index=True, nullable=False) # Foreign key to parent cart
    variant_id = Column(String(36), index=True, nullable=False) # Catalog variant, may go stale
    qty = Column(Integer, CheckConstraint("qty > 0"), nullable=False, default=1) # Line quantity

    cart = relationship("Cart", back_populates="items") # Relationship back to Cart

    __table_args__ = (
        # Unique constraint to prevent duplicate variant entries in the same cart
        UniqueConstraint("cart_id", "variant_id", name="uq_cartitem_cart_variant"),
    )
