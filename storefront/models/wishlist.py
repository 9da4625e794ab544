# storefront/models/wishlist.py
from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint, func
from storefront.database import Base

# Product saved by a user; keyed by product slug like the storefront links
class WishlistItem(Base):
    __tablename__ = "wishlist_items"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), index=True, nullable=False)
    product_slug = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "product_slug", name="uq_wishlist_user_product"),
    )
