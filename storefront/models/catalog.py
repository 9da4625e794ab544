# storefront/models/catalog.py
import uuid

from sqlalchemy import Column, String, Integer, Float, Boolean, ForeignKey, DateTime, CheckConstraint, func
from sqlalchemy.orm import relationship
from storefront.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Collection(Base):
    __tablename__ = "collections"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False, index=True)


class Category(Base):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False, index=True)


# Catalog product; sellable units are its variants (color x size)
class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_uuid)
    title = Column(String, nullable=False, index=True)
    slug = Column(String, unique=True, nullable=False, index=True)
    description = Column(String, nullable=True)
    active = Column(Boolean, nullable=False, default=True, index=True)
    collection_id = Column(String(36), ForeignKey("collections.id"), nullable=True)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    collection = relationship("Collection")
    category = relationship("Category")
    images = relationship("ProductImage", back_populates="product", cascade="all, delete-orphan",
                          order_by="ProductImage.sort")
    variants = relationship("Variant", back_populates="product", cascade="all, delete-orphan")


class ProductImage(Base):
    __tablename__ = "product_images"

    id = Column(String(36), primary_key=True, default=_uuid)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    url = Column(String, nullable=False)
    alt = Column(String, nullable=True)
    sort = Column(Integer, nullable=False, default=0) # Lowest sort is the primary image

    product = relationship("Product", back_populates="images")


class Variant(Base):
    __tablename__ = "variants"

    id = Column(String(36), primary_key=True, default=_uuid)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    color = Column(String, nullable=False)
    size = Column(String, nullable=False) # XS, S, M, L, XL or ONE_SIZE
    sku = Column(String, unique=True, nullable=False)

    # Prices and stock are guarded by constraints
    price = Column(Float, CheckConstraint("price >= 0"), nullable=False)
    sale_price = Column(Float, CheckConstraint("sale_price >= 0"), nullable=True)
    stock = Column(Integer, CheckConstraint("stock >= 0"), nullable=False, default=0)

    product = relationship("Product", back_populates="variants")
