# storefront/schemas/catalog.py
from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import datetime


# Base configuration for ORM compatibility
class ORMBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class CollectionOut(ORMBase):
    id: str
    name: str
    slug: str


class CategoryOut(ORMBase):
    id: str
    name: str
    slug: str


class TaxonRef(ORMBase):
    name: str
    slug: str


class ProductImageOut(ORMBase):
    url: str
    alt: Optional[str] = None
    sort: int


class VariantOut(ORMBase):
    id: str
    color: str
    size: str
    sku: str
    price: float
    sale_price: Optional[float] = None
    stock: int


# Product with its images and variants, as shown in the shop
class ProductOut(ORMBase):
    id: str
    title: str
    slug: str
    description: Optional[str] = None
    active: bool
    created_at: Optional[datetime] = None
    collection: Optional[TaxonRef] = None
    category: Optional[TaxonRef] = None
    images: List[ProductImageOut] = []
    variants: List[VariantOut] = []


# Paginated response for product listings
class ProductListPage(ORMBase):
    items: List[ProductOut]
    total: int
    page: int
    page_size: int
