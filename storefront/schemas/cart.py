from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional

# Minimal persisted unit of a cart (guest storage and server rows alike)
class CartLine(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    variant_id: str = Field(alias="variantId", min_length=1)
    quantity: int = Field(gt=0)

# Read-only variant attributes attached during enrichment
class VariantDetail(BaseModel):
    id: str
    color: str
    size: str
    price: float
    sale_price: Optional[float] = None
    stock: int

# Read-only product attributes attached during enrichment
class ProductSummary(BaseModel):
    slug: str
    title: str
    image_url: Optional[str] = None

# Cart line with display data; variant/product stay None for stale references
class EnrichedLine(BaseModel):
    variant_id: str
    quantity: int
    variant: Optional[VariantDetail] = None
    product: Optional[ProductSummary] = None

    @property
    def unit_price(self) -> float:
        """Sale price when present, list price otherwise, zero when unknown."""
        if self.variant is None:
            return 0.0
        if self.variant.sale_price is not None:
            return self.variant.sale_price
        return self.variant.price

# Published, read-mostly view of the active cart
class CartSnapshot(BaseModel):
    loading: bool
    state: str
    items: List[EnrichedLine]
    total: float
    item_count: int

# Request schema for adding a variant to the cart
class CartAddItem(BaseModel):
    variant_id: str = Field(min_length=1)
    quantity: int = 1

# Request schema for setting a line quantity (<= 0 removes the line)
class CartUpdateItem(BaseModel):
    quantity: int

# Response schema for a single cart line, flattened for display
class CartItemOut(BaseModel):
    variant_id: str
    product_slug: str
    title: str
    color: str
    size: str
    price: float
    quantity: int
    line_total: float
    image: Optional[str] = None
    available: bool

# Response schema for the entire cart summary
class CartOut(BaseModel):
    loading: bool
    state: str
    items: List[CartItemOut]
    total: float
    item_count: int
