# Record shapes exchanged with the Catalog/Cart Store.
# Rows coming back from a store are validated into these before use.
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class StoreRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")


# Existing row of a server cart, addressed by its row id
class CartItemRow(StoreRecord):
    row_id: int | str
    quantity: int = Field(gt=0)


class ImageRecord(StoreRecord):
    url: str
    sort: Optional[int] = 0


class ProductRecord(StoreRecord):
    slug: str
    title: str
    images: List[ImageRecord] = []

    def primary_image(self) -> Optional[str]:
        # Missing sort counts as 0
        if not self.images:
            return None
        return min(self.images, key=lambda img: img.sort or 0).url


class VariantRecord(StoreRecord):
    id: str
    color: str
    size: str
    price: float
    sale_price: Optional[float] = None
    stock: int = 0
    product: Optional[ProductRecord] = None
