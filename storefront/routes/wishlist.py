# storefront/routes/wishlist.py
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from storefront.database import get_db
from storefront.models.catalog import Product
from storefront.models.wishlist import WishlistItem
from storefront.schemas.catalog import ProductOut
from storefront.schemas.user import Identity
from storefront.utils.tokenJWT import get_current_identity

router = APIRouter(prefix="/wishlist", tags=["Wishlist"])

def _slugs(db: Session, user_id: str) -> List[str]:
    rows = (
        db.query(WishlistItem.product_slug)
        .filter(WishlistItem.user_id == user_id)
        .order_by(WishlistItem.id)
        .all()
    )
    return [r.product_slug for r in rows]

# Saved product slugs of the caller
@router.get("", response_model=List[str])
def get_wishlist(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    return _slugs(db, identity.user_id)

# Saved products, resolved against the catalog; products gone from the shop are skipped
@router.get("/products", response_model=List[ProductOut])
def get_wishlist_products(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    slugs = _slugs(db, identity.user_id)
    if not slugs:
        return []
    products = (
        db.query(Product)
        .options(joinedload(Product.images), joinedload(Product.variants))
        .filter(Product.slug.in_(slugs), Product.active.is_(True))
        .all()
    )
    by_slug = {p.slug: p for p in products}
    return [by_slug[s] for s in slugs if s in by_slug]

@router.post("/{slug}", response_model=List[str], status_code=status.HTTP_200_OK)
def add_to_wishlist(slug: str, identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    if not db.query(Product.id).filter(Product.slug == slug).first():
        raise HTTPException(status_code=404, detail="Product not found")

    exists = db.query(WishlistItem.id).filter(
        WishlistItem.user_id == identity.user_id, WishlistItem.product_slug == slug
    ).first()
    if not exists:
        db.add(WishlistItem(user_id=identity.user_id, product_slug=slug))
        try:
            db.commit()
        except IntegrityError:
            # Saved concurrently; adding is idempotent
            db.rollback()
    return _slugs(db, identity.user_id)

@router.delete("/{slug}", response_model=List[str])
def remove_from_wishlist(slug: str, identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    db.query(WishlistItem).filter(
        WishlistItem.user_id == identity.user_id, WishlistItem.product_slug == slug
    ).delete()
    db.commit()
    return _slugs(db, identity.user_id)
