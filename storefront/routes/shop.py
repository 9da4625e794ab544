from typing import Optional, List
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session, joinedload

from storefront.database import get_db
from storefront.models.catalog import Category, Collection, Product
from storefront.schemas.catalog import CategoryOut, CollectionOut, ProductListPage, ProductOut


router = APIRouter(
    prefix="/shop",
    tags=["Shop"]
)

def _product_query(db: Session):
    return db.query(Product).options(
        joinedload(Product.collection),
        joinedload(Product.category),
        joinedload(Product.images),
        joinedload(Product.variants),
    )

# Retrieve collections ordered by name
@router.get("/collections", response_model=List[CollectionOut])
def list_collections(db: Session = Depends(get_db)):
    return db.query(Collection).order_by(Collection.name).all()

# Retrieve categories ordered by name
@router.get("/categories", response_model=List[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return db.query(Category).order_by(Category.name).all()

@router.get("/products", response_model=ProductListPage)
def list_products(
    # Search and filter parameters
    search: Optional[str] = Query(None, description="Search by title"),
    collection: Optional[str] = Query(None, description="Collection slug"),
    category: Optional[str] = Query(None, description="Category slug"),
    page: int = Query(1, ge=1),
    page_size: int = Query(24, ge=1, le=100),
    db: Session = Depends(get_db),
):
    query = db.query(Product).filter(Product.active.is_(True)) # Only active products are listed

    # Filter by collection / category slug
    if collection:
        query = query.join(Product.collection).filter(Collection.slug == collection)
    if category:
        query = query.join(Product.category).filter(Category.slug == category)

    # Apply title search
    if search:
        query = query.filter(Product.title.ilike(f"%{search}%"))

    total = query.count()
    ids = [
        row.id for row in
        query.with_entities(Product.id)
        .order_by(Product.created_at.desc(), Product.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    ]

    # Load the page with its relations, keeping the listing order
    loaded = {p.id: p for p in _product_query(db).filter(Product.id.in_(ids)).all()} if ids else {}
    items = [loaded[i] for i in ids if i in loaded]

    return {"items": items, "total": total, "page": page, "page_size": page_size}

@router.get("/products/{slug}", response_model=ProductOut)
def get_product(slug: str, db: Session = Depends(get_db)):
    product = _product_query(db).filter(Product.slug == slug).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product
