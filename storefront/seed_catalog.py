"""Seed a small demo catalog (collections, categories, products, variants, images).

Safe to run repeatedly: rows are looked up by slug / sku before insert.
Usage: python -m storefront.seed_catalog
"""
import logging
import random

from storefront.database import SessionLocal, init_db
from storefront.models.catalog import Category, Collection, Product, ProductImage, Variant

logger = logging.getLogger(__name__)

# Configuration
COLLECTIONS = [("Essentials", "essentials"), ("Winter", "winter")]
CATEGORIES = [("T-shirts", "remeras"), ("Hoodies", "hoodies"), ("Sweatshirts", "buzos"), ("Caps", "gorras")]
PRODUCTS = [
    # title, slug, collection, category, base price, colors, sizes
    ("Navy Tee", "tshirt-navy", "essentials", "remeras", 12000, ["navy", "white"], ["S", "M", "L", "XL"]),
    ("Red Hoodie", "hoodie-red", "winter", "hoodies", 32000, ["red"], ["M", "L", "XL"]),
    ("White Sweatshirt", "sweatshirt-white", "winter", "buzos", 28000, ["white"], ["S", "M", "L"]),
    ("Black Cap", "cap-black", "essentials", "gorras", 9000, ["black"], ["ONE_SIZE"]),
]
# End Configuration


def seed(session) -> int:
    """Insert missing catalog rows; returns the number of variants created."""
    collections = {}
    for name, slug in COLLECTIONS:
        row = session.query(Collection).filter(Collection.slug == slug).first()
        if not row:
            row = Collection(name=name, slug=slug)
            session.add(row)
        collections[slug] = row

    categories = {}
    for name, slug in CATEGORIES:
        row = session.query(Category).filter(Category.slug == slug).first()
        if not row:
            row = Category(name=name, slug=slug)
            session.add(row)
        categories[slug] = row
    session.flush()

    created = 0
    for title, slug, coll, cat, price, colors, sizes in PRODUCTS:
        product = session.query(Product).filter(Product.slug == slug).first()
        if not product:
            product = Product(
                title=title,
                slug=slug,
                description=f"{title} from the {coll} collection.",
                collection_id=collections[coll].id,
                category_id=categories[cat].id,
            )
            session.add(product)
            session.flush()
            for i in (1, 2):
                session.add(ProductImage(product_id=product.id, url=f"/products/{slug}-{i}.jpg", alt=title, sort=i))

        for color in colors:
            for size in sizes:
                sku = f"{slug}-{color}-{size}".upper()
                if session.query(Variant.id).filter(Variant.sku == sku).first():
                    continue
                # Every third variant is on sale
                on_sale = created % 3 == 0
                session.add(Variant(
                    product_id=product.id,
                    color=color,
                    size=size,
                    sku=sku,
                    price=price,
                    sale_price=round(price * 0.8) if on_sale else None,
                    stock=random.randint(0, 25),
                ))
                created += 1

    session.commit()
    return created


def main():
    logging.basicConfig(level=logging.INFO)
    init_db()
    session = SessionLocal()
    try:
        created = seed(session)
    finally:
        session.close()
    logger.info("Catalog seeded, %s new variants", created)


if __name__ == "__main__":
    main()
