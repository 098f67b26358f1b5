"""Load the demo catalog. Safe to run repeatedly: existing slugs and skus are skipped.

    python -m storefront.seed
"""
import re
from sqlalchemy import select
from sqlalchemy.orm import Session
from storefront.core_settings import get_settings
from storefront.infrastructure.db import build_database
from storefront.domain.models import Product, ProductStatus, Variant
from storefront.application.service import slugify

DEFAULT_STOCK = 20
DEFAULT_LOW_STOCK_THRESHOLD = 3

CATALOG = [
    {
        "title": "Revival Oversized Tee",
        "category": "Tees",
        "base_price": 950,
        "compare_at_price": None,
        "tags": ["new"],
        "sizes": ["S", "M", "L", "XL"],
        "colors": ["Black", "White"],
    },
    {
        "title": "Reverie Heavyweight Hoodie",
        "category": "Hoodies",
        "base_price": 2200,
        "compare_at_price": 2600,
        "tags": [],
        "sizes": ["M", "L", "XL"],
        "colors": ["Charcoal", "Olive"],
    },
    {
        "title": "Archive Cargo Pants",
        "category": "Bottoms",
        "base_price": 1800,
        "compare_at_price": None,
        "tags": ["sale"],
        "sizes": ["28", "30", "32", "34"],
        "colors": ["Black", "Olive"],
    },
]

def skuify(value: str) -> str:
    return re.sub(r"(^-|-$)+", "", re.sub(r"[^A-Z0-9]+", "-", value.upper()))

def seed_catalog(db: Session, catalog=CATALOG) -> int:
    created = 0
    for entry in catalog:
        slug = slugify(entry["title"])
        product = db.execute(select(Product).where(Product.slug == slug)).scalar_one_or_none()
        if product is None:
            product = Product(
                slug=slug,
                title=entry["title"],
                category=entry["category"],
                status=ProductStatus.ACTIVE.value,
                base_price=entry["base_price"],
                compare_at_price=entry["compare_at_price"],
                tags=entry["tags"],
            )
            db.add(product)
            db.flush()
            created += 1
        for size in entry["sizes"]:
            for color in entry["colors"]:
                sku = skuify(f"{entry['title']} {size} {color}")
                if db.execute(select(Variant.id).where(Variant.sku == sku)).first():
                    continue
                db.add(Variant(
                    product_id=product.id,
                    size=size,
                    color=color,
                    sku=sku,
                    stock_qty=DEFAULT_STOCK,
                    low_stock_threshold=DEFAULT_LOW_STOCK_THRESHOLD,
                ))
    db.commit()
    return created

def main():
    database = build_database(get_settings())
    if database is None:
        raise SystemExit("DATABASE_URL or POSTGRES_HOST must be set to run the seed.")
    database.init_models()
    with database.session() as db:
        created = seed_catalog(db)
    print(f"Seeded {created} new product(s).")

if __name__ == "__main__":
    main()
