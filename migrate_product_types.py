"""
Re-detect the product type of products stored without one.

Usage: python migrate_product_types.py
"""
import logging

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from models import db, Product
from product_types import ProductType, detect_product_type


def migrate_product_types():
    """Update generic or untyped products; returns (updated count, active type distribution)."""
    products = Product.query.filter(or_(Product.product_type.is_(None),
                                        Product.product_type == ProductType.GENERIC_PRODUCT.value)).all()
    logging.info(f"Found {len(products)} products to migrate")

    updated = 0
    for product in products:
        detected = detect_product_type(product.category, product.subcategory, product.name).value
        if detected != product.product_type:
            logging.info(f"Updated {product.name}: {product.product_type} -> {detected}")
            product.product_type = detected
            updated += 1
    db.session.commit()
    logging.info(f"Migration completed! Updated {updated} products.")

    rows = (db.session.query(Product.product_type, func.count(Product.id))
            .filter(Product.is_active.is_(True))
            .group_by(Product.product_type)
            .order_by(Product.product_type)
            .all())
    return updated, dict(rows)


if __name__ == '__main__':
    from app import app

    with app.app_context():
        try:
            updated, distribution = migrate_product_types()
        except SQLAlchemyError:
            db.session.rollback()
            logging.exception("Migration failed")
            raise SystemExit(1)
        print(f"Updated {updated} products.")
        print("\nProduct type distribution:")
        for product_type, count in distribution.items():
            print(f"{product_type}: {count}")
