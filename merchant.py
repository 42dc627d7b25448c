"""
Seller surface: single and bulk product listing, product management
and the merchant dashboard.
"""
import logging
import math
import re
import time

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from catalog import average_ratings, paginate_args, product_counts, split_values
from forms import ProductForm, bind, first_error
from models import db, Product, Category, Order, OrderItem, Review
from permissions import UNAUTHORIZED, is_seller
from product_types import detect_product_type, merge_with_default_schema, parse_product_type

UPDATABLE_FIELDS = (
    'name', 'price', 'original_price', 'final_price', 'short_description', 'detailed_description',
    'key_features', 'product_type', 'images', 'stock_quantity', 'category', 'subcategory', 'brand',
    'extra_options', 'size_options', 'return_policy', 'discount_percentage', 'is_active', 'in_stock',
    'colors', 'sizes',
)


def generate_slug(name):
    return re.sub(r'[^a-z0-9]+', '-', (name or '').lower()).strip('-')


def final_price_for(price, discount_percentage):
    if not discount_percentage:
        return price
    return round(price * (1 - discount_percentage / 100), 2)


def connect_category(product, name, replace=False):
    """Upsert a category by name and link it to the product."""
    category = Category.query.filter_by(name=name).first()
    if not category:
        category = Category(name=name)
        db.session.add(category)
    if replace:
        product.categories = [category]
    elif category not in product.categories:
        product.categories.append(category)
    return category


def _resolve_product_type(value, category, subcategory, name):
    product_type = parse_product_type(value) or detect_product_type(category, subcategory, name)
    return product_type.value


def upload_single_product(user, data):
    if not is_seller(user):
        return {'success': False, 'error': UNAUTHORIZED}

    data = data or {}
    form = bind(ProductForm, data)
    if not form.validate():
        return {'success': False, 'error': first_error(form)}

    slug = generate_slug(form.name.data)
    if not slug:
        return {'success': False, 'error': 'Product name must contain letters or digits'}

    try:
        if Product.query.filter_by(slug=slug).first():
            return {'success': False, 'error': 'Product with this name already exists'}

        price = form.price.data
        stock = form.stock_quantity.data or 0
        product_type = _resolve_product_type(form.product_type.data, form.category.data,
                                             form.subcategory.data, form.name.data)
        product = Product(
            name=form.name.data,
            slug=slug,
            price=price,
            original_price=form.original_price.data or price,
            final_price=final_price_for(price, form.discount_percentage.data),
            discount_percentage=form.discount_percentage.data,
            short_description=form.short_description.data,
            detailed_description=form.detailed_description.data,
            key_features=form.key_features.data,
            product_type=product_type,
            images=[url for url in (data.get('images') or []) if url],
            stock_quantity=stock,
            in_stock=stock > 0,
            category=form.category.data,
            subcategory=form.subcategory.data,
            brand=form.brand.data,
            extra_options=form.extra_options.data,
            size_options=form.size_options.data,
            return_policy=form.return_policy.data,
            ai_metadata=merge_with_default_schema(product_type, data.get('ai_metadata')) or None,
            seller_id=user.id,
        )
        product.colors = split_values(data.get('colors'))
        product.sizes = split_values(data.get('sizes'))
        db.session.add(product)
        db.session.commit()

        # Category link is a second write
        connect_category(product, form.category.data)
        db.session.commit()

        logging.info(f"Seller {user.username} listed product {product.slug}")
        return {'success': True, 'product': product.to_dict()}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error uploading product")
        return {'success': False, 'error': 'Failed to upload product'}


def _create_from_row(user, row):
    product = Product(
        name=row.product_name,
        slug=generate_slug(row.product_name),
        price=row.price,
        original_price=row.price,
        final_price=row.final_price or final_price_for(row.price, row.discount_percent),
        short_description=row.product_description,
        detailed_description=row.product_description,
        key_features=row.key_features,
        product_type=_resolve_product_type(row.product_type, row.category, row.subcategory, row.product_name),
        images=row.images,
        stock_quantity=row.stock,
        in_stock=row.stock > 0,
        category=row.category,
        subcategory=row.subcategory,
        brand=row.brand,
        extra_options=row.extra_options,
        size_options=row.size_options,
        return_policy=row.return_policy,
        items_temp_qty=row.items_temp_qty,
        discount_percentage=row.discount_percent,
        seller_id=user.id,
    )
    db.session.add(product)
    db.session.commit()

    if row.category:
        connect_category(product, row.category)
        db.session.commit()
    return product


def upload_products_from_excel(user, rows):
    """
    Create one product per parsed spreadsheet row.

    Rows are independent: a duplicate or a failing row is counted and
    reported by name, and the remaining rows are still imported.
    """
    if not is_seller(user):
        return {'success': False, 'error': UNAUTHORIZED}

    results = {'successful': 0, 'failed': 0, 'errors': []}
    for row in rows:
        slug = generate_slug(row.product_name)
        try:
            if not slug:
                results['failed'] += 1
                results['errors'].append(f'Failed to upload "{row.product_name}": product name is empty')
                continue
            if Product.query.filter_by(slug=slug).first():
                results['failed'] += 1
                results['errors'].append(f'Product "{row.product_name}" already exists')
                continue
            _create_from_row(user, row)
            results['successful'] += 1
        except SQLAlchemyError as e:
            db.session.rollback()
            logging.exception(f"Error importing row {row.product_name}")
            results['failed'] += 1
            results['errors'].append(f'Failed to upload "{row.product_name}": {e.__class__.__name__}')

    message = f"Upload completed: {results['successful']} successful, {results['failed']} failed"
    logging.info(f"Bulk import by {user.username}: {message}")
    return {'success': True, 'message': message, 'results': results}


def get_merchant_products(user, page=1, limit=20):
    page, limit = paginate_args(page, limit)
    empty = {'success': False, 'products': [], 'total_products': 0, 'total_pages': 0, 'current_page': 1}
    if not is_seller(user):
        return dict(empty, error=UNAUTHORIZED)

    try:
        query = Product.query.filter_by(seller_id=user.id)
        total_products = query.count()
        products = (query.order_by(Product.created_at.desc(), Product.id.desc())
                    .offset((page - 1) * limit)
                    .limit(limit)
                    .all())
        counts = product_counts([p.id for p in products])
        return {
            'success': True,
            'products': [p.to_dict(counts=counts[p.id], seller=False) for p in products],
            'total_products': total_products,
            'total_pages': math.ceil(total_products / limit),
            'current_page': page,
        }
    except SQLAlchemyError:
        logging.exception("Error fetching merchant products")
        return dict(empty, error='Failed to fetch products')


def _owned_product(user, product_id):
    return Product.query.filter_by(id=product_id, seller_id=user.id).first()


def delete_product(user, product_id):
    if not is_seller(user):
        return {'success': False, 'error': UNAUTHORIZED}

    try:
        product = _owned_product(user, product_id)
        if not product:
            logging.warning(f"Seller {user.username} tried to delete product {product_id} they do not own")
            return {'success': False, 'error': 'Product not found or unauthorized'}

        db.session.delete(product)
        db.session.commit()
        return {'success': True, 'message': 'Product deleted successfully'}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error deleting product")
        return {'success': False, 'error': 'Failed to delete product'}


def update_product_status(user, product_id, is_active):
    if not is_seller(user):
        return {'success': False, 'error': UNAUTHORIZED}

    try:
        product = _owned_product(user, product_id)
        if not product:
            return {'success': False, 'error': 'Product not found or unauthorized'}

        product.is_active = bool(is_active)
        db.session.commit()
        state = 'activated' if is_active else 'deactivated'
        return {'success': True, 'message': f'Product {state} successfully'}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error updating product status")
        return {'success': False, 'error': 'Failed to update product status'}


def update_product(user, product_id, data):
    if not is_seller(user):
        return {'success': False, 'error': UNAUTHORIZED}

    changes = {k: v for k, v in (data or {}).items() if k in UPDATABLE_FIELDS}
    if 'name' in changes and not generate_slug(changes['name']):
        return {'success': False, 'error': 'Product name must contain letters or digits'}
    for field in ('price', 'original_price', 'final_price', 'discount_percentage'):
        if changes.get(field) is not None:
            try:
                changes[field] = float(changes[field])
            except (TypeError, ValueError):
                return {'success': False, 'error': 'Invalid number'}
            if changes[field] < 0:
                return {'success': False, 'error': 'Price must be positive'}
    if changes.get('stock_quantity') is not None:
        try:
            changes['stock_quantity'] = int(changes['stock_quantity'])
        except (TypeError, ValueError):
            return {'success': False, 'error': 'Invalid stock quantity'}
    for field in ('colors', 'sizes'):
        if field in changes:
            changes[field] = split_values(changes[field])

    try:
        product = _owned_product(user, product_id)
        if not product:
            return {'success': False, 'error': 'Product not found or unauthorized'}

        if changes.get('name') and changes['name'] != product.name:
            slug = generate_slug(changes['name'])
            taken = Product.query.filter(Product.slug == slug, Product.id != product.id).first()
            if taken:
                slug = f'{slug}-{int(time.time() * 1000)}'
            product.slug = slug

        if 'product_type' in changes:
            parsed = parse_product_type(changes['product_type'])
            changes['product_type'] = parsed.value if parsed else product.product_type

        for field, value in changes.items():
            setattr(product, field, value)

        if 'stock_quantity' in changes and 'in_stock' not in changes:
            product.in_stock = int(product.stock_quantity or 0) > 0
        if ('price' in changes or 'discount_percentage' in changes) and 'final_price' not in changes:
            product.final_price = final_price_for(product.price, product.discount_percentage)

        if changes.get('category'):
            connect_category(product, changes['category'], replace=True)

        db.session.commit()
        return {'success': True, 'product': product.to_dict(), 'message': 'Product updated successfully'}
    except (SQLAlchemyError, ValueError):
        db.session.rollback()
        logging.exception("Error updating product")
        return {'success': False, 'error': 'Failed to update product'}


def get_merchant_dashboard(user):
    if not is_seller(user):
        return {'success': False, 'error': UNAUTHORIZED}

    try:
        seller_items = OrderItem.query.join(Product).filter(Product.seller_id == user.id)
        seller_orders = Order.query.filter(Order.items.any(OrderItem.product.has(seller_id=user.id)))

        total_products = Product.query.filter_by(seller_id=user.id, is_active=True).count()
        total_orders = seller_orders.count()
        total_revenue = seller_items.with_entities(func.coalesce(func.sum(OrderItem.total_price), 0)).scalar()
        units_sold = seller_items.with_entities(func.coalesce(func.sum(OrderItem.quantity), 0)).scalar()
        avg_rating = (db.session.query(func.avg(Review.rating))
                      .select_from(Review)
                      .join(Product)
                      .filter(Product.seller_id == user.id)
                      .scalar())

        recent_products = (Product.query.filter_by(seller_id=user.id)
                           .order_by(Product.created_at.desc(), Product.id.desc())
                           .limit(5)
                           .all())
        counts = product_counts([p.id for p in recent_products])
        ratings = average_ratings([p.id for p in recent_products])

        recent_orders = seller_orders.order_by(Order.created_at.desc(), Order.id.desc()).limit(5).all()

        return {
            'success': True,
            'data': {
                'stats': {
                    'total_products': total_products,
                    'total_orders': total_orders,
                    'total_revenue': round(float(total_revenue), 2),
                    'units_sold': int(units_sold),
                    'average_rating': round(float(avg_rating), 2) if avg_rating else 0,
                },
                'recent_products': [{
                    'id': p.id,
                    'name': p.name,
                    'price': p.price,
                    'status': 'ACTIVE' if p.is_active else 'INACTIVE',
                    'created_at': p.created_at.isoformat() if p.created_at else None,
                    'view_count': p.view_count,
                    'order_count': counts[p.id]['order_items'],
                    'average_rating': ratings.get(p.id, 0),
                } for p in recent_products],
                'recent_orders': [{
                    'id': o.id,
                    'order_number': o.order_number,
                    'customer_name': o.buyer.display_name,
                    'customer_email': o.buyer.email,
                    'amount': o.total,
                    'status': o.status,
                    'created_at': o.created_at.isoformat() if o.created_at else None,
                    'items': [{
                        'product_name': i.product_name,
                        'quantity': i.quantity,
                        'price': i.total_price,
                    } for i in o.items if i.product and i.product.seller_id == user.id],
                } for o in recent_orders],
            },
        }
    except SQLAlchemyError:
        logging.exception("Error fetching merchant dashboard")
        return {'success': False, 'error': 'Failed to fetch dashboard data'}
