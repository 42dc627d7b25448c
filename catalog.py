"""
Storefront catalog: product listing with filters, product detail,
related/featured products, categories and reviews.
"""
import logging
import math

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from forms import ReviewForm, bind, first_error
from models import db, Product, ProductOption, Category, Review, OrderItem, WishlistItem, product_categories
from permissions import AUTH_REQUIRED, is_authenticated
from product_types import (build_specifications, detect_product_type, get_product_component,
                           get_product_type_display_name)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

SORT_ORDERS = {
    'newest': (Product.created_at.desc(), Product.id.desc()),
    'oldest': (Product.created_at.asc(), Product.id.asc()),
    'price_low': (Product.price.asc(), Product.id.asc()),
    'price_high': (Product.price.desc(), Product.id.desc()),
    'popular': (Product.view_count.desc(), Product.id.desc()),
}


def paginate_args(page, limit):
    try:
        page = max(int(page or 1), 1)
    except (TypeError, ValueError):
        page = 1
    try:
        limit = min(max(int(limit or DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
    except (TypeError, ValueError):
        limit = DEFAULT_PAGE_SIZE
    return page, limit


def average_ratings(product_ids):
    """Average review rating per product id, one grouped query for the whole page."""
    if not product_ids:
        return {}
    rows = (db.session.query(Review.product_id, func.avg(Review.rating))
            .filter(Review.product_id.in_(product_ids))
            .group_by(Review.product_id)
            .all())
    return {product_id: round(float(avg), 2) for product_id, avg in rows}


def _grouped_count(column, product_ids):
    rows = (db.session.query(column, func.count())
            .filter(column.in_(product_ids))
            .group_by(column)
            .all())
    return dict(rows)


def product_counts(product_ids):
    if not product_ids:
        return {}
    reviews = _grouped_count(Review.product_id, product_ids)
    order_items = _grouped_count(OrderItem.product_id, product_ids)
    likes = _grouped_count(WishlistItem.product_id, product_ids)
    return {
        pid: {'reviews': reviews.get(pid, 0), 'order_items': order_items.get(pid, 0), 'likes': likes.get(pid, 0)}
        for pid in product_ids
    }


def serialize_products(products):
    ids = [p.id for p in products]
    ratings = average_ratings(ids)
    counts = product_counts(ids)
    return [p.to_dict(average_rating=ratings.get(p.id, 0), counts=counts[p.id]) for p in products]


def split_values(values):
    if not values:
        return []
    if isinstance(values, str):
        values = values.split(',')
    elif not isinstance(values, (list, tuple, set)):
        values = [values]
    values = [str(v).strip() for v in values if v is not None]
    return [v for v in values if v]


def build_product_query(category=None, min_price=None, max_price=None, search=None, colors=None,
                        sizes=None, brands=None, in_stock=False):
    query = Product.query.filter(Product.is_active.is_(True))

    if in_stock:
        query = query.filter(Product.in_stock.is_(True))
    if min_price:
        query = query.filter(Product.price >= float(min_price))
    if max_price:
        query = query.filter(Product.price <= float(max_price))

    if search:
        pattern = f'%{search.strip()}%'
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.short_description.ilike(pattern),
            Product.detailed_description.ilike(pattern),
            Product.brand.ilike(pattern),
        ))

    if category:
        query = query.filter(Product.categories.any(func.lower(Category.name) == category.strip().lower()))

    colors, sizes, brands = split_values(colors), split_values(sizes), split_values(brands)
    if colors:
        query = query.filter(Product.options.any(
            (ProductOption.kind == 'color') & ProductOption.value.in_(colors)))
    if sizes:
        query = query.filter(Product.options.any(
            (ProductOption.kind == 'size') & ProductOption.value.in_(sizes)))
    if brands:
        query = query.filter(func.lower(Product.brand).in_([b.lower() for b in brands]))

    return query


def get_products(category=None, min_price=None, max_price=None, search=None, colors=None, sizes=None,
                 brands=None, in_stock=False, sort_by='newest', page=1, limit=DEFAULT_PAGE_SIZE):
    page, limit = paginate_args(page, limit)
    try:
        query = build_product_query(category=category, min_price=min_price, max_price=max_price,
                                    search=search, colors=colors, sizes=sizes, brands=brands,
                                    in_stock=in_stock)
        total_products = query.count()

        if sort_by == 'rating':
            ratings = (db.session.query(Review.product_id.label('product_id'),
                                        func.avg(Review.rating).label('avg_rating'))
                       .group_by(Review.product_id)
                       .subquery())
            query = (query.outerjoin(ratings, ratings.c.product_id == Product.id)
                     .order_by(func.coalesce(ratings.c.avg_rating, 0).desc(), Product.created_at.desc()))
        else:
            query = query.order_by(*SORT_ORDERS.get(sort_by, SORT_ORDERS['newest']))

        products = query.offset((page - 1) * limit).limit(limit).all()

        return {
            'success': True,
            'products': serialize_products(products),
            'total_products': total_products,
            'total_pages': math.ceil(total_products / limit),
            'current_page': page,
        }
    except (SQLAlchemyError, ValueError):
        logging.exception("Error fetching products")
        return {
            'success': False,
            'products': [],
            'total_products': 0,
            'total_pages': 0,
            'current_page': 1,
            'error': 'Failed to fetch products',
        }


def get_product_by_slug(slug):
    try:
        product = Product.query.filter_by(slug=slug, is_active=True).first()
        if not product:
            return {'success': False, 'error': 'Product not found'}

        product.view_count = Product.view_count + 1
        db.session.commit()

        data = serialize_products([product])[0]
        product_type = product.product_type or detect_product_type(product.category, product.subcategory, product.name)
        data['product_type'] = str(getattr(product_type, 'value', product_type))
        data['detail_component'] = get_product_component(product_type)
        data['product_type_display_name'] = get_product_type_display_name(product_type)
        data['key_specifications'] = build_specifications(data, product_type)
        data['specifications'] = build_specifications(data, product_type, detailed=True)
        data['reviews'] = [r.to_dict() for r in product.reviews.order_by(Review.created_at.desc()).limit(10)]
        return {'success': True, 'product': data}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception(f"Error fetching product {slug}")
        return {'success': False, 'error': 'Failed to fetch product'}


def get_related_products(product_id, category_ids, limit=4):
    try:
        query = Product.query.filter(Product.id != product_id, Product.is_active.is_(True))
        products = []
        if category_ids:
            products = (query.filter(Product.categories.any(Category.id.in_(category_ids)))
                        .order_by(Product.view_count.desc())
                        .limit(limit)
                        .all())

        # Top up with popular products
        if len(products) < limit:
            exclude = [product_id] + [p.id for p in products]
            products += (Product.query.filter(Product.id.notin_(exclude), Product.is_active.is_(True))
                         .order_by(Product.view_count.desc())
                         .limit(limit - len(products))
                         .all())

        return serialize_products(products)
    except SQLAlchemyError:
        logging.exception("Error fetching related products")
        return []


def get_featured_products(limit=8):
    try:
        products = (Product.query.filter(Product.is_active.is_(True), Product.in_stock.is_(True))
                    .order_by(Product.view_count.desc(), Product.created_at.desc())
                    .limit(limit)
                    .all())
        return serialize_products(products)
    except SQLAlchemyError:
        logging.exception("Error fetching featured products")
        return []


def get_products_by_ids(ids):
    try:
        ids = [int(i) for i in ids]
        products = Product.query.filter(Product.id.in_(ids), Product.is_active.is_(True)).all()
        return serialize_products(products)
    except (SQLAlchemyError, ValueError):
        logging.exception("Error fetching products by ids")
        return []


def get_categories():
    try:
        rows = (db.session.query(Category, func.count(product_categories.c.product_id))
                .outerjoin(product_categories, product_categories.c.category_id == Category.id)
                .group_by(Category.id)
                .order_by(Category.name.asc())
                .all())
        categories = []
        for category, count in rows:
            data = category.to_dict()
            data['parent_id'] = category.parent_id
            data['product_count'] = count
            categories.append(data)
        return {'success': True, 'categories': categories}
    except SQLAlchemyError:
        logging.exception("Error fetching categories")
        return {'success': False, 'categories': [], 'error': 'Failed to fetch categories'}


def search_products_with_filters(filters):
    """Run a catalog query from AI-extracted search filters."""
    filters = filters or {}
    price_range = filters.get('price_range') or {}
    categories = filters.get('categories') or []
    return get_products(
        search=filters.get('query'),
        category=categories[0] if categories else None,
        colors=filters.get('colors'),
        sizes=filters.get('sizes'),
        brands=filters.get('brands'),
        min_price=price_range.get('min'),
        max_price=price_range.get('max'),
        page=filters.get('page', 1),
        limit=filters.get('limit', DEFAULT_PAGE_SIZE),
    )


def add_review(user, product_id, data):
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}

    form = bind(ReviewForm, data)
    if not form.validate():
        return {'success': False, 'error': first_error(form)}

    try:
        product = Product.query.filter_by(id=product_id, is_active=True).first()
        if not product:
            return {'success': False, 'error': 'Product not found'}
        if Review.query.filter_by(product_id=product.id, user_id=user.id).first():
            return {'success': False, 'error': 'You already reviewed this product'}

        review = Review(product_id=product.id, user_id=user.id, rating=form.rating.data, comment=form.comment.data)
        db.session.add(review)
        db.session.commit()
        return {'success': True, 'review': review.to_dict(),
                'average_rating': average_ratings([product.id]).get(product.id, 0)}
    except IntegrityError:
        db.session.rollback()
        return {'success': False, 'error': 'You already reviewed this product'}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error adding review")
        return {'success': False, 'error': 'Failed to add review'}
