import logging

from sqlalchemy.exc import SQLAlchemyError

from models import db, CartItem, Product
from permissions import AUTH_REQUIRED, is_authenticated


def _quantity(value, default=1):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _cart_item(user, product_id, variant_key=None):
    return CartItem.query.filter_by(user_id=user.id, product_id=product_id, variant_key=variant_key or '').first()


def sync_cart(user, items):
    """Replace the stored cart with the client's cart."""
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}
    items = items or []
    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        return {'success': False, 'error': 'Invalid cart item'}

    try:
        merged = {}
        for item in items:
            key = (item.get('product_id'), item.get('variant_key') or '')
            quantity = _quantity(item.get('quantity'))
            if quantity <= 0:
                continue
            if key in merged:
                merged[key]['quantity'] += quantity
            else:
                merged[key] = {'quantity': quantity, 'metadata': item.get('metadata')}

        known = {p.id for p in Product.query.filter(Product.id.in_([k[0] for k in merged])).all()} if merged else set()

        CartItem.query.filter_by(user_id=user.id).delete()
        for (product_id, variant_key), item in merged.items():
            if product_id not in known:
                continue
            db.session.add(CartItem(user_id=user.id, product_id=product_id, variant_key=variant_key,
                                    quantity=item['quantity'], item_metadata=item['metadata']))
        db.session.commit()
        return {'success': True}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error syncing cart")
        return {'success': False, 'error': 'Failed to sync cart'}


def get_cart(user):
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}

    try:
        items = (CartItem.query.filter_by(user_id=user.id)
                 .order_by(CartItem.created_at.desc(), CartItem.id.desc())
                 .all())
        return {'success': True, 'cart_items': [i.to_dict() for i in items]}
    except SQLAlchemyError:
        logging.exception("Error getting cart")
        return {'success': False, 'error': 'Failed to get cart'}


def add_to_cart(user, product_id, quantity=1, variant_key=None, metadata=None):
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}

    quantity = _quantity(quantity)
    if quantity <= 0:
        return {'success': False, 'error': 'Quantity must be at least 1'}

    try:
        product = Product.query.filter_by(id=product_id, is_active=True).first()
        if not product:
            return {'success': False, 'error': 'Product not found'}

        item = _cart_item(user, product.id, variant_key)
        if item:
            item.quantity += quantity
            if metadata is not None:
                item.item_metadata = metadata
        else:
            item = CartItem(user_id=user.id, product_id=product.id, quantity=quantity,
                            variant_key=variant_key or '', item_metadata=metadata)
            db.session.add(item)
        db.session.commit()
        return {'success': True, 'cart_item': item.to_dict()}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error adding to cart")
        return {'success': False, 'error': 'Failed to add to cart'}


def remove_from_cart(user, product_id, variant_key=None):
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}

    try:
        CartItem.query.filter_by(user_id=user.id, product_id=product_id, variant_key=variant_key or '').delete()
        db.session.commit()
        return {'success': True}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error removing from cart")
        return {'success': False, 'error': 'Failed to remove from cart'}


def update_cart_item_quantity(user, product_id, quantity, variant_key=None):
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}

    quantity = _quantity(quantity, default=None)
    if quantity is None:
        return {'success': False, 'error': 'Invalid quantity'}
    if quantity <= 0:
        return remove_from_cart(user, product_id, variant_key)

    try:
        item = _cart_item(user, product_id, variant_key)
        if not item:
            return {'success': False, 'error': 'Cart item not found'}
        item.quantity = quantity
        db.session.commit()
        return {'success': True, 'cart_item': item.to_dict()}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error updating cart item")
        return {'success': False, 'error': 'Failed to update cart item'}


def clear_cart(user):
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}

    try:
        CartItem.query.filter_by(user_id=user.id).delete()
        db.session.commit()
        return {'success': True}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error clearing cart")
        return {'success': False, 'error': 'Failed to clear cart'}
