import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import db, Product, WishlistItem
from permissions import AUTH_REQUIRED, is_authenticated


def get_wishlist(user):
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}

    try:
        items = (WishlistItem.query.filter_by(user_id=user.id)
                 .order_by(WishlistItem.created_at.desc(), WishlistItem.id.desc())
                 .all())
        return {'success': True, 'wishlist': [i.to_dict() for i in items]}
    except SQLAlchemyError:
        logging.exception("Error fetching wishlist")
        return {'success': False, 'error': 'Failed to fetch wishlist'}


def add_to_wishlist(user, product_id):
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}

    try:
        product = Product.query.filter_by(id=product_id, is_active=True).first()
        if not product:
            return {'success': False, 'error': 'Product not found'}

        if WishlistItem.query.filter_by(user_id=user.id, product_id=product.id).first():
            return {'success': False, 'error': 'Product already in wishlist'}

        db.session.add(WishlistItem(user_id=user.id, product_id=product.id))
        db.session.commit()
        return {'success': True, 'message': 'Product added to wishlist'}
    except IntegrityError:
        db.session.rollback()
        return {'success': False, 'error': 'Product already in wishlist'}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error adding to wishlist")
        return {'success': False, 'error': 'Failed to add to wishlist'}


def remove_from_wishlist(user, product_id):
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}

    try:
        WishlistItem.query.filter_by(user_id=user.id, product_id=product_id).delete()
        db.session.commit()
        return {'success': True, 'message': 'Product removed from wishlist'}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error removing from wishlist")
        return {'success': False, 'error': 'Failed to remove from wishlist'}


def is_in_wishlist(user, product_id):
    if not is_authenticated(user):
        return False
    try:
        return WishlistItem.query.filter_by(user_id=user.id, product_id=product_id).first() is not None
    except SQLAlchemyError:
        logging.exception("Error checking wishlist")
        return False


def get_wishlist_count(user):
    if not is_authenticated(user):
        return 0
    try:
        return WishlistItem.query.filter_by(user_id=user.id).count()
    except SQLAlchemyError:
        logging.exception("Error counting wishlist")
        return 0


def clear_wishlist(user):
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}

    try:
        WishlistItem.query.filter_by(user_id=user.id).delete()
        db.session.commit()
        return {'success': True, 'message': 'Wishlist cleared'}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error clearing wishlist")
        return {'success': False, 'error': 'Failed to clear wishlist'}
