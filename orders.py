"""
Checkout and order tracking.

Prices always come from the database; the client only sends product
ids, quantities and variant keys.
"""
import logging
import secrets
import string
import time
from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from forms import AddressForm, bind, first_error
from models import db, CartItem, Coupon, Order, OrderCoupon, OrderItem, Product, ORDER_STATUSES
from permissions import AUTH_REQUIRED, UNAUTHORIZED, is_admin, is_authenticated

FREE_SHIPPING_THRESHOLD = 75
SHIPPING_COST = 6.95

ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_number():
    suffix = ''.join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(9))
    return f'ORD-{int(time.time() * 1000)}-{suffix}'


def shipping_for(subtotal):
    return 0 if subtotal > FREE_SHIPPING_THRESHOLD else SHIPPING_COST


def find_coupon(code):
    now = datetime.utcnow()
    return (Coupon.query.filter(Coupon.code == code, Coupon.is_active.is_(True))
            .filter(or_(Coupon.expires_at.is_(None), Coupon.expires_at >= now))
            .first())


def coupon_discount(coupon, subtotal, shipping_cost):
    """Discount granted by a coupon, 0 when the order does not reach its minimum."""
    if subtotal < (coupon.minimum_amount or 0):
        return 0
    if coupon.type == 'PERCENTAGE':
        discount = subtotal * coupon.value / 100
        if coupon.maximum_discount:
            discount = min(discount, coupon.maximum_discount)
        return round(discount, 2)
    if coupon.type == 'FIXED_AMOUNT':
        return min(coupon.value, subtotal)
    if coupon.type == 'FREE_SHIPPING':
        return shipping_cost
    return 0


def _address_error(address):
    if not isinstance(address, dict):
        return 'Address is required'
    form = bind(AddressForm, address)
    if not form.validate():
        return first_error(form)
    return None


def create_order(user, data):
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}

    data = data or {}
    items = data.get('items') or []
    if not items:
        return {'success': False, 'error': 'Your cart is empty'}
    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        return {'success': False, 'error': 'Invalid order item'}

    error = _address_error(data.get('shipping_address'))
    if error:
        return {'success': False, 'error': error}
    if data.get('billing_address'):
        error = _address_error(data['billing_address'])
        if error:
            return {'success': False, 'error': error}

    try:
        item_ids = [int(item.get('product_id')) for item in items]
        quantities = [int(item.get('quantity', 1)) for item in items]
    except (TypeError, ValueError):
        return {'success': False, 'error': 'Invalid order item'}
    if any(q <= 0 for q in quantities):
        return {'success': False, 'error': 'Quantity must be at least 1'}

    try:
        product_ids = set(item_ids)
        products = {p.id: p for p in Product.query.filter(Product.id.in_(product_ids),
                                                          Product.is_active.is_(True)).all()}
        if len(products) != len(product_ids):
            return {'success': False, 'error': 'Some products were not found'}

        subtotal = 0
        order_items = []
        for item, product_id, quantity in zip(items, item_ids, quantities):
            product = products[product_id]
            unit_price = product.final_price or product.price
            total_price = round(unit_price * quantity, 2)
            subtotal += total_price
            order_items.append(OrderItem(
                product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                unit_price=unit_price,
                total_price=total_price,
                variant_key=item.get('variant_key'),
                item_metadata=item.get('metadata'),
            ))
        subtotal = round(subtotal, 2)
        shipping_cost = shipping_for(subtotal)

        discount_amount = 0
        coupon = find_coupon(data['coupon_code']) if data.get('coupon_code') else None
        if coupon:
            discount_amount = coupon_discount(coupon, subtotal, shipping_cost)
            if not discount_amount:
                coupon = None

        order = Order(
            order_number=generate_order_number(),
            buyer_id=user.id,
            subtotal=subtotal,
            shipping_cost=shipping_cost,
            discount_amount=discount_amount,
            total=round(subtotal + shipping_cost - discount_amount, 2),
            shipping_address=data['shipping_address'],
            billing_address=data.get('billing_address'),
            payment_method=data.get('payment_method'),
            notes=data.get('notes'),
            items=order_items,
        )
        if coupon:
            order.coupons_used.append(OrderCoupon(coupon=coupon, discount_amount=discount_amount))
            coupon.usage_count = Coupon.usage_count + 1
        db.session.add(order)

        CartItem.query.filter_by(user_id=user.id).delete()
        db.session.commit()

        logging.info(f"Order {order.order_number} placed by {user.username}")
        return {'success': True, 'order': order.to_dict()}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error creating order")
        return {'success': False, 'error': 'Failed to create order'}


def get_user_orders(user):
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}

    try:
        orders = (Order.query.filter_by(buyer_id=user.id)
                  .order_by(Order.created_at.desc(), Order.id.desc())
                  .all())
        return {'success': True, 'orders': [o.to_dict() for o in orders]}
    except SQLAlchemyError:
        logging.exception("Error getting user orders")
        return {'success': False, 'error': 'Failed to get orders'}


def get_order_by_id(user, order_id):
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}

    try:
        order = Order.query.filter_by(id=order_id, buyer_id=user.id).first()
        if not order:
            return {'success': False, 'error': 'Order not found'}
        return {'success': True, 'order': order.to_dict()}
    except SQLAlchemyError:
        logging.exception("Error getting order")
        return {'success': False, 'error': 'Failed to get order'}


def update_order_status(user, order_id, status, tracking_number=None):
    """Sellers of an item in the order and admins may move it along."""
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}

    status = (status or '').upper()
    if status not in ORDER_STATUSES:
        return {'success': False, 'error': 'Invalid order status'}

    try:
        order = db.session.get(Order, order_id)
        if not order:
            return {'success': False, 'error': 'Order not found'}

        sells_item = any(i.product and i.product.seller_id == user.id for i in order.items)
        if not sells_item and not is_admin(user):
            logging.warning(f"User {user.username} tried to update order {order.order_number}")
            return {'success': False, 'error': UNAUTHORIZED}

        order.status = status
        if tracking_number:
            order.tracking_number = tracking_number
        if status == 'DELIVERED':
            order.delivered_at = datetime.utcnow()
        db.session.commit()
        return {'success': True, 'order': order.to_dict()}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error updating order status")
        return {'success': False, 'error': 'Failed to update order status'}
