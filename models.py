from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from datetime import datetime

db = SQLAlchemy()

ROLES = ('customer', 'seller', 'admin')
KYC_STATUSES = ('PENDING', 'SUBMITTED', 'VERIFIED', 'REJECTED')
ORDER_STATUSES = ('PENDING', 'CONFIRMED', 'PROCESSING', 'SHIPPED', 'DELIVERED', 'CANCELLED')
COUPON_TYPES = ('PERCENTAGE', 'FIXED_AMOUNT', 'FREE_SHIPPING')
CONTACT_STATUSES = ('NEW', 'CONTACTED', 'QUOTED', 'CLOSED')


def _iso(value):
    return value.isoformat() if value else None


product_categories = db.Table(
    'product_categories',
    db.Column('product_id', db.Integer, db.ForeignKey('product.id', ondelete='CASCADE'), primary_key=True),
    db.Column('category_id', db.Integer, db.ForeignKey('category.id', ondelete='CASCADE'), primary_key=True),
)


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(150), unique=True, nullable=False)
    email = db.Column(db.String(150), unique=True, nullable=False)
    password = db.Column(db.String(150), nullable=False)
    role = db.Column(db.String(50), nullable=False, default='customer') # 'customer', 'seller', 'admin'
    totp_secret = db.Column(db.String(32), nullable=True) # For 2FA

    name = db.Column(db.String(150), nullable=True)
    phone_number = db.Column(db.String(30), nullable=True)
    image = db.Column(db.String(500), nullable=True)
    bio = db.Column(db.Text, nullable=True)
    location = db.Column(db.String(100), nullable=True)
    website = db.Column(db.String(300), nullable=True)
    interests = db.Column(db.JSON, nullable=False, default=list)
    onboarding_completed = db.Column(db.Boolean, nullable=False, default=False)

    # Business / KYC
    company_name = db.Column(db.String(200), nullable=True)
    business_type = db.Column(db.String(100), nullable=True)
    gst_number = db.Column(db.String(15), nullable=True)
    pan_number = db.Column(db.String(10), nullable=True)
    business_address = db.Column(db.Text, nullable=True)
    kyc_status = db.Column(db.String(20), nullable=False, default='PENDING')
    verification_badge = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    products = db.relationship('Product', back_populates='seller', lazy='dynamic')
    orders = db.relationship('Order', back_populates='buyer', lazy='dynamic')

    @property
    def display_name(self):
        return self.name or self.username

    def seller_summary(self):
        return {'id': self.id, 'name': self.display_name, 'verification_badge': self.verification_badge}

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'name': self.name,
            'email': self.email,
            'image': self.image,
            'role': self.role,
            'bio': self.bio,
            'location': self.location,
            'website': self.website,
            'interests': list(self.interests or []),
            'phone_number': self.phone_number,
            'company_name': self.company_name,
            'business_type': self.business_type,
            'gst_number': self.gst_number,
            'pan_number': self.pan_number,
            'business_address': self.business_address,
            'kyc_status': self.kyc_status,
            'verification_badge': self.verification_badge,
            'onboarding_completed': self.onboarding_completed,
            'two_factor_enabled': bool(self.totp_secret),
            'created_at': _iso(self.created_at),
        }


class Category(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    parent_id = db.Column(db.Integer, db.ForeignKey('category.id'), nullable=True)

    parent = db.relationship('Category', remote_side=[id], back_populates='children')
    children = db.relationship('Category', back_populates='parent')

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'description': self.description}


class Product(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(200), unique=True, nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    price = db.Column(db.Float, nullable=False)
    original_price = db.Column(db.Float, nullable=True)
    final_price = db.Column(db.Float, nullable=True)
    discount_percentage = db.Column(db.Float, nullable=True)
    short_description = db.Column(db.Text, nullable=True)
    detailed_description = db.Column(db.Text, nullable=True)
    key_features = db.Column(db.Text, nullable=True)
    product_type = db.Column(db.String(50), nullable=True, default='GENERIC_PRODUCT')
    images = db.Column(db.JSON, nullable=False, default=list)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    in_stock = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    view_count = db.Column(db.Integer, nullable=False, default=0)
    category = db.Column(db.String(100), nullable=True)
    subcategory = db.Column(db.String(100), nullable=True)
    brand = db.Column(db.String(100), nullable=True)
    sku = db.Column(db.String(100), nullable=True)
    extra_options = db.Column(db.Text, nullable=True)
    size_options = db.Column(db.Text, nullable=True)
    return_policy = db.Column(db.Text, nullable=True)
    items_temp_qty = db.Column(db.Integer, nullable=True)
    ai_metadata = db.Column(db.JSON, nullable=True)
    seller_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    seller = db.relationship('User', back_populates='products')
    categories = db.relationship('Category', secondary=product_categories, backref=db.backref('products', lazy='dynamic'))
    options = db.relationship('ProductOption', back_populates='product', cascade='all, delete-orphan')
    reviews = db.relationship('Review', back_populates='product', cascade='all, delete-orphan', lazy='dynamic')
    order_items = db.relationship('OrderItem', back_populates='product', lazy='dynamic')
    likes = db.relationship('WishlistItem', back_populates='product', cascade='all, delete-orphan', lazy='dynamic')
    cart_items = db.relationship('CartItem', back_populates='product', cascade='all, delete-orphan', lazy='dynamic')

    def _option_values(self, kind):
        return [o.value for o in self.options if o.kind == kind]

    def _set_options(self, kind, values):
        self.options = [o for o in self.options if o.kind != kind] + [
            ProductOption(kind=kind, value=v) for v in dict.fromkeys(values or []) if v
        ]

    @property
    def colors(self):
        return self._option_values('color')

    @colors.setter
    def colors(self, values):
        self._set_options('color', values)

    @property
    def sizes(self):
        return self._option_values('size')

    @sizes.setter
    def sizes(self, values):
        self._set_options('size', values)

    def to_dict(self, average_rating=None, counts=None, seller=True):
        data = {
            'id': self.id,
            'slug': self.slug,
            'name': self.name,
            'price': self.price,
            'original_price': self.original_price,
            'final_price': self.final_price,
            'discount_percentage': self.discount_percentage,
            'short_description': self.short_description,
            'detailed_description': self.detailed_description,
            'key_features': self.key_features,
            'product_type': self.product_type,
            'images': list(self.images or []),
            'stock_quantity': self.stock_quantity,
            'in_stock': self.in_stock,
            'is_active': self.is_active,
            'view_count': self.view_count,
            'category': self.category,
            'subcategory': self.subcategory,
            'brand': self.brand,
            'sku': self.sku,
            'colors': self.colors,
            'sizes': self.sizes,
            'extra_options': self.extra_options,
            'size_options': self.size_options,
            'return_policy': self.return_policy,
            'ai_metadata': self.ai_metadata,
            'categories': [c.to_dict() for c in self.categories],
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
        if seller:
            data['seller'] = self.seller.seller_summary()
        if average_rating is not None:
            data['average_rating'] = average_rating
        if counts is not None:
            data['counts'] = counts
        return data


class ProductOption(db.Model):
    """A selectable color or size of a product."""
    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    kind = db.Column(db.String(10), nullable=False) # 'color', 'size'
    value = db.Column(db.String(50), nullable=False)

    product = db.relationship('Product', back_populates='options')


class Review(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    product = db.relationship('Product', back_populates='reviews')
    user = db.relationship('User')

    __table_args__ = (db.UniqueConstraint('product_id', 'user_id'),)

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'user': {'id': self.user.id, 'name': self.user.display_name},
            'rating': self.rating,
            'comment': self.comment,
            'created_at': _iso(self.created_at),
        }


class CartItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey('product.id', ondelete='CASCADE'), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    variant_key = db.Column(db.String(100), nullable=False, default='')
    item_metadata = db.Column('metadata', db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = db.relationship('Product', back_populates='cart_items')

    __table_args__ = (db.UniqueConstraint('user_id', 'product_id', 'variant_key'),)

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'quantity': self.quantity,
            'variant_key': self.variant_key or None,
            'metadata': self.item_metadata,
            'product': self.product.to_dict(),
            'created_at': _iso(self.created_at),
        }


class WishlistItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey('product.id', ondelete='CASCADE'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    product = db.relationship('Product', back_populates='likes')

    __table_args__ = (db.UniqueConstraint('user_id', 'product_id'),)

    def to_dict(self):
        p = self.product
        return {
            'id': self.id,
            'product_id': self.product_id,
            'created_at': _iso(self.created_at),
            'product': {
                'id': p.id,
                'name': p.name,
                'slug': p.slug,
                'price': p.price,
                'original_price': p.original_price,
                'images': list(p.images or []),
                'in_stock': p.in_stock,
                'stock_quantity': p.stock_quantity,
                'brand': p.brand,
                'categories': [{'id': c.id, 'name': c.name} for c in p.categories],
            },
        }


class Coupon(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=True)
    type = db.Column(db.String(20), nullable=False) # 'PERCENTAGE', 'FIXED_AMOUNT', 'FREE_SHIPPING'
    value = db.Column(db.Float, nullable=False, default=0)
    minimum_amount = db.Column(db.Float, nullable=True)
    maximum_discount = db.Column(db.Float, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    expires_at = db.Column(db.DateTime, nullable=True)
    usage_count = db.Column(db.Integer, nullable=False, default=0)


class Order(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(40), unique=True, nullable=False)
    buyer_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default='PENDING')
    payment_status = db.Column(db.String(20), nullable=False, default='PENDING')
    payment_method = db.Column(db.String(50), nullable=True)
    subtotal = db.Column(db.Float, nullable=False)
    shipping_cost = db.Column(db.Float, nullable=False, default=0)
    discount_amount = db.Column(db.Float, nullable=False, default=0)
    total = db.Column(db.Float, nullable=False)
    shipping_address = db.Column(db.JSON, nullable=False)
    billing_address = db.Column(db.JSON, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    tracking_number = db.Column(db.String(100), nullable=True)
    delivered_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    buyer = db.relationship('User', back_populates='orders')
    items = db.relationship('OrderItem', back_populates='order', cascade='all, delete-orphan')
    coupons_used = db.relationship('OrderCoupon', back_populates='order', cascade='all, delete-orphan')

    def to_dict(self, items=None):
        return {
            'id': self.id,
            'order_number': self.order_number,
            'status': self.status,
            'payment_status': self.payment_status,
            'payment_method': self.payment_method,
            'subtotal': self.subtotal,
            'shipping_cost': self.shipping_cost,
            'discount_amount': self.discount_amount,
            'total': self.total,
            'shipping_address': self.shipping_address,
            'billing_address': self.billing_address,
            'notes': self.notes,
            'tracking_number': self.tracking_number,
            'delivered_at': _iso(self.delivered_at),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
            'items': [i.to_dict() for i in (self.items if items is None else items)],
            'coupons_used': [
                {'code': oc.coupon.code, 'name': oc.coupon.name, 'discount_amount': oc.discount_amount}
                for oc in self.coupons_used
            ],
        }


class OrderItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('order.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey('product.id'), nullable=True)
    product_name = db.Column(db.String(200), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Float, nullable=False)
    total_price = db.Column(db.Float, nullable=False)
    variant_key = db.Column(db.String(100), nullable=True)
    item_metadata = db.Column('metadata', db.JSON, nullable=True)

    order = db.relationship('Order', back_populates='items')
    product = db.relationship('Product', back_populates='order_items')

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'product_name': self.product_name,
            'quantity': self.quantity,
            'unit_price': self.unit_price,
            'total_price': self.total_price,
            'variant_key': self.variant_key,
            'metadata': self.item_metadata,
            'seller': self.product.seller.seller_summary() if self.product else None,
        }


class OrderCoupon(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('order.id', ondelete='CASCADE'), nullable=False)
    coupon_id = db.Column(db.Integer, db.ForeignKey('coupon.id'), nullable=False)
    discount_amount = db.Column(db.Float, nullable=False)

    order = db.relationship('Order', back_populates='coupons_used')
    coupon = db.relationship('Coupon')


class ContactSubmission(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(150), nullable=False)
    phone = db.Column(db.String(30), nullable=True)
    company = db.Column(db.String(200), nullable=False)
    job_title = db.Column(db.String(100), nullable=True)
    website = db.Column(db.String(300), nullable=True)
    business_type = db.Column(db.String(100), nullable=False)
    industry_type = db.Column(db.String(100), nullable=True)
    company_size = db.Column(db.String(50), nullable=False)
    product_types = db.Column(db.JSON, nullable=False, default=list)
    estimated_quantity = db.Column(db.String(100), nullable=False)
    estimated_budget = db.Column(db.String(100), nullable=True)
    timeline = db.Column(db.String(100), nullable=True)
    project_description = db.Column(db.Text, nullable=False)
    customization_needs = db.Column(db.Text, nullable=True)
    special_requirements = db.Column(db.Text, nullable=True)
    hear_about_us = db.Column(db.String(100), nullable=True)
    previous_experience = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(20), nullable=False, default='NEW')
    notes = db.Column(db.Text, nullable=True)
    assigned_to = db.Column(db.String(150), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'email': self.email,
            'phone': self.phone,
            'company': self.company,
            'job_title': self.job_title,
            'website': self.website,
            'business_type': self.business_type,
            'industry_type': self.industry_type,
            'company_size': self.company_size,
            'product_types': list(self.product_types or []),
            'estimated_quantity': self.estimated_quantity,
            'estimated_budget': self.estimated_budget,
            'timeline': self.timeline,
            'project_description': self.project_description,
            'customization_needs': self.customization_needs,
            'special_requirements': self.special_requirements,
            'hear_about_us': self.hear_about_us,
            'previous_experience': self.previous_experience,
            'status': self.status,
            'notes': self.notes,
            'assigned_to': self.assigned_to,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
