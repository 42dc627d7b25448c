import os
import tempfile

# The app reads its configuration at import time
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['SESSION_COOKIE_SECURE'] = 'false'
os.environ['WTF_CSRF_ENABLED'] = 'false'
os.environ['RATELIMIT_ENABLED'] = 'false'
os.environ['MAIL_SUPPRESS_SEND'] = 'true'
os.environ['LOG_FILE'] = os.path.join(tempfile.gettempdir(), 'stuffhunt-tests.log')
os.environ.pop('OPENAI_API_KEY', None)

import pyotp
import pytest
from flask_bcrypt import generate_password_hash

import ai_search
from app import app as flask_app
from merchant import connect_category, final_price_for, generate_slug
from models import db, Product, User

PASSWORD = 'password123'


def create_user(username, role='customer', password=PASSWORD, **kwargs):
    user = User(
        username=username,
        email=f'{username}@example.com',
        password=generate_password_hash(password).decode('utf-8'),
        role=role,
        totp_secret=pyotp.random_base32(),
        **kwargs
    )
    db.session.add(user)
    db.session.commit()
    return user


def create_product(seller, name, price=100.0, category='Clothing', stock=10, colors=None, sizes=None,
                   discount_percentage=None, **kwargs):
    product = Product(
        name=name,
        slug=generate_slug(name),
        price=price,
        original_price=price,
        final_price=final_price_for(price, discount_percentage),
        discount_percentage=discount_percentage,
        stock_quantity=stock,
        in_stock=stock > 0,
        category=category,
        seller_id=seller.id,
        **kwargs
    )
    product.colors = colors
    product.sizes = sizes
    db.session.add(product)
    if category:
        connect_category(product, category)
    db.session.commit()
    return product


@pytest.fixture
def app():
    flask_app.config.update(TESTING=True)
    with flask_app.app_context():
        db.create_all()
    yield flask_app
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()
    ai_search._cached_filters.cache_clear()


@pytest.fixture
def ctx(app):
    """App context for tests that call action functions directly."""
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(ctx):
    return create_user


@pytest.fixture
def make_product(ctx):
    return create_product


@pytest.fixture
def seller(make_user):
    return make_user('merchant', role='seller', name='Demo Merchant')


@pytest.fixture
def customer(make_user):
    return make_user('shopper', name='Sam Shopper')


@pytest.fixture
def admin(make_user):
    return make_user('siteadmin', role='admin')


@pytest.fixture
def register_user(app):
    """Create a user outside of any request; returns (id, totp secret)."""
    def _register(username, role='customer', **kwargs):
        with app.app_context():
            user = create_user(username, role=role, **kwargs)
            return user.id, user.totp_secret
    return _register


@pytest.fixture
def login(client):
    def _login(username, secret, password=PASSWORD):
        client.post('/login', data={'username': username, 'password': password})
        return client.post('/login/2fa', data={'token': pyotp.TOTP(secret).now()})
    return _login
