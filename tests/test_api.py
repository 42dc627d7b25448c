import io
import json
from types import SimpleNamespace

import openpyxl
import pytest

import ai_search
from merchant import upload_single_product
from models import db, Product, User


@pytest.fixture
def signed_in_seller(register_user, login):
    user_id, secret = register_user('merchant', role='seller')
    login('merchant', secret)
    return user_id


@pytest.fixture
def signed_in_customer(register_user, login):
    user_id, secret = register_user('shopper')
    login('shopper', secret)
    return user_id


@pytest.fixture
def listed_product(app, register_user):
    seller_id, _ = register_user('lister', role='seller')
    with app.app_context():
        seller = db.session.get(User, seller_id)
        result = upload_single_product(seller, {'name': 'Canvas Backpack', 'category': 'Clothing',
                                                'price': 1800, 'stock_quantity': 5})
        return result['product']


def sheet_upload(rows, filename='products.xlsx'):
    workbook = openpyxl.Workbook()
    for row in rows:
        workbook.active.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    buffer.seek(0)
    return {'file': (buffer, filename)}


def test_csrf_token_endpoint(client):
    response = client.get('/api/csrf-token')
    assert response.status_code == 200
    assert response.get_json()['csrf_token']


def test_product_listing_and_detail(client, listed_product):
    listing = client.get('/api/products?limit=5').get_json()
    assert listing['total_products'] == 1
    assert listing['products'][0]['slug'] == 'canvas-backpack'

    detail = client.get('/api/products/canvas-backpack')
    assert detail.status_code == 200
    body = detail.get_json()
    assert body['product']['detail_component'] == 'ClothingApparel'
    assert body['related_products'] == []


def test_unknown_product_is_404(client):
    response = client.get('/api/products/missing')
    assert response.status_code == 404
    assert response.get_json() == {'success': False, 'error': 'Product not found'}


def test_anonymous_write_is_401(client, listed_product):
    response = client.post('/api/cart/items', json={'product_id': listed_product['id']})
    assert response.status_code == 401
    assert response.get_json()['error'] == 'Authentication required'


def test_customer_cannot_use_seller_routes(client, signed_in_customer):
    response = client.post('/api/merchant/products', json={'name': 'Nope', 'category': 'X', 'price': 1})
    assert response.status_code == 403


def test_validation_errors_are_400(client, signed_in_seller):
    response = client.post('/api/merchant/products', json={'name': 'No Price', 'category': 'Clothing'})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Price is required'


def test_seller_creates_and_manages_product(client, signed_in_seller):
    created = client.post('/api/merchant/products', json={
        'name': 'Oak Desk', 'category': 'Home & Garden', 'subcategory': 'Furniture', 'price': 12999,
        'stock_quantity': 2, 'colors': ['Oak'],
    })
    assert created.status_code == 200
    product_id = created.get_json()['product']['id']

    assert client.patch(f'/api/merchant/products/{product_id}/status', json={'is_active': False}).status_code == 200
    assert client.get('/api/products/oak-desk').status_code == 404

    updated = client.put(f'/api/merchant/products/{product_id}', json={'price': 9999})
    assert updated.get_json()['product']['final_price'] == 9999

    assert client.delete(f'/api/merchant/products/{product_id}').status_code == 200
    assert client.delete(f'/api/merchant/products/{product_id}').status_code == 404


def test_sheet_upload(app, client, signed_in_seller):
    response = client.post('/api/merchant/products/upload', content_type='multipart/form-data', data=sheet_upload([
        ['Product Name', 'Category', 'Price (INR)', 'Stock'],
        ['Oak Desk', 'Home & Garden', 12999, 2],
        ['Oak Desk', 'Home & Garden', 12999, 2],
        ['Wool Socks', 'Clothing', 299, 10],
    ]))

    body = response.get_json()
    assert response.status_code == 200
    assert body['message'] == 'Upload completed: 2 successful, 1 failed'
    assert body['results']['errors'] == ['Product "Oak Desk" already exists']
    with app.app_context():
        assert Product.query.filter_by(seller_id=signed_in_seller).count() == 2


def test_sheet_upload_rejects_other_files(client, signed_in_seller):
    response = client.post('/api/merchant/products/upload', content_type='multipart/form-data',
                           data={'file': (io.BytesIO(b'%PDF'), 'catalog.pdf')})
    assert response.status_code == 400
    assert response.get_json()['error'].startswith('Unsupported file type')

    response = client.post('/api/merchant/products/upload', content_type='multipart/form-data', data={})
    assert response.get_json()['error'] == 'No file provided'


def test_cart_checkout_and_orders(client, signed_in_customer, listed_product):
    product_id = listed_product['id']
    assert client.post('/api/cart/items', json={'product_id': product_id, 'quantity': 2}).status_code == 200
    assert client.get('/api/cart').get_json()['cart_items'][0]['quantity'] == 2

    order = client.post('/api/orders', json={
        'items': [{'product_id': product_id, 'quantity': 2}],
        'shipping_address': {'first_name': 'Sam', 'last_name': 'S', 'address1': '1 Road', 'city': 'Pune',
                             'state': 'MH', 'postal_code': '411001', 'country': 'IN'},
    })
    assert order.status_code == 200
    order_id = order.get_json()['order']['id']

    assert client.get('/api/cart').get_json()['cart_items'] == []
    assert client.get(f'/api/orders/{order_id}').get_json()['order']['total'] == 3600
    assert client.get('/api/orders/999').status_code == 404
    assert client.patch(f'/api/orders/{order_id}/status', json={'status': 'SHIPPED'}).status_code == 403


def test_wishlist_routes(client, signed_in_customer, listed_product):
    product_id = listed_product['id']
    assert client.post(f'/api/wishlist/{product_id}').status_code == 200
    assert client.post(f'/api/wishlist/{product_id}').status_code == 400
    assert client.get('/api/wishlist/count').get_json()['count'] == 1
    assert client.get(f'/api/wishlist/{product_id}').get_json()['in_wishlist'] is True
    assert client.delete('/api/wishlist').status_code == 200


def test_ai_search_route(app, client, monkeypatch, listed_product):
    answer = {'searchQuery': 'backpack', 'filters': {'categories': ['Clothing']}, 'confidence': 0.8}
    completions = SimpleNamespace(create=lambda **kwargs: SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=json.dumps(answer)))]))
    monkeypatch.setitem(app.config, 'OPENAI_API_KEY', 'sk-test')
    monkeypatch.setattr(ai_search, 'get_client', lambda: SimpleNamespace(chat=SimpleNamespace(completions=completions)))

    response = client.post('/api/search/ai', json={'query': 'bag for school'})
    assert response.status_code == 200
    assert 'categories=Clothing' in response.get_json()['search_params']

    results = client.get('/api/search', query_string={'q': 'bag for school'}).get_json()
    assert [p['name'] for p in results['products']] == ['Canvas Backpack']
    assert results['ai']['success'] is True

    by_params = client.get('/api/search?categories=Clothing&aiProcessed=true').get_json()
    assert by_params['total_products'] == 1


def test_text_search_without_ai(client, listed_product):
    results = client.get('/api/search?q=canvas').get_json()
    assert [p['name'] for p in results['products']] == ['Canvas Backpack']
    assert results['ai']['fallback_to_text'] is True


def test_contact_route(client):
    response = client.post('/api/contact', json={'first_name': 'Priya'})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Last name is required'


def test_api_404_is_json(client):
    response = client.get('/api/nothing-here')
    assert response.status_code == 404
    assert response.get_json() == {'success': False, 'error': 'Not found'}
