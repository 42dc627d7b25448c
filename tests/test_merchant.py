import re

import merchant
from migrate_product_types import migrate_product_types
from models import db, Order, OrderItem, Product, Review
from spreadsheet import ProductRow

SLUG = re.compile(r'^[a-z0-9]+(-[a-z0-9]+)*$')


def listing(**overrides):
    data = {
        'name': 'Trail Runner 2',
        'category': 'Clothing',
        'subcategory': 'Footwear',
        'brand': 'Acme',
        'price': 120,
        'discount_percentage': 25,
        'stock_quantity': 3,
        'colors': ['Red', 'Black'],
        'sizes': ['9', '10'],
        'images': ['https://img.example.com/a.jpg'],
    }
    data.update(overrides)
    return data


def test_generate_slug():
    assert merchant.generate_slug('  Café Table -- Oak & Steel!! ') == 'caf-table-oak-steel'
    assert merchant.generate_slug('***') == ''


def test_upload_single_product(seller):
    result = merchant.upload_single_product(seller, listing())

    assert result['success']
    product = result['product']
    assert SLUG.match(product['slug'])
    assert product['final_price'] == 90
    assert product['in_stock'] is True
    assert product['product_type'] == 'CLOTHING_FOOTWEAR'
    assert product['colors'] == ['Red', 'Black']
    assert [c['name'] for c in product['categories']] == ['Clothing']


def test_upload_keeps_explicit_product_type(seller):
    result = merchant.upload_single_product(seller, listing(product_type='clothing_formal'))
    assert result['product']['product_type'] == 'CLOTHING_FORMAL'


def test_options_accept_comma_separated_text(seller):
    result = merchant.upload_single_product(seller, listing(colors='Red', sizes='S, M,,L'))

    assert result['product']['colors'] == ['Red']
    assert result['product']['sizes'] == ['S', 'M', 'L']

    updated = merchant.update_product(seller, result['product']['id'],
                                      {'colors': 'Navy, Olive', 'sizes': ['XL']})
    assert updated['product']['colors'] == ['Navy', 'Olive']
    assert updated['product']['sizes'] == ['XL']


def test_new_listing_starts_from_type_defaults(seller):
    result = merchant.upload_single_product(seller, listing(
        name='Linen Shirt', subcategory='Shirts', product_type='CLOTHING_APPAREL', ai_metadata={'material': 'Linen'}))

    metadata = result['product']['ai_metadata']
    assert metadata['material'] == 'Linen'
    assert metadata['fit'] == 'Regular'
    assert metadata['care'] == []

    generic = merchant.upload_single_product(seller, listing(name='Desk Tidy', product_type='GENERIC_PRODUCT'))
    assert generic['product']['ai_metadata'] is None


def test_duplicate_name_is_rejected(seller):
    merchant.upload_single_product(seller, listing())
    result = merchant.upload_single_product(seller, listing(name='trail runner 2!'))

    assert result == {'success': False, 'error': 'Product with this name already exists'}
    assert Product.query.count() == 1


def test_upload_requires_seller(customer):
    result = merchant.upload_single_product(customer, listing())
    assert result == {'success': False, 'error': 'Unauthorized'}


def test_upload_validates_payload(seller):
    assert merchant.upload_single_product(seller, listing(price=None))['error'] == 'Price is required'
    assert merchant.upload_single_product(seller, listing(price=-1))['error'] == 'Price must be positive'
    assert merchant.upload_single_product(seller, listing(name='!!!'))['error'] == \
        'Product name must contain letters or digits'
    assert Product.query.count() == 0


def test_zero_price_is_accepted(seller):
    assert merchant.upload_single_product(seller, listing(price=0))['success']


def test_bulk_import_reports_each_failed_row(seller):
    merchant.upload_single_product(seller, listing(name='Existing Lamp', category='Home & Garden'))
    rows = [
        ProductRow(product_name='Oak Desk', category='Home & Garden', subcategory='Furniture', price=300, stock=2),
        ProductRow(product_name='Existing Lamp', category='Home & Garden', price=20),
        ProductRow(product_name='Wool Socks', category='Clothing', price=9, discount_percent=10,
                   image_url_1='https://img.example.com/s.jpg'),
        ProductRow(product_name='???', price=1),
    ]

    result = merchant.upload_products_from_excel(seller, rows)

    assert result['success']
    assert result['message'] == 'Upload completed: 2 successful, 2 failed'
    assert result['results']['successful'] == 2
    assert result['results']['failed'] == 2
    errors = result['results']['errors']
    assert 'Product "Existing Lamp" already exists' in errors
    assert any('"???"' in e for e in errors)

    socks = Product.query.filter_by(slug='wool-socks').one()
    assert socks.final_price == 8.1
    assert socks.images == ['https://img.example.com/s.jpg']
    assert socks.in_stock is False
    assert Product.query.filter_by(slug='oak-desk').one().product_type == 'HOME_FURNITURE'


def test_bulk_import_requires_seller(customer):
    result = merchant.upload_products_from_excel(customer, [ProductRow(product_name='X', price=1)])
    assert result['error'] == 'Unauthorized'
    assert Product.query.count() == 0


def test_status_update_is_idempotent(seller):
    product_id = merchant.upload_single_product(seller, listing())['product']['id']

    first = merchant.update_product_status(seller, product_id, False)
    second = merchant.update_product_status(seller, product_id, False)

    assert first['success'] and second['success']
    product = db.session.get(Product, product_id)
    assert product.is_active is False
    assert product.price == 120
    assert product.stock_quantity == 3


def test_other_sellers_cannot_delete(seller, make_user):
    rival = make_user('rival', role='seller')
    product_id = merchant.upload_single_product(seller, listing())['product']['id']

    result = merchant.delete_product(rival, product_id)

    assert result == {'success': False, 'error': 'Product not found or unauthorized'}
    assert db.session.get(Product, product_id) is not None


def test_delete_product(seller):
    product_id = merchant.upload_single_product(seller, listing())['product']['id']
    assert merchant.delete_product(seller, product_id)['success']
    assert db.session.get(Product, product_id) is None


def test_update_product_recomputes_derived_fields(seller):
    product_id = merchant.upload_single_product(seller, listing())['product']['id']

    result = merchant.update_product(seller, product_id, {
        'price': 200, 'stock_quantity': 0, 'category': 'Sports', 'seller_id': 999,
    })

    product = result['product']
    assert product['final_price'] == 150
    assert product['in_stock'] is False
    assert [c['name'] for c in product['categories']] == ['Sports']
    assert db.session.get(Product, product_id).seller_id == seller.id


def test_rename_to_taken_name_gets_unique_slug(seller):
    merchant.upload_single_product(seller, listing(name='Blue Mug'))
    product_id = merchant.upload_single_product(seller, listing(name='Red Mug'))['product']['id']

    result = merchant.update_product(seller, product_id, {'name': 'Blue Mug'})

    assert result['product']['slug'].startswith('blue-mug-')
    assert SLUG.match(result['product']['slug'])


def test_update_product_rejects_bad_numbers(seller):
    product_id = merchant.upload_single_product(seller, listing())['product']['id']
    assert merchant.update_product(seller, product_id, {'price': 'cheap'})['error'] == 'Invalid number'
    assert merchant.update_product(seller, product_id, {'stock_quantity': 'many'})['error'] == \
        'Invalid stock quantity'


def test_merchant_products_are_scoped_to_seller(seller, make_user):
    rival = make_user('rival', role='seller')
    merchant.upload_single_product(seller, listing(name='Mine'))
    merchant.upload_single_product(rival, listing(name='Theirs'))

    result = merchant.get_merchant_products(seller)

    assert [p['name'] for p in result['products']] == ['Mine']
    assert result['total_pages'] == 1
    assert 'seller' not in result['products'][0]


def test_dashboard_stats(seller, customer):
    product_id = merchant.upload_single_product(seller, listing())['product']['id']
    order = Order(order_number='ORD-1', buyer_id=customer.id, subtotal=180, total=180,
                  shipping_address={'city': 'Pune'},
                  items=[OrderItem(product_id=product_id, product_name='Trail Runner 2', quantity=2,
                                   unit_price=90, total_price=180)])
    db.session.add(order)
    db.session.add(Review(product_id=product_id, user_id=customer.id, rating=4))
    db.session.commit()

    data = merchant.get_merchant_dashboard(seller)['data']

    assert data['stats'] == {'total_products': 1, 'total_orders': 1, 'total_revenue': 180.0,
                             'units_sold': 2, 'average_rating': 4.0}
    assert data['recent_products'][0]['order_count'] == 1
    assert data['recent_orders'][0]['customer_name'] == 'Sam Shopper'
    assert data['recent_orders'][0]['items'] == [{'product_name': 'Trail Runner 2', 'quantity': 2, 'price': 180}]


def test_migrate_product_types(seller, make_product):
    make_product(seller, 'Zen Laptop 14', category='Electronics')
    make_product(seller, 'Mystery Box', category='Misc')

    updated, distribution = migrate_product_types()

    assert updated == 1
    assert distribution == {'ELECTRONICS_LAPTOP': 1, 'GENERIC_PRODUCT': 1}
