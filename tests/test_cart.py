import cart
from flask_login import AnonymousUserMixin


def test_add_to_cart_merges_quantities(seller, customer, make_product):
    product = make_product(seller, 'Mug')

    cart.add_to_cart(customer, product.id, 1)
    result = cart.add_to_cart(customer, product.id, 2)

    assert result['cart_item']['quantity'] == 3
    assert len(cart.get_cart(customer)['cart_items']) == 1


def test_variants_are_separate_lines(seller, customer, make_product):
    product = make_product(seller, 'Tee', sizes=['S', 'M'])

    cart.add_to_cart(customer, product.id, 1, variant_key='S', metadata={'size': 'S'})
    cart.add_to_cart(customer, product.id, 1, variant_key='M', metadata={'size': 'M'})

    items = cart.get_cart(customer)['cart_items']
    assert sorted(i['variant_key'] for i in items) == ['M', 'S']
    assert {i['metadata']['size'] for i in items} == {'S', 'M'}


def test_add_rejects_unknown_product_and_bad_quantity(seller, customer, make_product):
    product = make_product(seller, 'Mug')
    assert cart.add_to_cart(customer, 999, 1)['error'] == 'Product not found'
    assert cart.add_to_cart(customer, product.id, 0)['error'] == 'Quantity must be at least 1'


def test_update_quantity_and_remove(seller, customer, make_product):
    product = make_product(seller, 'Mug')
    cart.add_to_cart(customer, product.id, 1)

    assert cart.update_cart_item_quantity(customer, product.id, 5)['cart_item']['quantity'] == 5
    assert cart.update_cart_item_quantity(customer, product.id, 0)['success']
    assert cart.get_cart(customer)['cart_items'] == []
    assert cart.update_cart_item_quantity(customer, product.id, 2)['error'] == 'Cart item not found'


def test_sync_cart_replaces_and_skips_unknown_products(seller, customer, make_product):
    mug = make_product(seller, 'Mug')
    tee = make_product(seller, 'Tee')
    cart.add_to_cart(customer, tee.id, 4)

    result = cart.sync_cart(customer, [
        {'product_id': mug.id, 'quantity': 1},
        {'product_id': mug.id, 'quantity': 2},
        {'product_id': 999, 'quantity': 1},
    ])

    assert result == {'success': True}
    items = cart.get_cart(customer)['cart_items']
    assert [(i['product_id'], i['quantity']) for i in items] == [(mug.id, 3)]


def test_clear_cart(seller, customer, make_product):
    cart.add_to_cart(customer, make_product(seller, 'Mug').id)
    assert cart.clear_cart(customer) == {'success': True}
    assert cart.get_cart(customer)['cart_items'] == []


def test_cart_requires_login(ctx):
    assert cart.get_cart(AnonymousUserMixin()) == {'success': False, 'error': 'Authentication required'}


def test_sync_cart_rejects_malformed_items(seller, customer, make_product):
    mug = make_product(seller, 'Mug')
    cart.add_to_cart(customer, mug.id, 2)

    assert cart.sync_cart(customer, [mug.id])['error'] == 'Invalid cart item'
    assert cart.sync_cart(customer, {'product_id': mug.id})['error'] == 'Invalid cart item'
    assert cart.get_cart(customer)['cart_items'][0]['quantity'] == 2
