from harvests import db
from harvests.models import CartItem
from conftest import make_profile, make_farm, make_product, auth_headers


def _setup(app):
    consumer = make_profile()
    farm = make_farm(make_profile(roles=('farmer',)))
    return consumer, farm


def test_add_item_merges_quantities(client, app):
    consumer, farm = _setup(app)
    product = make_product(farm, price=4.0, quantity=10)
    headers = auth_headers(consumer)

    client.post('/api/cart/items', headers=headers, json={'product_id': product.id, 'quantity': 2})
    response = client.post('/api/cart/items', headers=headers, json={'product_id': product.id, 'quantity': 3})

    cart = response.get_json()['cart']
    assert len(cart['items']) == 1
    assert cart['item_count'] == 5
    assert cart['subtotal'] == 20.0


def test_add_item_cannot_exceed_stock(client, app):
    consumer, farm = _setup(app)
    product = make_product(farm, quantity=3)

    response = client.post('/api/cart/items', headers=auth_headers(consumer),
                           json={'product_id': product.id, 'quantity': 4})

    assert response.status_code == 400
    assert response.get_json()['details']['available'] == 3


def test_unapproved_products_cannot_be_added(client, app):
    consumer, farm = _setup(app)
    product = make_product(farm, approved=False)

    response = client.post('/api/cart/items', headers=auth_headers(consumer),
                           json={'product_id': product.id, 'quantity': 1})
    assert response.status_code == 404


def test_update_to_zero_removes_line(client, app):
    consumer, farm = _setup(app)
    product = make_product(farm)
    headers = auth_headers(consumer)
    cart = client.post('/api/cart/items', headers=headers,
                       json={'product_id': product.id, 'quantity': 2}).get_json()['cart']
    item_id = cart['items'][0]['id']

    response = client.put(f'/api/cart/items/{item_id}', headers=headers, json={'quantity': 0})

    assert response.get_json()['cart']['items'] == []
    assert db.session.get(CartItem, item_id) is None


def test_other_consumers_items_are_not_found(client, app):
    consumer, farm = _setup(app)
    product = make_product(farm)
    cart = client.post('/api/cart/items', headers=auth_headers(consumer),
                       json={'product_id': product.id, 'quantity': 1}).get_json()['cart']

    stranger = make_profile()
    response = client.delete(f"/api/cart/items/{cart['items'][0]['id']}", headers=auth_headers(stranger))
    assert response.status_code == 404


def test_save_and_load_cart_skips_unavailable_products(client, app):
    consumer, farm = _setup(app)
    kept = make_product(farm, name='Eggs', quantity=10)
    dropped = make_product(farm, name='Honey', quantity=5)
    headers = auth_headers(consumer)
    client.post('/api/cart/items', headers=headers, json={'product_id': kept.id, 'quantity': 4})
    client.post('/api/cart/items', headers=headers, json={'product_id': dropped.id, 'quantity': 1})

    saved = client.post('/api/cart/saved', headers=headers, json={'name': 'Weekly'}).get_json()['saved_cart']
    assert saved['item_count'] == 5

    client.delete('/api/cart', headers=headers)
    dropped.available_quantity = 0
    kept.available_quantity = 2
    db.session.commit()

    response = client.post(f"/api/cart/saved/{saved['id']}/load", headers=headers)

    body = response.get_json()
    assert [item['product_id'] for item in body['cart']['items']] == [kept.id]
    assert body['cart']['items'][0]['quantity'] == 2
    assert body['skipped_items'][0]['product_id'] == dropped.id


def test_empty_cart_cannot_be_saved(client, app):
    consumer, _ = _setup(app)
    response = client.post('/api/cart/saved', headers=auth_headers(consumer), json={'name': 'Nothing'})
    assert response.status_code == 400


def test_delete_saved_cart(client, app):
    consumer, farm = _setup(app)
    product = make_product(farm)
    headers = auth_headers(consumer)
    client.post('/api/cart/items', headers=headers, json={'product_id': product.id, 'quantity': 1})
    saved = client.post('/api/cart/saved', headers=headers, json={'name': 'Weekly'}).get_json()['saved_cart']

    assert client.delete(f"/api/cart/saved/{saved['id']}", headers=headers).status_code == 200
    assert client.get('/api/cart/saved', headers=headers).get_json()['saved_carts'] == []
