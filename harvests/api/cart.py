# harvests/api/cart.py
# Shopping cart and saved cart routes for the authenticated consumer.

from flask import Blueprint, request, g
from harvests.jwt_auth import require_jwt
from harvests.utils import _handle_service_result, require_json
from harvests.services.cart import (
    get_cart,
    add_item,
    update_item,
    remove_item,
    clear_cart,
    list_saved_carts,
    save_cart,
    load_saved_cart,
    delete_saved_cart
)

bp = Blueprint('cart', __name__)


@bp.route('/cart', methods=['GET'])
@require_jwt
def get_cart_route():
    return _handle_service_result(get_cart(g.current_user.id))


@bp.route('/cart', methods=['DELETE'])
@require_jwt
def clear_cart_route():
    return _handle_service_result(clear_cart(g.current_user.id))


@bp.route('/cart/items', methods=['POST'])
@require_jwt
def add_item_route():
    """Adds a product to the cart, merging with an existing line."""
    data = require_json(request)
    result = add_item(g.current_user.id, data.get('product_id'), data.get('quantity', 1))
    return _handle_service_result(result)


@bp.route('/cart/items/<item_id>', methods=['PUT'])
@require_jwt
def update_item_route(item_id):
    """Sets a line's quantity; 0 removes the line."""
    data = require_json(request)
    result = update_item(g.current_user.id, item_id, data.get('quantity'))
    return _handle_service_result(result)


@bp.route('/cart/items/<item_id>', methods=['DELETE'])
@require_jwt
def remove_item_route(item_id):
    return _handle_service_result(remove_item(g.current_user.id, item_id))


# --- Saved carts ---

@bp.route('/cart/saved', methods=['GET'])
@require_jwt
def list_saved_carts_route():
    return _handle_service_result(list_saved_carts(g.current_user.id))


@bp.route('/cart/saved', methods=['POST'])
@require_jwt
def save_cart_route():
    data = require_json(request)
    return _handle_service_result(save_cart(g.current_user.id, data.get('name')))


@bp.route('/cart/saved/<saved_cart_id>/load', methods=['POST'])
@require_jwt
def load_saved_cart_route(saved_cart_id):
    """Replaces the cart with a saved one; unavailable products are reported in skipped_items."""
    return _handle_service_result(load_saved_cart(g.current_user.id, saved_cart_id))


@bp.route('/cart/saved/<saved_cart_id>', methods=['DELETE'])
@require_jwt
def delete_saved_cart_route(saved_cart_id):
    return _handle_service_result(delete_saved_cart(g.current_user.id, saved_cart_id))
