# harvests/api/products.py
# Public catalog and farmer product management routes.

from flask import Blueprint, request, g
from harvests.jwt_auth import require_jwt, farmer_required
from harvests.utils import _handle_service_result, require_json
from harvests.services.products import get_products, create_product, update_product, get_farm

bp = Blueprint('products', __name__)


@bp.route('/products', methods=['GET'])
def get_products_route():
    """Lists approved, in-stock products. Public."""
    result = get_products(
        search=request.args.get('search'),
        farm_id=request.args.get('farm_id'),
        min_price=request.args.get('min_price', type=float),
        max_price=request.args.get('max_price', type=float),
        sort=request.args.get('sort', 'created_at'),
        direction=request.args.get('direction', 'desc'),
        page=request.args.get('page', 1, type=int),
        per_page=min(request.args.get('per_page', 30, type=int), 100),
    )
    return _handle_service_result(result)


@bp.route('/products', methods=['POST'])
@require_jwt
@farmer_required
def create_product_route():
    result = create_product(g.current_user.id, require_json(request))
    return _handle_service_result(result)


@bp.route('/products/<product_id>', methods=['PUT'])
@require_jwt
@farmer_required
def update_product_route(product_id):
    """Edits a product. A price change sends it back for admin approval."""
    result = update_product(g.current_user.id, product_id, require_json(request))
    return _handle_service_result(result)


@bp.route('/farms/<farm_id>', methods=['GET'])
def get_farm_route(farm_id):
    result = get_farm(farm_id)
    return _handle_service_result(result)
