# harvests/services/products.py
# Product catalog: public listing, farmer edits and admin approval.

from datetime import datetime
from flask import current_app
from sqlalchemy import or_
from harvests import db
from harvests.errors import ValidationError, NotFoundError, AuthorizationError
from harvests.models import Product, FarmProfile
from harvests.services.audit import log_admin_action
from harvests.utils.general import validate_string, validate_number, parse_iso_date

SORT_FIELDS = {
    'name': Product.name,
    'price': Product.price,
    'created_at': Product.created_at,
    'harvest_date': Product.harvest_date,
}


def get_products(search=None, farm_id=None, min_price=None, max_price=None,
                 sort='created_at', direction='desc', page=1, per_page=30):
    """
    Retrieves approved, in-stock products with filtering and pagination.
    """
    try:
        query = Product.query.filter(Product.approved.is_(True), Product.available_quantity > 0)

        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
        if farm_id:
            query = query.filter(Product.farm_profile_id == farm_id)
        if min_price is not None:
            query = query.filter(Product.price >= min_price)
        if max_price is not None:
            query = query.filter(Product.price <= max_price)

        column = SORT_FIELDS.get(sort, Product.created_at)
        query = query.order_by(column.asc() if direction == 'asc' else column.desc())

        products = query.paginate(page=page, per_page=per_page, error_out=False)

        return {
            "success": True,
            "data": {
                "products": [p.to_dict() for p in products.items],
                "total": products.total,
                "pages": products.pages,
                "current_page": products.page,
            }
        }
    except Exception as e:
        current_app.logger.error(f"Error fetching products: {str(e)}", exc_info=True)
        return ({"success": False, "error": f"Database error: {str(e)}"}, 500)


def _validate_product_fields(data, partial=False):
    fields = {}
    if not partial or 'name' in data:
        fields['name'] = validate_string(data.get('name'), 'name', max_length=200)
    if not partial or 'price' in data:
        fields['price'] = round(validate_number(data.get('price'), 'price', minimum=0, exclusive_minimum=True), 2)
    if not partial or 'unit' in data:
        fields['unit'] = validate_string(data.get('unit'), 'unit', max_length=40)
    if not partial or 'available_quantity' in data:
        quantity = data.get('available_quantity', 0 if not partial else None)
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("'available_quantity' must be an integer")
        fields['available_quantity'] = validate_number(quantity, 'available_quantity', minimum=0)
    if 'description' in data:
        fields['description'] = data.get('description') or None
    if 'image_url' in data:
        fields['image_url'] = data.get('image_url') or None
    if data.get('harvest_date'):
        fields['harvest_date'] = parse_iso_date(data['harvest_date'], 'harvest_date')
    return fields


def create_product(farmer_id, data):
    farm = FarmProfile.query.filter_by(farmer_id=farmer_id).first()
    if not farm:
        raise NotFoundError("Create a farm profile before listing products")

    fields = _validate_product_fields(data)
    product = Product(farm_profile_id=farm.id, approved=False, **fields)

    try:
        db.session.add(product)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(f"Product {product.id} created by farmer {farmer_id}, awaiting approval")
    return {"success": True, "product": product.to_dict()}


def update_product(farmer_id, product_id, data):
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found")
    if product.farm.farmer_id != farmer_id:
        raise AuthorizationError("You can only edit your own products")

    fields = _validate_product_fields(data, partial=True)
    price_changed = 'price' in fields and fields['price'] != product.price

    for key, value in fields.items():
        setattr(product, key, value)

    # Price changes go back through admin review
    if price_changed:
        product.approved = False
        product.approved_by = None
        product.approved_at = None

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return {"success": True, "product": product.to_dict(), "requires_approval": not product.approved}


def approve_product(admin_id, product_id):
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found")

    now = datetime.utcnow()
    product.approved = True
    product.approved_by = admin_id
    product.approved_at = now
    product.last_reviewed_at = now

    try:
        log_admin_action(admin_id, 'approve_product', 'product', product_id,
                         details={'name': product.name, 'price': product.price}, commit=False)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return {"success": True, "product": product.to_dict()}


def get_farm(farm_id):
    farm = db.session.get(FarmProfile, farm_id)
    if not farm:
        raise NotFoundError("Farm not found")

    products = [p.to_dict() for p in farm.products if p.approved]
    return {"success": True, "farm": farm.to_dict(), "products": products}
