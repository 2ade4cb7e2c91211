# harvests/services/cart.py
"""
Shopping cart and saved carts.

One cart per consumer, created lazily. Cart items snapshot the unit price
when added; saved carts only keep product ids and quantities, so loading a
saved cart re-reads current prices and stock.
"""

from flask import current_app
from harvests import db
from harvests.errors import ValidationError, NotFoundError
from harvests.models import ShoppingCart, CartItem, SavedCart, Product
from harvests.utils.general import validate_string, is_valid_uuid
from harvests.utils.pricing import round_money


def _validate_quantity(quantity, allow_zero=False):
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("'quantity' must be an integer")
    if quantity < 0 or (quantity == 0 and not allow_zero):
        raise ValidationError("'quantity' must be at least 1")
    return quantity


def get_or_create_cart(consumer_id):
    cart = ShoppingCart.query.filter_by(consumer_id=consumer_id).first()
    if cart is None:
        cart = ShoppingCart(consumer_id=consumer_id)
        db.session.add(cart)
        db.session.commit()
    return cart


def _cart_payload(cart):
    items = [item.to_dict() for item in cart.items]
    return {
        "success": True,
        "cart": {
            "id": cart.id,
            "items": items,
            "item_count": sum(item.quantity for item in cart.items),
            "subtotal": round_money(sum(item.line_total for item in cart.items)),
        }
    }


def get_cart(consumer_id):
    return _cart_payload(get_or_create_cart(consumer_id))


def _available_product(product_id):
    if not is_valid_uuid(product_id):
        raise ValidationError("'product_id' must be a valid UUID")
    product = db.session.get(Product, product_id)
    if not product or not product.approved:
        raise NotFoundError("Product not found")
    if product.available_quantity <= 0:
        raise ValidationError(f"{product.name} is out of stock")
    return product


def add_item(consumer_id, product_id, quantity):
    quantity = _validate_quantity(quantity)
    product = _available_product(product_id)
    cart = get_or_create_cart(consumer_id)

    item = CartItem.query.filter_by(cart_id=cart.id, product_id=product.id).first()
    new_quantity = quantity + (item.quantity if item else 0)

    if new_quantity > product.available_quantity:
        raise ValidationError(
            f"Only {product.available_quantity} {product.unit} of {product.name} available",
            details={"product_id": product.id, "available": product.available_quantity}
        )

    if item:
        item.quantity = new_quantity
        item.unit_price = product.price
    else:
        db.session.add(CartItem(cart_id=cart.id, product_id=product.id,
                                quantity=quantity, unit_price=product.price))

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    db.session.refresh(cart)
    return _cart_payload(cart)


def _owned_item(consumer_id, item_id):
    cart = get_or_create_cart(consumer_id)
    item = CartItem.query.filter_by(id=item_id, cart_id=cart.id).first()
    if not item:
        raise NotFoundError("Cart item not found")
    return cart, item


def update_item(consumer_id, item_id, quantity):
    quantity = _validate_quantity(quantity, allow_zero=True)
    cart, item = _owned_item(consumer_id, item_id)

    if quantity == 0:
        db.session.delete(item)
    else:
        if quantity > item.product.available_quantity:
            raise ValidationError(
                f"Only {item.product.available_quantity} {item.product.unit} of {item.product.name} available",
                details={"product_id": item.product_id, "available": item.product.available_quantity}
            )
        item.quantity = quantity

    db.session.commit()
    db.session.refresh(cart)
    return _cart_payload(cart)


def remove_item(consumer_id, item_id):
    cart, item = _owned_item(consumer_id, item_id)
    db.session.delete(item)
    db.session.commit()
    db.session.refresh(cart)
    return _cart_payload(cart)


def clear_cart(consumer_id):
    cart = get_or_create_cart(consumer_id)
    CartItem.query.filter_by(cart_id=cart.id).delete(synchronize_session=False)
    db.session.commit()
    db.session.refresh(cart)
    return _cart_payload(cart)


# --- Saved carts ---

def list_saved_carts(consumer_id):
    saved = (
        SavedCart.query
        .filter_by(consumer_id=consumer_id)
        .order_by(SavedCart.created_at.desc())
        .all()
    )
    return {"success": True, "saved_carts": [s.to_dict() for s in saved]}


def save_cart(consumer_id, name):
    name = validate_string(name, 'name', max_length=100)
    cart = get_or_create_cart(consumer_id)
    if not cart.items:
        raise ValidationError("Cannot save an empty cart")

    saved = SavedCart(
        consumer_id=consumer_id,
        name=name,
        items=[{"product_id": item.product_id, "quantity": item.quantity} for item in cart.items],
    )
    db.session.add(saved)
    db.session.commit()

    current_app.logger.info(f"Consumer {consumer_id} saved cart '{name}' with {len(saved.items)} items")
    return {"success": True, "saved_cart": saved.to_dict()}


def load_saved_cart(consumer_id, saved_cart_id):
    """
    Replaces the current cart with a saved snapshot.

    Products that are no longer approved or in stock are skipped; quantities
    are capped at current stock.
    """
    saved = SavedCart.query.filter_by(id=saved_cart_id, consumer_id=consumer_id).first()
    if not saved:
        raise NotFoundError("Saved cart not found")

    cart = get_or_create_cart(consumer_id)
    CartItem.query.filter_by(cart_id=cart.id).delete(synchronize_session=False)

    skipped = []
    for entry in saved.items or []:
        product = db.session.get(Product, entry.get('product_id'))
        if not product or not product.approved or product.available_quantity <= 0:
            skipped.append({"product_id": entry.get('product_id'),
                            "name": product.name if product else None,
                            "reason": "unavailable"})
            continue

        quantity = min(int(entry.get('quantity', 1)), product.available_quantity)
        db.session.add(CartItem(cart_id=cart.id, product_id=product.id,
                                quantity=quantity, unit_price=product.price))

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    db.session.refresh(cart)
    result = _cart_payload(cart)
    result["skipped_items"] = skipped
    return result


def delete_saved_cart(consumer_id, saved_cart_id):
    saved = SavedCart.query.filter_by(id=saved_cart_id, consumer_id=consumer_id).first()
    if not saved:
        raise NotFoundError("Saved cart not found")
    db.session.delete(saved)
    db.session.commit()
    return {"success": True, "message": "Saved cart deleted"}
