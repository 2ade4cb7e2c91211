# tests/conftest.py
import uuid
from datetime import date, datetime, timedelta

import jwt
import pytest

from harvests import create_app, db
from harvests.config import Config
from harvests.models import (
    Profile, UserRole, FarmProfile, Product, MarketConfig, ShoppingCart, CartItem,
    Order, OrderItem
)

JWT_SECRET = 'test-jwt-secret-with-enough-length-for-hs256'
CRON_SECRET = 'test-cron-secret'


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SECRET_KEY = 'test'
    SUPABASE_URL = 'https://example.supabase.co'
    SUPABASE_SERVICE_ROLE_KEY = 'service-role'
    SUPABASE_JWT_SECRET = JWT_SECRET
    STRIPE_SECRET_KEY = 'sk_test_123'
    STRIPE_WEBHOOK_SECRET = 'whsec_test'
    AI_GATEWAY_API_KEY = None
    MAIL_USERNAME = None
    MAIL_PASSWORD = None
    MAIL_DEFAULT_RECIPIENT = None
    TAX_ENCRYPTION_KEY = 'tax-secret'
    CRON_SECRET = CRON_SECRET
    APP_ORIGIN = 'https://market.example.com'


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def make_token(user_id, email, full_name=None, expires_in=3600):
    payload = {
        'sub': user_id,
        'email': email,
        'aud': 'authenticated',
        'exp': datetime.utcnow() + timedelta(seconds=expires_in),
        'user_metadata': {'full_name': full_name} if full_name else {},
    }
    return jwt.encode(payload, JWT_SECRET, algorithm='HS256')


def auth_headers(profile):
    return {'Authorization': f"Bearer {make_token(profile.id, profile.email)}"}


def make_profile(roles=('consumer',), **fields):
    user_id = fields.pop('id', None) or str(uuid.uuid4())
    defaults = {
        'email': f"{user_id[:8]}@example.com",
        'full_name': 'Test User',
        'street_address': '1 Main St',
        'city': 'Springfield',
        'state': 'IL',
        'zip_code': '62701',
    }
    defaults.update(fields)
    profile = Profile(id=user_id, **defaults)
    for role in roles:
        profile.roles.append(UserRole(role=role))
    db.session.add(profile)
    db.session.commit()
    return profile


def make_farm(farmer, **fields):
    farm = FarmProfile(farmer_id=farmer.id, farm_name=fields.pop('farm_name', 'Green Acres'), **fields)
    db.session.add(farm)
    db.session.commit()
    return farm


def make_product(farm, price=10.0, quantity=20, approved=True, **fields):
    product = Product(
        farm_profile_id=farm.id,
        name=fields.pop('name', 'Tomatoes'),
        unit=fields.pop('unit', 'lb'),
        price=price,
        available_quantity=quantity,
        approved=approved,
        **fields
    )
    db.session.add(product)
    db.session.commit()
    return product


def make_market(zip_code='62701', **fields):
    defaults = {
        'delivery_fee': 7.50,
        'minimum_order': 0.0,
        'delivery_days': ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday'],
        'cutoff_time': '23:59',
        'active': True,
    }
    defaults.update(fields)
    market = MarketConfig(zip_code=zip_code, **defaults)
    db.session.add(market)
    db.session.commit()
    return market


def fill_cart(consumer, *product_quantities):
    cart = ShoppingCart(consumer_id=consumer.id)
    db.session.add(cart)
    db.session.flush()
    for product, quantity in product_quantities:
        db.session.add(CartItem(cart_id=cart.id, product_id=product.id,
                                quantity=quantity, unit_price=product.price))
    db.session.commit()
    return cart


def make_order(consumer, product, quantity=2, delivery_date=None, **fields):
    subtotal = round(product.price * quantity, 2)
    defaults = {
        'delivery_date': delivery_date or (date.today() + timedelta(days=3)),
        'subtotal': subtotal,
        'delivery_fee': 7.50,
        'platform_fee': round(subtotal * 0.10, 2),
        'total_amount': round(subtotal + 7.50, 2),
        'status': 'pending',
        'payment_status': 'pending',
    }
    defaults.update(fields)
    order = Order(consumer_id=consumer.id, **defaults)
    db.session.add(order)
    db.session.flush()
    db.session.add(OrderItem(order_id=order.id, product_id=product.id, quantity=quantity,
                             unit_price=product.price, subtotal=subtotal))
    db.session.commit()
    return order


class FakeStripeObject(dict):
    """Attribute and key access, like stripe.StripeObject."""

    def __getattr__(self, name):
        try:
            return self[name]
        except KeyError:
            raise AttributeError(name)
