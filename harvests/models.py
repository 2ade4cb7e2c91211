# models.py

import uuid
from datetime import datetime
from . import db

# Table definitions for the marketplace. Primary keys are UUID strings so
# they line up with Supabase auth user ids.


def _uuid():
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


# --- 1. USERS & ROLES ---

class Profile(db.Model):
    """
    One row per Supabase auth user. The id IS the auth user id ('sub' claim),
    synchronized on every authenticated request by JIT provisioning.
    """
    __tablename__ = 'profiles'

    id = db.Column(db.String(36), primary_key=True)
    email = db.Column(db.String(255), index=True, unique=True, nullable=False)
    full_name = db.Column(db.String(200))
    phone = db.Column(db.String(40))

    street_address = db.Column(db.String(255))
    city = db.Column(db.String(120))
    state = db.Column(db.String(2))
    zip_code = db.Column(db.String(10), index=True)

    # Lead farmers run a collection point; farmers point at their lead farmer.
    collection_point_address = db.Column(db.String(500))
    collection_point_lead_farmer_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=True)

    # --- Stripe ---
    stripe_customer_id = db.Column(db.String(64))
    stripe_connect_account_id = db.Column(db.String(64))
    stripe_onboarding_complete = db.Column(db.Boolean, nullable=False, default=False)
    stripe_charges_enabled = db.Column(db.Boolean, nullable=False, default=False)
    stripe_payouts_enabled = db.Column(db.Boolean, nullable=False, default=False)

    # --- W-9 tax info (tax id stored encrypted only) ---
    tax_id_encrypted = db.Column(db.Text)
    tax_id_type = db.Column(db.String(3))
    tax_name = db.Column(db.String(200))
    tax_address = db.Column(db.String(500))
    w9_submitted_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    roles = db.relationship('UserRole', backref='user', lazy=True, cascade="all, delete-orphan")

    @property
    def has_complete_address(self):
        return bool(self.street_address and self.city and self.state and self.zip_code)

    def role_names(self):
        return sorted(r.role for r in self.roles)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'phone': self.phone,
            'street_address': self.street_address,
            'city': self.city,
            'state': self.state,
            'zip_code': self.zip_code,
            'collection_point_address': self.collection_point_address,
            'collection_point_lead_farmer_id': self.collection_point_lead_farmer_id,
            'stripe_connect_account_id': self.stripe_connect_account_id,
            'stripe_onboarding_complete': self.stripe_onboarding_complete,
            'stripe_payouts_enabled': self.stripe_payouts_enabled,
            'w9_submitted_at': _iso(self.w9_submitted_at),
            'roles': self.role_names(),
        }

    def __repr__(self):
        return f'<Profile {self.email}>'


class UserRole(db.Model):
    __tablename__ = 'user_roles'
    __table_args__ = (db.UniqueConstraint('user_id', 'role', name='uq_user_roles_user_role'),)

    ROLES = ('admin', 'consumer', 'farmer', 'lead_farmer', 'driver')

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


# --- 2. FARMS & PRODUCTS ---

class FarmProfile(db.Model):
    __tablename__ = 'farm_profiles'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    farmer_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=False, index=True)
    farm_name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    location = db.Column(db.String(255))
    bio = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    farmer = db.relationship('Profile', foreign_keys=[farmer_id])
    products = db.relationship('Product', backref='farm', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'farmer_id': self.farmer_id,
            'farm_name': self.farm_name,
            'description': self.description,
            'location': self.location,
            'bio': self.bio,
        }


class FarmAffiliation(db.Model):
    """Links a farm to the lead farmer whose collection point it uses."""
    __tablename__ = 'farm_affiliations'
    __table_args__ = (db.UniqueConstraint('lead_farmer_id', 'farm_profile_id', name='uq_farm_affiliation'),)

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    lead_farmer_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=False)
    farm_profile_id = db.Column(db.String(36), db.ForeignKey('farm_profiles.id'), nullable=False)
    commission_rate = db.Column(db.Float, nullable=False, default=5.0)
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class Product(db.Model):
    __tablename__ = 'products'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    farm_profile_id = db.Column(db.String(36), db.ForeignKey('farm_profiles.id'), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Float, nullable=False)
    unit = db.Column(db.String(40), nullable=False)
    image_url = db.Column(db.String(500))
    available_quantity = db.Column(db.Integer, nullable=False, default=0)
    harvest_date = db.Column(db.Date)
    approved = db.Column(db.Boolean, nullable=False, default=False)
    approved_by = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=True)
    approved_at = db.Column(db.DateTime)
    last_reviewed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'farm_profile_id': self.farm_profile_id,
            'farm_name': self.farm.farm_name if self.farm else None,
            'name': self.name,
            'description': self.description,
            'price': self.price,
            'unit': self.unit,
            'image_url': self.image_url,
            'available_quantity': self.available_quantity,
            'harvest_date': _iso(self.harvest_date),
            'approved': self.approved,
            'created_at': _iso(self.created_at),
        }


# --- 3. CARTS ---

class ShoppingCart(db.Model):
    __tablename__ = 'shopping_carts'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    consumer_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=False, unique=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = db.relationship('CartItem', backref='cart', lazy=True, cascade="all, delete-orphan")


class CartItem(db.Model):
    __tablename__ = 'cart_items'
    __table_args__ = (db.UniqueConstraint('cart_id', 'product_id', name='uq_cart_item_product'),)

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    cart_id = db.Column(db.String(36), db.ForeignKey('shopping_carts.id'), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey('products.id'), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Float, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    product = db.relationship('Product')

    @property
    def line_total(self):
        return round(self.quantity * self.unit_price, 2)

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'quantity': self.quantity,
            'unit_price': self.unit_price,
            'line_total': self.line_total,
            'product': self.product.to_dict() if self.product else None,
        }


class SavedCart(db.Model):
    __tablename__ = 'saved_carts'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    consumer_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    # [{"product_id": ..., "quantity": ...}]
    items = db.Column(db.JSON, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'items': self.items,
            'item_count': sum(int(i.get('quantity', 0)) for i in self.items or []),
            'created_at': _iso(self.created_at),
        }


# --- 4. MARKETS ---

class MarketConfig(db.Model):
    """Delivery rules for one ZIP code."""
    __tablename__ = 'market_configs'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    zip_code = db.Column(db.String(10), nullable=False, index=True)
    delivery_fee = db.Column(db.Float, nullable=False, default=7.50)
    minimum_order = db.Column(db.Float, nullable=False, default=0.0)
    # Weekday names, e.g. ["Monday", "Thursday"]
    delivery_days = db.Column(db.JSON, nullable=False, default=list)
    cutoff_time = db.Column(db.String(5), nullable=False, default='23:59')
    active = db.Column(db.Boolean, nullable=False, default=True)
    collection_point_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=True)
    target_batch_size = db.Column(db.Integer, default=37)
    min_batch_size = db.Column(db.Integer, default=30)
    max_batch_size = db.Column(db.Integer, default=45)
    max_route_hours = db.Column(db.Float, default=7.5)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'zip_code': self.zip_code,
            'delivery_fee': self.delivery_fee,
            'minimum_order': self.minimum_order,
            'delivery_days': self.delivery_days,
            'cutoff_time': self.cutoff_time,
            'active': self.active,
            'collection_point_id': self.collection_point_id,
        }


# --- 5. ORDERS ---

class Order(db.Model):
    __tablename__ = 'orders'

    STATUSES = ('pending', 'confirmed', 'preparing', 'ready_for_pickup',
                'in_transit', 'out_for_delivery', 'delivered', 'cancelled')
    PAYMENT_STATUSES = ('pending', 'paid', 'failed', 'refunded')

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    consumer_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=False, index=True)
    delivery_date = db.Column(db.Date, nullable=False, index=True)
    delivery_batch_id = db.Column(db.String(36), db.ForeignKey('delivery_batches.id'), nullable=True, index=True)

    subtotal = db.Column(db.Float, nullable=False, default=0.0)
    delivery_fee = db.Column(db.Float, nullable=False, default=0.0)
    tip_amount = db.Column(db.Float, nullable=False, default=0.0)
    platform_fee = db.Column(db.Float, nullable=False, default=0.0)
    credits_used = db.Column(db.Float, nullable=False, default=0.0)
    total_amount = db.Column(db.Float, nullable=False, default=0.0)

    status = db.Column(db.String(20), nullable=False, default='pending', index=True)
    payment_status = db.Column(db.String(20), nullable=False, default='pending')
    payment_failure_message = db.Column(db.String(500))
    box_code = db.Column(db.String(20))
    flagged_for_review = db.Column(db.Boolean, nullable=False, default=False)
    credits_awarded = db.Column(db.Boolean, nullable=False, default=False)
    paid_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    consumer = db.relationship('Profile', foreign_keys=[consumer_id])
    items = db.relationship('OrderItem', backref='order', lazy=True, cascade="all, delete-orphan")

    @property
    def amount_charged(self):
        return round(self.total_amount - self.credits_used, 2)

    def to_dict(self, include_items=False):
        data = {
            'id': self.id,
            'consumer_id': self.consumer_id,
            'delivery_date': _iso(self.delivery_date),
            'delivery_batch_id': self.delivery_batch_id,
            'subtotal': self.subtotal,
            'delivery_fee': self.delivery_fee,
            'tip_amount': self.tip_amount,
            'platform_fee': self.platform_fee,
            'credits_used': self.credits_used,
            'total_amount': self.total_amount,
            'amount_charged': self.amount_charged,
            'status': self.status,
            'payment_status': self.payment_status,
            'box_code': self.box_code,
            'flagged_for_review': self.flagged_for_review,
            'paid_at': _iso(self.paid_at),
            'created_at': _iso(self.created_at),
        }
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    __tablename__ = 'order_items'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    order_id = db.Column(db.String(36), db.ForeignKey('orders.id'), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey('products.id'), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Float, nullable=False)
    subtotal = db.Column(db.Float, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    product = db.relationship('Product')

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'product_name': self.product.name if self.product else None,
            'unit': self.product.unit if self.product else None,
            'quantity': self.quantity,
            'unit_price': self.unit_price,
            'subtotal': self.subtotal,
        }


# --- 6. DELIVERY ---

class DeliveryBatch(db.Model):
    __tablename__ = 'delivery_batches'

    STATUSES = ('pending', 'assigned', 'in_progress', 'completed', 'cancelled')

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    lead_farmer_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=True)
    driver_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=True, index=True)
    delivery_date = db.Column(db.Date, nullable=False, index=True)
    batch_number = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default='pending')
    zip_codes = db.Column(db.JSON, nullable=False, default=list)
    estimated_duration_minutes = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    stops = db.relationship('BatchStop', backref='batch', lazy=True, cascade="all, delete-orphan",
                            order_by='BatchStop.sequence_number')
    orders = db.relationship('Order', backref='batch', lazy=True)
    batch_meta = db.relationship('BatchMetadata', backref='batch', uselist=False, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'lead_farmer_id': self.lead_farmer_id,
            'driver_id': self.driver_id,
            'delivery_date': _iso(self.delivery_date),
            'batch_number': self.batch_number,
            'status': self.status,
            'zip_codes': self.zip_codes,
            'estimated_duration_minutes': self.estimated_duration_minutes,
        }


class BatchStop(db.Model):
    __tablename__ = 'batch_stops'

    STATUSES = ('pending', 'in_progress', 'delivered', 'failed')

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    delivery_batch_id = db.Column(db.String(36), db.ForeignKey('delivery_batches.id'), nullable=False, index=True)
    order_id = db.Column(db.String(36), db.ForeignKey('orders.id'), nullable=False)
    address = db.Column(db.String(500), nullable=False)
    sequence_number = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default='pending')
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    estimated_arrival = db.Column(db.DateTime)
    delivered_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    order = db.relationship('Order')

    def to_dict(self):
        return {
            'id': self.id,
            'delivery_batch_id': self.delivery_batch_id,
            'order_id': self.order_id,
            'box_code': self.order.box_code if self.order else None,
            'address': self.address,
            'sequence_number': self.sequence_number,
            'status': self.status,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'delivered_at': _iso(self.delivered_at),
        }


class BatchMetadata(db.Model):
    __tablename__ = 'batch_metadata'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    delivery_batch_id = db.Column(db.String(36), db.ForeignKey('delivery_batches.id'), nullable=False)
    collection_point_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=True)
    collection_point_address = db.Column(db.String(500))
    original_zip_codes = db.Column(db.JSON)
    merged_zips = db.Column(db.JSON)
    order_count = db.Column(db.Integer, nullable=False)
    is_subsidized = db.Column(db.Boolean, nullable=False, default=False)
    ai_optimization_data = db.Column(db.JSON)
    estimated_route_hours = db.Column(db.Float)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class DeliveryRating(db.Model):
    __tablename__ = 'delivery_ratings'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    order_id = db.Column(db.String(36), db.ForeignKey('orders.id'), nullable=False, unique=True)
    driver_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=False, index=True)
    rating = db.Column(db.Integer, nullable=False)
    feedback = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'order_id': self.order_id,
            'driver_id': self.driver_id,
            'rating': self.rating,
            'feedback': self.feedback,
            'created_at': _iso(self.created_at),
        }


# --- 7. MONEY ---

class CreditLedgerEntry(db.Model):
    """
    Append-only credit ledger. The newest row's balance_after is the
    consumer's current balance.
    """
    __tablename__ = 'credits_ledger'

    GRANT_TYPES = ('earned', 'bonus', 'refund')

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    consumer_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=False, index=True)
    order_id = db.Column(db.String(36), nullable=True)
    transaction_type = db.Column(db.String(20), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    balance_after = db.Column(db.Float, nullable=False)
    description = db.Column(db.String(500))
    expires_at = db.Column(db.DateTime)
    expired = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'consumer_id': self.consumer_id,
            'order_id': self.order_id,
            'transaction_type': self.transaction_type,
            'amount': self.amount,
            'balance_after': self.balance_after,
            'description': self.description,
            'expires_at': _iso(self.expires_at),
            'created_at': _iso(self.created_at),
        }


class Subscription(db.Model):
    __tablename__ = 'subscriptions'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    consumer_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=False, unique=True)
    stripe_subscription_id = db.Column(db.String(64), index=True)
    stripe_customer_id = db.Column(db.String(64))
    status = db.Column(db.String(20), nullable=False, default='active')
    current_period_start = db.Column(db.DateTime)
    current_period_end = db.Column(db.DateTime)
    trial_end = db.Column(db.DateTime)
    monthly_spend = db.Column(db.Float, nullable=False, default=0.0)
    # 'YYYY-MM' the monthly_spend belongs to
    monthly_spend_period = db.Column(db.String(7))
    credits_earned = db.Column(db.Float, nullable=False, default=0.0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_active(self):
        return self.status in ('active', 'trialing')


class Payout(db.Model):
    __tablename__ = 'payouts'

    TYPES = ('farmer', 'lead_farmer', 'driver', 'platform_fee')
    STATUSES = ('pending', 'processing', 'paid', 'failed', 'on_hold')

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    order_id = db.Column(db.String(36), db.ForeignKey('orders.id'), nullable=True, index=True)
    recipient_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=True, index=True)
    recipient_type = db.Column(db.String(20), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    status = db.Column(db.String(20), nullable=False, default='pending', index=True)
    description = db.Column(db.String(255))
    stripe_transfer_id = db.Column(db.String(64))
    stripe_payout_id = db.Column(db.String(64))
    error_message = db.Column(db.String(500))
    paid_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    recipient = db.relationship('Profile', foreign_keys=[recipient_id])

    def to_dict(self):
        return {
            'id': self.id,
            'order_id': self.order_id,
            'recipient_id': self.recipient_id,
            'recipient_type': self.recipient_type,
            'amount': self.amount,
            'status': self.status,
            'description': self.description,
            'stripe_transfer_id': self.stripe_transfer_id,
            'error_message': self.error_message,
            'paid_at': _iso(self.paid_at),
            'created_at': _iso(self.created_at),
        }


class PaymentIntentRecord(db.Model):
    __tablename__ = 'payment_intents'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    order_id = db.Column(db.String(36), db.ForeignKey('orders.id'), nullable=True, index=True)
    consumer_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=False)
    stripe_payment_intent_id = db.Column(db.String(64), unique=True, nullable=False)
    amount = db.Column(db.Float, nullable=False)
    status = db.Column(db.String(40), nullable=False)
    client_secret = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class StripeWebhookEvent(db.Model):
    """Processed Stripe events; the unique event id makes handling idempotent."""
    __tablename__ = 'stripe_webhook_events'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    stripe_event_id = db.Column(db.String(255), unique=True, nullable=False, index=True)
    event_type = db.Column(db.String(100), nullable=False)
    processed_at = db.Column(db.DateTime, default=datetime.utcnow)


class Dispute(db.Model):
    __tablename__ = 'disputes'

    TYPES = ('product_quality', 'missing_items', 'wrong_items', 'delivery_issue', 'other')
    STATUSES = ('open', 'investigating', 'resolved', 'rejected')

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    order_id = db.Column(db.String(36), db.ForeignKey('orders.id'), nullable=False, index=True)
    consumer_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=False)
    dispute_type = db.Column(db.String(30), nullable=False)
    description = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default='open')
    resolution = db.Column(db.Text)
    refund_amount = db.Column(db.Float)
    stripe_dispute_id = db.Column(db.String(64))
    resolved_by = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=True)
    resolved_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'order_id': self.order_id,
            'consumer_id': self.consumer_id,
            'dispute_type': self.dispute_type,
            'description': self.description,
            'status': self.status,
            'resolution': self.resolution,
            'refund_amount': self.refund_amount,
            'resolved_by': self.resolved_by,
            'resolved_at': _iso(self.resolved_at),
            'created_at': _iso(self.created_at),
        }


# --- 8. PLATFORM ---

class RateLimit(db.Model):
    """One row per request; the sliding window counts rows per key."""
    __tablename__ = 'rate_limits'

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(255), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)


class AdminInvitation(db.Model):
    __tablename__ = 'admin_invitations'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    email = db.Column(db.String(255), nullable=False, index=True)
    invitation_token = db.Column(db.String(64), unique=True, nullable=False)
    invited_by = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=True)
    expires_at = db.Column(db.DateTime, nullable=False)
    used_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'invited_by': self.invited_by,
            'expires_at': _iso(self.expires_at),
            'used_at': _iso(self.used_at),
            'created_at': _iso(self.created_at),
        }


class AdminAuditLog(db.Model):
    __tablename__ = 'admin_audit_log'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    admin_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=False, index=True)
    action_type = db.Column(db.String(64), nullable=False)
    target_resource_type = db.Column(db.String(64))
    target_resource_id = db.Column(db.String(64))
    details = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'admin_id': self.admin_id,
            'action_type': self.action_type,
            'target_resource_type': self.target_resource_type,
            'target_resource_id': self.target_resource_id,
            'details': self.details,
            'created_at': _iso(self.created_at),
        }
