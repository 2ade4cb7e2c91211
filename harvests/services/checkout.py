# harvests/services/checkout.py
"""
Checkout Service

Turns a consumer's cart into a paid (or payment-pending) order.

Flow:
    1. Load and validate the cart, profile, market and delivery date
    2. Check inventory and minimum order
    3. Compute totals, optionally redeeming credits
    4. Persist order, items, inventory decrements and pending payouts
    5. Charge the remainder through a Stripe PaymentIntent
    6. Record subscription spend, clear the cart, send confirmation

Everything up to and including the charge runs in one database
transaction; a Stripe failure rolls the whole order back.
"""

from collections import defaultdict
from datetime import datetime
import stripe
from flask import current_app
from harvests import db
from harvests.errors import CheckoutError, ValidationError
from harvests.models import (
    ShoppingCart, CartItem, Profile, MarketConfig, Order, OrderItem,
    Payout, PaymentIntentRecord, FarmAffiliation
)
from harvests.services.credits import get_credit_balance, expire_credits, add_ledger_entry
from harvests.services.notifications import notify_safely
from harvests.services.subscriptions import record_subscription_spend
from harvests.utils.general import is_valid_uuid, parse_iso_date, validate_number
from harvests.utils.market import is_cutoff_passed, is_delivery_day, tomorrow
from harvests.utils.pricing import (
    calculate_revenue_split, calculate_order_total, calculate_credits_redemption,
    round_money, to_cents, FLAT_DELIVERY_FEE
)

# PaymentIntent status -> order payment_status
INTENT_PAYMENT_STATUS = {
    'succeeded': 'paid',
    'requires_action': 'pending',
    'requires_payment_method': 'pending',
    'requires_confirmation': 'pending',
    'processing': 'pending',
}

REQUIRED_PROFILE_FIELDS = ('street_address', 'city', 'state', 'zip_code')


def parse_checkout_request(data):
    """Validates the checkout body and returns normalized fields."""
    cart_id = data.get('cart_id')
    if not is_valid_uuid(cart_id):
        raise ValidationError("'cart_id' must be a valid UUID")

    delivery_date = parse_iso_date(data.get('delivery_date'), 'delivery_date')

    use_credits = data.get('use_credits', False)
    if not isinstance(use_credits, bool):
        raise ValidationError("'use_credits' must be a boolean")

    is_demo_mode = data.get('is_demo_mode', False)
    if not isinstance(is_demo_mode, bool):
        raise ValidationError("'is_demo_mode' must be a boolean")

    payment_method_id = data.get('payment_method_id')
    if payment_method_id is not None and not isinstance(payment_method_id, str):
        raise ValidationError("'payment_method_id' must be a string")

    tip_amount = data.get('tip_amount', 0)
    if tip_amount is None:
        tip_amount = 0
    tip_amount = validate_number(tip_amount, 'tip_amount', minimum=0,
                                 maximum=current_app.config['MAX_TIP_AMOUNT'])

    return {
        'cart_id': cart_id,
        'delivery_date': delivery_date,
        'use_credits': use_credits,
        'payment_method_id': payment_method_id or None,
        'tip_amount': round_money(tip_amount),
        'is_demo_mode': is_demo_mode,
    }


def _load_cart(cart_id, consumer_id):
    cart = ShoppingCart.query.filter_by(id=cart_id, consumer_id=consumer_id).first()
    if not cart or not cart.items:
        raise CheckoutError(CheckoutError.EMPTY_CART, "Your cart is empty")
    return cart


def _check_profile(consumer_id):
    profile = db.session.get(Profile, consumer_id)
    missing = [field for field in REQUIRED_PROFILE_FIELDS if not profile or not getattr(profile, field)]
    if missing:
        raise CheckoutError(
            CheckoutError.MISSING_PROFILE_INFO,
            "Please complete your delivery address before checking out",
            details={"missing_fields": missing}
        )
    return profile


def _check_delivery_date(market, delivery_date, now):
    if delivery_date <= now.date() or not is_delivery_day(delivery_date, market.delivery_days):
        raise CheckoutError(
            CheckoutError.INVALID_DELIVERY_DATE,
            f"Delivery is not available on {delivery_date.isoformat()}",
            details={"delivery_days": market.delivery_days}
        )

    if delivery_date == tomorrow(now) and is_cutoff_passed(market.cutoff_time, now):
        raise CheckoutError(
            CheckoutError.CUTOFF_PASSED,
            f"The order cutoff ({market.cutoff_time}) for {delivery_date.isoformat()} has passed"
        )


def _check_inventory(items):
    # Unapproved products (e.g. after a price edit) cannot be bought
    shortages = [
        {
            "product_id": item.product_id,
            "name": item.product.name,
            "requested": item.quantity,
            "available": item.product.available_quantity if item.product.approved else 0,
        }
        for item in items
        if not item.product.approved or item.quantity > item.product.available_quantity
    ]
    if shortages:
        raise CheckoutError(
            CheckoutError.INSUFFICIENT_INVENTORY,
            "Some items in your cart are no longer available in the requested quantity",
            details={"products": shortages}
        )


def _create_payouts(order, items):
    """
    Pending payouts for an order: each farm's share of its own items, the
    affiliated lead farmer's share, and the platform fee. A farm without a
    lead farmer leaves that share to the platform, so the payouts always sum
    to the subtotal. Driver payouts are created when a route is claimed.
    """
    farm_subtotals = defaultdict(float)
    farms = {}
    for item in items:
        farm = item.product.farm
        farms[farm.id] = farm
        farm_subtotals[farm.id] += item.quantity * item.product.price

    platform_fee = 0.0

    for farm_id, farm_subtotal in farm_subtotals.items():
        farm = farms[farm_id]
        split = calculate_revenue_split(farm_subtotal)
        farm_subtotal = round_money(farm_subtotal)
        allocated = split['farmer_share']

        db.session.add(Payout(
            order_id=order.id,
            recipient_id=farm.farmer_id,
            recipient_type='farmer',
            amount=split['farmer_share'],
            description=f"Farmer share for {farm.farm_name}",
        ))

        affiliation = FarmAffiliation.query.filter_by(farm_profile_id=farm_id, active=True).first()
        if affiliation:
            db.session.add(Payout(
                order_id=order.id,
                recipient_id=affiliation.lead_farmer_id,
                recipient_type='lead_farmer',
                amount=split['lead_farmer_share'],
                description=f"Lead farmer commission for {farm.farm_name}",
            ))
            allocated += split['lead_farmer_share']

        platform_fee += farm_subtotal - allocated

    order.platform_fee = round_money(platform_fee)

    db.session.add(Payout(
        order_id=order.id,
        recipient_id=None,
        recipient_type='platform_fee',
        amount=order.platform_fee,
        description="Platform fee",
    ))


def _charge(order, consumer_id, amount, payment_method_id):
    """Creates the PaymentIntent. Returns (client_secret, payment_status)."""
    stripe.api_key = current_app.config['STRIPE_SECRET_KEY']

    params = {
        'amount': to_cents(amount),
        'currency': 'usd',
        'metadata': {'order_id': order.id, 'consumer_id': consumer_id},
    }
    if payment_method_id:
        params['payment_method'] = payment_method_id
        params['confirm'] = True
        params['automatic_payment_methods'] = {'enabled': True, 'allow_redirects': 'never'}
    else:
        params['automatic_payment_methods'] = {'enabled': True}

    intent = stripe.PaymentIntent.create(**params)

    db.session.add(PaymentIntentRecord(
        order_id=order.id,
        consumer_id=consumer_id,
        stripe_payment_intent_id=intent.id,
        amount=amount,
        status=intent.status,
        client_secret=intent.client_secret,
    ))

    return intent.client_secret, INTENT_PAYMENT_STATUS.get(intent.status, 'pending')


def process_checkout(consumer_id, data, now=None):
    """
    Runs the checkout flow for the authenticated consumer.

    Raises:
        ValidationError: Malformed request body
        CheckoutError: Any business rule failure (see CheckoutError codes)

    Returns:
        dict: order_id, client_secret, amount_charged, credits_redeemed, payment_status
    """
    now = now or datetime.utcnow()
    request_data = parse_checkout_request(data)
    delivery_date = request_data['delivery_date']

    cart = _load_cart(request_data['cart_id'], consumer_id)
    profile = _check_profile(consumer_id)

    market = MarketConfig.query.filter_by(zip_code=profile.zip_code, active=True).first()
    if not market:
        raise CheckoutError(
            CheckoutError.NO_MARKET_CONFIG,
            f"We don't deliver to ZIP code {profile.zip_code} yet"
        )

    _check_delivery_date(market, delivery_date, now)

    items = list(cart.items)
    _check_inventory(items)

    subtotal = round_money(sum(item.quantity * item.product.price for item in items))
    if subtotal < market.minimum_order:
        raise CheckoutError(
            CheckoutError.BELOW_MINIMUM_ORDER,
            f"Minimum order for your area is ${market.minimum_order:.2f}",
            details={"minimum_order": market.minimum_order, "subtotal": subtotal}
        )

    delivery_fee = market.delivery_fee if market.delivery_fee is not None else FLAT_DELIVERY_FEE
    tip_amount = request_data['tip_amount']
    total = calculate_order_total(subtotal, delivery_fee, tip_amount)

    try:
        credits_redeemed = 0.0
        if request_data['use_credits']:
            expire_credits(consumer_id, now)
            credits_redeemed = calculate_credits_redemption(get_credit_balance(consumer_id), total)
        amount_charged = round_money(total - credits_redeemed)

        order = Order(
            consumer_id=consumer_id,
            delivery_date=delivery_date,
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            tip_amount=tip_amount,
            platform_fee=0.0,
            credits_used=credits_redeemed,
            total_amount=total,
            status='pending',
            payment_status='pending',
        )
        db.session.add(order)
        db.session.flush()

        for item in items:
            db.session.add(OrderItem(
                order_id=order.id,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=item.product.price,
                subtotal=round_money(item.quantity * item.product.price),
            ))
            item.product.available_quantity -= item.quantity

        if credits_redeemed > 0:
            add_ledger_entry(
                consumer_id, 'redeemed', -credits_redeemed,
                description=f"Redeemed on order {order.id}",
                order_id=order.id,
            )

        _create_payouts(order, items)

        client_secret = None
        if amount_charged > 0 and not request_data['is_demo_mode']:
            try:
                client_secret, payment_status = _charge(
                    order, consumer_id, amount_charged, request_data['payment_method_id']
                )
            except stripe.StripeError as e:
                current_app.logger.error(f"Stripe charge failed for consumer {consumer_id}: {str(e)}")
                raise CheckoutError(
                    CheckoutError.PAYMENT_FAILED,
                    getattr(e, 'user_message', None) or "Payment could not be processed"
                )
        else:
            payment_status = 'paid'

        order.payment_status = payment_status
        if payment_status == 'paid':
            order.paid_at = now
            earned = record_subscription_spend(consumer_id, subtotal, order_id=order.id, now=now)
            order.credits_awarded = True
            if earned:
                current_app.logger.info(f"Order {order.id} earned {earned} subscription credits")

        CartItem.query.filter_by(cart_id=cart.id).delete(synchronize_session=False)
        db.session.commit()

    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        f"Checkout complete: order {order.id} for {consumer_id}, "
        f"charged {amount_charged}, credits {credits_redeemed}, status {payment_status}"
    )

    notify_safely('order_confirmation', recipient_id=consumer_id, data={
        'order_id': order.id,
        'delivery_date': delivery_date.isoformat(),
        'total_amount': total,
        'amount_charged': amount_charged,
        'credits_redeemed': credits_redeemed,
    })

    return {
        "success": True,
        "order_id": order.id,
        "client_secret": client_secret,
        "amount_charged": amount_charged,
        "credits_redeemed": credits_redeemed,
        "payment_status": payment_status,
    }
