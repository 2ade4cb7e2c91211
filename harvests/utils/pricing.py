# harvests/utils/pricing.py
"""
Pure Python money math for the marketplace revenue model.

Product revenue split (from listed price):
- 85% to the farmer
- 5% to the lead farmer running the collection point
- 10% platform fee

The delivery fee is a flat amount per order paid to the driver, added on top
of the product subtotal. All functions return amounts rounded to cents.
"""

import math

FARMER_SHARE_RATE = 0.85
LEAD_FARMER_SHARE_RATE = 0.05
PLATFORM_FEE_RATE = 0.10
FLAT_DELIVERY_FEE = 7.50

# Driver expense assumptions
MILES_PER_STOP = 3
MILES_PER_GALLON = 20
GAS_PRICE_PER_GALLON = 3.50
TOLL_FEE = 5.00
TOLL_STOP_THRESHOLD = 5


def to_cents(amount):
    """Converts a dollar amount to integer cents for Stripe."""
    return int(round((amount or 0) * 100))


def round_money(amount):
    return round((amount or 0) + 0.0, 2)


def calculate_revenue_split(product_subtotal):
    """
    Splits a product subtotal between farmer, lead farmer and platform.

    Args:
        product_subtotal (float): Sum of item price * quantity

    Returns:
        dict: farmer_share, lead_farmer_share, platform_fee
    """
    return {
        'farmer_share': round_money(product_subtotal * FARMER_SHARE_RATE),
        'lead_farmer_share': round_money(product_subtotal * LEAD_FARMER_SHARE_RATE),
        'platform_fee': round_money(product_subtotal * PLATFORM_FEE_RATE),
    }


def calculate_driver_payout(delivery_count, fee_per_delivery=FLAT_DELIVERY_FEE):
    """Total driver payout for a batch: flat fee times the number of deliveries."""
    return round_money(delivery_count * fee_per_delivery)


def calculate_order_total(subtotal, delivery_fee, tip_amount=0):
    return round_money(subtotal + delivery_fee + (tip_amount or 0))


def calculate_credits_redemption(balance, order_total):
    """Credits can cover the whole order but never more than the balance."""
    if balance <= 0 or order_total <= 0:
        return 0.0
    return round_money(min(balance, order_total))


def credits_earned_for_spend(previous_spend, new_spend, threshold=100.0, credit_amount=10.0):
    """
    Number of credit dollars earned when monthly spend moves from
    previous_spend to new_spend: one credit_amount per threshold crossed.
    """
    if threshold <= 0 or new_spend <= previous_spend:
        return 0.0
    crossed = math.floor(new_spend / threshold) - math.floor(previous_spend / threshold)
    return round_money(max(crossed, 0) * credit_amount)


def progress_to_credit(monthly_spend, threshold=100.0):
    """Percentage (0-100) progress toward the next spend credit."""
    if threshold <= 0:
        return 0
    return min((monthly_spend / threshold) * 100, 100)


def estimate_driver_expenses(delivery_count, total_distance=None):
    """
    Estimated route expenses for a driver.

    Assumptions: ~3 miles per stop when no distance is known, a 20 MPG
    vehicle, $3.50/gallon and a $5.00 toll charge on routes over 5 stops.

    Returns:
        dict: fuel, tolls and total, rounded to cents
    """
    miles = total_distance or (delivery_count * MILES_PER_STOP)
    fuel_cost = (miles / MILES_PER_GALLON) * GAS_PRICE_PER_GALLON
    tolls_cost = TOLL_FEE if delivery_count > TOLL_STOP_THRESHOLD else 0.0
    return {
        'fuel': round_money(fuel_cost),
        'tolls': round_money(tolls_cost),
        'total': round_money(fuel_cost + tolls_cost),
    }


def calculate_net_earnings(delivery_count, tips=0.0, total_distance=None):
    """Driver gross (flat fees + tips) minus estimated expenses."""
    gross = calculate_driver_payout(delivery_count) + (tips or 0)
    expenses = estimate_driver_expenses(delivery_count, total_distance)
    return {
        'gross': round_money(gross),
        'expenses': expenses,
        'net': round_money(gross - expenses['total']),
    }
