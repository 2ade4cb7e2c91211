# harvests/utils/formatting.py
"""Display helpers shared by services and notification bodies."""

import re

MINIMUM_REVIEWS_THRESHOLD = 25

_STATE_ZIP_RE = re.compile(r'([A-Z]{2})\s+(\d{5})')

# Consumer-facing order tracking stages
_ORDER_STAGE = {
    'confirmed': 'ordered',
    'in_transit': 'farm_pickup',
    'out_for_delivery': 'en_route',
    'delivered': 'delivered',
}


def format_money(amount):
    """Formats a dollar amount as '$1,234.56' ('-$5.00' for negatives)."""
    amount = amount or 0
    sign = '-' if amount < 0 else ''
    return f"{sign}${abs(amount):,.2f}"


def format_address(street_address, city, state, zip_code):
    state_zip = f"{state or ''} {zip_code or ''}".strip()
    parts = [p for p in (street_address, city, state_zip) if p]
    return ', '.join(parts)


def format_profile_address(profile):
    if profile is None:
        return ''
    return format_address(profile.street_address, profile.city, profile.state, profile.zip_code)


def parse_address(full_address):
    """Parses '123 Main St, Springfield, IL 62701' into its components."""
    if not full_address:
        return {}

    parts = [p.strip() for p in full_address.split(',')]
    if len(parts) < 2:
        return {'street_address': full_address}

    match = _STATE_ZIP_RE.search(parts[-1])
    return {
        'street_address': parts[0] or '',
        'city': parts[1] or '',
        'state': match.group(1) if match else '',
        'zip_code': match.group(2) if match else '',
    }


def format_rating_display(rating, review_count):
    """Ratings are only shown once a driver has enough reviews."""
    if review_count >= MINIMUM_REVIEWS_THRESHOLD:
        return {'rating': f"{rating:.1f}", 'review_count': review_count, 'show': True}
    return {
        'rating': 'N/A',
        'review_count': review_count,
        'show': False,
        'progress': f"{review_count}/{MINIMUM_REVIEWS_THRESHOLD}",
    }


def map_order_status(status):
    return _ORDER_STAGE.get(status, 'ordered')


def format_estimated_time(minutes):
    if not minutes:
        return None
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m" if hours > 0 else f"{mins}m"


def format_order_items(items):
    """'Kale, Eggs, +1 more (7 items total)' style summary."""
    item_count = sum(item.quantity for item in items)
    names = ', '.join(item.product.name for item in items[:2] if item.product)
    if len(items) > 2:
        return f"{names}, +{len(items) - 2} more ({item_count} items total)"
    return f"{names} ({item_count} items)"
