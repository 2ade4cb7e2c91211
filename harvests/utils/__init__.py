# harvests/utils/__init__.py
"""
Utility functions package.

This package contains reusable utility functions organized by domain:
- general.py: Service result handling and request validation helpers
- pricing.py: Revenue split, credits and driver earnings math
- market.py: Cutoff times and delivery-day calendar
- geo.py: Haversine distance and ZIP coordinates
- formatting.py: Money, address, rating and order display helpers
"""

from .general import _handle_service_result, convert_to_json_safe, require_json

__all__ = [
    '_handle_service_result',
    'convert_to_json_safe',
    'require_json',
]
