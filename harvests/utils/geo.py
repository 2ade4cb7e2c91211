# harvests/utils/geo.py
"""Distance and coordinate helpers for delivery routing."""

import math

EARTH_RADIUS_MILES = 3959

# Simplified ZIP -> coordinates lookup for the launch metros.
ZIP_COORDINATES = {
    '10001': (40.7506, -73.9971),  # NYC
    '10002': (40.7158, -73.9865),
    '10003': (40.7316, -73.9890),
    '94102': (37.7796, -122.4193),  # SF
    '90001': (33.9731, -118.2479),  # LA
    '60601': (41.8857, -87.6181),  # Chicago
}


def calculate_distance(lat1, lng1, lat2, lng2):
    """Haversine distance in whole miles."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (math.sin(d_lat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(d_lng / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_MILES * c)


def parse_location(location):
    """Parses 'lat,lng' into a (lat, lng) tuple, or None."""
    if not location:
        return None
    parts = location.split(',')
    if len(parts) != 2:
        return None
    try:
        return float(parts[0].strip()), float(parts[1].strip())
    except ValueError:
        return None


def zip_coordinates(zip_code):
    return ZIP_COORDINATES.get(zip_code)


def farm_to_consumer_distance(farm_location, consumer_zip):
    farm = parse_location(farm_location)
    consumer = zip_coordinates(consumer_zip)
    if not farm or not consumer:
        return None
    return calculate_distance(farm[0], farm[1], consumer[0], consumer[1])
