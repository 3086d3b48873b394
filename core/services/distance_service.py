"""
Travel distance and surcharge.

Everything within the free radius of the base is travelled to at no
charge. Beyond it the customer pays per excess mile, bounded below by a
minimum charge and above by a cap. All money is integer pence.
"""

import logging
import math
from decimal import Decimal, ROUND_HALF_UP

from clients.geocoding_client import GeocodingClient, GeocodingError, GeocodingTimeout
from core.config import BookingConfig
from core.exceptions import BookingTimeout, InvalidPostcode, PostcodeNotFound, PricingError
from core.models.address import is_valid_uk_postcode
from core.models.pricing import DistanceQuote

logger = logging.getLogger(__name__)

MILES_PER_KM = 0.621371
EARTH_RADIUS_KM = 6371.0


def miles_from_km(km: float) -> float:
    return km * MILES_PER_KM


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points, in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def _round_half_up(value: Decimal, places: str = "1") -> Decimal:
    return value.quantize(Decimal(places), rounding=ROUND_HALF_UP)


def distance_surcharge_cents(distance_miles: float, config: BookingConfig) -> int:
    """
    Travel surcharge in pence for a distance from base.

    0 inside the free radius (inclusive). Otherwise excess miles times the
    per-mile rate, clamped to [minimum, maximum] and rounded half-up to
    whole pence.
    """
    if distance_miles < 0:
        raise ValueError("distance_miles cannot be negative")

    miles = Decimal(str(distance_miles))
    radius = Decimal(str(config.free_radius_miles))
    if miles <= radius:
        return 0

    raw = (miles - radius) * config.surcharge_per_mile_cents
    clamped = min(
        max(raw, Decimal(config.minimum_surcharge_cents)),
        Decimal(config.maximum_surcharge_cents),
    )
    return int(_round_half_up(clamped))


class DistanceCalculator:
    """Turn a postcode (or a precomputed distance) into a DistanceQuote."""

    def __init__(self, config: BookingConfig, geocoder: GeocodingClient | None = None):
        self.config = config
        self.geocoder = geocoder

    def quote(self, postcode: str | None = None, distance_km: float | None = None) -> DistanceQuote:
        """
        Distance from base and the surcharge it implies.

        A precomputed distance_km skips geocoding entirely.

        Raises:
            InvalidPostcode: Postcode is malformed
            PostcodeNotFound: Postcode is well formed but unknown
            BookingTimeout: Geocoder timed out
            PricingError: Geocoder failed or is not configured
        """
        if distance_km is None:
            distance_km = self._distance_for_postcode(postcode)
        if distance_km < 0:
            raise PricingError("distance_km cannot be negative")

        km = float(_round_half_up(Decimal(str(distance_km)), "0.01"))
        miles = float(_round_half_up(Decimal(str(miles_from_km(distance_km))), "0.1"))
        surcharge = distance_surcharge_cents(miles, self.config)

        return DistanceQuote(
            distance_km=km,
            distance_miles=miles,
            within_free_radius=miles <= self.config.free_radius_miles,
            surcharge_cents=surcharge,
        )

    def _distance_for_postcode(self, postcode: str | None) -> float:
        if not postcode or not is_valid_uk_postcode(postcode):
            raise InvalidPostcode(f"'{postcode}' is not a valid UK postcode")
        if self.geocoder is None:
            raise PricingError("No geocoder configured and no distance supplied")

        try:
            coords = self.geocoder.lookup(postcode)
        except GeocodingTimeout as e:
            raise BookingTimeout(f"Distance lookup timed out for {postcode}") from e
        except GeocodingError as e:
            raise PricingError(f"Distance lookup failed for {postcode}: {e}") from e

        if coords is None:
            raise PostcodeNotFound(f"Postcode {postcode} could not be located")

        distance = haversine_km(
            self.config.business_latitude,
            self.config.business_longitude,
            coords.latitude,
            coords.longitude,
        )
        logger.debug("Distance %s -> %s: %.2f km", self.config.business_postcode_area, postcode, distance)
        return distance
