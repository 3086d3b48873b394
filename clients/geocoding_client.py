"""
Postcode geocoding client (postcodes.io).

Resolves a UK postcode to latitude/longitude. Unknown postcodes return
None; transport failures raise GeocodingError, and a call that exceeds its
timeout raises GeocodingTimeout so the caller can tell "slow" from "broken".

Resolved coordinates can be cached in Valkey; cache failures are logged
and the lookup falls through to the API.
"""

import logging
from typing import NamedTuple
from urllib.parse import quote

import redis
import requests

from clients.valkey_client import ValkeyClient

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.postcodes.io"
DEFAULT_TIMEOUT_SECONDS = 5
CACHE_TTL_SECONDS = 7 * 24 * 60 * 60


class GeocodingError(Exception):
    """Geocoding service failed or returned an unusable response."""


class GeocodingTimeout(GeocodingError):
    """Geocoding service did not answer within the timeout."""


class Coordinates(NamedTuple):
    latitude: float
    longitude: float


class GeocodingClient:
    """
    Look up postcode coordinates.

    Usage:
        geocoder = GeocodingClient()
        coords = geocoder.lookup("SW9 8AB")   # Coordinates or None
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        cache: ValkeyClient | None = None,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.cache = cache
        self.session = session or requests.Session()

    def lookup(self, postcode: str) -> Coordinates | None:
        """
        Coordinates for a postcode, or None if the postcode does not exist.

        Raises:
            GeocodingTimeout: Service did not answer in time
            GeocodingError: Any other failure
        """
        key = "".join(postcode.split()).upper()

        cached = self._cache_get(key)
        if cached is not None:
            return cached

        try:
            response = self.session.get(
                f"{self.base_url}/postcodes/{quote(key)}",
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.warning("Geocoding timed out for %s after %ss", key, self.timeout)
            raise GeocodingTimeout(f"Geocoding timed out after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            logger.error("Geocoding request failed for %s: %s", key, e)
            raise GeocodingError(f"Geocoding request failed: {e}") from e

        if response.status_code == 404:
            logger.info("Postcode not found: %s", key)
            return None

        if response.status_code != 200:
            logger.error("Geocoding returned HTTP %d for %s", response.status_code, key)
            raise GeocodingError(f"Geocoding returned HTTP {response.status_code}")

        try:
            result = response.json()["result"]
            coords = Coordinates(float(result["latitude"]), float(result["longitude"]))
        except (ValueError, KeyError, TypeError) as e:
            # postcodes.io returns null coordinates for some non-geographic postcodes
            logger.error("Unusable geocoding response for %s: %s", key, e)
            raise GeocodingError(f"Unusable geocoding response: {e}") from e

        self._cache_set(key, coords)
        return coords

    def _cache_get(self, key: str) -> Coordinates | None:
        if self.cache is None:
            return None
        try:
            value = self.cache.get_json(f"geocode:{key}")
        except (redis.RedisError, ValueError) as e:
            logger.warning("Geocode cache read failed for %s: %s", key, e)
            return None
        if not value:
            return None
        return Coordinates(value["latitude"], value["longitude"])

    def _cache_set(self, key: str, coords: Coordinates) -> None:
        if self.cache is None:
            return
        try:
            self.cache.set_json(f"geocode:{key}", coords._asdict(), CACHE_TTL_SECONDS)
        except redis.RedisError as e:
            logger.warning("Geocode cache write failed for %s: %s", key, e)
