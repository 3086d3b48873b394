"""Tests for the travel surcharge and DistanceCalculator."""

from unittest.mock import Mock

import pytest

from clients.geocoding_client import Coordinates, GeocodingClient, GeocodingError, GeocodingTimeout
from core.config import BookingConfig
from core.exceptions import BookingTimeout, InvalidPostcode, PostcodeNotFound, PricingError
from core.services.distance_service import (
    DistanceCalculator,
    distance_surcharge_cents,
    haversine_km,
    miles_from_km,
)


@pytest.fixture
def config():
    return BookingConfig()


class TestSurcharge:
    """distance -> surcharge with default radius 17.5 mi, £5 minimum, £25 cap."""

    def test_inside_free_radius_is_free(self, config):
        assert distance_surcharge_cents(10, config) == 0

    def test_exactly_on_free_radius_is_free(self, config):
        assert distance_surcharge_cents(17.5, config) == 0

    def test_just_outside_radius_pays_minimum(self, config):
        assert distance_surcharge_cents(20, config) == 500

    def test_far_away_is_capped(self, config):
        assert distance_surcharge_cents(60, config) == 2500

    def test_uncapped_band_charges_per_excess_mile(self, config):
        # 12.5 excess miles at 100p
        assert distance_surcharge_cents(30, config) == 1250

    def test_rounds_half_up_to_whole_pence(self, config):
        # 7.505 excess miles -> 750.5p -> 751p
        assert distance_surcharge_cents(25.005, config) == 751

    def test_monotonic_between_minimum_and_cap(self, config):
        charges = [distance_surcharge_cents(17.5 + m / 4, config) for m in range(0, 200)]
        assert charges == sorted(charges)
        assert all(500 <= c <= 2500 for c in charges[1:])

    def test_negative_distance_rejected(self, config):
        with pytest.raises(ValueError):
            distance_surcharge_cents(-1, config)

    def test_rate_radius_and_bounds_are_configuration(self):
        config = BookingConfig(
            free_radius_miles=10,
            surcharge_per_mile_cents=50,
            minimum_surcharge_cents=0,
            maximum_surcharge_cents=1000,
        )
        assert distance_surcharge_cents(14, config) == 200
        assert distance_surcharge_cents(100, config) == 1000


class TestGeometry:

    def test_miles_from_km(self):
        assert miles_from_km(100) == pytest.approx(62.1371)

    def test_haversine_same_point_is_zero(self):
        assert haversine_km(51.4719, -0.1162, 51.4719, -0.1162) == 0

    def test_haversine_london_to_brighton(self):
        # Roughly 75 km as the crow flies
        distance = haversine_km(51.5074, -0.1278, 50.8225, -0.1372)
        assert 74 < distance < 78


class TestDistanceCalculator:

    @pytest.fixture
    def geocoder(self):
        return Mock(spec=GeocodingClient)

    def test_precomputed_distance_skips_geocoding(self, config, geocoder):
        calc = DistanceCalculator(config, geocoder)

        quote = calc.quote(postcode="SW9 6BU", distance_km=96.56)

        geocoder.lookup.assert_not_called()
        assert quote.distance_miles == 60.0
        assert quote.within_free_radius is False
        assert quote.surcharge_cents == 2500

    def test_nearby_postcode_is_within_free_radius(self, config, geocoder):
        geocoder.lookup.return_value = Coordinates(51.4613, -0.1156)
        calc = DistanceCalculator(config, geocoder)

        quote = calc.quote(postcode="SW2 1AA")

        assert quote.within_free_radius is True
        assert quote.surcharge_cents == 0
        assert quote.distance_km < 2

    def test_malformed_postcode_rejected_before_lookup(self, config, geocoder):
        calc = DistanceCalculator(config, geocoder)

        with pytest.raises(InvalidPostcode):
            calc.quote(postcode="NOT A POSTCODE")
        geocoder.lookup.assert_not_called()

    def test_unknown_postcode_is_distinct_from_far_away(self, config, geocoder):
        geocoder.lookup.return_value = None
        calc = DistanceCalculator(config, geocoder)

        with pytest.raises(PostcodeNotFound):
            calc.quote(postcode="ZZ9 9ZZ")

    def test_geocoder_timeout_surfaces_as_booking_timeout(self, config, geocoder):
        geocoder.lookup.side_effect = GeocodingTimeout("slow")
        calc = DistanceCalculator(config, geocoder)

        with pytest.raises(BookingTimeout):
            calc.quote(postcode="SW9 6BU")

    def test_geocoder_failure_surfaces_as_pricing_error(self, config, geocoder):
        geocoder.lookup.side_effect = GeocodingError("HTTP 500")
        calc = DistanceCalculator(config, geocoder)

        with pytest.raises(PricingError):
            calc.quote(postcode="SW9 6BU")

    def test_no_geocoder_and_no_distance(self, config):
        calc = DistanceCalculator(config)

        with pytest.raises(PricingError, match="No geocoder"):
            calc.quote(postcode="SW9 6BU")
