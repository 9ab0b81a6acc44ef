from datetime import date

import pytest

from models import (
    AccommodationOption,
    AccommodationTier,
    AddonOption,
    AddonPriceType,
    ItineraryDay,
    PricingConfig,
    TourSummary,
    VehicleOption,
)
from pool_registry import PoolRegistry

TODAY = date(2026, 1, 10)


def make_tour(**overrides):
    data = dict(
        id='tour-1',
        title='Maasai Mara Explorer',
        slug='maasai-mara-explorer',
        destination='Maasai Mara',
        country='Kenya',
        duration_days=3,
        duration_nights=2,
        base_price=1000,
        agent_id='agent-1',
    )
    data.update(overrides)
    return TourSummary(**data)


def make_vehicles():
    return [
        VehicleOption(id='V1', name='Land Cruiser', type='LAND_CRUISER',
                      max_passengers=7, price_per_day=100, is_default=True),
        VehicleOption(id='V2', name='Safari Van', type='SAFARI_VAN',
                      max_passengers=4, price_per_day=150),
    ]


def make_accommodations():
    return [
        AccommodationOption(id='A', name='Mara Camp', tier=AccommodationTier.MID_RANGE, price_per_night=120),
        AccommodationOption(id='B', name='Mara Lodge', tier=AccommodationTier.LUXURY, price_per_night=300),
        AccommodationOption(id='C', name='Budget Tents', tier=AccommodationTier.BUDGET, price_per_night=60),
    ]


def make_addons():
    return [
        AddonOption(id='balloon', name='Hot Air Balloon', price=450,
                    price_type=AddonPriceType.PER_PERSON, day_available=[2]),
        AddonOption(id='bush-dinner', name='Bush Dinner', price=200,
                    price_type=AddonPriceType.PER_GROUP),
        AddonOption(id='photos', name='Photo Package', price=75,
                    price_type=AddonPriceType.FLAT),
    ]


def make_itinerary():
    return [
        ItineraryDay(day_number=1, title='Day 1', available_accommodation_ids=['A', 'C'],
                     default_accommodation_id='A', available_addon_ids=['bush-dinner']),
        ItineraryDay(day_number=2, title='Balloon Morning', available_accommodation_ids=['A', 'B'],
                     default_accommodation_id='A', available_addon_ids=['balloon', 'photos']),
        ItineraryDay(day_number=3, title='Day 3'),
    ]


def make_registry(tour=None, accommodations=None, addons=None, vehicles=None, itinerary=None):
    return PoolRegistry(
        tour or make_tour(),
        accommodations=make_accommodations() if accommodations is None else accommodations,
        addons=make_addons() if addons is None else addons,
        vehicles=make_vehicles() if vehicles is None else vehicles,
        itinerary=make_itinerary() if itinerary is None else itinerary,
    )


class Selection:
    """Plain selection record for feeding compute_pricing directly."""

    def __init__(self, adults=2, children=0, infants=0, start_date=None,
                 accommodations=None, addons=None, vehicles=None, promo_code=None):
        self.adults = adults
        self.children = children
        self.infants = infants
        self.start_date = start_date
        self.accommodations = accommodations or {}
        self.addons = addons or []
        self.vehicles = vehicles or []
        self.promo_code = promo_code


@pytest.fixture
def registry():
    return make_registry()


@pytest.fixture
def bare_registry():
    """Tour with no pools and no itinerary."""
    return make_registry(accommodations=[], addons=[], vehicles=[], itinerary=[])


@pytest.fixture
def config():
    return PricingConfig()


@pytest.fixture
def today():
    return TODAY
