from datetime import timedelta

import pytest

from conftest import Selection, TODAY, make_registry, make_tour, make_vehicles
from models import (
    AddonSelection,
    DiscountType,
    PaymentPlan,
    PricingConfig,
    PromoCode,
    VehicleOption,
    VehicleSelection,
)
from pricing_engine import (
    InvalidConfigurationError,
    amount_due_now,
    compute_pricing,
    validate_pricing_payload,
)


def price(registry, selection, config=None):
    return compute_pricing(registry, selection, config or PricingConfig(), today=TODAY)


# =====================================================
# CORE SCENARIOS
# =====================================================

def test_adults_and_child_with_default_config(bare_registry):
    result = price(bare_registry, Selection(adults=2, children=1))

    assert result.base_total == 2000
    assert result.child_total == 700
    assert result.subtotal == 2700
    assert result.service_fee == 135
    assert result.discount == 0
    assert result.total == 2835


def test_percentage_promo_code(bare_registry):
    promo = PromoCode(id='p1', code='SAFARI10', discount_amount=10, discount_type=DiscountType.PERCENTAGE)
    result = price(bare_registry, Selection(adults=2, children=1, promo_code=promo))

    assert result.promo_discount == 270
    assert result.discount == 270
    assert result.total == 2565


def test_fixed_promo_code(bare_registry):
    promo = PromoCode(id='p2', code='FLAT150', discount_amount=150, discount_type=DiscountType.FIXED)
    result = price(bare_registry, Selection(adults=2, promo_code=promo))

    assert result.discount == 150
    assert result.total == 2000 + 100 - 150


def test_deposit_split():
    registry = make_registry(
        tour=make_tour(base_price=500, deposit_enabled=True, deposit_percentage=30),
        accommodations=[], addons=[], vehicles=[], itinerary=[],
    )
    config = PricingConfig(service_fee_percent=0)
    result = price(registry, Selection(adults=2), config)

    assert result.total == 1000
    assert result.deposit_amount == 300
    assert result.balance_amount == 700


def test_deposit_minimum_applies():
    registry = make_registry(
        tour=make_tour(base_price=500, deposit_enabled=True, deposit_percentage=30),
        accommodations=[], addons=[], vehicles=[], itinerary=[],
    )
    config = PricingConfig(service_fee_percent=0, deposit_minimum=500)
    result = price(registry, Selection(adults=2), config)

    assert result.deposit_amount == 500
    assert result.balance_amount == 500


def test_deposit_minimum_never_exceeds_total():
    registry = make_registry(
        tour=make_tour(base_price=100, deposit_enabled=True, deposit_percentage=30),
        accommodations=[], addons=[], vehicles=[], itinerary=[],
    )
    config = PricingConfig(service_fee_percent=0, deposit_minimum=500)
    result = price(registry, Selection(adults=1), config)

    assert result.total == 100
    assert result.deposit_amount == 100
    assert result.balance_amount == 0


def test_deposit_disabled_charges_everything_up_front(bare_registry):
    result = price(bare_registry, Selection(adults=2))
    assert result.deposit_amount == result.total
    assert result.balance_amount == 0


def test_config_deposit_percent_overrides_tour():
    registry = make_registry(
        tour=make_tour(base_price=500, deposit_enabled=True, deposit_percentage=30),
        accommodations=[], addons=[], vehicles=[], itinerary=[],
    )
    config = PricingConfig(service_fee_percent=0, deposit_percent=50)
    assert price(registry, Selection(adults=2), config).deposit_amount == 500


# =====================================================
# PROPERTIES
# =====================================================

def full_selection():
    return Selection(
        adults=2,
        children=1,
        infants=1,
        start_date=TODAY + timedelta(days=120),
        accommodations={1: 'C', 2: 'B'},
        addons=[
            AddonSelection(addon_id='balloon', quantity=3, day_number=2),
            AddonSelection(addon_id='bush-dinner', quantity=3),
            AddonSelection(addon_id='photos', quantity=1),
        ],
        vehicles=[VehicleSelection(vehicle_id='V2', quantity=1)],
        promo_code=PromoCode(id='p1', code='SAFARI10', discount_amount=10),
    )


def test_identical_inputs_give_identical_output(registry):
    config = PricingConfig(early_bird_days=60, early_bird_percent=5,
                           group_discount_threshold=3, group_discount_percent=5)
    first = price(registry, full_selection(), config)
    second = price(registry, full_selection(), config)

    assert first.to_wire() == second.to_wire()


def test_breakdown_lines_sum_to_totals(registry):
    result = price(registry, full_selection())

    assert sum(line.price for line in result.accommodation_breakdown) == result.accommodation_total
    assert sum(line.price for line in result.addons_breakdown) == result.addons_total
    assert sum(line.price for line in result.vehicle_breakdown) == result.vehicle_total


def test_discounts_add_up(registry):
    config = PricingConfig(early_bird_days=60, early_bird_percent=5,
                           group_discount_threshold=3, group_discount_percent=5)
    result = price(registry, full_selection(), config)

    assert result.discount == result.group_discount + result.early_bird_discount + result.promo_discount
    assert result.total == result.subtotal + result.service_fee - result.discount


def test_total_never_negative(bare_registry):
    promo = PromoCode(id='p3', code='FREE', discount_amount=100, discount_type=DiscountType.PERCENTAGE)
    config = PricingConfig(group_discount_threshold=1, group_discount_percent=50)
    result = price(bare_registry, Selection(adults=1, promo_code=promo), config)

    assert result.total == 0
    assert result.deposit_amount == 0
    assert result.balance_amount == 0


def test_oversized_fixed_promo_floors_at_zero(bare_registry):
    promo = PromoCode(id='p4', code='HUGE', discount_amount=99999, discount_type=DiscountType.FIXED)
    assert price(bare_registry, Selection(adults=1, promo_code=promo)).total == 0


# =====================================================
# LINE ITEMS
# =====================================================

def test_addon_price_types(registry):
    result = price(registry, full_selection())
    by_id = {line.addon_id: line for line in result.addons_breakdown}

    assert by_id['balloon'].price == 1350
    assert by_id['bush-dinner'].price == 200
    assert by_id['photos'].price == 75
    assert result.addons_total == 1625


def test_accommodation_upgrade_flag(registry):
    result = price(registry, Selection(accommodations={2: 'B', 1: 'C'}))
    lines = result.accommodation_breakdown

    assert [line.day_number for line in lines] == [1, 2]
    assert lines[0].is_upgrade is False
    assert lines[1].is_upgrade is True
    assert result.accommodation_total == 360


def test_vehicle_priced_as_difference_to_default(registry):
    result = price(registry, Selection(vehicles=[VehicleSelection(vehicle_id='V2', quantity=1)]))
    assert result.vehicle_total == (150 - 100) * 3


def test_default_vehicle_is_included(registry):
    result = price(registry, Selection(vehicles=[VehicleSelection(vehicle_id='V1', quantity=2)]))
    assert result.vehicle_total == 0


def test_cheaper_vehicle_yields_negative_line():
    vehicles = make_vehicles() + [
        VehicleOption(id='V3', name='Minibus', max_passengers=10, price_per_day=80),
    ]
    registry = make_registry(vehicles=vehicles)
    result = price(registry, Selection(vehicles=[VehicleSelection(vehicle_id='V3', quantity=1)]))

    assert result.vehicle_total == -60
    assert result.vehicle_breakdown[0].price == -60


def test_vehicle_without_default_charges_full_price():
    vehicles = [VehicleOption(id='V2', name='Safari Van', max_passengers=4, price_per_day=150)]
    registry = make_registry(vehicles=vehicles)
    result = price(registry, Selection(vehicles=[VehicleSelection(vehicle_id='V2', quantity=2)]))

    assert result.vehicle_total == 150 * 3 * 2


def test_unresolvable_references_price_at_zero(registry):
    selection = Selection(
        accommodations={1: 'ghost-lodge'},
        addons=[AddonSelection(addon_id='ghost-addon', quantity=2)],
        vehicles=[VehicleSelection(vehicle_id='ghost-van', quantity=1)],
    )
    result = price(registry, selection)

    assert result.accommodation_total == 0
    assert result.addons_total == 0
    assert result.vehicle_total == 0
    assert result.accommodation_breakdown == []
    assert result.addons_breakdown == []
    assert result.vehicle_breakdown == []
    assert result.total == 2100


def test_tour_child_price_overrides_discount():
    registry = make_registry(tour=make_tour(child_price=400))
    assert price(registry, Selection(adults=1, children=2)).child_total == 800


def test_child_price_rounds_per_person():
    registry = make_registry(tour=make_tour(base_price=999))
    # 999 * 0.7 = 699.3 -> 699 per child
    assert price(registry, Selection(adults=1, children=3)).child_total == 699 * 3


def test_infant_price_falls_back_to_tour():
    registry = make_registry(tour=make_tour(infant_price=50))
    assert price(registry, Selection(infants=2)).infant_total == 100
    assert price(registry, Selection(infants=2), PricingConfig(infant_price=20)).infant_total == 40


def test_infants_free_by_default(bare_registry):
    assert price(bare_registry, Selection(infants=3)).infant_total == 0


def test_fixed_service_fee(bare_registry):
    result = price(bare_registry, Selection(adults=2), PricingConfig(service_fee_fixed=50))
    assert result.service_fee == 50


# =====================================================
# DISCOUNT RULES
# =====================================================

def test_group_discount_from_threshold(bare_registry):
    config = PricingConfig(group_discount_threshold=4, group_discount_percent=10)

    assert price(bare_registry, Selection(adults=3), config).group_discount == 0
    result = price(bare_registry, Selection(adults=4), config)
    assert result.group_discount == 400
    assert result.total == 4000 + 200 - 400


def test_group_discount_counts_children_not_infants(bare_registry):
    config = PricingConfig(group_discount_threshold=4, group_discount_percent=10)
    assert price(bare_registry, Selection(adults=2, children=2), config).group_discount > 0
    assert price(bare_registry, Selection(adults=2, infants=2), config).group_discount == 0


def test_early_bird_discount(bare_registry):
    config = PricingConfig(early_bird_days=60, early_bird_percent=5)

    early = price(bare_registry, Selection(start_date=TODAY + timedelta(days=90)), config)
    late = price(bare_registry, Selection(start_date=TODAY + timedelta(days=30)), config)
    undated = price(bare_registry, Selection(), config)

    assert early.early_bird_discount == 100
    assert late.early_bird_discount == 0
    assert undated.early_bird_discount == 0


# =====================================================
# AMOUNT DUE / PAYLOAD CHECKS
# =====================================================

def test_amount_due_now_by_plan():
    registry = make_registry(
        tour=make_tour(base_price=500, deposit_enabled=True, deposit_percentage=30),
        accommodations=[], addons=[], vehicles=[], itinerary=[],
    )
    pricing = price(registry, Selection(adults=2), PricingConfig(service_fee_percent=0))

    assert amount_due_now(pricing, PaymentPlan.FULL, registry.tour) == 1000
    assert amount_due_now(pricing, PaymentPlan.DEPOSIT, registry.tour) == 300
    assert amount_due_now(pricing, PaymentPlan.PAY_LATER, registry.tour) == 0


def test_deposit_plan_on_tour_without_deposits_pays_total(bare_registry):
    pricing = price(bare_registry, Selection(adults=2))
    assert amount_due_now(pricing, PaymentPlan.DEPOSIT, bare_registry.tour) == pricing.total


@pytest.mark.parametrize('payload', [
    None,
    [],
    {'selection': {'adults': 2}},
    {'tour': {'id': 't'}, 'selection': {'adults': 0}},
    {'tour': {'id': 't'}, 'selection': {'adults': 2, 'children': -1}},
    {'tour': {'id': 't'}, 'selection': {'adults': 'many'}},
])
def test_invalid_pricing_payloads_rejected(payload):
    with pytest.raises(InvalidConfigurationError):
        validate_pricing_payload(payload)


def test_valid_pricing_payload_accepted():
    validate_pricing_payload({'tour': {'id': 't'}, 'selection': {'adults': 2, 'children': 1}})
