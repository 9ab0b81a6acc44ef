from datetime import date

from conftest import TODAY, make_registry, make_tour
from models import (
    CheckoutParams,
    DiscountType,
    PaymentPlan,
    PromoCode,
    TravelerType,
    VehicleSelection,
)
from selection_state import SelectionState


def params(**overrides):
    data = dict(tour_id='tour-1', start_date=date(2026, 6, 1), adults=2, children=1, infants=0)
    data.update(overrides)
    return CheckoutParams(**data)


def test_initialize_defaults_each_overnight_day(registry):
    state = SelectionState.initialize(registry, params(), today=TODAY)

    # 3-day tour: nights on day 1 and 2, day 3 has no default
    assert state.accommodations == {1: 'A', 2: 'A'}
    assert state.pricing.accommodation_total == 240


def test_initialize_seeds_suggested_vehicles(registry):
    state = SelectionState.initialize(registry, params(adults=8, children=1), today=TODAY)
    assert [(v.vehicle_id, v.quantity) for v in state.vehicles] == [('V1', 2)]


def test_initialize_honours_preselections(registry):
    state = SelectionState.initialize(
        registry,
        params(preselected_accommodations={2: 'B'}, preselected_addons=['balloon'], preselected_vehicle='V2'),
        today=TODAY,
    )

    assert state.accommodations == {2: 'B'}
    assert [(a.addon_id, a.quantity) for a in state.addons] == [('balloon', 3)]
    # vehicles always follow the capacity suggestion
    assert [(v.vehicle_id, v.quantity) for v in state.vehicles] == [('V1', 1)]


def test_preselected_vehicle_does_not_undersize_large_group(registry):
    state = SelectionState.initialize(
        registry, params(adults=9, children=0, preselected_vehicle='V2'), today=TODAY
    )

    assert [(v.vehicle_id, v.quantity) for v in state.vehicles] == [('V1', 2)]
    assert state.capacity_check().is_sufficient is True


def test_unknown_preselected_vehicle_is_ignored_without_vehicles():
    registry = make_registry(vehicles=[])
    state = SelectionState.initialize(registry, params(preselected_vehicle='V2'), today=TODAY)
    assert state.vehicles == []


def test_initialize_creates_one_traveler_per_guest(registry):
    state = SelectionState.initialize(registry, params(adults=2, children=1, infants=1), today=TODAY)
    assert [t.type for t in state.travelers] == [
        TravelerType.ADULT, TravelerType.ADULT, TravelerType.CHILD, TravelerType.INFANT,
    ]


def test_counts_clamped_to_max_group_size():
    state = SelectionState(make_registry(tour=make_tour(max_group_size=6)), adults=2, children=2)

    state.set_adults(10)
    assert state.adults == 4
    state.set_children(5)
    assert state.children == 2
    state.set_adults(0)
    assert state.adults == 1


def test_counts_unbounded_without_max_group_size(registry):
    state = SelectionState(registry)
    state.set_adults(40)
    assert state.adults == 40


def test_every_mutation_reprices(registry):
    state = SelectionState(registry, adults=2, today=TODAY)
    assert state.pricing.total == 2100

    state.set_adults(3)
    assert state.pricing.base_total == 3000

    state.set_accommodation_for_day(1, 'C')
    assert state.pricing.accommodation_total == 60

    state.set_vehicle('V2')
    assert state.pricing.vehicle_total == 150

    state.apply_promo_code(PromoCode(id='p', code='TEN', discount_amount=10, discount_type=DiscountType.PERCENTAGE))
    assert state.pricing.promo_discount > 0
    state.remove_promo_code()
    assert state.pricing.promo_discount == 0


def test_toggle_addon_defaults_quantity_to_group_size(registry):
    state = SelectionState(registry, adults=2, children=2, infants=1)
    state.toggle_addon('balloon', day_number=2)

    assert state.addons[0].quantity == 4
    assert state.addons[0].day_number == 2
    assert state.pricing.addons_total == 1800

    state.toggle_addon('balloon')
    assert state.addons == []
    assert state.pricing.addons_total == 0


def test_clearing_vehicle_empties_selection(registry):
    state = SelectionState(registry)
    state.set_vehicles([VehicleSelection(vehicle_id='V1', quantity=1)])
    state.set_vehicle(None)
    assert state.vehicles == []


def test_end_date_uses_nights(registry):
    state = SelectionState(registry, start_date=date(2026, 6, 1))
    assert state.end_date == date(2026, 6, 3)


def test_travelers_keep_entered_details_on_resize(registry):
    state = SelectionState(registry, adults=2)
    state.travelers[0] = state.travelers[0].model_copy(update={'first_name': 'Amina'})
    state.set_adults(3)
    state.set_adults(1)

    assert len(state.travelers) == 1
    assert state.travelers[0].first_name == 'Amina'


def test_amount_due_now_follows_plan():
    registry = make_registry(tour=make_tour(deposit_enabled=True, deposit_percentage=30))
    state = SelectionState(registry, adults=2)

    assert state.amount_due_now() == state.pricing.total
    state.set_payment_plan(PaymentPlan.DEPOSIT)
    assert state.amount_due_now() == state.pricing.deposit_amount
    state.set_payment_plan('PAY_LATER')
    assert state.amount_due_now() == 0


def booking_row(**overrides):
    row = {
        'id': 'bk-1',
        'bookingReference': 'SFABC123WXYZ',
        'tourId': 'tour-1',
        'startDate': '2026-06-01',
        'adults': 2,
        'children': 1,
        'infants': 0,
        'contactName': 'Amina Otieno Wanjiru',
        'contactEmail': 'amina@example.com',
        'contactPhone': '+254700000000',
        'baseAmount': 2000.0,
        'childAmount': 700.0,
        'infantAmount': 0,
        'vehicleAmount': 0,
        'accommodationAmount': 240.0,
        'activitiesAmount': 0,
        'subtotalAmount': 2940.0,
        'taxAmount': 147.0,
        'discountAmount': 0,
        'totalAmount': 3087.0,
        'depositAmount': 926.0,
        'balanceAmount': 2161.0,
        'paymentType': 'DEPOSIT',
        'tour': {'id': 'tour-1', 'title': 'Maasai Mara Explorer', 'durationDays': 3, 'durationNights': 2},
    }
    row.update(overrides)
    return row


def test_from_booking_uses_persisted_snapshot():
    state = SelectionState.from_booking(booking_row())

    assert state.locked is True
    assert state.pricing.total == 3087
    assert state.pricing.service_fee == 147
    assert state.payment_plan == PaymentPlan.DEPOSIT
    assert state.amount_due_now() == 926
    assert state.existing_booking_id == 'bk-1'
    assert state.travelers[0].first_name == 'Amina'
    assert state.travelers[0].last_name == 'Otieno Wanjiru'


def test_locked_state_ignores_selection_edits():
    state = SelectionState.from_booking(booking_row())
    state.set_adults(5)
    state.set_children(3)
    state.toggle_addon('anything')
    state.set_vehicles([VehicleSelection(vehicle_id='V1', quantity=2)])

    assert (state.adults, state.children) == (2, 1)
    assert len(state.travelers) == 3
    assert state.addons == []
    assert state.vehicles == []
    assert state.pricing.total == 3087
    assert state.to_wire()['adults'] == 2


def test_locked_state_still_takes_payment_details():
    state = SelectionState.from_booking(booking_row())
    state.set_payment_method('CARD')
    assert state.payment_method.value == 'CARD'


def test_from_booking_without_deposit_falls_back_to_total():
    state = SelectionState.from_booking(booking_row(depositAmount=None, balanceAmount=0, paymentType='FULL'))
    assert state.pricing.deposit_amount == 3087
    assert state.amount_due_now() == 3087


def test_to_wire_is_camel_case(registry):
    wire = SelectionState.initialize(registry, params(), today=TODAY).to_wire()

    assert wire['tourId'] == 'tour-1'
    assert wire['accommodations'] == {'1': 'A', '2': 'A'}
    assert wire['pricing']['accommodationTotal'] == 240
    assert wire['amountDueNow'] == wire['pricing']['total']
    assert wire['capacity']['isSufficient'] is True
