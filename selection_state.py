"""
Selection State
===============
One traveler's in-progress checkout: guest counts, dates, per-night
accommodation, add-ons, vehicles, promo code and payment plan.

The state object owns the selection and is passed explicitly to the pricing
engine and the consistency helpers. Every mutation recomputes pricing before
returning, so `state.pricing` always reflects the latest selection.
"""

from datetime import date, datetime, timedelta
from typing import Dict, List, Optional
import logging

from models import (
    AddonSelection,
    CapacityCheck,
    CheckoutParams,
    ContactInfo,
    PaymentMethod,
    PaymentPlan,
    PricingBreakdown,
    PricingConfig,
    PromoCode,
    TourSummary,
    Traveler,
    TravelerType,
    VehicleSelection,
)
from pool_registry import PoolRegistry
from pricing_engine import amount_due_now, compute_pricing
from vehicle_advisor import VehicleCapacityAdvisor
import consistency

logger = logging.getLogger(__name__)


class SelectionState:

    def __init__(
        self,
        registry: PoolRegistry,
        config: Optional[PricingConfig] = None,
        adults: int = 2,
        children: int = 0,
        infants: int = 0,
        start_date: Optional[date] = None,
        today: Optional[date] = None,
    ):
        self.registry = registry
        self.config = config or PricingConfig()
        self.today = today

        self.adults = max(1, int(adults))
        self.children = max(0, int(children))
        self.infants = max(0, int(infants))
        self.start_date = start_date

        self.accommodations: Dict[int, str] = {}
        self.addons: List[AddonSelection] = []
        self.vehicles: List[VehicleSelection] = []
        self.promo_code: Optional[PromoCode] = None
        self.payment_plan = PaymentPlan.FULL
        self.payment_method: Optional[PaymentMethod] = None

        self.contact = ContactInfo()
        self.travelers: List[Traveler] = []
        self.accepted_terms = False

        self.session_id: Optional[str] = None
        self.expires_at: Optional[datetime] = None
        self.existing_booking_id: Optional[str] = None
        self.booking_reference: Optional[str] = None

        # locked states keep their priced snapshot and ignore selection edits
        self.locked = False
        self.pricing = PricingBreakdown()

        self._sync_travelers()
        self.recalculate()

    # -------------------------------------------------
    # CONSTRUCTION
    # -------------------------------------------------

    @classmethod
    def initialize(
        cls,
        registry: PoolRegistry,
        params: CheckoutParams,
        config: Optional[PricingConfig] = None,
        today: Optional[date] = None,
    ) -> 'SelectionState':
        """
        Fresh checkout for a tour: each overnight day gets its default
        accommodation, vehicles get the capacity suggestion for the group.
        """
        state = cls(
            registry,
            config=config,
            adults=params.adults,
            children=params.children,
            infants=params.infants,
            start_date=params.start_date,
            today=today,
        )
        state.set_adults(params.adults)
        state.set_children(params.children)

        if params.preselected_accommodations:
            state.accommodations = dict(params.preselected_accommodations)
        else:
            for day_number in registry.overnight_day_numbers():
                day = registry.get_day(day_number)
                if day.default_accommodation_id:
                    state.accommodations[day_number] = day.default_accommodation_id

        suggestion = VehicleCapacityAdvisor.suggest_vehicles(registry.vehicles, state.group_size)
        fallback = registry.get_vehicle(params.preselected_vehicle) or registry.default_vehicle()
        if suggestion:
            state.vehicles = suggestion
        elif fallback is not None:
            state.vehicles = [VehicleSelection(vehicle_id=fallback.id, quantity=1)]

        state.addons = [
            AddonSelection(addon_id=addon_id, quantity=state.group_size)
            for addon_id in params.preselected_addons or []
        ]

        state.recalculate()
        logger.info(
            f"Checkout initialized for tour {registry.tour.id}: "
            f"{state.adults} adults, {state.children} children, {state.infants} infants"
        )
        return state

    @classmethod
    def from_booking(cls, booking: Dict) -> 'SelectionState':
        """Read-only state for paying an existing booking."""
        tour_row = booking.get('tour') or {}
        adults = int(booking.get('adults') or 1)
        tour = TourSummary(
            id=tour_row.get('id', ''),
            title=tour_row.get('title', ''),
            slug=tour_row.get('slug', ''),
            destination=tour_row.get('destination', ''),
            country=tour_row.get('country', ''),
            duration_days=tour_row.get('durationDays') or 1,
            duration_nights=tour_row.get('durationNights') or 0,
            base_price=float(booking.get('baseAmount') or 0) / adults,
            deposit_enabled=booking.get('paymentType') == PaymentPlan.DEPOSIT.value,
        )
        start = booking.get('startDate')
        if isinstance(start, str):
            start = date.fromisoformat(start[:10])

        state = cls(
            PoolRegistry(tour),
            adults=adults,
            children=booking.get('children') or 0,
            infants=booking.get('infants') or 0,
            start_date=start,
        )
        state.contact = ContactInfo(
            name=booking.get('contactName') or '',
            email=booking.get('contactEmail') or '',
            phone=booking.get('contactPhone') or '',
            special_requests=booking.get('specialRequests') or '',
        )
        name_parts = state.contact.name.split(' ')
        if state.travelers and name_parts[0]:
            state.travelers[0] = state.travelers[0].model_copy(update={
                'first_name': name_parts[0],
                'last_name': ' '.join(name_parts[1:]),
            })

        state.payment_plan = PaymentPlan(booking.get('paymentType') or PaymentPlan.FULL.value)
        state.existing_booking_id = booking.get('id')
        state.booking_reference = booking.get('bookingReference')
        state.pricing = PricingBreakdown.from_booking(booking)
        state.locked = True
        return state

    # -------------------------------------------------
    # DERIVED
    # -------------------------------------------------

    @property
    def group_size(self) -> int:
        return self.adults + self.children

    @property
    def max_group_size(self) -> Optional[int]:
        return self.registry.tour.max_group_size

    @property
    def end_date(self) -> Optional[date]:
        if self.start_date is None:
            return None
        return self.start_date + timedelta(days=self.registry.tour.duration_nights)

    def capacity_check(self) -> CapacityCheck:
        return VehicleCapacityAdvisor.check_capacity(
            self.vehicles, self.registry.vehicles, self.group_size
        )

    def amount_due_now(self) -> int:
        return amount_due_now(self.pricing, self.payment_plan, self.registry.tour)

    def recalculate(self) -> PricingBreakdown:
        if not self.locked:
            self.pricing = compute_pricing(self.registry, self, self.config, today=self.today)
        return self.pricing

    # -------------------------------------------------
    # GUEST COUNTS
    # -------------------------------------------------

    def set_adults(self, n: int) -> None:
        if self.locked:
            return
        n = max(1, int(n))
        if self.max_group_size is not None:
            n = min(n, max(1, self.max_group_size - self.children))
        self.adults = n
        self._sync_travelers()
        self.recalculate()

    def set_children(self, n: int) -> None:
        if self.locked:
            return
        n = max(0, int(n))
        if self.max_group_size is not None:
            n = min(n, max(0, self.max_group_size - self.adults))
        self.children = n
        self._sync_travelers()
        self.recalculate()

    def set_infants(self, n: int) -> None:
        if self.locked:
            return
        self.infants = max(0, int(n))
        self._sync_travelers()
        self.recalculate()

    def set_start_date(self, start_date: Optional[date]) -> None:
        if self.locked:
            return
        self.start_date = start_date
        self.recalculate()

    # -------------------------------------------------
    # SELECTIONS
    # -------------------------------------------------

    def set_accommodation_for_day(self, day_number: int, accommodation_id: str) -> None:
        if self.locked:
            return
        self.accommodations[day_number] = accommodation_id
        self.recalculate()

    def toggle_addon(
        self,
        addon_id: str,
        quantity: Optional[int] = None,
        day_number: Optional[int] = None
    ) -> None:
        if self.locked:
            return
        existing = next((i for i, a in enumerate(self.addons) if a.addon_id == addon_id), None)
        if existing is not None:
            del self.addons[existing]
        else:
            self.addons.append(AddonSelection(
                addon_id=addon_id,
                quantity=quantity if quantity is not None else self.group_size,
                day_number=day_number,
            ))
        self.recalculate()

    def set_vehicle(self, vehicle_id: Optional[str]) -> None:
        if self.locked:
            return
        self.vehicles = [VehicleSelection(vehicle_id=vehicle_id, quantity=1)] if vehicle_id else []
        self.recalculate()

    def set_vehicles(self, vehicles: List[VehicleSelection]) -> None:
        if self.locked:
            return
        self.vehicles = [v for v in vehicles if v.quantity > 0]
        self.recalculate()

    def apply_promo_code(self, promo_code: PromoCode) -> None:
        if self.locked:
            return
        self.promo_code = promo_code
        self.recalculate()

    def remove_promo_code(self) -> None:
        if self.locked:
            return
        self.promo_code = None
        self.recalculate()

    def set_payment_plan(self, plan: PaymentPlan) -> None:
        self.payment_plan = PaymentPlan(plan)

    def set_payment_method(self, method: Optional[PaymentMethod]) -> None:
        self.payment_method = PaymentMethod(method) if method else None

    def set_contact(self, contact: ContactInfo) -> None:
        self.contact = contact

    def set_travelers(self, travelers: List[Traveler]) -> None:
        self.travelers = list(travelers)

    def set_accepted_terms(self, accepted: bool) -> None:
        self.accepted_terms = bool(accepted)

    def replace_registry(self, registry: PoolRegistry) -> None:
        """Swap in an edited catalog and drop selections it no longer backs."""
        if self.locked:
            return
        self.registry = registry
        consistency.prune_selection(self, registry)
        self.recalculate()

    # -------------------------------------------------
    # INTERNAL
    # -------------------------------------------------

    def _sync_travelers(self) -> None:
        """One traveler record per guest, keeping details already entered."""
        wanted = [
            (TravelerType.ADULT, self.adults),
            (TravelerType.CHILD, self.children),
            (TravelerType.INFANT, self.infants),
        ]
        synced: List[Traveler] = []
        for traveler_type, count in wanted:
            existing = [t for t in self.travelers if t.type == traveler_type]
            synced.extend(existing[:count])
            synced.extend(Traveler(type=traveler_type) for _ in range(count - len(existing)))
        self.travelers = synced

    def to_wire(self) -> Dict:
        return {
            'tourId': self.registry.tour.id,
            'sessionId': self.session_id,
            'expiresAt': self.expires_at.isoformat() if self.expires_at else None,
            'startDate': self.start_date.isoformat() if self.start_date else None,
            'endDate': self.end_date.isoformat() if self.end_date else None,
            'adults': self.adults,
            'children': self.children,
            'infants': self.infants,
            'accommodations': {str(k): v for k, v in sorted(self.accommodations.items())},
            'addons': [a.to_wire() for a in self.addons],
            'vehicles': [v.to_wire() for v in self.vehicles],
            'promoCode': self.promo_code.to_wire() if self.promo_code else None,
            'paymentType': self.payment_plan.value,
            'paymentMethod': self.payment_method.value if self.payment_method else None,
            'contact': self.contact.to_wire(),
            'travelers': [t.to_wire() for t in self.travelers],
            'pricing': self.pricing.to_wire(),
            'amountDueNow': self.amount_due_now(),
            'capacity': self.capacity_check().to_wire(),
            'existingBookingId': self.existing_booking_id,
            'bookingReference': self.booking_reference,
        }
