"""
Consistency Maintainer
======================
Edits to a tour's pools and itinerary that keep the references between them
valid:

  - a day's default accommodation is always one of its available ones
  - removing a pool entry unlinks it from every day
  - day numbers stay 1..n after a day is deleted
  - at most one vehicle is the default, and a non-empty pool keeps one

Unknown ids are no-ops. Nothing here raises; invalid states are made
unreachable instead of detected afterwards.
"""

from typing import Any, Iterable, List, Optional
import logging
import re
import uuid

from models import (
    AccommodationOption,
    AddonOption,
    ItineraryDay,
    Meal,
    PricingConfig,
    TourSummary,
    VehicleOption,
)
from pool_registry import PoolRegistry

logger = logging.getLogger(__name__)

AUTO_DAY_TITLE = re.compile(r'^Day \d+$')


# =====================================================
# DAY-LEVEL OPERATIONS
# =====================================================

def toggle_day_accommodation(day: ItineraryDay, acc_id: str) -> ItineraryDay:
    """Flip `acc_id` in the day's available list, repairing the default."""
    if acc_id in day.available_accommodation_ids:
        day.available_accommodation_ids = [a for a in day.available_accommodation_ids if a != acc_id]
        if day.default_accommodation_id == acc_id:
            day.default_accommodation_id = (
                day.available_accommodation_ids[0] if day.available_accommodation_ids else None
            )
    else:
        day.available_accommodation_ids = day.available_accommodation_ids + [acc_id]
        if day.default_accommodation_id is None:
            day.default_accommodation_id = acc_id
    return day


def set_default_accommodation(
    day: ItineraryDay,
    acc_id: str,
    accommodations: Iterable[AccommodationOption] = ()
) -> ItineraryDay:
    """Make `acc_id` the day's default. It must already be available."""
    if acc_id not in day.available_accommodation_ids:
        return day
    day.default_accommodation_id = acc_id
    accommodation = next((a for a in accommodations if a.id == acc_id), None)
    if accommodation is not None:
        day.overnight = accommodation.name
    return day


def toggle_day_addon(day: ItineraryDay, addon_id: str) -> ItineraryDay:
    if addon_id in day.available_addon_ids:
        day.available_addon_ids = [a for a in day.available_addon_ids if a != addon_id]
    else:
        day.available_addon_ids = day.available_addon_ids + [addon_id]
    return day


def _unlink_accommodation(day: ItineraryDay, acc_id: str) -> None:
    if acc_id in day.available_accommodation_ids:
        toggle_day_accommodation(day, acc_id)
    elif day.default_accommodation_id == acc_id:
        day.default_accommodation_id = (
            day.available_accommodation_ids[0] if day.available_accommodation_ids else None
        )


def _updated(model, changes: dict):
    """Validated copy of a pydantic model with snake_case field changes."""
    data = model.model_dump()
    data.update(changes)
    return type(model).model_validate(data)


# =====================================================
# TOUR DRAFT
# =====================================================

class TourDraft:
    """
    Mutable copy of a tour's catalog used by the authoring wizard.
    Single writer; saved back through the tour repository.
    """

    def __init__(
        self,
        tour: TourSummary,
        accommodations: Iterable[AccommodationOption] = (),
        addons: Iterable[AddonOption] = (),
        vehicles: Iterable[VehicleOption] = (),
        itinerary: Iterable[ItineraryDay] = (),
        pricing_config: Optional[PricingConfig] = None,
    ):
        self.tour = tour
        self.accommodations: List[AccommodationOption] = list(accommodations)
        self.addons: List[AddonOption] = list(addons)
        self.vehicles: List[VehicleOption] = list(vehicles)
        self.itinerary: List[ItineraryDay] = sorted(itinerary, key=lambda d: d.day_number)
        self.pricing_config = pricing_config or PricingConfig()

    @classmethod
    def from_registry(cls, registry: PoolRegistry, pricing_config: Optional[PricingConfig] = None) -> 'TourDraft':
        return cls(
            tour=registry.tour.model_copy(deep=True),
            accommodations=[a.model_copy(deep=True) for a in registry.accommodations],
            addons=[a.model_copy(deep=True) for a in registry.addons],
            vehicles=[v.model_copy(deep=True) for v in registry.vehicles],
            itinerary=[d.model_copy(deep=True) for d in registry.itinerary],
            pricing_config=pricing_config,
        )

    def to_registry(self) -> PoolRegistry:
        return PoolRegistry(
            self.tour,
            accommodations=[a.model_copy(deep=True) for a in self.accommodations],
            addons=[a.model_copy(deep=True) for a in self.addons],
            vehicles=[v.model_copy(deep=True) for v in self.vehicles],
            itinerary=[d.model_copy(deep=True) for d in self.itinerary],
        )

    def get_day(self, day_number: int) -> Optional[ItineraryDay]:
        return next((d for d in self.itinerary if d.day_number == day_number), None)

    # -------------------------------------------------
    # DAY REFERENCES
    # -------------------------------------------------

    def toggle_day_accommodation(self, day_number: int, acc_id: str) -> None:
        day = self.get_day(day_number)
        if day is not None:
            toggle_day_accommodation(day, acc_id)

    def set_default_accommodation(self, day_number: int, acc_id: str) -> None:
        day = self.get_day(day_number)
        if day is not None:
            set_default_accommodation(day, acc_id, self.accommodations)

    def toggle_day_addon(self, day_number: int, addon_id: str) -> None:
        day = self.get_day(day_number)
        if day is not None:
            toggle_day_addon(day, addon_id)

    # -------------------------------------------------
    # ACCOMMODATION POOL
    # -------------------------------------------------

    def add_accommodation(self, accommodation: AccommodationOption) -> AccommodationOption:
        if any(a.id == accommodation.id for a in self.accommodations):
            return accommodation
        self.accommodations.append(accommodation)
        return accommodation

    def update_accommodation(self, target_id: str, **changes: Any) -> None:
        for idx, acc in enumerate(self.accommodations):
            if acc.id == target_id:
                changes.pop('id', None)
                self.accommodations[idx] = _updated(acc, changes)
                return

    def remove_accommodation_from_pool(self, acc_id: str) -> None:
        before = len(self.accommodations)
        self.accommodations = [a for a in self.accommodations if a.id != acc_id]
        if len(self.accommodations) == before:
            return
        for day in self.itinerary:
            _unlink_accommodation(day, acc_id)
        logger.info(f"Accommodation {acc_id} removed from pool and unlinked from all days")

    # -------------------------------------------------
    # ADD-ON POOL
    # -------------------------------------------------

    def add_addon(self, addon: AddonOption) -> AddonOption:
        if any(a.id == addon.id for a in self.addons):
            return addon
        self.addons.append(addon)
        return addon

    def update_addon(self, target_id: str, **changes: Any) -> None:
        for idx, addon in enumerate(self.addons):
            if addon.id == target_id:
                changes.pop('id', None)
                self.addons[idx] = _updated(addon, changes)
                return

    def remove_addon_from_pool(self, addon_id: str) -> None:
        before = len(self.addons)
        self.addons = [a for a in self.addons if a.id != addon_id]
        if len(self.addons) == before:
            return
        for day in self.itinerary:
            if addon_id in day.available_addon_ids:
                day.available_addon_ids = [a for a in day.available_addon_ids if a != addon_id]
        logger.info(f"Add-on {addon_id} removed from pool and unlinked from all days")

    # -------------------------------------------------
    # VEHICLE POOL
    # -------------------------------------------------

    def add_vehicle(self, vehicle: VehicleOption) -> VehicleOption:
        if any(v.id == vehicle.id for v in self.vehicles):
            return vehicle
        self.vehicles.append(vehicle)
        if vehicle.is_default:
            self.set_default_vehicle(vehicle.id)
        return vehicle

    def update_vehicle(self, target_id: str, **changes: Any) -> None:
        for idx, vehicle in enumerate(self.vehicles):
            if vehicle.id == target_id:
                changes.pop('id', None)
                self.vehicles[idx] = _updated(vehicle, changes)
                if changes.get('is_default'):
                    self.set_default_vehicle(target_id)
                return

    def remove_vehicle(self, vehicle_id: str) -> None:
        removed = next((v for v in self.vehicles if v.id == vehicle_id), None)
        if removed is None:
            return
        self.vehicles = [v for v in self.vehicles if v.id != vehicle_id]
        if removed.is_default and self.vehicles:
            self.set_default_vehicle(self.vehicles[0].id)

    def set_default_vehicle(self, vehicle_id: str) -> None:
        if not any(v.id == vehicle_id for v in self.vehicles):
            return
        for vehicle in self.vehicles:
            vehicle.is_default = vehicle.id == vehicle_id

    # -------------------------------------------------
    # ITINERARY
    # -------------------------------------------------

    def add_day(self) -> ItineraryDay:
        """
        New days start with every pool accommodation available (authors
        narrow the list down afterwards) and the first one as default.
        """
        next_number = len(self.itinerary) + 1
        acc_ids = [a.id for a in self.accommodations]
        day = ItineraryDay(
            day_number=next_number,
            title=f"Day {next_number}",
            available_accommodation_ids=acc_ids,
            default_accommodation_id=acc_ids[0] if acc_ids else None,
        )
        self.itinerary.append(day)
        return day

    def remove_day(self, day_number: int) -> None:
        if self.get_day(day_number) is None:
            return
        remaining = [d for d in self.itinerary if d.day_number != day_number]
        for idx, day in enumerate(remaining, start=1):
            if AUTO_DAY_TITLE.match(day.title or ''):
                day.title = f"Day {idx}"
            day.day_number = idx
        self.itinerary = remaining

    def update_day(self, target_day: int, **changes: Any) -> None:
        # references and numbering go through the dedicated operations
        for protected in ('day_number', 'available_accommodation_ids',
                          'default_accommodation_id', 'available_addon_ids'):
            changes.pop(protected, None)
        for idx, day in enumerate(self.itinerary):
            if day.day_number == target_day:
                self.itinerary[idx] = _updated(day, changes)
                return

    def toggle_meal(self, day_number: int, meal: str) -> None:
        day = self.get_day(day_number)
        if day is None or meal not in {m.value for m in Meal}:
            return
        meal = Meal(meal)
        if meal in day.meals:
            day.meals = [m for m in day.meals if m != meal]
        else:
            day.meals = day.meals + [meal]

    def add_activity(self, day_number: int, activity: str) -> None:
        day = self.get_day(day_number)
        if day is None or not activity or not activity.strip():
            return
        day.activities = day.activities + [activity.strip()]

    def remove_activity(self, day_number: int, index: int) -> None:
        day = self.get_day(day_number)
        if day is None or not 0 <= index < len(day.activities):
            return
        day.activities = [a for i, a in enumerate(day.activities) if i != index]

    def to_payload(self) -> dict:
        payload = self.to_registry().to_payload()
        payload['pricingConfig'] = self.pricing_config.to_wire()
        return payload


def new_pool_id() -> str:
    return str(uuid.uuid4())


# =====================================================
# SELECTION HEALING
# =====================================================

def prune_selection(state, registry: PoolRegistry) -> List[str]:
    """
    Drop selections the registry no longer backs: accommodations that are not
    bookable for their night, unknown add-ons and unknown vehicles.
    Returns a description of every dropped entry.
    """
    dropped: List[str] = []

    for day_number, acc_id in list(state.accommodations.items()):
        bookable = {a.id for a in registry.accommodations_for_day(day_number)}
        if registry.get_day(day_number) is None or acc_id not in bookable:
            del state.accommodations[day_number]
            dropped.append(f"accommodation {acc_id} (day {day_number})")

    kept_addons = []
    for item in state.addons:
        if registry.get_addon(item.addon_id) is None:
            dropped.append(f"add-on {item.addon_id}")
        else:
            kept_addons.append(item)
    state.addons = kept_addons

    kept_vehicles = []
    for item in state.vehicles:
        if registry.get_vehicle(item.vehicle_id) is None:
            dropped.append(f"vehicle {item.vehicle_id}")
        else:
            kept_vehicles.append(item)
    state.vehicles = kept_vehicles

    if dropped:
        logger.info(f"Selection pruned after pool change: {', '.join(dropped)}")
    return dropped
