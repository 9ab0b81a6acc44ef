"""
Pool Registry
=============
Read-only catalog for one tour: accommodation, add-on and vehicle pools plus
the day-by-day itinerary that references them by id.

Loaded once per checkout session from the tour repository. Authoring edits a
TourDraft copy (see consistency.py), never the registry.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

from models import (
    AccommodationOption,
    AddonOption,
    ItineraryDay,
    TourSummary,
    VehicleOption,
)


class PoolRegistry:

    def __init__(
        self,
        tour: TourSummary,
        accommodations: Iterable[AccommodationOption] = (),
        addons: Iterable[AddonOption] = (),
        vehicles: Iterable[VehicleOption] = (),
        itinerary: Iterable[ItineraryDay] = (),
    ):
        self._tour = tour
        self._accommodations: Tuple[AccommodationOption, ...] = tuple(accommodations)
        self._addons: Tuple[AddonOption, ...] = tuple(addons)
        self._vehicles: Tuple[VehicleOption, ...] = tuple(vehicles)
        self._itinerary: Tuple[ItineraryDay, ...] = tuple(
            sorted(itinerary, key=lambda d: d.day_number)
        )

        self._accommodation_index = {a.id: a for a in self._accommodations}
        self._addon_index = {a.id: a for a in self._addons}
        self._vehicle_index = {v.id: v for v in self._vehicles}
        self._day_index = {d.day_number: d for d in self._itinerary}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> 'PoolRegistry':
        """Build from the camelCase JSON shape the tour service returns."""
        return cls(
            tour=TourSummary.model_validate(payload['tour']),
            accommodations=[AccommodationOption.model_validate(a) for a in payload.get('accommodations') or []],
            addons=[AddonOption.model_validate(a) for a in payload.get('addons') or []],
            vehicles=[VehicleOption.model_validate(v) for v in payload.get('vehicles') or []],
            itinerary=[ItineraryDay.model_validate(d) for d in payload.get('itinerary') or []],
        )

    # -------------------------------------------------
    # COLLECTIONS
    # -------------------------------------------------

    @property
    def tour(self) -> TourSummary:
        return self._tour

    @property
    def accommodations(self) -> Tuple[AccommodationOption, ...]:
        return self._accommodations

    @property
    def addons(self) -> Tuple[AddonOption, ...]:
        return self._addons

    @property
    def vehicles(self) -> Tuple[VehicleOption, ...]:
        return self._vehicles

    @property
    def itinerary(self) -> Tuple[ItineraryDay, ...]:
        return self._itinerary

    # -------------------------------------------------
    # LOOKUPS (None when the id does not resolve)
    # -------------------------------------------------

    def get_accommodation(self, accommodation_id: Optional[str]) -> Optional[AccommodationOption]:
        return self._accommodation_index.get(accommodation_id)

    def get_addon(self, addon_id: Optional[str]) -> Optional[AddonOption]:
        return self._addon_index.get(addon_id)

    def get_vehicle(self, vehicle_id: Optional[str]) -> Optional[VehicleOption]:
        return self._vehicle_index.get(vehicle_id)

    def get_day(self, day_number: int) -> Optional[ItineraryDay]:
        return self._day_index.get(day_number)

    def default_vehicle(self) -> Optional[VehicleOption]:
        return next((v for v in self._vehicles if v.is_default), None)

    def default_accommodation_for_day(self, day_number: int) -> Optional[AccommodationOption]:
        day = self.get_day(day_number)
        if day is None or not day.default_accommodation_id:
            return None
        return self.get_accommodation(day.default_accommodation_id)

    # -------------------------------------------------
    # PER-DAY VIEWS
    # -------------------------------------------------

    def accommodations_for_day(self, day_number: int) -> List[AccommodationOption]:
        """
        Accommodations a traveler may pick for this night.
        An empty available list means every accommodation in the pool.
        """
        day = self.get_day(day_number)
        if day is None or not day.available_accommodation_ids:
            return list(self._accommodations)
        return [
            self._accommodation_index[acc_id]
            for acc_id in day.available_accommodation_ids
            if acc_id in self._accommodation_index
        ]

    def addons_for_day(self, day_number: int) -> List[AddonOption]:
        day = self.get_day(day_number)
        if day is None:
            return []
        result = []
        for addon_id in day.available_addon_ids:
            addon = self._addon_index.get(addon_id)
            if addon is not None and addon.offered_on(day_number):
                result.append(addon)
        return result

    def overnight_day_numbers(self) -> List[int]:
        """Days that end with a night's stay: every day before the last."""
        return [
            d.day_number for d in self._itinerary
            if d.day_number < self._tour.duration_days
        ]

    def to_payload(self) -> Dict[str, Any]:
        return {
            'tour': self._tour.to_wire(),
            'accommodations': [a.to_wire() for a in self._accommodations],
            'addons': [a.to_wire() for a in self._addons],
            'vehicles': [v.to_wire() for v in self._vehicles],
            'itinerary': [d.to_wire() for d in self._itinerary],
        }
