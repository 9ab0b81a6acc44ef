"""
Vehicle Capacity Advisor
========================
Suggests a vehicle combination that seats the whole group at the lowest
daily price, and checks a traveler's current vehicle selection against the
group size.

Capacity shortfalls are advisory: they are reported, never raised.
"""

from decimal import Decimal
from typing import Dict, Iterable, List, Optional
import math
import logging

from models import CapacityCheck, VehicleOption, VehicleSelection

logger = logging.getLogger(__name__)


class VehicleCapacityAdvisor:

    @staticmethod
    def suggest_vehicles(
        vehicles: Iterable[VehicleOption],
        required_capacity: int
    ) -> List[VehicleSelection]:
        """
        Greedy cover of `required_capacity` seats.

        Full units of the largest vehicle are assigned while the remaining
        need exceeds its capacity, unless a single vehicle type already covers
        the remaining need at no more than one more large unit plus the
        cheapest cover of what would be left. The remainder is covered by
        whichever vehicle type does it cheapest (ties: a type already in use,
        then fewer units, then the larger vehicle).

        Returns [] when there are no vehicles or nobody to seat; callers treat
        that as "no vehicle constraint".
        """
        ordered = sorted(
            (v for v in vehicles if v.max_passengers > 0),
            key=lambda v: (-v.max_passengers, Decimal(str(v.price_per_day)))
        )
        if not ordered or required_capacity <= 0:
            return []

        def cover_cost(vehicle, need):
            return Decimal(str(vehicle.price_per_day)) * math.ceil(need / vehicle.max_passengers)

        def cheapest_cover(need):
            return min(cover_cost(v, need) for v in ordered)

        largest = ordered[0]
        counts: Dict[str, int] = {}
        remaining = required_capacity

        while remaining > largest.max_passengers:
            one_more = cover_cost(largest, largest.max_passengers)
            if cheapest_cover(remaining) <= one_more + cheapest_cover(remaining - largest.max_passengers):
                break
            counts[largest.id] = counts.get(largest.id, 0) + 1
            remaining -= largest.max_passengers

        def remainder_key(indexed):
            idx, vehicle = indexed
            units = math.ceil(remaining / vehicle.max_passengers)
            return (cover_cost(vehicle, remaining), 0 if vehicle.id in counts else 1, units, idx)

        _, best = min(enumerate(ordered), key=remainder_key)
        counts[best.id] = counts.get(best.id, 0) + math.ceil(remaining / best.max_passengers)

        suggestion = [
            VehicleSelection(vehicle_id=v.id, quantity=counts[v.id])
            for v in ordered if v.id in counts
        ]
        logger.info(
            f"Vehicle suggestion for {required_capacity} pax: "
            + ", ".join(f"{s.vehicle_id} x{s.quantity}" for s in suggestion)
        )
        return suggestion

    @staticmethod
    def current_capacity(
        selection: Iterable[VehicleSelection],
        vehicles: Iterable[VehicleOption]
    ) -> int:
        """Seats provided by a selection; unknown vehicle ids seat nobody."""
        index = {v.id: v for v in vehicles}
        total = 0
        for item in selection:
            vehicle = index.get(item.vehicle_id)
            if vehicle is not None:
                total += vehicle.max_passengers * item.quantity
        return total

    @staticmethod
    def daily_cost(
        selection: Iterable[VehicleSelection],
        vehicles: Iterable[VehicleOption]
    ) -> Decimal:
        index = {v.id: v for v in vehicles}
        total = Decimal('0')
        for item in selection:
            vehicle = index.get(item.vehicle_id)
            if vehicle is not None:
                total += Decimal(str(vehicle.price_per_day)) * item.quantity
        return total

    @classmethod
    def check_capacity(
        cls,
        selection: Iterable[VehicleSelection],
        vehicles: Iterable[VehicleOption],
        group_size: int,
        suggestion: Optional[List[VehicleSelection]] = None
    ) -> CapacityCheck:
        """Compare the current selection with the group size and the suggestion."""
        selection = list(selection)
        vehicles = list(vehicles)
        if suggestion is None:
            suggestion = cls.suggest_vehicles(vehicles, group_size)

        capacity = cls.current_capacity(selection, vehicles)
        shortfall = max(0, group_size - capacity)
        # no vehicles on the tour means no constraint
        is_sufficient = shortfall == 0 or not vehicles

        if not is_sufficient:
            logger.warning(
                f"Vehicle capacity shortfall: group of {group_size}, "
                f"selected vehicles seat {capacity}"
            )

        current = {s.vehicle_id: s.quantity for s in selection}
        suggested = {s.vehicle_id: s.quantity for s in suggestion}

        return CapacityCheck(
            group_size=group_size,
            current_capacity=capacity,
            shortfall=shortfall if vehicles else 0,
            is_sufficient=is_sufficient,
            suggested=suggestion,
            suggested_daily_cost=float(cls.daily_cost(suggestion, vehicles)),
            current_daily_cost=float(cls.daily_cost(selection, vehicles)),
            matches_suggestion=current == suggested,
        )
