"""
Safari Tour Pricing Engine
==========================
Core calculation logic with:
  - Adult / child / infant pricing
  - Vehicle upgrades priced against the tour's default vehicle
  - Per-night accommodation choices
  - Per-person / per-group / flat add-ons
  - Service fee, group + early-bird + promo discounts
  - Deposit / balance split

This is the SINGLE SOURCE OF TRUTH for checkout price computation.
The HTTP layer and the browser MUST call this engine and never compute
prices themselves.

Every line item is rounded to a whole currency unit when it is produced.
Selections that point at pool entries which no longer exist price at zero;
an in-progress selection is often briefly inconsistent and the checkout must
always be able to show a number.
"""

from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple
import logging

from models import (
    AccommodationLine,
    AddonLine,
    AddonPriceType,
    DiscountType,
    PaymentPlan,
    PricingBreakdown,
    PricingConfig,
    PromoCode,
    TourSummary,
    VehicleLine,
)

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


# =====================================================
# EXCEPTIONS
# =====================================================

class PricingEngineError(Exception):
    """Base exception for pricing engine errors"""
    pass

class InvalidConfigurationError(PricingEngineError):
    pass


def _dec(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value))


def _whole(value: Decimal) -> Decimal:
    return value.quantize(Decimal('1'), ROUND_HALF_UP)


def _percent_of(amount: Decimal, percent) -> Decimal:
    return _whole(amount * _dec(percent) / 100)


# =====================================================
# VEHICLE COST CALCULATOR
# =====================================================

class VehicleCostCalculator:
    """
    The default vehicle is included in the base price. Any other vehicle is
    charged the per-day difference to the default, for every tour day and
    unit. A cheaper vehicle therefore yields a negative line; that is kept
    as-is. Without a default vehicle the full per-day price is charged.
    """

    @staticmethod
    def calculate(registry, selected_vehicles, duration_days: int) -> Tuple[Decimal, List[VehicleLine]]:
        default_vehicle = registry.default_vehicle()
        lines: List[VehicleLine] = []
        total = ZERO

        for item in selected_vehicles:
            vehicle = registry.get_vehicle(item.vehicle_id)
            if vehicle is None:
                logger.warning(f"Vehicle {item.vehicle_id} not in pool, priced at 0")
                continue

            if default_vehicle is not None:
                per_day = _dec(vehicle.price_per_day) - _dec(default_vehicle.price_per_day)
            else:
                per_day = _dec(vehicle.price_per_day)

            price = _whole(per_day * duration_days * item.quantity)
            lines.append(VehicleLine(
                vehicle_id=vehicle.id,
                name=vehicle.name,
                quantity=item.quantity,
                price=int(price),
            ))
            total += price

        return total, lines


# =====================================================
# ACCOMMODATION COST CALCULATOR
# =====================================================

class AccommodationCostCalculator:

    @staticmethod
    def calculate(registry, accommodations: Dict[int, str]) -> Tuple[Decimal, List[AccommodationLine]]:
        lines: List[AccommodationLine] = []
        total = ZERO

        for day_number in sorted(accommodations):
            acc_id = accommodations[day_number]
            accommodation = registry.get_accommodation(acc_id)
            if accommodation is None:
                logger.warning(f"Accommodation {acc_id} for day {day_number} not in pool, priced at 0")
                continue

            price = _whole(_dec(accommodation.price_per_night))
            default_acc = registry.default_accommodation_for_day(day_number)
            is_upgrade = (
                default_acc is not None
                and accommodation.price_per_night > default_acc.price_per_night
            )
            lines.append(AccommodationLine(
                day_number=day_number,
                accommodation_id=accommodation.id,
                name=accommodation.name,
                price=int(price),
                is_upgrade=is_upgrade,
            ))
            total += price

        return total, lines


# =====================================================
# ADD-ON COST CALCULATOR
# =====================================================

class AddonCostCalculator:

    @staticmethod
    def calculate(registry, selected_addons) -> Tuple[Decimal, List[AddonLine]]:
        lines: List[AddonLine] = []
        total = ZERO

        for item in selected_addons:
            addon = registry.get_addon(item.addon_id)
            if addon is None:
                logger.warning(f"Add-on {item.addon_id} not in pool, priced at 0")
                continue

            unit_price = _dec(addon.price)
            if addon.price_type == AddonPriceType.PER_PERSON:
                price = _whole(unit_price * item.quantity)
            elif addon.price_type in (AddonPriceType.PER_GROUP, AddonPriceType.FLAT):
                price = _whole(unit_price)
            else:
                raise InvalidConfigurationError(f"Unhandled add-on price type: {addon.price_type}")

            lines.append(AddonLine(
                addon_id=addon.id,
                name=addon.name,
                price_type=addon.price_type,
                quantity=item.quantity,
                unit_price=int(_whole(unit_price)),
                price=int(price),
                day_number=item.day_number,
            ))
            total += price

        return total, lines


# =====================================================
# DISCOUNTS
# =====================================================

class DiscountCalculator:
    """Group, early-bird and promo discounts. All three stack."""

    @staticmethod
    def group_discount(subtotal: Decimal, guests: int, config: PricingConfig) -> Decimal:
        if config.group_discount_threshold is None or config.group_discount_percent is None:
            return ZERO
        if guests < config.group_discount_threshold:
            return ZERO
        return _percent_of(subtotal, config.group_discount_percent)

    @staticmethod
    def early_bird_discount(
        subtotal: Decimal,
        start_date: Optional[date],
        today: date,
        config: PricingConfig
    ) -> Decimal:
        if config.early_bird_days is None or config.early_bird_percent is None:
            return ZERO
        if start_date is None:
            return ZERO
        if isinstance(start_date, datetime):
            start_date = start_date.date()
        days_until_trip = (start_date - today).days
        if days_until_trip < config.early_bird_days:
            return ZERO
        return _percent_of(subtotal, config.early_bird_percent)

    @staticmethod
    def promo_discount(subtotal: Decimal, promo_code: Optional[PromoCode]) -> Decimal:
        if promo_code is None:
            return ZERO
        if promo_code.discount_type == DiscountType.PERCENTAGE:
            return _percent_of(subtotal, promo_code.discount_amount)
        return _whole(_dec(promo_code.discount_amount))


# =====================================================
# DEPOSIT
# =====================================================

class DepositCalculator:

    @staticmethod
    def calculate(total: Decimal, tour: TourSummary, config: PricingConfig) -> Decimal:
        if tour.deposit_enabled:
            percent = config.deposit_percent if config.deposit_percent is not None else tour.deposit_percentage
            deposit = _percent_of(total, percent)
        else:
            deposit = total

        if config.deposit_minimum is not None and deposit < _dec(config.deposit_minimum):
            deposit = min(_whole(_dec(config.deposit_minimum)), total)

        return deposit


# =====================================================
# MAIN ENTRY POINT
# =====================================================

def compute_pricing(
    registry,
    selection,
    config: Optional[PricingConfig] = None,
    today: Optional[date] = None
) -> PricingBreakdown:
    """
    Price a selection against a tour's pools.

    Args:
        registry: PoolRegistry for the tour
        selection: anything exposing adults, children, infants, start_date,
            accommodations (day -> id), addons, vehicles and promo_code
            (normally a SelectionState)
        config: pricing rules; defaults apply when None
        today: reference date for the early-bird rule (defaults to today)

    Returns:
        PricingBreakdown; identical inputs always give an identical result.
    """
    config = config or PricingConfig()
    today = today or date.today()
    tour = registry.tour

    adults = selection.adults
    children = selection.children
    infants = selection.infants
    base_price = _dec(tour.base_price)

    base_total = _whole(base_price * adults)

    if tour.child_price is not None:
        child_price_per_person = _dec(tour.child_price)
    else:
        child_price_per_person = _whole(base_price * (1 - _dec(config.child_discount_percent) / 100))
    child_total = _whole(child_price_per_person * children)

    infant_unit = config.infant_price or tour.infant_price or 0
    infant_total = _whole(_dec(infant_unit) * infants)

    vehicle_total, vehicle_lines = VehicleCostCalculator.calculate(
        registry, selection.vehicles, tour.duration_days
    )
    accommodation_total, accommodation_lines = AccommodationCostCalculator.calculate(
        registry, selection.accommodations
    )
    addons_total, addon_lines = AddonCostCalculator.calculate(registry, selection.addons)

    subtotal = (
        base_total + child_total + infant_total +
        vehicle_total + accommodation_total + addons_total
    )

    if config.service_fee_fixed is not None:
        service_fee = _whole(_dec(config.service_fee_fixed))
    else:
        service_fee = _percent_of(subtotal, config.service_fee_percent)

    group_discount = DiscountCalculator.group_discount(subtotal, adults + children, config)
    early_bird_discount = DiscountCalculator.early_bird_discount(
        subtotal, selection.start_date, today, config
    )
    promo_discount = DiscountCalculator.promo_discount(subtotal, selection.promo_code)
    discount = group_discount + early_bird_discount + promo_discount

    total = max(ZERO, subtotal + service_fee - discount)
    deposit_amount = DepositCalculator.calculate(total, tour, config)
    balance_amount = total - deposit_amount

    logger.info(
        f"Pricing computed for tour {tour.id}: subtotal={subtotal}, fee={service_fee}, "
        f"discount={discount}, total={total}, deposit={deposit_amount}"
    )

    return PricingBreakdown(
        base_total=int(base_total),
        child_total=int(child_total),
        infant_total=int(infant_total),
        vehicle_total=int(vehicle_total),
        accommodation_total=int(accommodation_total),
        addons_total=int(addons_total),
        subtotal=int(subtotal),
        service_fee=int(service_fee),
        group_discount=int(group_discount),
        early_bird_discount=int(early_bird_discount),
        promo_discount=int(promo_discount),
        discount=int(discount),
        total=int(total),
        deposit_amount=int(deposit_amount),
        balance_amount=int(balance_amount),
        accommodation_breakdown=accommodation_lines,
        addons_breakdown=addon_lines,
        vehicle_breakdown=vehicle_lines,
    )


def amount_due_now(pricing: PricingBreakdown, plan: PaymentPlan, tour: TourSummary) -> int:
    """What the traveler pays at checkout for the chosen payment plan."""
    if plan == PaymentPlan.PAY_LATER:
        return 0
    if plan == PaymentPlan.DEPOSIT and tour.deposit_enabled:
        return pricing.deposit_amount
    return pricing.total


def validate_pricing_payload(payload: Dict[str, Any]) -> None:
    """Reject request bodies the engine cannot be fed at all."""
    if not isinstance(payload, dict):
        raise InvalidConfigurationError("Request body must be a JSON object")
    if 'tour' not in payload:
        raise InvalidConfigurationError("Missing required field: tour")

    selection = payload.get('selection') or {}
    if not isinstance(selection, dict):
        raise InvalidConfigurationError("selection must be a JSON object")
    try:
        adults = int(selection.get('adults', 1))
        children = int(selection.get('children', 0))
        infants = int(selection.get('infants', 0))
    except (TypeError, ValueError):
        raise InvalidConfigurationError("Guest counts must be whole numbers")

    if adults < 1:
        raise InvalidConfigurationError("At least 1 adult required")
    if children < 0 or infants < 0:
        raise InvalidConfigurationError("Guest counts cannot be negative")
