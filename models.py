"""
Safari Booking Data Model
=========================
Pydantic models for the tour catalog (pools + itinerary), the traveler's
selections and the pricing output.

Field names are snake_case in Python; every model also accepts and emits the
camelCase names used by the booking database and the browser client
(populate_by_name + by_alias dumps).
"""

from datetime import date
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict:
        return self.model_dump(mode='json', by_alias=True)


# =====================================================
# ENUMS
# =====================================================

class AccommodationTier(str, Enum):
    BUDGET = 'BUDGET'
    MID_RANGE = 'MID_RANGE'
    LUXURY = 'LUXURY'
    ULTRA_LUXURY = 'ULTRA_LUXURY'

    @property
    def rank(self) -> int:
        return list(AccommodationTier).index(self)


class AddonPriceType(str, Enum):
    PER_PERSON = 'PER_PERSON'
    PER_GROUP = 'PER_GROUP'
    FLAT = 'FLAT'

    @classmethod
    def _missing_(cls, value):
        # checkout tables spell it FLAT_RATE
        if value == 'FLAT_RATE':
            return cls.FLAT
        return None


class VehicleType(str, Enum):
    SAFARI_VAN = 'SAFARI_VAN'
    LAND_CRUISER = 'LAND_CRUISER'
    EXTENDED_CRUISER = 'EXTENDED_CRUISER'
    OVERLAND_TRUCK = 'OVERLAND_TRUCK'
    PRIVATE_VEHICLE = 'PRIVATE_VEHICLE'


class Meal(str, Enum):
    BREAKFAST = 'Breakfast'
    LUNCH = 'Lunch'
    DINNER = 'Dinner'


class PaymentPlan(str, Enum):
    FULL = 'FULL'
    DEPOSIT = 'DEPOSIT'
    PAY_LATER = 'PAY_LATER'


class PaymentMethod(str, Enum):
    MPESA = 'MPESA'
    AIRTEL_MONEY = 'AIRTEL_MONEY'
    CARD = 'CARD'


class DiscountType(str, Enum):
    PERCENTAGE = 'PERCENTAGE'
    FIXED = 'FIXED'

    @classmethod
    def _missing_(cls, value):
        if value == 'FIXED_AMOUNT':
            return cls.FIXED
        return None


class TravelerType(str, Enum):
    ADULT = 'adult'
    CHILD = 'child'
    INFANT = 'infant'


class CheckoutStep(str, Enum):
    SELECTIONS = 'selections'
    TRAVELERS = 'travelers'
    CONTACT = 'contact'
    PAYMENT = 'payment'


# =====================================================
# POOLS
# =====================================================

class AccommodationOption(WireModel):
    id: str
    name: str
    tier: AccommodationTier = AccommodationTier.MID_RANGE
    price_per_night: float = Field(0, ge=0, alias='pricePerNight')
    amenities: List[str] = Field(default_factory=list)
    rating: Optional[float] = Field(None, ge=1.0, le=5.0)
    location: Optional[str] = None
    description: Optional[str] = None
    room_type: Optional[str] = Field(None, alias='roomType')


class AddonOption(WireModel):
    id: str
    name: str
    price: float = Field(0, ge=0)
    price_type: AddonPriceType = Field(AddonPriceType.PER_PERSON, alias='priceType')
    child_price: Optional[float] = Field(None, ge=0, alias='childPrice')
    duration: Optional[str] = None
    max_capacity: Optional[int] = Field(None, ge=1, alias='maxCapacity')
    day_available: List[int] = Field(default_factory=list, alias='dayAvailable')
    is_popular: bool = Field(False, alias='isPopular')
    description: Optional[str] = None
    category: Optional[str] = None

    def offered_on(self, day_number: int) -> bool:
        return not self.day_available or day_number in self.day_available


class VehicleOption(WireModel):
    id: str
    type: VehicleType = VehicleType.SAFARI_VAN
    name: str
    max_passengers: int = Field(..., gt=0, alias='maxPassengers')
    price_per_day: float = Field(0, ge=0, alias='pricePerDay')
    features: List[str] = Field(default_factory=list)
    is_default: bool = Field(False, alias='isDefault')
    description: Optional[str] = None


class ItineraryDay(WireModel):
    day_number: int = Field(..., ge=1, alias='dayNumber')
    title: str = ''
    description: Optional[str] = None
    location: Optional[str] = None
    meals: List[Meal] = Field(default_factory=list)
    activities: List[str] = Field(default_factory=list)
    overnight: Optional[str] = None
    available_accommodation_ids: List[str] = Field(default_factory=list, alias='availableAccommodationIds')
    default_accommodation_id: Optional[str] = Field(None, alias='defaultAccommodationId')
    available_addon_ids: List[str] = Field(default_factory=list, alias='availableAddonIds')


class TourSummary(WireModel):
    id: str
    title: str = ''
    slug: str = ''
    destination: str = ''
    country: str = ''
    duration_days: int = Field(1, ge=1, alias='durationDays')
    duration_nights: int = Field(0, ge=0, alias='durationNights')
    base_price: float = Field(0, ge=0, alias='basePrice')
    child_price: Optional[float] = Field(None, ge=0, alias='childPrice')
    infant_price: Optional[float] = Field(None, ge=0, alias='infantPrice')
    deposit_enabled: bool = Field(False, alias='depositEnabled')
    deposit_percentage: float = Field(0, ge=0, le=100, alias='depositPercentage')
    free_cancellation_days: int = Field(0, ge=0, alias='freeCancellationDays')
    max_group_size: Optional[int] = Field(None, ge=1, alias='maxGroupSize')
    agent_id: Optional[str] = Field(None, alias='agentId')


class PricingConfig(WireModel):
    """Pricing rules for a tour. Every field defaults, so an empty row prices."""

    child_discount_percent: float = Field(30, ge=0, le=100, alias='childDiscountPercent')
    child_min_age: int = Field(3, alias='childMinAge')
    child_max_age: int = Field(11, alias='childMaxAge')
    infant_max_age: int = Field(2, alias='infantMaxAge')
    infant_price: float = Field(0, ge=0, alias='infantPrice')
    service_fee_percent: float = Field(5, ge=0, alias='serviceFeePercent')
    service_fee_fixed: Optional[float] = Field(None, ge=0, alias='serviceFeeFixed')
    deposit_percent: Optional[float] = Field(None, ge=0, le=100, alias='depositPercent')
    deposit_minimum: Optional[float] = Field(None, ge=0, alias='depositMinimum')
    group_discount_threshold: Optional[int] = Field(None, ge=1, alias='groupDiscountThreshold')
    group_discount_percent: Optional[float] = Field(None, ge=0, le=100, alias='groupDiscountPercent')
    early_bird_days: Optional[int] = Field(None, ge=0, alias='earlyBirdDays')
    early_bird_percent: Optional[float] = Field(None, ge=0, le=100, alias='earlyBirdPercent')


class PromoCode(WireModel):
    id: str
    code: str
    discount_amount: float = Field(..., ge=0, alias='discountAmount')
    discount_type: DiscountType = Field(DiscountType.PERCENTAGE, alias='discountType')


# =====================================================
# SELECTIONS
# =====================================================

class AddonSelection(WireModel):
    addon_id: str = Field(..., alias='addonId')
    quantity: int = Field(1, ge=0)
    day_number: Optional[int] = Field(None, alias='dayNumber')


class VehicleSelection(WireModel):
    vehicle_id: str = Field(..., alias='vehicleId')
    quantity: int = Field(1, ge=1)


class Traveler(WireModel):
    type: TravelerType = TravelerType.ADULT
    first_name: str = Field('', alias='firstName')
    last_name: str = Field('', alias='lastName')
    date_of_birth: str = Field('', alias='dateOfBirth')
    nationality: str = ''
    passport_number: str = Field('', alias='passportNumber')


class ContactInfo(WireModel):
    name: str = ''
    email: str = ''
    phone: str = ''
    special_requests: str = Field('', alias='specialRequests')


class ValidationResult(WireModel):
    is_valid: bool = Field(True, alias='isValid')
    errors: Dict[str, str] = Field(default_factory=dict)


# =====================================================
# PRICING OUTPUT
# =====================================================

class AccommodationLine(WireModel):
    day_number: int = Field(..., alias='dayNumber')
    accommodation_id: str = Field(..., alias='accommodationId')
    name: str
    price: int
    is_upgrade: bool = Field(False, alias='isUpgrade')


class AddonLine(WireModel):
    addon_id: str = Field(..., alias='addonId')
    name: str
    price_type: AddonPriceType = Field(..., alias='priceType')
    quantity: int
    unit_price: int = Field(..., alias='unitPrice')
    price: int
    day_number: Optional[int] = Field(None, alias='dayNumber')


class VehicleLine(WireModel):
    vehicle_id: str = Field(..., alias='vehicleId')
    name: str
    quantity: int
    price: int


class PricingBreakdown(WireModel):
    base_total: int = Field(0, alias='baseTotal')
    child_total: int = Field(0, alias='childTotal')
    infant_total: int = Field(0, alias='infantTotal')
    vehicle_total: int = Field(0, alias='vehicleTotal')
    accommodation_total: int = Field(0, alias='accommodationTotal')
    addons_total: int = Field(0, alias='addonsTotal')
    subtotal: int = 0
    service_fee: int = Field(0, alias='serviceFee')
    group_discount: int = Field(0, alias='groupDiscount')
    early_bird_discount: int = Field(0, alias='earlyBirdDiscount')
    promo_discount: int = Field(0, alias='promoDiscount')
    discount: int = 0
    total: int = 0
    deposit_amount: int = Field(0, alias='depositAmount')
    balance_amount: int = Field(0, alias='balanceAmount')
    accommodation_breakdown: List[AccommodationLine] = Field(default_factory=list, alias='accommodationBreakdown')
    addons_breakdown: List[AddonLine] = Field(default_factory=list, alias='addonsBreakdown')
    vehicle_breakdown: List[VehicleLine] = Field(default_factory=list, alias='vehicleBreakdown')

    @classmethod
    def from_booking(cls, booking: Dict) -> 'PricingBreakdown':
        """
        Rebuild a read-only breakdown from a persisted booking row.
        Used for the resume-payment flow; nothing is recomputed.
        """
        def amount(key):
            value = booking.get(key)
            return int(round(float(value))) if value is not None else 0

        total = amount('totalAmount')
        deposit = amount('depositAmount') or total
        return cls(
            base_total=amount('baseAmount'),
            child_total=amount('childAmount'),
            infant_total=amount('infantAmount'),
            vehicle_total=amount('vehicleAmount'),
            accommodation_total=amount('accommodationAmount'),
            addons_total=amount('activitiesAmount'),
            subtotal=amount('subtotalAmount'),
            service_fee=amount('taxAmount'),
            promo_discount=amount('discountAmount'),
            discount=amount('discountAmount'),
            total=total,
            deposit_amount=deposit,
            balance_amount=amount('balanceAmount'),
        )


class CapacityCheck(WireModel):
    group_size: int = Field(..., alias='groupSize')
    current_capacity: int = Field(..., alias='currentCapacity')
    shortfall: int = 0
    is_sufficient: bool = Field(True, alias='isSufficient')
    suggested: List[VehicleSelection] = Field(default_factory=list)
    suggested_daily_cost: float = Field(0, alias='suggestedDailyCost')
    current_daily_cost: float = Field(0, alias='currentDailyCost')
    matches_suggestion: bool = Field(False, alias='matchesSuggestion')


class CheckoutParams(WireModel):
    tour_id: str = Field(..., alias='tourId')
    start_date: date = Field(..., alias='startDate')
    adults: int = Field(2, ge=1)
    children: int = Field(0, ge=0)
    infants: int = Field(0, ge=0)
    preselected_accommodations: Optional[Dict[int, str]] = Field(None, alias='preselectedAccommodations')
    preselected_addons: Optional[List[str]] = Field(None, alias='preselectedAddons')
    preselected_vehicle: Optional[str] = Field(None, alias='preselectedVehicle')
