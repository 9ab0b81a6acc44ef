"""
Tour Repository
===============
PostgreSQL access for everything the checkout and the authoring wizard
persist: tours with their pools and itinerary, checkout holds, promo codes
and bookings.

The pricing core never touches the database; it receives PoolRegistry /
PricingConfig objects built here.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple
import json
import logging
import random
import string
import time
import uuid

from psycopg2.extras import Json, RealDictCursor

from consistency import TourDraft
from models import (
    AccommodationOption,
    AddonOption,
    CheckoutParams,
    DiscountType,
    ItineraryDay,
    PricingConfig,
    PromoCode,
    TourSummary,
    VehicleOption,
)
from pool_registry import PoolRegistry

logger = logging.getLogger(__name__)


# =====================================================
# EXCEPTIONS
# =====================================================

class RepositoryError(Exception):
    """Base exception for persistence errors"""
    pass

class TourNotFoundError(RepositoryError):
    pass

class BookingNotFoundError(RepositoryError):
    pass


def generate_booking_reference() -> str:
    """SF + base36 timestamp + 4 random chars, e.g. SFLZ3K9Q2XA7B."""
    millis = int(time.time() * 1000)
    alphabet = string.digits + string.ascii_uppercase
    stamp = ''
    while millis:
        millis, rem = divmod(millis, 36)
        stamp = alphabet[rem] + stamp
    suffix = ''.join(random.choices(alphabet, k=4))
    return f"SF{stamp}{suffix}"


def _camel(key: str) -> str:
    head, *rest = key.split('_')
    return head + ''.join(part.title() for part in rest)


def _json_value(value):
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class TourRepository:

    def __init__(self, db_connection):
        self.db = db_connection

    def _cursor(self):
        return self.db.cursor(cursor_factory=RealDictCursor)

    # -------------------------------------------------
    # TOUR + POOLS
    # -------------------------------------------------

    def load_tour(self, tour_id: str) -> Tuple[PoolRegistry, PricingConfig]:
        """Tour summary, pools and itinerary, plus its pricing rules."""
        cursor = self._cursor()
        cursor.execute(
            """SELECT id, agent_id, title, slug, destination, country,
                      duration_days, duration_nights, base_price, child_price,
                      infant_price, deposit_enabled, deposit_percentage,
                      free_cancellation_days, max_group_size, pricing_config
               FROM tours
               WHERE id = %s AND deleted = FALSE""",
            (tour_id,)
        )
        row = cursor.fetchone()
        if not row:
            raise TourNotFoundError(f"Tour {tour_id} not found")

        row = dict(row)
        config_json = row.pop('pricing_config', None)
        if isinstance(config_json, str):
            config_json = json.loads(config_json)
        config = PricingConfig.model_validate(config_json or {})

        tour = TourSummary.model_validate(row)

        cursor.execute(
            """SELECT id, name, tier, price_per_night, amenities, rating,
                      location, description, room_type
               FROM tour_accommodations
               WHERE tour_id = %s ORDER BY sort_order, name""",
            (tour_id,)
        )
        accommodations = [AccommodationOption.model_validate(self._with_lists(r, 'amenities')) for r in cursor.fetchall()]

        cursor.execute(
            """SELECT id, name, price, price_type, child_price, duration,
                      max_capacity, day_available, is_popular, description, category
               FROM tour_addons
               WHERE tour_id = %s ORDER BY sort_order, name""",
            (tour_id,)
        )
        addons = [AddonOption.model_validate(self._with_lists(r, 'day_available')) for r in cursor.fetchall()]

        cursor.execute(
            """SELECT id, type, name, max_passengers, price_per_day, features,
                      is_default, description
               FROM tour_vehicles
               WHERE tour_id = %s AND is_active = TRUE ORDER BY sort_order, name""",
            (tour_id,)
        )
        vehicles = [VehicleOption.model_validate(self._with_lists(r, 'features')) for r in cursor.fetchall()]

        cursor.execute(
            """SELECT day_number, title, description, location, meals, activities,
                      overnight, available_accommodation_ids,
                      default_accommodation_id, available_addon_ids
               FROM itinerary_days
               WHERE tour_id = %s ORDER BY day_number""",
            (tour_id,)
        )
        itinerary = [
            ItineraryDay.model_validate(self._with_lists(
                r, 'meals', 'activities', 'available_accommodation_ids', 'available_addon_ids'
            ))
            for r in cursor.fetchall()
        ]

        logger.info(
            f"Loaded tour {tour_id}: {len(accommodations)} accommodations, "
            f"{len(addons)} add-ons, {len(vehicles)} vehicles, {len(itinerary)} days"
        )
        registry = PoolRegistry(tour, accommodations, addons, vehicles, itinerary)
        return registry, config

    @staticmethod
    def _with_lists(row, *fields) -> Dict[str, Any]:
        """JSONB list columns come back as None for SQL NULL."""
        data = dict(row)
        for field in fields:
            if data.get(field) is None:
                data[field] = []
        return data

    def create_checkout_session(self, params: CheckoutParams, hold_minutes: int = 30) -> Tuple[str, datetime]:
        """Hold the requested date; the expiry is informational only."""
        session_id = str(uuid.uuid4())
        expires_at = datetime.utcnow() + timedelta(minutes=hold_minutes)
        cursor = self.db.cursor()
        try:
            cursor.execute(
                """INSERT INTO checkout_sessions
                   (id, tour_id, start_date, adults, children, infants, expires_at)
                   VALUES (%s, %s, %s, %s, %s, %s, %s)""",
                (session_id, params.tour_id, params.start_date, params.adults,
                 params.children, params.infants, expires_at)
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return session_id, expires_at

    # -------------------------------------------------
    # AUTHORING DRAFTS
    # -------------------------------------------------

    def load_draft(self, tour_id: str) -> TourDraft:
        registry, config = self.load_tour(tour_id)
        return TourDraft.from_registry(registry, config)

    def save_draft(self, tour_id: str, draft: TourDraft) -> None:
        """Replace the tour's pools and itinerary with the draft. Last write wins."""
        cursor = self.db.cursor()
        try:
            cursor.execute(
                "UPDATE tours SET pricing_config = %s, updated_at = NOW() WHERE id = %s",
                (Json(draft.pricing_config.model_dump(mode='json')), tour_id)
            )
            for table in ('itinerary_days', 'tour_accommodations', 'tour_addons', 'tour_vehicles'):
                cursor.execute(f"DELETE FROM {table} WHERE tour_id = %s", (tour_id,))

            for order, acc in enumerate(draft.accommodations):
                cursor.execute(
                    """INSERT INTO tour_accommodations
                       (id, tour_id, name, tier, price_per_night, amenities, rating,
                        location, description, room_type, sort_order)
                       VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)""",
                    (acc.id, tour_id, acc.name, acc.tier.value, acc.price_per_night,
                     Json(acc.amenities), acc.rating, acc.location, acc.description,
                     acc.room_type, order)
                )

            for order, addon in enumerate(draft.addons):
                cursor.execute(
                    """INSERT INTO tour_addons
                       (id, tour_id, name, price, price_type, child_price, duration,
                        max_capacity, day_available, is_popular, description, category, sort_order)
                       VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)""",
                    (addon.id, tour_id, addon.name, addon.price, addon.price_type.value,
                     addon.child_price, addon.duration, addon.max_capacity,
                     Json(addon.day_available), addon.is_popular, addon.description,
                     addon.category, order)
                )

            for order, vehicle in enumerate(draft.vehicles):
                cursor.execute(
                    """INSERT INTO tour_vehicles
                       (id, tour_id, type, name, max_passengers, price_per_day, features,
                        is_default, description, is_active, sort_order)
                       VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s,TRUE,%s)""",
                    (vehicle.id, tour_id, vehicle.type.value, vehicle.name,
                     vehicle.max_passengers, vehicle.price_per_day, Json(vehicle.features),
                     vehicle.is_default, vehicle.description, order)
                )

            for day in draft.itinerary:
                cursor.execute(
                    """INSERT INTO itinerary_days
                       (tour_id, day_number, title, description, location, meals, activities,
                        overnight, available_accommodation_ids, default_accommodation_id,
                        available_addon_ids)
                       VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)""",
                    (tour_id, day.day_number, day.title, day.description, day.location,
                     Json([m.value for m in day.meals]), Json(day.activities), day.overnight,
                     Json(day.available_accommodation_ids), day.default_accommodation_id,
                     Json(day.available_addon_ids))
                )

            self.db.commit()
            logger.info(f"Saved draft for tour {tour_id}: {len(draft.itinerary)} days")
        except Exception:
            self.db.rollback()
            raise

    # -------------------------------------------------
    # PROMO CODES
    # -------------------------------------------------

    def validate_promo(
        self,
        code: str,
        tour_id: str,
        booking_amount: float,
        user_id: Optional[str] = None
    ) -> Tuple[Optional[PromoCode], Optional[str]]:
        """
        Returns (PromoCode, None) when the code applies to this tour and
        amount, else (None, reason).
        """
        cursor = self._cursor()
        cursor.execute(
            """SELECT p.id, p.code, p.agent_id, p.discount_type, p.discount_value,
                      p.is_active, p.valid_from, p.valid_until, p.tour_ids,
                      p.max_uses, p.uses_per_user, p.min_booking_amount,
                      (SELECT COUNT(*) FROM promo_code_usages u WHERE u.promo_code_id = p.id) AS usage_count
               FROM promo_codes p
               WHERE p.code = %s""",
            (code.strip().upper(),)
        )
        promo = cursor.fetchone()
        if not promo:
            return None, "Invalid promo code"
        if not promo['is_active']:
            return None, "This promo code is no longer active"

        now = datetime.utcnow()
        if promo['valid_from'] and now < promo['valid_from']:
            return None, "This promo code is not yet valid"
        if promo['valid_until'] and now > promo['valid_until']:
            return None, "This promo code has expired"

        cursor.execute("SELECT id, agent_id FROM tours WHERE id = %s AND deleted = FALSE", (tour_id,))
        tour = cursor.fetchone()
        if not tour:
            return None, "Tour not found"
        if tour['agent_id'] != promo['agent_id']:
            return None, "This promo code is not valid for this tour"
        tour_ids = promo['tour_ids'] or []
        if tour_ids and tour_id not in tour_ids:
            return None, "This promo code is not valid for this tour"

        if promo['max_uses'] is not None and promo['usage_count'] >= promo['max_uses']:
            return None, "This promo code has reached its usage limit"

        if user_id:
            cursor.execute(
                "SELECT COUNT(*) AS n FROM promo_code_usages WHERE promo_code_id = %s AND user_id = %s",
                (promo['id'], user_id)
            )
            if cursor.fetchone()['n'] >= (promo['uses_per_user'] or 1):
                return None, "You have already used this promo code the maximum number of times"

        minimum = promo['min_booking_amount']
        if minimum and Decimal(str(booking_amount)) < Decimal(str(minimum)):
            return None, f"Minimum booking amount of ${minimum} required for this promo code"

        return PromoCode(
            id=str(promo['id']),
            code=promo['code'],
            discount_amount=float(promo['discount_value']),
            discount_type=DiscountType(promo['discount_type']),
        ), None

    # -------------------------------------------------
    # BOOKINGS
    # -------------------------------------------------

    def create_booking(self, booking: Dict[str, Any]) -> Tuple[str, str]:
        """Persist a priced booking. Returns (booking id, booking reference)."""
        booking_id = str(uuid.uuid4())
        reference = generate_booking_reference()
        pricing = booking['pricing']

        cursor = self.db.cursor()
        try:
            cursor.execute(
                """INSERT INTO bookings
                   (id, booking_reference, tour_id, session_id, user_id, start_date, end_date,
                    adults, children, infants, selections, travelers,
                    contact_name, contact_email, contact_phone, special_requests,
                    base_amount, child_amount, infant_amount, vehicle_amount,
                    accommodation_amount, activities_amount, subtotal_amount, tax_amount,
                    discount_amount, total_amount, deposit_amount, balance_amount,
                    promo_code_id, payment_type, status)
                   VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,
                           %s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)""",
                (booking_id, reference, booking['tour_id'], booking.get('session_id'),
                 booking.get('user_id'), booking['start_date'], booking.get('end_date'),
                 booking['adults'], booking['children'], booking['infants'],
                 Json(booking['selections']), Json(booking['travelers']),
                 booking['contact']['name'], booking['contact']['email'],
                 booking['contact']['phone'], booking['contact'].get('specialRequests', ''),
                 pricing['baseTotal'], pricing['childTotal'], pricing['infantTotal'],
                 pricing['vehicleTotal'], pricing['accommodationTotal'], pricing['addonsTotal'],
                 pricing['subtotal'], pricing['serviceFee'], pricing['discount'],
                 pricing['total'], booking['deposit_amount'], booking['balance_amount'],
                 booking.get('promo_code_id'), booking['payment_type'],
                 'CONFIRMED' if booking['payment_type'] == 'PAY_LATER' else 'PENDING')
            )
            if booking.get('promo_code_id'):
                cursor.execute(
                    """INSERT INTO promo_code_usages (promo_code_id, user_id, booking_id)
                       VALUES (%s, %s, %s)""",
                    (booking['promo_code_id'], booking.get('user_id'), booking_id)
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Created booking {booking_id} ({reference}) for tour {booking['tour_id']}")
        return booking_id, reference

    def load_booking(self, booking_id: str) -> Dict[str, Any]:
        """Booking row plus its tour, keyed the camelCase way the client expects."""
        cursor = self._cursor()
        cursor.execute(
            """SELECT b.*, t.title AS tour_title, t.slug AS tour_slug,
                      t.destination AS tour_destination, t.country AS tour_country,
                      t.duration_days AS tour_duration_days,
                      t.duration_nights AS tour_duration_nights
               FROM bookings b JOIN tours t ON t.id = b.tour_id
               WHERE b.id = %s""",
            (booking_id,)
        )
        row = cursor.fetchone()
        if not row:
            raise BookingNotFoundError(f"Booking {booking_id} not found")

        booking: Dict[str, Any] = {}
        tour: Dict[str, Any] = {'id': row['tour_id']}
        for key, value in dict(row).items():
            if key.startswith('tour_') and key != 'tour_id':
                tour[_camel(key[len('tour_'):])] = _json_value(value)
            else:
                booking[_camel(key)] = _json_value(value)
        booking['tour'] = tour
        return booking

    def record_payment(self, booking_id: str, tracking_id: str, amount: int, method: str) -> None:
        cursor = self.db.cursor()
        try:
            cursor.execute(
                """INSERT INTO payments (booking_id, tracking_id, amount, method, status)
                   VALUES (%s, %s, %s, %s, 'PENDING')""",
                (booking_id, tracking_id, amount, method)
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
