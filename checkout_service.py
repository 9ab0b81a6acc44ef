"""
Checkout Service
================
Ties a SelectionState to the outside world: loading the tour, holding the
date, validating promo codes, submitting the booking and starting payment.

Every call is a single attempt. Failures from the database or the payment
gateway surface as CheckoutError with a message fit for the traveler; the
caller decides whether to retry.
"""

from datetime import date
from typing import Any, Dict, Optional, Tuple
import logging
import os

import psycopg2

import payment_gateway
from models import CheckoutParams, PaymentPlan
from payment_gateway import PaymentGatewayError
from selection_state import SelectionState
from tour_repository import BookingNotFoundError, RepositoryError, TourNotFoundError
from validation import validate_checkout

logger = logging.getLogger(__name__)


class CheckoutError(Exception):
    """Checkout step failed; str(e) is safe to show to the traveler"""

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.errors = errors or {}

class CheckoutNotFoundError(CheckoutError):
    pass


def _hold_minutes() -> int:
    return int(os.environ.get('CHECKOUT_HOLD_MINUTES', 30))


class CheckoutService:

    def __init__(self, repository, gateway=payment_gateway):
        self.repository = repository
        self.gateway = gateway

    def initialize_checkout(self, params: CheckoutParams, today: Optional[date] = None) -> SelectionState:
        try:
            registry, config = self.repository.load_tour(params.tour_id)
            session_id, expires_at = self.repository.create_checkout_session(params, _hold_minutes())
        except TourNotFoundError as e:
            raise CheckoutNotFoundError("This tour is no longer available") from e
        except (RepositoryError, psycopg2.Error) as e:
            logger.error(f"Checkout init failed for tour {params.tour_id}: {e}", exc_info=True)
            raise CheckoutError("Could not start checkout. Please try again.") from e

        state = SelectionState.initialize(registry, params, config, today=today)
        state.session_id = session_id
        state.expires_at = expires_at
        return state

    def load_existing_booking(self, booking_id: str) -> SelectionState:
        """Resume payment on a booking already submitted."""
        try:
            booking = self.repository.load_booking(booking_id)
        except BookingNotFoundError as e:
            raise CheckoutNotFoundError("Booking not found") from e
        except (RepositoryError, psycopg2.Error) as e:
            logger.error(f"Loading booking {booking_id} failed: {e}", exc_info=True)
            raise CheckoutError("Could not load your booking. Please try again.") from e
        return SelectionState.from_booking(booking)

    def apply_promo_code(
        self,
        state: SelectionState,
        code: str,
        user_id: Optional[str] = None
    ) -> Tuple[bool, Optional[str]]:
        """
        Validate `code` against the current subtotal plus service fee and
        apply it on success. Returns (applied, reason).
        """
        if state.locked:
            return False, "Pricing is final for this booking"
        if not code or not code.strip():
            return False, "Please enter a promo code"

        amount = state.pricing.subtotal + state.pricing.service_fee
        try:
            promo, error = self.repository.validate_promo(code, state.registry.tour.id, amount, user_id)
        except (RepositoryError, psycopg2.Error) as e:
            logger.error(f"Promo validation failed for {code!r}: {e}", exc_info=True)
            raise CheckoutError("Failed to validate promo code") from e

        if promo is None:
            return False, error
        state.apply_promo_code(promo)
        logger.info(f"Promo {promo.code} applied to tour {state.registry.tour.id}")
        return True, None

    def submit_booking(self, state: SelectionState, user_id: Optional[str] = None) -> Tuple[str, str]:
        """Persist the booking with server-side pricing. Returns (booking id, reference)."""
        if state.existing_booking_id:
            raise CheckoutError("This booking has already been submitted")

        result = validate_checkout(state)
        if not result.is_valid:
            raise CheckoutError("Please complete all required fields", errors=result.errors)

        pricing = state.recalculate()
        tour = state.registry.tour
        if state.payment_plan == PaymentPlan.DEPOSIT and tour.deposit_enabled:
            deposit_amount = pricing.deposit_amount
            balance_amount = pricing.balance_amount
        else:
            deposit_amount = None
            balance_amount = 0

        booking = {
            'tour_id': tour.id,
            'session_id': state.session_id,
            'user_id': user_id,
            'start_date': state.start_date,
            'end_date': state.end_date,
            'adults': state.adults,
            'children': state.children,
            'infants': state.infants,
            'selections': self._selections(state),
            'travelers': [t.to_wire() for t in state.travelers],
            'contact': state.contact.to_wire(),
            'pricing': pricing.to_wire(),
            'deposit_amount': deposit_amount,
            'balance_amount': balance_amount,
            'promo_code_id': state.promo_code.id if state.promo_code else None,
            'payment_type': state.payment_plan.value,
        }

        try:
            booking_id, reference = self.repository.create_booking(booking)
        except (RepositoryError, psycopg2.Error) as e:
            logger.error(f"Booking submission failed for tour {tour.id}: {e}", exc_info=True)
            raise CheckoutError("Failed to create booking. Please try again.") from e

        state.existing_booking_id = booking_id
        state.booking_reference = reference
        state.locked = True
        return booking_id, reference

    def initiate_payment(self, state: SelectionState) -> Optional[str]:
        """
        Start payment for the submitted booking and return the gateway's
        redirect URL. Pay-later bookings are confirmed on submission, so
        nothing is sent and None is returned.
        """
        if state.payment_plan == PaymentPlan.PAY_LATER:
            return None
        if not state.existing_booking_id:
            raise CheckoutError("Submit the booking before paying")
        if state.payment_method is None:
            raise CheckoutError("Please select a payment method")

        amount = state.amount_due_now()
        try:
            order = self.gateway.initiate_payment(
                state.booking_reference or state.existing_booking_id,
                amount,
                state.payment_method.value,
                state.contact.to_wire(),
                description=state.registry.tour.title,
            )
            self.repository.record_payment(
                state.existing_booking_id,
                order.get('order_tracking_id'),
                amount,
                state.payment_method.value,
            )
        except PaymentGatewayError as e:
            logger.error(f"Payment initiation failed for booking {state.existing_booking_id}: {e}", exc_info=True)
            raise CheckoutError("Failed to initiate payment. Please try again.") from e
        except (RepositoryError, psycopg2.Error) as e:
            logger.error(f"Recording payment for booking {state.existing_booking_id} failed: {e}", exc_info=True)
            raise CheckoutError("Failed to initiate payment. Please try again.") from e

        return order['redirect_url']

    @staticmethod
    def _selections(state: SelectionState) -> Dict[str, Any]:
        return {
            'accommodations': {str(k): v for k, v in sorted(state.accommodations.items())},
            'addons': [a.to_wire() for a in state.addons],
            'vehicles': [v.to_wire() for v in state.vehicles],
        }
