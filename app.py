"""
Safari Checkout Engine — Flask Backend
======================================
JSON API over the safari pricing core.

Endpoints:
- GET  /health
- POST /api/pricing/calculate        registry + selection + config -> breakdown
- POST /api/vehicles/suggest         vehicles + group size -> suggestion + capacity check
- POST /api/checkout/session         start checkout for a stored tour
- GET  /api/bookings/<id>/pricing    persisted snapshot for the resume-payment flow
- POST /api/promo/validate           validate + apply a promo code, reprice
- POST /api/bookings                 validate, reprice server-side, persist
- POST /api/payments/initiate        start payment for a submitted booking
- POST /api/agent/tours/<id>/draft   apply authoring operations to a stored tour

Prices are ALWAYS computed here via pricing_engine.compute_pricing; amounts
sent by the browser are never trusted.
"""

from flask import Flask, request, jsonify
from flask_cors import CORS
from pydantic import ValidationError
import psycopg2
import os
import logging
from datetime import date

from checkout_service import CheckoutError, CheckoutNotFoundError, CheckoutService
from consistency import new_pool_id
from models import (
    AccommodationOption,
    AddonOption,
    AddonSelection,
    CheckoutParams,
    ContactInfo,
    ItineraryDay,
    PricingConfig,
    PromoCode,
    Traveler,
    VehicleOption,
    VehicleSelection,
)
from pool_registry import PoolRegistry
from pricing_engine import PricingEngineError, InvalidConfigurationError, validate_pricing_payload
from selection_state import SelectionState
from tour_repository import TourNotFoundError, TourRepository
from vehicle_advisor import VehicleCapacityAdvisor

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)

# =====================================================
# DATABASE
# =====================================================

DB_CONFIG = {
    'host': os.environ.get('DB_HOST', 'localhost'),
    'port': int(os.environ.get('DB_PORT', 5432)),
    'database': os.environ.get('DB_NAME', 'safari_checkout'),
    'user': os.environ.get('DB_USER', 'postgres'),
    'password': os.environ.get('DB_PASS', ''),
}


def get_db():
    return psycopg2.connect(**DB_CONFIG)


def _parse_date(value):
    if not value:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _error(message, status, **extra):
    body = {'success': False, 'error': message}
    body.update(extra)
    return jsonify(body), status


def _state_from_selection(registry, config, selection):
    """
    Rebuild a SelectionState from the browser's camelCase selection.
    Counts are clamped and pricing recomputed; promo codes are handled by
    the caller.
    """
    state = SelectionState(
        registry,
        config=config,
        adults=selection.get('adults', 1),
        children=selection.get('children', 0),
        infants=selection.get('infants', 0),
        start_date=_parse_date(selection.get('startDate')),
    )
    state.set_adults(state.adults)
    state.set_children(state.children)

    state.accommodations = {
        int(day): acc_id
        for day, acc_id in (selection.get('accommodations') or {}).items()
        if acc_id
    }
    state.addons = [AddonSelection.model_validate(a) for a in selection.get('addons') or []]
    state.set_vehicles([VehicleSelection.model_validate(v) for v in selection.get('vehicles') or []])

    state.set_payment_plan(selection.get('paymentType') or 'FULL')
    state.set_payment_method(selection.get('paymentMethod'))
    if selection.get('contact'):
        state.set_contact(ContactInfo.model_validate(selection['contact']))
    if selection.get('travelers'):
        state.set_travelers([Traveler.model_validate(t) for t in selection['travelers']])
    state.set_accepted_terms(selection.get('acceptedTerms', False))
    state.session_id = selection.get('sessionId')
    return state


# =====================================================
# HEALTH
# =====================================================

@app.route('/health', methods=['GET'])
def health():
    return jsonify({'status': 'ok'})


# =====================================================
# PRICING (stateless)
# =====================================================

@app.route('/api/pricing/calculate', methods=['POST'])
def calculate_pricing():
    """
    Price a selection against a catalog supplied in the request.

    Body: { tour, accommodations, addons, vehicles, itinerary,
            pricingConfig?, selection: {adults, children, infants, startDate,
            accommodations, addons, vehicles, promoCode?, paymentType?} }
    """
    try:
        payload = request.get_json(silent=True)
        validate_pricing_payload(payload)

        registry = PoolRegistry.from_payload(payload)
        config = PricingConfig.model_validate(payload.get('pricingConfig') or {})
        selection = payload.get('selection') or {}

        state = _state_from_selection(registry, config, selection)
        if isinstance(selection.get('promoCode'), dict):
            state.apply_promo_code(PromoCode.model_validate(selection['promoCode']))

        return jsonify({
            'success': True,
            'pricing': state.pricing.to_wire(),
            'amountDueNow': state.amount_due_now(),
            'capacity': state.capacity_check().to_wire(),
        })

    except (PricingEngineError, ValidationError, ValueError) as e:
        logger.error(f"Pricing request rejected: {e}")
        return _error(str(e), 400)
    except Exception as e:
        logger.error(f"Unexpected pricing error: {e}", exc_info=True)
        return _error(f'Server error: {str(e)}', 500)


@app.route('/api/vehicles/suggest', methods=['POST'])
def suggest_vehicles():
    data = request.get_json(silent=True) or {}
    try:
        vehicles = [VehicleOption.model_validate(v) for v in data.get('vehicles') or []]
        required = int(data.get('requiredCapacity', 0))
        suggestion = VehicleCapacityAdvisor.suggest_vehicles(vehicles, required)
        selected = [VehicleSelection.model_validate(v) for v in data.get('selected') or []]
        check = VehicleCapacityAdvisor.check_capacity(
            selected or suggestion, vehicles, required, suggestion=suggestion
        )
        return jsonify({
            'success': True,
            'suggestion': [s.to_wire() for s in suggestion],
            'capacity': check.to_wire(),
        })
    except (ValidationError, ValueError, TypeError) as e:
        logger.error(f"Vehicle suggestion rejected: {e}")
        return _error(str(e), 400)


# =====================================================
# CHECKOUT
# =====================================================

@app.route('/api/checkout/session', methods=['POST'])
def start_checkout():
    data = request.get_json(silent=True) or {}
    try:
        params = CheckoutParams.model_validate(data)
    except ValidationError as e:
        return _error(str(e), 400)

    db = get_db()
    try:
        service = CheckoutService(TourRepository(db))
        state = service.initialize_checkout(params)
        logger.info(f"Checkout session {state.session_id} started for tour {params.tour_id}")
        return jsonify({'success': True, 'checkout': state.to_wire()}), 201
    except CheckoutNotFoundError as e:
        return _error(str(e), 404)
    except CheckoutError as e:
        return _error(str(e), 500)
    finally:
        db.close()


@app.route('/api/bookings/<booking_id>/pricing', methods=['GET'])
def booking_pricing(booking_id):
    db = get_db()
    try:
        state = CheckoutService(TourRepository(db)).load_existing_booking(booking_id)
        return jsonify({'success': True, 'checkout': state.to_wire()})
    except CheckoutNotFoundError as e:
        return _error(str(e), 404)
    except CheckoutError as e:
        return _error(str(e), 500)
    finally:
        db.close()


@app.route('/api/promo/validate', methods=['POST'])
def validate_promo():
    """
    Body: { tourId, code, userId?, selection }
    The code is checked against the server-side subtotal + service fee.
    """
    data = request.get_json(silent=True) or {}
    tour_id = data.get('tourId')
    code = (data.get('code') or '').strip()
    if not tour_id or not code:
        return _error('Promo code and tour ID are required', 400, valid=False)

    db = get_db()
    try:
        repository = TourRepository(db)
        registry, config = repository.load_tour(tour_id)
        state = _state_from_selection(registry, config, data.get('selection') or {})

        applied, reason = CheckoutService(repository).apply_promo_code(state, code, data.get('userId'))
        if not applied:
            return jsonify({'success': False, 'valid': False, 'error': reason})

        return jsonify({
            'success': True,
            'valid': True,
            'promoCode': state.promo_code.to_wire(),
            'pricing': state.pricing.to_wire(),
        })
    except TourNotFoundError as e:
        return _error(str(e), 404, valid=False)
    except (ValidationError, ValueError) as e:
        return _error(str(e), 400, valid=False)
    except CheckoutError as e:
        return _error(str(e), 500, valid=False)
    finally:
        db.close()


@app.route('/api/bookings', methods=['POST'])
def create_booking():
    """
    Body: { tourId, userId?, selection: {..., contact, travelers, promoCode?,
            paymentType, paymentMethod, acceptedTerms} }
    """
    data = request.get_json(silent=True) or {}
    tour_id = data.get('tourId')
    if not tour_id:
        return _error('Missing required field: tourId', 400)
    selection = data.get('selection') or {}

    db = get_db()
    try:
        repository = TourRepository(db)
        service = CheckoutService(repository)
        registry, config = repository.load_tour(tour_id)
        state = _state_from_selection(registry, config, selection)
        if state.start_date is None:
            return _error('Missing required field: startDate', 400)

        promo = selection.get('promoCode')
        if promo:
            code = promo.get('code') if isinstance(promo, dict) else str(promo)
            applied, reason = service.apply_promo_code(state, code, data.get('userId'))
            if not applied:
                return _error(reason, 400)

        booking_id, reference = service.submit_booking(state, data.get('userId'))
        return jsonify({
            'success': True,
            'bookingId': booking_id,
            'bookingReference': reference,
            'pricing': state.pricing.to_wire(),
            'amountDueNow': state.amount_due_now(),
        }), 201

    except TourNotFoundError as e:
        return _error(str(e), 404)
    except (ValidationError, ValueError) as e:
        return _error(str(e), 400)
    except CheckoutError as e:
        if e.errors:
            return _error(str(e), 400, errors=e.errors)
        return _error(str(e), 500)
    except Exception as e:
        logger.error(f"Unexpected booking error: {e}", exc_info=True)
        return _error(f'Server error: {str(e)}', 500)
    finally:
        db.close()


@app.route('/api/payments/initiate', methods=['POST'])
def initiate_payment():
    data = request.get_json(silent=True) or {}
    booking_id = data.get('bookingId')
    if not booking_id:
        return _error('Missing required field: bookingId', 400)

    db = get_db()
    try:
        service = CheckoutService(TourRepository(db))
        state = service.load_existing_booking(booking_id)
        if data.get('paymentMethod'):
            state.set_payment_method(data['paymentMethod'])

        redirect_url = service.initiate_payment(state)
        return jsonify({
            'success': True,
            'redirectUrl': redirect_url,
            'amountDueNow': state.amount_due_now(),
        })
    except CheckoutNotFoundError as e:
        return _error(str(e), 404)
    except ValueError as e:
        return _error(str(e), 400)
    except CheckoutError as e:
        status = 502 if e.__cause__ is not None else 400
        return _error(str(e), status)
    finally:
        db.close()


# =====================================================
# TOUR AUTHORING
# =====================================================

def _snake_fields(model_cls, changes):
    """Map camelCase keys onto the model's field names."""
    by_alias = {field.alias: name for name, field in model_cls.model_fields.items() if field.alias}
    return {by_alias.get(key, key): value for key, value in changes.items()}


def _new_entry(model_cls, data):
    data = dict(data or {})
    if not data.get('id'):
        data['id'] = new_pool_id()
    return model_cls.model_validate(data)


def _apply_draft_operation(draft, operation):
    op = operation.get('op')
    day = operation.get('dayNumber')
    changes = operation.get('changes') or {}

    if op == 'add_day':
        draft.add_day()
    elif op == 'remove_day':
        draft.remove_day(int(day))
    elif op == 'update_day':
        draft.update_day(int(day), **_snake_fields(ItineraryDay, changes))
    elif op == 'toggle_meal':
        draft.toggle_meal(int(day), operation.get('meal'))
    elif op == 'add_activity':
        draft.add_activity(int(day), operation.get('activity'))
    elif op == 'remove_activity':
        draft.remove_activity(int(day), int(operation.get('index')))
    elif op == 'toggle_day_accommodation':
        draft.toggle_day_accommodation(int(day), operation['accommodationId'])
    elif op == 'set_default_accommodation':
        draft.set_default_accommodation(int(day), operation['accommodationId'])
    elif op == 'toggle_day_addon':
        draft.toggle_day_addon(int(day), operation['addonId'])
    elif op == 'add_accommodation':
        draft.add_accommodation(_new_entry(AccommodationOption, operation.get('accommodation')))
    elif op == 'update_accommodation':
        draft.update_accommodation(operation['id'], **_snake_fields(AccommodationOption, changes))
    elif op == 'remove_accommodation':
        draft.remove_accommodation_from_pool(operation['id'])
    elif op == 'add_addon':
        draft.add_addon(_new_entry(AddonOption, operation.get('addon')))
    elif op == 'update_addon':
        draft.update_addon(operation['id'], **_snake_fields(AddonOption, changes))
    elif op == 'remove_addon':
        draft.remove_addon_from_pool(operation['id'])
    elif op == 'add_vehicle':
        draft.add_vehicle(_new_entry(VehicleOption, operation.get('vehicle')))
    elif op == 'update_vehicle':
        draft.update_vehicle(operation['id'], **_snake_fields(VehicleOption, changes))
    elif op == 'remove_vehicle':
        draft.remove_vehicle(operation['id'])
    elif op == 'set_default_vehicle':
        draft.set_default_vehicle(operation['id'])
    elif op == 'set_pricing_config':
        draft.pricing_config = PricingConfig.model_validate(operation.get('pricingConfig') or {})
    else:
        raise InvalidConfigurationError(f"Unknown draft operation: {op}")


@app.route('/api/agent/tours/<tour_id>/draft', methods=['POST'])
def edit_tour_draft(tour_id):
    """
    Body: { operations: [ {op, dayNumber?, id?, changes?, ...}, ... ] }
    Operations run in order against the stored tour; the result is saved
    back (last write wins) and returned.
    """
    data = request.get_json(silent=True) or {}
    operations = data.get('operations') or []
    if not isinstance(operations, list):
        return _error('operations must be a list', 400)

    db = get_db()
    try:
        repository = TourRepository(db)
        draft = repository.load_draft(tour_id)
        for operation in operations:
            _apply_draft_operation(draft, operation)
        repository.save_draft(tour_id, draft)
        logger.info(f"Applied {len(operations)} draft operations to tour {tour_id}")
        return jsonify({'success': True, 'draft': draft.to_payload()})
    except TourNotFoundError as e:
        return _error(str(e), 404)
    except (PricingEngineError, ValidationError, ValueError, KeyError, TypeError) as e:
        return _error(f"Invalid operation: {e}", 400)
    except Exception as e:
        db.rollback()
        logger.error(f"Error saving draft for tour {tour_id}: {e}", exc_info=True)
        return _error(str(e), 500)
    finally:
        db.close()


# =====================================================
# ENTRY POINT
# =====================================================

if __name__ == '__main__':
    app.run(debug=True, host='0.0.0.0', port=5001)
