"""
Payment Gateway Client
======================
Hosted-checkout payment initiation (mobile money + card) over the
gateway's REST API.

Environment variables required:
  PAYMENT_GATEWAY_URL     - API base URL (default: sandbox)
  PAYMENT_CONSUMER_KEY    - merchant consumer key
  PAYMENT_CONSUMER_SECRET - merchant consumer secret
  PAYMENT_CALLBACK_URL    - where the traveler lands after paying
  PAYMENT_IPN_ID          - registered instant-payment-notification id
  PAYMENT_CURRENCY        - KES, TZS, UGX or USD (default: USD)

Token lifecycle:
  - Fetched once per process and cached in _gateway_token_cache
  - Reused while it has more than 30 seconds of remaining life
  - Refreshed on expiry or on a 401 response
  - Secrets are never logged
"""

from datetime import datetime, timezone
from typing import Dict, Optional
import logging
import os
import time

import requests

logger = logging.getLogger(__name__)

SANDBOX_URL = 'https://cybqa.pesapal.com/pesapalv3'
VALID_CURRENCIES = ('KES', 'TZS', 'UGX', 'USD')
DEFAULT_TOKEN_LIFETIME = 300

_gateway_token_cache = {'token': None, 'expires_at': 0}


class PaymentGatewayError(Exception):
    """Transport, HTTP or response-shape failure talking to the gateway"""
    pass


def _get_base_url() -> str:
    return os.environ.get('PAYMENT_GATEWAY_URL', SANDBOX_URL).rstrip('/')


def _get_credentials() -> tuple:
    """(consumer_key, consumer_secret). Raises PaymentGatewayError when unset."""
    key = os.environ.get('PAYMENT_CONSUMER_KEY', '').strip()
    secret = os.environ.get('PAYMENT_CONSUMER_SECRET', '').strip()
    if not key or not secret:
        raise PaymentGatewayError(
            "Payment gateway credentials are not configured. "
            "Set PAYMENT_CONSUMER_KEY and PAYMENT_CONSUMER_SECRET."
        )
    return key, secret


def _parse_expiry(value: Optional[str]) -> float:
    if not value:
        return time.time() + DEFAULT_TOKEN_LIFETIME
    try:
        expiry = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return time.time() + DEFAULT_TOKEN_LIFETIME
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return expiry.timestamp()


def _fetch_fresh_token() -> str:
    key, secret = _get_credentials()
    logger.info("Payment gateway: requesting new access token")

    try:
        resp = requests.post(
            f'{_get_base_url()}/api/Auth/RequestToken',
            json={'consumer_key': key, 'consumer_secret': secret},
            headers={'Accept': 'application/json'},
            timeout=10,
        )
        resp.raise_for_status()
        data = resp.json()
    except requests.RequestException as e:
        raise PaymentGatewayError(f"Could not authenticate with payment gateway: {e}") from e
    except ValueError as e:
        raise PaymentGatewayError("Payment gateway returned an invalid token response") from e

    token = data.get('token')
    if not token:
        message = (data.get('error') or {}).get('message') or 'no token returned'
        raise PaymentGatewayError(f"Payment gateway authentication failed: {message}")

    _gateway_token_cache['token'] = token
    _gateway_token_cache['expires_at'] = _parse_expiry(data.get('expiryDate'))
    logger.info(f"Payment gateway: new token valid until {_gateway_token_cache['expires_at']:.0f}")
    return token


def _get_token() -> str:
    cached = _gateway_token_cache.get('token')
    if cached and time.time() < _gateway_token_cache.get('expires_at', 0) - 30:
        return cached
    return _fetch_fresh_token()


def _invalidate_token() -> None:
    _gateway_token_cache['token'] = None
    _gateway_token_cache['expires_at'] = 0
    logger.info("Payment gateway: token cache invalidated")


def _post(path: str, body: Dict) -> requests.Response:
    """Authenticated POST, refreshing the token once on 401."""
    url = f'{_get_base_url()}{path}'
    token = _get_token()
    resp = requests.post(
        url,
        json=body,
        headers={'Authorization': f'Bearer {token}', 'Accept': 'application/json'},
        timeout=15,
    )
    if resp.status_code == 401:
        logger.warning("Payment gateway returned 401, refreshing token")
        _invalidate_token()
        token = _get_token()
        resp = requests.post(
            url,
            json=body,
            headers={'Authorization': f'Bearer {token}', 'Accept': 'application/json'},
            timeout=15,
        )
    return resp


def merchant_reference(booking_reference: str) -> str:
    return f"SP-{booking_reference}-{int(time.time() * 1000)}"


def initiate_payment(
    booking_reference: str,
    amount: int,
    payment_method: str,
    contact: Dict,
    description: str = '',
    currency: Optional[str] = None,
) -> Dict:
    """
    Submit an order to the gateway.

    Args:
        booking_reference: human-readable booking reference (SF...)
        amount: amount due now, whole currency units
        payment_method: MPESA, AIRTEL_MONEY or CARD
        contact: dict with name, email and phone
        description: shown on the hosted payment page
        currency: overrides PAYMENT_CURRENCY

    Returns:
        dict with redirect_url, order_tracking_id and merchant_reference

    Raises:
        PaymentGatewayError on any transport or gateway failure
    """
    currency = (currency or os.environ.get('PAYMENT_CURRENCY', 'USD')).upper()
    if currency not in VALID_CURRENCIES:
        raise PaymentGatewayError(f"Unsupported currency: {currency}")
    if amount <= 0:
        raise PaymentGatewayError("Payment amount must be greater than zero")

    ipn_id = os.environ.get('PAYMENT_IPN_ID', '').strip()
    if not ipn_id:
        raise PaymentGatewayError("PAYMENT_IPN_ID is not configured")

    name_parts = (contact.get('name') or '').split(' ')
    reference = merchant_reference(booking_reference)
    body = {
        'id': reference,
        'currency': currency,
        'amount': amount,
        'description': (description or f"Safari booking {booking_reference}")[:100],
        'callback_url': os.environ.get('PAYMENT_CALLBACK_URL', ''),
        'notification_id': ipn_id,
        'billing_address': {
            'email_address': contact.get('email', ''),
            'phone_number': contact.get('phone', ''),
            'first_name': name_parts[0],
            'last_name': ' '.join(name_parts[1:]),
        },
    }

    logger.info(f"Payment gateway: submitting order {reference} for {amount} {currency} via {payment_method}")
    try:
        resp = _post('/api/Transactions/SubmitOrderRequest', body)
        resp.raise_for_status()
        data = resp.json()
    except requests.RequestException as e:
        raise PaymentGatewayError(f"Payment gateway request failed: {e}") from e
    except ValueError as e:
        raise PaymentGatewayError("Payment gateway returned an invalid response") from e

    if str(data.get('status')) != '200' or not data.get('redirect_url'):
        message = (data.get('error') or {}).get('message') or 'order was not accepted'
        raise PaymentGatewayError(f"Payment gateway rejected the order: {message}")

    return {
        'redirect_url': data['redirect_url'],
        'order_tracking_id': data.get('order_tracking_id'),
        'merchant_reference': data.get('merchant_reference', reference),
    }
