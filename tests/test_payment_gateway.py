from unittest.mock import MagicMock, patch
import time

import pytest
import requests

import payment_gateway
from payment_gateway import PaymentGatewayError, initiate_payment

CONTACT = {'name': 'Amina Otieno', 'email': 'amina@example.com', 'phone': '+254700000000'}


@pytest.fixture(autouse=True)
def gateway_env(monkeypatch):
    monkeypatch.setenv('PAYMENT_GATEWAY_URL', 'https://pay.example.test/v3/')
    monkeypatch.setenv('PAYMENT_CONSUMER_KEY', 'key')
    monkeypatch.setenv('PAYMENT_CONSUMER_SECRET', 'secret')
    monkeypatch.setenv('PAYMENT_IPN_ID', 'ipn-1')
    monkeypatch.setenv('PAYMENT_CALLBACK_URL', 'https://safari.example.test/payment/callback')
    monkeypatch.delenv('PAYMENT_CURRENCY', raising=False)
    payment_gateway._invalidate_token()
    yield
    payment_gateway._invalidate_token()


def response(status_code=200, body=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = body or {}
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f'{status_code} error')
    return resp


TOKEN = response(body={'token': 'tok-1', 'expiryDate': '2099-01-01T00:00:00Z', 'status': '200'})
ORDER = response(body={
    'order_tracking_id': 'trk-1',
    'merchant_reference': 'SP-SFX-1',
    'redirect_url': 'https://pay.example.test/checkout/trk-1',
    'status': '200',
})


def test_initiate_payment_returns_redirect():
    with patch('payment_gateway.requests.post', side_effect=[TOKEN, ORDER]) as post:
        order = initiate_payment('SFX', 926, 'MPESA', CONTACT, description='Maasai Mara Explorer')

    assert order['redirect_url'] == 'https://pay.example.test/checkout/trk-1'
    assert order['order_tracking_id'] == 'trk-1'

    token_call, order_call = post.call_args_list
    assert token_call[0][0] == 'https://pay.example.test/v3/api/Auth/RequestToken'
    body = order_call[1]['json']
    assert body['amount'] == 926
    assert body['currency'] == 'USD'
    assert body['notification_id'] == 'ipn-1'
    assert body['id'].startswith('SP-SFX-')
    assert body['billing_address']['first_name'] == 'Amina'
    assert body['billing_address']['last_name'] == 'Otieno'
    assert order_call[1]['headers']['Authorization'] == 'Bearer tok-1'


def test_token_is_reused_while_valid():
    with patch('payment_gateway.requests.post', side_effect=[TOKEN, ORDER, ORDER]) as post:
        initiate_payment('SFX', 100, 'CARD', CONTACT)
        initiate_payment('SFY', 100, 'CARD', CONTACT)

    assert post.call_count == 3


def test_token_near_expiry_is_refreshed():
    payment_gateway._gateway_token_cache.update({'token': 'old', 'expires_at': time.time() + 10})
    with patch('payment_gateway.requests.post', side_effect=[TOKEN, ORDER]) as post:
        initiate_payment('SFX', 100, 'CARD', CONTACT)

    assert post.call_args_list[1][1]['headers']['Authorization'] == 'Bearer tok-1'


def test_401_refreshes_token_once():
    payment_gateway._gateway_token_cache.update({'token': 'stale', 'expires_at': time.time() + 3600})
    with patch('payment_gateway.requests.post', side_effect=[response(401), TOKEN, ORDER]) as post:
        order = initiate_payment('SFX', 100, 'AIRTEL_MONEY', CONTACT)

    assert order['order_tracking_id'] == 'trk-1'
    assert post.call_count == 3


def test_rejected_order_raises():
    rejected = response(body={'status': '500', 'error': {'message': 'Invalid amount'}})
    with patch('payment_gateway.requests.post', side_effect=[TOKEN, rejected]):
        with pytest.raises(PaymentGatewayError, match='Invalid amount'):
            initiate_payment('SFX', 100, 'CARD', CONTACT)


def test_network_failure_raises_gateway_error():
    with patch('payment_gateway.requests.post', side_effect=requests.ConnectionError('down')):
        with pytest.raises(PaymentGatewayError, match='authenticate'):
            initiate_payment('SFX', 100, 'CARD', CONTACT)


def test_missing_credentials(monkeypatch):
    monkeypatch.delenv('PAYMENT_CONSUMER_SECRET')
    with patch('payment_gateway.requests.post') as post:
        with pytest.raises(PaymentGatewayError, match='credentials'):
            initiate_payment('SFX', 100, 'CARD', CONTACT)
    post.assert_not_called()


def test_unsupported_currency():
    with pytest.raises(PaymentGatewayError, match='currency'):
        initiate_payment('SFX', 100, 'CARD', CONTACT, currency='EUR')


def test_zero_amount_rejected():
    with pytest.raises(PaymentGatewayError, match='greater than zero'):
        initiate_payment('SFX', 0, 'CARD', CONTACT)
