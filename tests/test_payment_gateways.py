from __future__ import annotations

import hashlib
import io
import json
import unittest
from decimal import Decimal
from unittest.mock import MagicMock, patch
from urllib.error import HTTPError, URLError

from app.config import settings
from app.models import TransactionStatus
from app.services import gateway_factory
from app.services.midtrans_payment_gateway import (
    SANDBOX_API_URL,
    SANDBOX_SNAP_URL,
    MidtransPaymentGateway,
    notification_signature,
)
from app.services.mock_payment_gateway import MockPaymentGateway
from app.services.payment_gateway import ChargeRequest, map_gateway_status, status_from_payload


def charge_request(order_id: str = 'TRX-1-ABCD') -> ChargeRequest:
    return ChargeRequest(
        order_id=order_id,
        gross_amount=Decimal('3502500.40'),
        item_name='rent INV-1-WXYZ',
        customer_name='Rina',
        customer_email='rina@example.com',
        customer_phone=None,
        finish_url='http://localhost:8000/payment/finish',
    )


def fake_response(payload: dict) -> MagicMock:
    opened = MagicMock()
    opened.__enter__.return_value.read.return_value = json.dumps(payload).encode('utf-8')
    return opened


class GatewayStatusTests(unittest.TestCase):
    def test_gateway_statuses_map_to_transaction_statuses(self) -> None:
        self.assertEqual(map_gateway_status('settlement'), TransactionStatus.SUCCESS)
        self.assertEqual(map_gateway_status('CAPTURE'), TransactionStatus.SUCCESS)
        self.assertEqual(map_gateway_status('pending'), TransactionStatus.PENDING)
        self.assertEqual(map_gateway_status('deny'), TransactionStatus.FAILED)
        self.assertEqual(map_gateway_status('cancel'), TransactionStatus.CANCELLED)
        self.assertEqual(map_gateway_status('expire'), TransactionStatus.EXPIRED)
        with self.assertRaises(ValueError):
            map_gateway_status('')

    def test_status_from_payload_requires_order_id(self) -> None:
        status = status_from_payload({'order_id': ' TRX-9 ', 'transaction_status': 'settlement', 'status_code': '200'})
        self.assertEqual(status.order_id, 'TRX-9')
        self.assertEqual(status.status_code, '200')
        with self.assertRaises(ValueError):
            status_from_payload({'transaction_status': 'settlement'})


class MockGatewayTests(unittest.TestCase):
    def test_charge_redirects_to_finish_page(self) -> None:
        gateway = MockPaymentGateway('success')
        response = gateway.create_charge(charge_request())
        self.assertEqual(response.redirect_url, '/payment/finish?order_id=TRX-1-ABCD')
        self.assertEqual(response.raw['gross_amount'], '3502500.40')

    def test_charges_leave_no_state_behind(self) -> None:
        gateway = MockPaymentGateway('success')
        before = dict(vars(gateway))
        for _ in range(3):
            gateway.create_charge(charge_request())
        self.assertEqual(vars(gateway), before)
        self.assertEqual(gateway.get_status('TRX-never-charged').transaction_status, 'settlement')

    def test_configured_outcome_drives_status(self) -> None:
        self.assertEqual(MockPaymentGateway('success').get_status('TRX-1').transaction_status, 'settlement')
        self.assertEqual(MockPaymentGateway('pending').get_status('TRX-1').transaction_status, 'pending')
        self.assertEqual(MockPaymentGateway('FAILED').get_status('TRX-1').transaction_status, 'deny')
        random_status = MockPaymentGateway('random').get_status('TRX-1').transaction_status
        self.assertIn(random_status, {'settlement', 'pending', 'deny'})
        with self.assertRaises(ValueError):
            MockPaymentGateway('maybe')

    def test_notifications_must_carry_a_valid_signature(self) -> None:
        gateway = MockPaymentGateway('success')
        payload = {'order_id': 'TRX-1', 'status_code': '200', 'gross_amount': '100000.00', 'transaction_status': 'settlement'}
        signed = gateway.sign_notification(payload)

        self.assertTrue(gateway.verify_notification(signed))
        self.assertFalse(gateway.verify_notification(payload))
        self.assertFalse(gateway.verify_notification(dict(signed, gross_amount='1.00')))
        self.assertFalse(gateway.verify_notification(dict(signed, order_id='')))

    def test_signature_is_keyed_by_app_secret(self) -> None:
        payload = {'order_id': 'TRX-1', 'status_code': '200', 'gross_amount': '100000.00'}
        with patch.object(settings, 'app_secret_key', 'first-secret'):
            signed = MockPaymentGateway('success').sign_notification(payload)
        with patch.object(settings, 'app_secret_key', 'second-secret'):
            self.assertFalse(MockPaymentGateway('success').verify_notification(signed))


class MidtransGatewayTests(unittest.TestCase):
    def setUp(self) -> None:
        for name, value in (
            ('midtrans_server_key', 'SB-Mid-server-key'),
            ('midtrans_is_production', False),
            ('midtrans_timeout_seconds', 5),
        ):
            patcher = patch.object(settings, name, value)
            patcher.start()
            self.addCleanup(patcher.stop)
        self.gateway = MidtransPaymentGateway()

    def test_server_key_is_required(self) -> None:
        with patch.object(settings, 'midtrans_server_key', None):
            with self.assertRaises(ValueError):
                MidtransPaymentGateway()

    def test_signature_is_sha512_of_joined_fields(self) -> None:
        expected = hashlib.sha512(b'TRX-1200100000.00SB-Mid-server-key').hexdigest()
        self.assertEqual(notification_signature('TRX-1', '200', '100000.00', 'SB-Mid-server-key'), expected)

    def test_verify_notification(self) -> None:
        payload = {'order_id': 'TRX-1', 'status_code': '200', 'gross_amount': '100000.00'}
        payload['signature_key'] = notification_signature('TRX-1', '200', '100000.00', 'SB-Mid-server-key')
        self.assertTrue(self.gateway.verify_notification(payload))
        self.assertFalse(self.gateway.verify_notification(dict(payload, gross_amount='1.00')))
        self.assertFalse(self.gateway.verify_notification(dict(payload, signature_key='')))

    def test_create_charge_posts_rounded_amount(self) -> None:
        opened = fake_response({'token': 'tok', 'redirect_url': 'https://app.sandbox.midtrans.com/snap/v4/tok'})
        with patch('app.services.midtrans_payment_gateway.urlopen', return_value=opened) as urlopen:
            response = self.gateway.create_charge(charge_request())

        self.assertEqual(response.redirect_url, 'https://app.sandbox.midtrans.com/snap/v4/tok')
        self.assertEqual(response.token, 'tok')
        request = urlopen.call_args.args[0]
        self.assertEqual(request.full_url, f'{SANDBOX_SNAP_URL}/snap/v1/transactions')
        self.assertEqual(request.get_method(), 'POST')
        self.assertTrue(request.get_header('Authorization').startswith('Basic '))
        body = json.loads(request.data.decode('utf-8'))
        self.assertEqual(body['transaction_details'], {'order_id': 'TRX-1-ABCD', 'gross_amount': 3502500})
        self.assertEqual(body['callbacks']['finish'], 'http://localhost:8000/payment/finish')
        self.assertEqual(urlopen.call_args.kwargs['timeout'], 5)

    def test_get_status_reads_status_endpoint(self) -> None:
        opened = fake_response({'order_id': 'TRX-1', 'transaction_status': 'settlement', 'status_code': '200'})
        with patch('app.services.midtrans_payment_gateway.urlopen', return_value=opened) as urlopen:
            status = self.gateway.get_status('TRX-1')
        self.assertEqual(status.transaction_status, 'settlement')
        request = urlopen.call_args.args[0]
        self.assertEqual(request.full_url, f'{SANDBOX_API_URL}/v2/TRX-1/status')
        self.assertEqual(request.get_method(), 'GET')

    def test_errors_become_value_errors(self) -> None:
        http_error = HTTPError(
            f'{SANDBOX_SNAP_URL}/snap/v1/transactions', 401, 'Unauthorized', {}, io.BytesIO(b'{"error_messages":["bad key"]}')
        )
        with patch('app.services.midtrans_payment_gateway.urlopen', side_effect=http_error):
            with self.assertRaises(ValueError):
                self.gateway.create_charge(charge_request())
        with patch('app.services.midtrans_payment_gateway.urlopen', side_effect=URLError('offline')):
            with self.assertRaises(ValueError):
                self.gateway.get_status('TRX-1')
        with patch('app.services.midtrans_payment_gateway.urlopen', return_value=fake_response({'error_messages': ['nope']})):
            with self.assertRaises(ValueError):
                self.gateway.get_status('TRX-1')


class GatewayFactoryTests(unittest.TestCase):
    def setUp(self) -> None:
        gateway_factory.get_payment_gateway.cache_clear()
        self.addCleanup(gateway_factory.get_payment_gateway.cache_clear)

    def test_mock_is_the_default(self) -> None:
        with patch.object(settings, 'payment_gateway', 'mock'), patch.object(settings, 'mock_payment_outcome', 'success'):
            self.assertIsInstance(gateway_factory.get_payment_gateway(), MockPaymentGateway)

    def test_midtrans_is_selected_by_config(self) -> None:
        with patch.object(settings, 'payment_gateway', ' Midtrans '), patch.object(settings, 'midtrans_server_key', 'key'):
            self.assertIsInstance(gateway_factory.get_payment_gateway(), MidtransPaymentGateway)


if __name__ == '__main__':
    unittest.main()
