"""
Integration tests for the accounts payable and payments API
"""

from datetime import date
from decimal import Decimal

import pytest

import ledger_routes
from app import db
from models import AccountsPayable, Payment
from services.exceptions import ConcurrencyConflictError
from tests.conftest import AccountsPayableFactory, PaymentFactory


def post_payment(client, payable_id, amount, date_paid='2024-01-15', **extra):
    body = {'accountsPayableId': payable_id, 'amount': amount, 'datePaid': date_paid}
    body.update(extra)
    return client.post('/api/payments', json=body)


class TestPaymentsAPI:
    """Reconciliation through the HTTP surface"""

    def test_full_scenario(self, admin_client, payable):
        response = post_payment(admin_client, payable.id, '600.00', '2024-01-10')
        assert response.status_code == 201
        body = response.get_json()
        assert body['success'] is True
        assert body['data']['amount'] == 600.0
        assert body['payable']['paidAmount'] == 600.0
        assert body['payable']['isPaid'] is False

        response = post_payment(admin_client, payable.id, '400.00', '2024-01-20')
        final_id = response.get_json()['data']['id']
        payable_data = response.get_json()['payable']
        assert payable_data['isPaid'] is True
        assert payable_data['paidDate'] == '2024-01-20'
        assert payable_data['balance'] == 0.0

        response = post_payment(admin_client, payable.id, '0.01', '2024-01-21')
        assert response.status_code == 400
        assert response.get_json() == {
            'success': False,
            'error': 'Payment exceeds remaining balance of 0.00',
        }

        response = admin_client.delete(f'/api/payments/{final_id}')
        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['paidAmount'] == 600.0
        assert data['isPaid'] is False
        assert data['paidDate'] is None

    def test_list_payments_newest_first(self, admin_client, payable):
        PaymentFactory(accounts_payable=payable, amount=Decimal('100'), date_paid=date(2024, 1, 5))
        PaymentFactory(accounts_payable=payable, amount=Decimal('200'), date_paid=date(2024, 1, 25))

        response = admin_client.get(f'/api/payments?accountsPayableId={payable.id}')

        assert response.status_code == 200
        assert [p['datePaid'] for p in response.get_json()['data']] == ['2024-01-25', '2024-01-05']

    def test_list_payments_requires_payable(self, admin_client):
        response = admin_client.get('/api/payments')

        assert response.status_code == 400
        assert response.get_json()['error'] == 'accountsPayableId is required'

    def test_missing_fields(self, admin_client, payable):
        response = admin_client.post('/api/payments', json={'accountsPayableId': payable.id})
        assert response.status_code == 400
        assert response.get_json()['success'] is False

    @pytest.mark.parametrize('amount, error', [
        ('0.00001', 'amount must have at most 4 decimal places'),
        ('100000000000', 'amount must be less than 10,000,000,000'),
    ])
    def test_amount_must_fit_money_column(self, admin_client, payable, amount, error):
        response = post_payment(admin_client, payable.id, amount)

        assert response.status_code == 400
        assert response.get_json() == {'success': False, 'error': error}
        assert Payment.query.count() == 0

    def test_unknown_payable(self, admin_client):
        response = post_payment(admin_client, 9999, '10')

        assert response.status_code == 404
        assert response.get_json()['error'] == 'Accounts payable record not found'

    def test_delete_unknown_payment(self, admin_client):
        response = admin_client.delete('/api/payments/9999')

        assert response.status_code == 404
        assert response.get_json()['error'] == 'Payment not found'


class TestConflictRetry:
    """ConcurrencyConflictError is retried exactly once by the endpoint"""

    def test_retried_once_then_succeeds(self, admin_client, payable, monkeypatch):
        original = ledger_routes.ledger_service.apply_payment
        calls = []

        def flaky_apply(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                raise ConcurrencyConflictError("The record was modified by another request, please try again")
            return original(*args, **kwargs)

        monkeypatch.setattr(ledger_routes.ledger_service, 'apply_payment', flaky_apply)

        response = post_payment(admin_client, payable.id, '250.00')

        assert response.status_code == 201
        assert len(calls) == 2
        assert Payment.query.count() == 1

    def test_second_conflict_returns_409(self, admin_client, payable, monkeypatch):
        calls = []

        def always_conflicts(*args, **kwargs):
            calls.append(args)
            raise ConcurrencyConflictError("The record was modified by another request, please try again")

        monkeypatch.setattr(ledger_routes.ledger_service, 'apply_payment', always_conflicts)

        response = post_payment(admin_client, payable.id, '250.00')

        assert response.status_code == 409
        assert response.get_json()['success'] is False
        assert len(calls) == 2

    def test_balance_errors_are_not_retried(self, admin_client, payable, monkeypatch):
        original = ledger_routes.ledger_service.apply_payment
        calls = []

        def counting_apply(*args, **kwargs):
            calls.append(args)
            return original(*args, **kwargs)

        monkeypatch.setattr(ledger_routes.ledger_service, 'apply_payment', counting_apply)

        response = post_payment(admin_client, payable.id, '5000.00')

        assert response.status_code == 400
        assert len(calls) == 1


class TestAccountsPayableAPI:

    def test_create_and_get(self, admin_client, bus):
        response = admin_client.post('/api/accounts-payable', json={
            'busId': bus.id,
            'category': 'SPARE_PARTS',
            'description': 'Brake pads',
            'amount': 2400,
            'dueDate': '2024-05-01',
            'supplier': 'Parts Depot',
            'invoiceNumber': 'INV-001',
        })

        assert response.status_code == 201
        created = response.get_json()['data']
        assert created['isPaid'] is False
        assert created['paidAmount'] == 0.0
        assert created['bus']['busNumber'] == bus.bus_number

        response = admin_client.get(f"/api/accounts-payable/{created['id']}")
        assert response.status_code == 200
        assert response.get_json()['data']['payments'] == []

    def test_create_validation(self, admin_client, bus):
        response = admin_client.post('/api/accounts-payable', json={
            'busId': bus.id, 'category': 'FOOD', 'description': 'x', 'amount': 10,
        })
        assert response.status_code == 400
        assert 'category' in response.get_json()['error']

    def test_create_for_unknown_bus(self, admin_client):
        response = admin_client.post('/api/accounts-payable', json={
            'busId': 9999, 'category': 'LABOR', 'description': 'x', 'amount': 10,
        })
        assert response.status_code == 404

    def test_list_filters(self, admin_client, bus):
        AccountsPayableFactory(bus=bus, is_paid=True, paid_amount=Decimal('1000'))
        AccountsPayableFactory(bus=bus)
        AccountsPayableFactory()

        unpaid = admin_client.get(f'/api/accounts-payable?busId={bus.id}&isPaid=false').get_json()['data']
        assert len(unpaid) == 1
        assert unpaid[0]['isPaid'] is False

        everything = admin_client.get('/api/accounts-payable').get_json()['data']
        assert len(everything) == 3

    def test_update_ignores_derived_fields(self, admin_client, payable):
        response = admin_client.put(f'/api/accounts-payable/{payable.id}', json={
            'description': 'Updated',
            'isPaid': True,
            'paidAmount': 1000,
            'paidDate': '2024-01-01',
        })

        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['description'] == 'Updated'
        assert data['isPaid'] is False
        assert data['paidAmount'] == 0.0
        assert data['paidDate'] is None

    def test_update_amount_reconciles(self, admin_client, payable):
        post_payment(admin_client, payable.id, '900.00', '2024-01-12')

        response = admin_client.put(f'/api/accounts-payable/{payable.id}', json={'amount': 900})

        data = response.get_json()['data']
        assert data['isPaid'] is True
        assert data['paidDate'] == '2024-01-12'

    def test_delete_cascades_payments(self, admin_client, payable):
        payable_id = payable.id
        post_payment(admin_client, payable_id, '100.00')

        response = admin_client.delete(f'/api/accounts-payable/{payable_id}')

        assert response.status_code == 200
        assert db.session.get(AccountsPayable, payable_id) is None
        assert Payment.query.count() == 0

    def test_summary(self, admin_client, bus):
        AccountsPayableFactory(bus=bus, amount=Decimal('400'), due_date=date(2000, 1, 1))

        response = admin_client.get('/api/accounts-payable/summary')

        assert response.status_code == 200
        summary = response.get_json()['data']
        assert summary['totalUnpaid'] == 400.0
        assert summary['overdueCount'] == 1

    @pytest.mark.parametrize('method, path', [
        ('get', '/api/accounts-payable'),
        ('get', '/api/accounts-payable/summary'),
        ('post', '/api/payments'),
        ('delete', '/api/payments/1'),
    ])
    def test_requires_login(self, client, method, path):
        response = getattr(client, method)(path)

        assert response.status_code == 401
        assert response.get_json() == {'success': False, 'error': 'Unauthorized'}
