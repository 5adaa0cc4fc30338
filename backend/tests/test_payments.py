"""
Tests for withdrawal requests and payment review.
"""
from decimal import Decimal

import pytest

from marketplace.errors import BadRequestError, ForbiddenError, InvalidStateError, NotFoundError
from marketplace.models import PaymentStatus, UserRole
from marketplace.payments import list_payments, request_withdrawal, review_payment


@pytest.fixture
def world(seed):
    seed.user('mod-1', canModerate=True, pendingEarnings=Decimal('30.00'), totalEarnings=Decimal('30.00'))
    seed.user('admin-1', role=UserRole.ADMIN)


def balance(seed, user_id='mod-1'):
    return seed.get('USERS_TABLE', {'userId': user_id})


class TestRequestWithdrawal:

    def test_deducts_pending_earnings(self, seed, world, settings):
        payment = request_withdrawal('mod-1', '12.50', settings, notes='PayPal')

        assert payment['status'] == PaymentStatus.PENDING
        assert payment['amount'] == Decimal('12.50')
        assert balance(seed)['pendingEarnings'] == Decimal('17.50')
        assert balance(seed)['totalEarnings'] == Decimal('30.00')
        assert [p['paymentId'] for p in list_payments('mod-1')] == [payment['paymentId']]

    def test_below_minimum(self, world, settings):
        with pytest.raises(BadRequestError, match='Minimum withdrawal'):
            request_withdrawal('mod-1', 9.99, settings)

    def test_above_balance(self, seed, world, settings):
        with pytest.raises(BadRequestError, match='Insufficient balance'):
            request_withdrawal('mod-1', 30.01, settings)
        assert balance(seed)['pendingEarnings'] == Decimal('30.00')

    def test_one_pending_request_at_a_time(self, world, settings):
        request_withdrawal('mod-1', 10, settings)
        with pytest.raises(BadRequestError, match='pending withdrawal'):
            request_withdrawal('mod-1', 10, settings)

    @pytest.mark.parametrize('amount', ['abc', '-5', 'NaN'])
    def test_invalid_amount(self, world, settings, amount):
        with pytest.raises(BadRequestError):
            request_withdrawal('mod-1', amount, settings)


class TestReviewPayment:

    @pytest.fixture
    def pending(self, world, settings):
        return request_withdrawal('mod-1', 20, settings)

    def test_completed_moves_money_out(self, seed, pending):
        result = review_payment(pending['paymentId'], 'admin-1', PaymentStatus.COMPLETED)

        assert result['status'] == PaymentStatus.COMPLETED
        user = balance(seed)
        assert user['pendingEarnings'] == Decimal('10.00')
        assert user['withdrawnAmount'] == Decimal('20')

    def test_failed_refunds(self, seed, pending):
        review_payment(pending['paymentId'], 'admin-1', PaymentStatus.FAILED, notes='Bounced', flag=True)

        user = balance(seed)
        assert user['pendingEarnings'] == Decimal('30.00')
        assert user['withdrawnAmount'] == Decimal('0')
        stored = seed.get('PAYMENTS_TABLE', {'paymentId': pending['paymentId']})
        assert stored['flagged'] is True
        assert stored['reviewNotes'] == 'Bounced'

    def test_already_reviewed(self, pending):
        review_payment(pending['paymentId'], 'admin-1', PaymentStatus.COMPLETED)
        with pytest.raises(InvalidStateError):
            review_payment(pending['paymentId'], 'admin-1', PaymentStatus.FAILED)

    def test_staff_only(self, pending):
        with pytest.raises(ForbiddenError):
            review_payment(pending['paymentId'], 'mod-1', PaymentStatus.COMPLETED)

    def test_unknown_status(self, pending):
        with pytest.raises(BadRequestError):
            review_payment(pending['paymentId'], 'admin-1', PaymentStatus.PENDING)

    def test_unknown_payment(self, world):
        with pytest.raises(NotFoundError):
            review_payment('missing', 'admin-1', PaymentStatus.COMPLETED)
