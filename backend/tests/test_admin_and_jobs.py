"""
Tests for manual admin actions, moderator eligibility and the timeout hook.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from marketplace.audit import (
    ModeratorAccessChanged, SuspensionAppealReviewed, SuspensionAppealSubmitted, UserSuspended, event_from_item
)
from marketplace.eligibility import upgrade_moderators
from marketplace.errors import BadRequestError, ForbiddenError, InvalidStateError, NotFoundError
from marketplace.models import AccountStatus, NotificationType, SubmissionStatus, SuspensionType, UserRole
from marketplace.timeouts import report_moderation_timeouts
from marketplace.users import (
    get_flagged_users,
    get_suspension_history,
    review_suspension_appeal,
    set_moderator_access,
    submit_suspension_appeal,
    suspend_user,
)


@pytest.fixture
def world(seed):
    seed.user('admin-1', role=UserRole.ADMIN)
    seed.user('manager-1', role=UserRole.MANAGER)
    seed.user('worker-1')


class TestSuspendUser:

    def test_manual_suspension(self, seed, world, now):
        result = suspend_user('admin-1', 'worker-1', AccountStatus.SUSPENDED, 'Spam', now=now)

        assert result['suspensionEndDate'] == datetime(2026, 4, 15, 12, 0, tzinfo=timezone.utc).isoformat()
        user = seed.get('USERS_TABLE', {'userId': 'worker-1'})
        assert user['accountStatus'] == AccountStatus.SUSPENDED
        assert user['suspensionReason'] == 'Spam'

        records = seed.scan('SUSPENSIONS_TABLE')
        assert [(r['suspensionType'], r['suspendedBy']) for r in records] == [(SuspensionType.MANUAL, 'admin-1')]
        activity = [event_from_item(a) for a in seed.scan('ACTIVITY_TABLE')]
        assert activity == [UserSuspended(target_user_id='worker-1', status=AccountStatus.SUSPENDED, reason='Spam')]

    def test_reactivation_writes_no_record(self, seed, world):
        suspend_user('admin-1', 'worker-1', AccountStatus.ACTIVE, 'Appeal accepted')
        assert seed.scan('SUSPENSIONS_TABLE') == []

    def test_admins_cannot_be_suspended(self, seed, world):
        seed.user('admin-2', role=UserRole.ADMIN)
        with pytest.raises(BadRequestError):
            suspend_user('admin-1', 'admin-2', AccountStatus.BANNED, 'No')

    def test_managers_cannot_suspend(self, world):
        with pytest.raises(ForbiddenError):
            suspend_user('manager-1', 'worker-1', AccountStatus.SUSPENDED, 'Spam')


class TestModeratorAccess:

    def test_grant_and_revoke(self, seed, world, now):
        set_moderator_access('admin-1', 'worker-1', True, now=now)
        user = seed.get('USERS_TABLE', {'userId': 'worker-1'})
        assert user['canModerate'] is True
        assert user['moderatorSince'] == now.isoformat()

        set_moderator_access('admin-1', 'worker-1', False, now=now)
        assert seed.get('USERS_TABLE', {'userId': 'worker-1'})['canModerate'] is False

        kinds = sorted(event_from_item(a).can_moderate for a in seed.scan('ACTIVITY_TABLE'))
        assert kinds == [False, True]

    def test_no_op_change_is_invalid_state(self, world):
        with pytest.raises(InvalidStateError):
            set_moderator_access('admin-1', 'worker-1', False)

    def test_event_kind(self, seed, world):
        set_moderator_access('admin-1', 'worker-1', True)
        [item] = seed.scan('ACTIVITY_TABLE')
        assert item['kind'] == ModeratorAccessChanged.kind


class TestUpgradeModerators:

    def test_eligible_users_are_upgraded(self, seed, settings, now):
        seed.user('earner', totalEarnings=Decimal('25.00'))
        seed.user('almost', totalEarnings=Decimal('24.99'))
        seed.user('suspended', totalEarnings=Decimal('100'), accountStatus=AccountStatus.SUSPENDED)
        seed.user('manager', role=UserRole.MANAGER, totalEarnings=Decimal('100'))
        seed.moderator('already', totalEarnings=Decimal('100'))

        result = upgrade_moderators(settings, now=now)

        assert result == {'eligible': 1, 'upgraded': 1, 'skipped': 0}
        earner = seed.get('USERS_TABLE', {'userId': 'earner'})
        assert earner['canModerate'] is True
        assert earner['moderatorSince'] == now.isoformat()
        assert seed.get('USERS_TABLE', {'userId': 'almost'})['canModerate'] is False
        assert [n['userId'] for n in seed.scan('NOTIFICATIONS_TABLE')] == ['earner']

    def test_user_without_moderation_flag_is_eligible(self, seed, settings):
        item = seed.user('legacy', totalEarnings=Decimal('30'))
        del item['canModerate']
        seed.table('USERS_TABLE').put_item(Item=item)

        assert upgrade_moderators(settings) == {'eligible': 1, 'upgraded': 1, 'skipped': 0}
        assert seed.get('USERS_TABLE', {'userId': 'legacy'})['canModerate'] is True

    def test_second_run_changes_nothing(self, seed, settings):
        seed.user('earner', totalEarnings=Decimal('30'))
        upgrade_moderators(settings)
        assert upgrade_moderators(settings) == {'eligible': 0, 'upgraded': 0, 'skipped': 0}


class TestModerationTimeoutHook:
    """Stale submissions are reported only; what should happen to them is undecided."""

    def test_reports_without_acting(self, seed, settings, now):
        seed.task('task-1')
        seed.user('worker-1')
        old = seed.submission('task-1', 'worker-1', 'old')
        seed.table('SUBMISSIONS_TABLE').update_item(
            Key={'submissionId': 'old'},
            UpdateExpression='SET submittedAt = :ts',
            ExpressionAttributeValues={':ts': (now - timedelta(hours=30)).isoformat()}
        )
        seed.submission('task-1', 'worker-1', 'fresh')
        seed.table('SUBMISSIONS_TABLE').update_item(
            Key={'submissionId': 'fresh'},
            UpdateExpression='SET submittedAt = :ts',
            ExpressionAttributeValues={':ts': (now - timedelta(hours=1)).isoformat()}
        )

        result = report_moderation_timeouts(settings, now=now)

        assert result == {'stale': 1, 'submissionIds': ['old']}
        stored = seed.get('SUBMISSIONS_TABLE', {'submissionId': 'old'})
        assert stored['status'] == old['status'] == SubmissionStatus.PENDING_MODERATION
        assert stored['totalVotes'] == 0


@pytest.fixture
def suspended(seed, world, now):
    suspend_user('admin-1', 'worker-1', AccountStatus.SUSPENDED, 'Spam', now=now)
    [record] = seed.scan('SUSPENSIONS_TABLE')
    return record['suspensionId']


def appeal_notices(seed, user_id):
    return [n for n in seed.scan('NOTIFICATIONS_TABLE') if n['userId'] == user_id and n['title'] == 'Appeal Reviewed']


class TestSuspensionAppeals:

    def test_approval_reactivates_account(self, seed, suspended, now):
        submit_suspension_appeal('worker-1', suspended, 'The links were requested by the client', now=now)
        result = review_suspension_appeal('manager-1', suspended, True, 'Confirmed with the client', now=now)

        assert result['message'] == 'Appeal approved successfully'
        user = seed.get('USERS_TABLE', {'userId': 'worker-1'})
        assert user['accountStatus'] == AccountStatus.ACTIVE
        assert user['suspensionReason'] is None
        assert user['suspensionEndDate'] is None

        record = seed.get('SUSPENSIONS_TABLE', {'suspensionId': suspended})
        assert record['appealReason'] == 'The links were requested by the client'
        assert record['appealApproved'] is True
        assert record['appealReviewedBy'] == 'manager-1'

        [notice] = appeal_notices(seed, 'worker-1')
        assert notice['type'] == NotificationType.SUSPENSION_NOTICE
        assert notice['message'] == (
            'Your suspension appeal has been approved. Your account is now active. Confirmed with the client'
        )

        activity = [event_from_item(a) for a in seed.scan('ACTIVITY_TABLE')]
        assert SuspensionAppealSubmitted(
            suspension_id=suspended, reason='The links were requested by the client'
        ) in activity
        assert SuspensionAppealReviewed(
            suspension_id=suspended, target_user_id='worker-1', approved=True, notes='Confirmed with the client'
        ) in activity

    def test_denial_keeps_suspension(self, seed, suspended):
        submit_suspension_appeal('worker-1', suspended, 'Please reconsider')
        result = review_suspension_appeal('admin-1', suspended, False, 'Repeated spam')

        assert result['message'] == 'Appeal denied successfully'
        assert seed.get('USERS_TABLE', {'userId': 'worker-1'})['accountStatus'] == AccountStatus.SUSPENDED
        assert seed.get('SUSPENSIONS_TABLE', {'suspensionId': suspended})['appealApproved'] is False
        [notice] = appeal_notices(seed, 'worker-1')
        assert notice['message'] == 'Your suspension appeal has been denied. Repeated spam'

    def test_admins_are_told_about_new_appeals(self, seed, suspended):
        submit_suspension_appeal('worker-1', suspended, 'Please reconsider')
        titles = [n['title'] for n in seed.scan('NOTIFICATIONS_TABLE') if n['userId'] == 'admin-1']
        assert titles == ['New Suspension Appeal']

    def test_review_without_appeal_is_bad_request(self, suspended):
        with pytest.raises(BadRequestError, match='No appeal'):
            review_suspension_appeal('admin-1', suspended, True)

    def test_second_review_is_invalid_state(self, suspended):
        submit_suspension_appeal('worker-1', suspended, 'Please reconsider')
        review_suspension_appeal('admin-1', suspended, False)
        with pytest.raises(InvalidStateError):
            review_suspension_appeal('manager-1', suspended, True)

    def test_only_staff_review(self, suspended):
        submit_suspension_appeal('worker-1', suspended, 'Please reconsider')
        with pytest.raises(ForbiddenError):
            review_suspension_appeal('worker-1', suspended, True)

    def test_unknown_suspension(self, world):
        with pytest.raises(NotFoundError):
            review_suspension_appeal('admin-1', 'missing', True)

    def test_only_own_suspension_can_be_appealed(self, seed, suspended):
        seed.user('worker-2')
        with pytest.raises(ForbiddenError):
            submit_suspension_appeal('worker-2', suspended, 'Not mine')

    def test_appeal_only_once(self, suspended):
        submit_suspension_appeal('worker-1', suspended, 'Please reconsider')
        with pytest.raises(InvalidStateError):
            submit_suspension_appeal('worker-1', suspended, 'Please, again')


class TestSuspensionHistory:

    def test_newest_first_and_paged(self, seed, world, now):
        seed.user('worker-2')
        suspend_user('admin-1', 'worker-1', AccountStatus.SUSPENDED, 'First', now=now)
        suspend_user('admin-1', 'worker-1', AccountStatus.BANNED, 'Second', now=now + timedelta(days=1))
        suspend_user('admin-1', 'worker-2', AccountStatus.SUSPENDED, 'Other', now=now + timedelta(days=2))

        first = get_suspension_history('manager-1', user_id='worker-1', limit=1)
        assert first['totalCount'] == 2
        assert [r['reason'] for r in first['suspensions']] == ['Second']

        second = get_suspension_history('manager-1', user_id='worker-1', page=2, limit=1)
        assert [r['reason'] for r in second['suspensions']] == ['First']

        everyone = get_suspension_history('admin-1')
        assert [r['reason'] for r in everyone['suspensions']] == ['Other', 'Second', 'First']

    def test_paging_is_clamped(self, world):
        result = get_suspension_history('admin-1', page=0, limit=500)
        assert (result['page'], result['limit'], result['totalCount']) == (1, 100, 0)

    def test_staff_only(self, world):
        with pytest.raises(ForbiddenError):
            get_suspension_history('worker-1')


class TestFlaggedUsers:

    def test_high_rejection_low_accuracy_and_flagged_payments(self, seed, world):
        seed.user('sloppy', tasksCompleted=6, tasksRejected=4)
        seed.user('careless', tasksCompleted=3, tasksRejected=1)
        seed.user('borderline', tasksCompleted=8, tasksRejected=2)
        seed.moderator('weak', moderatorVotes=11, moderatorAccuracy=Decimal('0.6'))
        seed.moderator('new', moderatorVotes=10, moderatorAccuracy=Decimal('0.5'))
        seed.moderator('solid', moderatorVotes=40, moderatorAccuracy=Decimal('0.9'))
        for payment_id, flagged in [('pay-1', True), ('pay-2', False)]:
            seed.table('PAYMENTS_TABLE').put_item(Item={
                'paymentId': payment_id, 'userId': 'weak', 'amount': Decimal('20'),
                'status': 'Completed', 'createdAt': '2026-03-01T00:00:00+00:00', 'flagged': flagged
            })

        result = get_flagged_users('manager-1')

        assert [u['userId'] for u in result['highRejectionUsers']] == ['sloppy', 'careless']
        assert result['highRejectionUsers'][0]['rejectionRate'] == Decimal('0.4')
        assert [m['userId'] for m in result['lowAccuracyModerators']] == ['weak']
        assert [p['paymentId'] for p in result['flaggedPayments']] == ['pay-1']

    def test_staff_only(self, world):
        with pytest.raises(ForbiddenError):
            get_flagged_users('worker-1')
