"""
Shared fixtures: environment, moto-backed DynamoDB tables and record seeding.
"""
import json
import os
import sys
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

# Table names must be in the environment before marketplace.config is imported
TABLES = {
    'USERS_TABLE': 'test-users',
    'TASKS_TABLE': 'test-tasks',
    'SUBMISSIONS_TABLE': 'test-submissions',
    'VOTES_TABLE': 'test-votes',
    'SUSPENSIONS_TABLE': 'test-suspensions',
    'NOTIFICATIONS_TABLE': 'test-notifications',
    'PAYMENTS_TABLE': 'test-payments',
    'ACTIVITY_TABLE': 'test-activity',
    'SETTINGS_TABLE': 'test-settings',
}
os.environ.update(TABLES)
os.environ.update({
    'AWS_REGION': 'us-east-1',
    'AWS_DEFAULT_REGION': 'us-east-1',
    'AWS_ACCESS_KEY_ID': 'testing',
    'AWS_SECRET_ACCESS_KEY': 'testing',
    'AWS_SECURITY_TOKEN': 'testing',
    'AWS_SESSION_TOKEN': 'testing',
})

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import boto3
import pytest
from moto import mock_aws

from marketplace import dynamo, events
from marketplace.models import VoteDecision, vote_id
from marketplace.settings import PlatformSettings
from marketplace.submissions import new_submission_item
from marketplace.tasks import new_task_item
from marketplace.users import new_user_item


def _key(name, kind='S'):
    return {'AttributeName': name, 'AttributeType': kind}


def _index(name, hash_key, range_key=None):
    schema = [{'AttributeName': hash_key, 'KeyType': 'HASH'}]
    if range_key:
        schema.append({'AttributeName': range_key, 'KeyType': 'RANGE'})
    return {'IndexName': name, 'KeySchema': schema, 'Projection': {'ProjectionType': 'ALL'}}


# table env var -> (hash key, extra attribute names, GSIs)
SCHEMAS = {
    'USERS_TABLE': ('userId', [], []),
    'TASKS_TABLE': ('taskId', [], []),
    'SUBMISSIONS_TABLE': ('submissionId', ['taskId', 'submittedAt'], [_index('byTask', 'taskId', 'submittedAt')]),
    'VOTES_TABLE': ('voteId', ['moderatorId', 'votedAt'], [
        _index('byModerator', 'moderatorId', 'votedAt'),
    ]),
    'SUSPENSIONS_TABLE': ('suspensionId', ['userId'], [_index('byUser', 'userId')]),
    'NOTIFICATIONS_TABLE': ('notificationId', [], []),
    'PAYMENTS_TABLE': ('paymentId', ['userId', 'createdAt'], [_index('byUser', 'userId', 'createdAt')]),
    'ACTIVITY_TABLE': ('activityId', [], []),
    'SETTINGS_TABLE': ('settingsId', [], []),
}


@pytest.fixture
def tables(monkeypatch):
    """All platform tables, empty, inside a moto mock."""
    with mock_aws():
        # Clients cached by an earlier test belong to a finished mock
        monkeypatch.setattr(dynamo, '_dynamodb', None)
        monkeypatch.setattr(dynamo, '_client', None)
        monkeypatch.setattr(events, '_events_client', None)

        resource = boto3.resource('dynamodb', region_name='us-east-1')
        for env_name, (hash_key, extra, indexes) in SCHEMAS.items():
            params = {
                'TableName': TABLES[env_name],
                'KeySchema': [{'AttributeName': hash_key, 'KeyType': 'HASH'}],
                'AttributeDefinitions': [_key(hash_key)] + [_key(name) for name in extra],
                'BillingMode': 'PAY_PER_REQUEST',
            }
            if indexes:
                params['GlobalSecondaryIndexes'] = indexes
            resource.create_table(**params)
        yield resource


@pytest.fixture
def settings():
    return PlatformSettings()


@pytest.fixture
def now():
    return datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class Seeder:
    """Writes records straight into the mocked tables."""

    def __init__(self, resource):
        self.resource = resource
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _tick(self):
        self._clock += timedelta(seconds=1)
        return self._clock

    def table(self, env_name):
        return self.resource.Table(TABLES[env_name])

    def user(self, user_id=None, **overrides):
        item = new_user_item(user_id or f'user-{uuid.uuid4().hex[:8]}', **overrides)
        self.table('USERS_TABLE').put_item(Item=item)
        return item

    def moderator(self, user_id=None, **overrides):
        overrides.setdefault('canModerate', True)
        return self.user(user_id, **overrides)

    def task(self, task_id=None, base=Decimal('1'), bonus=Decimal('4'), **overrides):
        item = new_task_item(task_id or f'task-{uuid.uuid4().hex[:8]}', base, bonus, **overrides)
        self.table('TASKS_TABLE').put_item(Item=item)
        return item

    def submission(self, task_id, worker_id, submission_id=None, **overrides):
        item = new_submission_item(
            submission_id or f'sub-{uuid.uuid4().hex[:8]}', task_id, worker_id, 'Sent the outreach email', self._tick()
        )
        item.update(overrides)
        self.table('SUBMISSIONS_TABLE').put_item(Item=item)
        return item

    def scored_vote(self, moderator_id, was_correct, submission_id=None):
        """A historical, already scored vote of a moderator."""
        submission_id = submission_id or f'old-{uuid.uuid4().hex[:8]}'
        item = {
            'voteId': vote_id(submission_id, moderator_id),
            'submissionId': submission_id,
            'moderatorId': moderator_id,
            'decision': VoteDecision.APPROVE,
            'votedAt': self._tick().isoformat(),
            'wasCorrect': was_correct,
        }
        self.table('VOTES_TABLE').put_item(Item=item)
        return item

    def get(self, env_name, key):
        return self.table(env_name).get_item(Key=key).get('Item')

    def scan(self, env_name):
        return self.table(env_name).scan()['Items']


@pytest.fixture
def seed(tables):
    return Seeder(tables)


def api_event(user_id=None, body=None, path=None, query=None, resource='/'):
    """API Gateway proxy event with Cognito claims."""
    event = {
        'resource': resource,
        'httpMethod': 'POST',
        'pathParameters': path,
        'queryStringParameters': query,
        'body': json.dumps(body) if body is not None else None,
        'requestContext': {'authorizer': {'claims': {'sub': user_id}}} if user_id else {},
    }
    return event


@pytest.fixture
def make_event():
    return api_event


