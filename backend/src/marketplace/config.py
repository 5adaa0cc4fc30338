"""
Configuration module for Lambda handlers.
Loads all environment variables needed by the platform.
"""
import os


class Config:
    """Centralized configuration from environment variables."""

    # AWS Region
    AWS_REGION = os.environ.get('AWS_REGION', 'us-east-1')

    # DynamoDB Tables
    USERS_TABLE = os.environ.get('USERS_TABLE', '')
    TASKS_TABLE = os.environ.get('TASKS_TABLE', '')
    SUBMISSIONS_TABLE = os.environ.get('SUBMISSIONS_TABLE', '')
    VOTES_TABLE = os.environ.get('VOTES_TABLE', '')
    SUSPENSIONS_TABLE = os.environ.get('SUSPENSIONS_TABLE', '')
    NOTIFICATIONS_TABLE = os.environ.get('NOTIFICATIONS_TABLE', '')
    PAYMENTS_TABLE = os.environ.get('PAYMENTS_TABLE', '')
    ACTIVITY_TABLE = os.environ.get('ACTIVITY_TABLE', '')
    SETTINGS_TABLE = os.environ.get('SETTINGS_TABLE', '')

    # Secondary indexes
    SUBMISSIONS_BY_TASK_INDEX = 'byTask'
    VOTES_BY_MODERATOR_INDEX = 'byModerator'
    BY_USER_INDEX = 'byUser'

    # EventBridge bus for finalized submission events (optional)
    EVENT_BUS_NAME = os.environ.get('EVENT_BUS_NAME', '')

    # Singleton key of the platform settings item
    SETTINGS_ID = os.environ.get('SETTINGS_ID', 'GLOBAL')


config = Config()
