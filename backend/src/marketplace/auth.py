"""
Authentication utilities for extracting the caller from Cognito tokens.
Roles and moderation access are read from the Users table, not from token
groups, so a revoked moderator loses access on their next request.
"""
from typing import Optional
from .errors import AuthenticationError


def get_user_sub(event: dict) -> Optional[str]:
    """
    Extract user sub (unique ID) from Cognito authorizer claims.

    Args:
        event: API Gateway Lambda proxy event

    Returns:
        User sub string or None if not authenticated
    """
    try:
        return event['requestContext']['authorizer']['claims']['sub']
    except (KeyError, TypeError):
        return None


def require_user_sub(event: dict) -> str:
    """Caller id, or AuthenticationError when the request is anonymous."""
    user_id = get_user_sub(event)
    if not user_id:
        raise AuthenticationError()
    return user_id
