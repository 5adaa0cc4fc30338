"""
Logging utilities for Lambda handlers.
All modules log through the `marketplace` logger; handlers call log_event on
entry and log_failure when a request ends in an error response.
"""
import logging
import json
import os

from .errors import MarketplaceError

logger = logging.getLogger('marketplace')
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO').upper())

# Add handler if not already configured
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logger.addHandler(handler)

# Request fields never written to the log
_REDACTED_KEYS = ('body', 'headers', 'multiValueHeaders')


def log_event(event: dict) -> None:
    """Log incoming Lambda event for debugging, without body or headers."""
    try:
        safe_event = {k: v for k, v in event.items() if k not in _REDACTED_KEYS}
        logger.info(f"Lambda event: {json.dumps(safe_event, default=str)}")
    except Exception as e:
        logger.warning(f"Could not log event: {e}")


def log_failure(operation: str, error: Exception) -> None:
    """Domain errors are expected outcomes and log at warning; anything else with a traceback."""
    if isinstance(error, MarketplaceError):
        logger.warning(f"{operation} refused: {error.code} {error.message}")
    else:
        logger.exception(f"{operation} failed: {error}")
