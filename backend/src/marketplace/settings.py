"""
Platform settings provider.
Policy constants live in a singleton item of the Settings table and are loaded
into a frozen PlatformSettings value that is passed into every engine call.
"""
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Any, Dict, Optional
from .config import config
from .dynamo import MAX_TRANSACTION_ITEMS, get_item
from .errors import ConfigurationError
from .logging import logger
from .models import VoteDecision

# A settlement transaction holds four fixed actions plus two per vote
SETTLEMENT_FIXED_ACTIONS = 4
MAX_VOTES_CEILING = (MAX_TRANSACTION_ITEMS - SETTLEMENT_FIXED_ACTIONS) // 2


@dataclass(frozen=True)
class PlatformSettings:
    """Read-only policy values used by the moderation engine."""
    min_votes_required: int = 3
    max_votes_required: int = 5
    moderator_accuracy_min: Decimal = Decimal('0.75')
    suspension_threshold: Decimal = Decimal('0.25')
    moderation_fee_per_vote: Decimal = Decimal('0.05')
    moderator_minimum_earnings: Decimal = Decimal('25')
    minimum_withdrawal: Decimal = Decimal('10')
    moderation_timeout_hours: int = 24
    # Outcome when the vote ceiling is reached on an exact tie
    ceiling_tie_decision: str = VoteDecision.REJECT

    def validate(self) -> 'PlatformSettings':
        if self.min_votes_required < 1:
            raise ConfigurationError('minVotesRequired must be at least 1')
        if self.max_votes_required < self.min_votes_required:
            raise ConfigurationError(
                'maxVotesRequired must not be lower than minVotesRequired',
                {'min': self.min_votes_required, 'max': self.max_votes_required}
            )
        if self.max_votes_required > MAX_VOTES_CEILING:
            raise ConfigurationError(
                f'maxVotesRequired must not exceed {MAX_VOTES_CEILING}',
                {'max': self.max_votes_required}
            )
        for name in ('moderator_accuracy_min', 'suspension_threshold'):
            value = getattr(self, name)
            if not Decimal('0') <= value <= Decimal('1'):
                raise ConfigurationError(f'{name} must be between 0 and 1', {name: str(value)})
        if self.moderation_fee_per_vote < 0:
            raise ConfigurationError('moderationFeePerVote must not be negative')
        if self.ceiling_tie_decision not in VoteDecision.ALL:
            raise ConfigurationError(f'Unknown ceilingTieDecision: {self.ceiling_tie_decision}')
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# Stored attribute name -> (field name, converter)
_ATTRIBUTES = {
    'minVotesRequired': ('min_votes_required', int),
    'maxVotesRequired': ('max_votes_required', int),
    'moderatorAccuracyMin': ('moderator_accuracy_min', lambda v: Decimal(str(v))),
    'suspensionThreshold': ('suspension_threshold', lambda v: Decimal(str(v))),
    'moderationFeePerVote': ('moderation_fee_per_vote', lambda v: Decimal(str(v))),
    'moderatorMinimumEarnings': ('moderator_minimum_earnings', lambda v: Decimal(str(v))),
    'minimumWithdrawal': ('minimum_withdrawal', lambda v: Decimal(str(v))),
    'moderationTimeoutHours': ('moderation_timeout_hours', int),
    'ceilingTieDecision': ('ceiling_tie_decision', str),
}


def settings_from_item(item: Optional[Dict[str, Any]]) -> PlatformSettings:
    """Build settings from a stored item, falling back to defaults per attribute."""
    overrides = {}
    for attribute, (field_name, convert) in _ATTRIBUTES.items():
        if item and item.get(attribute) is not None:
            overrides[field_name] = convert(item[attribute])
    return PlatformSettings(**overrides).validate()


def load_settings() -> PlatformSettings:
    """Load the platform settings singleton."""
    item = get_item(config.SETTINGS_TABLE, {'settingsId': config.SETTINGS_ID})
    if item is None:
        logger.warning("Platform settings not found, using defaults")
    return settings_from_item(item)
