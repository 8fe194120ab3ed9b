"""SurveyMail — Lifecycle Status Registry.

Closed sets of statuses for surveys, campaigns and recipients, together
with the transitions each one allows.
"""

from enum import Enum
from typing import Dict, FrozenSet

from surveymail.core.errors import InvalidTransitionError


class SurveyStatus(str, Enum):
    """Survey lifecycle."""

    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class CampaignStatus(str, Enum):
    """Campaign lifecycle: draft → sending → completed | partially_failed."""

    DRAFT = "draft"
    SENDING = "sending"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CampaignStatus.COMPLETED, CampaignStatus.PARTIALLY_FAILED)


class RecipientStatus(str, Enum):
    """Recipient delivery lifecycle: pending → sent|failed, sent → opened → responded."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    OPENED = "opened"
    RESPONDED = "responded"


# ─────────────────────────────────────────────
# TRANSITIONS
# ─────────────────────────────────────────────

CAMPAIGN_TRANSITIONS: Dict[CampaignStatus, FrozenSet[CampaignStatus]] = {
    CampaignStatus.DRAFT: frozenset({CampaignStatus.SENDING}),
    CampaignStatus.SENDING: frozenset(
        {CampaignStatus.COMPLETED, CampaignStatus.PARTIALLY_FAILED}
    ),
    CampaignStatus.COMPLETED: frozenset(),
    CampaignStatus.PARTIALLY_FAILED: frozenset(),
}

RECIPIENT_TRANSITIONS: Dict[RecipientStatus, FrozenSet[RecipientStatus]] = {
    RecipientStatus.PENDING: frozenset({RecipientStatus.SENT, RecipientStatus.FAILED}),
    RecipientStatus.SENT: frozenset({RecipientStatus.OPENED}),
    RecipientStatus.FAILED: frozenset(),
    RecipientStatus.OPENED: frozenset({RecipientStatus.RESPONDED}),
    RecipientStatus.RESPONDED: frozenset(),
}

# Statuses counted as "delivered" by the analytics rollups
DELIVERED_STATUSES = frozenset(
    {RecipientStatus.SENT, RecipientStatus.OPENED, RecipientStatus.RESPONDED}
)
OPENED_STATUSES = frozenset({RecipientStatus.OPENED, RecipientStatus.RESPONDED})


def can_transition(current: Enum, target: Enum) -> bool:
    """Check whether current → target is an allowed single step."""
    if isinstance(current, RecipientStatus):
        return target in RECIPIENT_TRANSITIONS[current]
    if isinstance(current, CampaignStatus):
        return target in CAMPAIGN_TRANSITIONS[current]
    return False


def require_transition(current: Enum, target: Enum) -> None:
    """Raise InvalidTransitionError unless current → target is allowed."""
    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)
