import pytest

from surveymail.core.errors import InvalidTransitionError
from surveymail.core.status import (
    CampaignStatus,
    RecipientStatus,
    can_transition,
    require_transition,
)


@pytest.mark.parametrize(
    "current,target",
    [
        (RecipientStatus.PENDING, RecipientStatus.SENT),
        (RecipientStatus.PENDING, RecipientStatus.FAILED),
        (RecipientStatus.SENT, RecipientStatus.OPENED),
        (RecipientStatus.OPENED, RecipientStatus.RESPONDED),
    ],
)
def test_recipient_forward_steps_allowed(current, target):
    assert can_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (RecipientStatus.PENDING, RecipientStatus.OPENED),
        (RecipientStatus.SENT, RecipientStatus.RESPONDED),
        (RecipientStatus.OPENED, RecipientStatus.SENT),
        (RecipientStatus.FAILED, RecipientStatus.SENT),
        (RecipientStatus.RESPONDED, RecipientStatus.OPENED),
    ],
)
def test_recipient_skips_and_regressions_rejected(current, target):
    assert not can_transition(current, target)
    with pytest.raises(InvalidTransitionError):
        require_transition(current, target)


def test_campaign_terminal_states_do_not_reopen():
    assert CampaignStatus.COMPLETED.is_terminal
    assert CampaignStatus.PARTIALLY_FAILED.is_terminal
    assert not can_transition(CampaignStatus.COMPLETED, CampaignStatus.SENDING)
    assert not can_transition(CampaignStatus.PARTIALLY_FAILED, CampaignStatus.COMPLETED)
    assert can_transition(CampaignStatus.DRAFT, CampaignStatus.SENDING)
