import asyncio

import pytest
from sqlmodel import select

from surveymail.campaigns.orchestrator import CampaignOrchestrator
from surveymail.core.status import RecipientStatus
from surveymail.models.campaign_models import EmailCampaign, EmailRecipient, SurveyTracking
from surveymail.models.survey_models import Survey
from surveymail.tracking.correlator import (
    track_email_open,
    track_response,
    track_survey_access,
)

from conftest import FakeTransport


@pytest.fixture
def sent_campaign(session, survey, make_member, config):
    members = [make_member(), make_member()]
    transport = FakeTransport(failing={members[1].email})
    orchestrator = CampaignOrchestrator(session, transport, config)
    result = asyncio.run(
        orchestrator.create_campaign_and_send(survey, members, "Tracked", "user-1")
    )
    recipients = {
        r.email: r
        for r in session.exec(
            select(EmailRecipient).where(EmailRecipient.campaign_id == result.campaign_id)
        ).all()
    }
    return result.campaign_id, recipients[members[0].email], recipients[members[1].email]


def _campaign(session, campaign_id):
    campaign = session.get(EmailCampaign, campaign_id)
    session.refresh(campaign)
    return campaign


def test_pixel_hit_opens_recipient_once(session, sent_campaign):
    campaign_id, sent, _ = sent_campaign

    assert track_email_open(session, sent.tracking_id, "1.2.3.4", "Mail/1.0") is True
    assert track_email_open(session, sent.tracking_id, "1.2.3.4", "Mail/1.0") is False

    session.refresh(sent)
    assert sent.status == RecipientStatus.OPENED
    assert sent.opened_at is not None
    assert _campaign(session, campaign_id).opened_count == 1

    events = session.exec(select(SurveyTracking)).all()
    assert len(events) == 1
    assert events[0].recipient_id == sent.id
    assert events[0].ip_address == "1.2.3.4"


def test_pixel_hit_on_failed_recipient_is_noop(session, sent_campaign):
    campaign_id, _, failed = sent_campaign

    assert track_email_open(session, failed.tracking_id) is False

    session.refresh(failed)
    assert failed.status == RecipientStatus.FAILED
    assert _campaign(session, campaign_id).opened_count == 0
    assert session.exec(select(SurveyTracking)).all() == []


def test_pixel_hit_unknown_token_is_noop(session, sent_campaign):
    assert track_email_open(session, "not-a-token") is False


def test_survey_access_opens_and_counts(session, survey, sent_campaign):
    campaign_id, sent, _ = sent_campaign

    track_survey_access(session, survey.id, sent.tracking_id, "5.6.7.8", "Browser")
    track_survey_access(session, survey.id, sent.tracking_id, "5.6.7.8", "Browser")

    session.refresh(sent)
    assert sent.status == RecipientStatus.OPENED
    assert _campaign(session, campaign_id).opened_count == 1
    assert session.get(Survey, survey.id).emails_opened == 1
    # every visit is logged
    assert len(session.exec(select(SurveyTracking)).all()) == 2


def test_anonymous_access_gets_synthetic_token(session, survey):
    event = track_survey_access(session, survey.id)

    assert event.recipient_id is None
    assert event.tracking_id


def test_response_moves_sent_recipient_through_opened(session, survey, sent_campaign):
    campaign_id, sent, _ = sent_campaign

    recipient = track_response(session, survey.id, sent.tracking_id)

    assert recipient.status == RecipientStatus.RESPONDED
    assert recipient.opened_at is not None
    assert recipient.responded_at is not None
    campaign = _campaign(session, campaign_id)
    assert campaign.opened_count == 1
    assert campaign.responded_count == 1

    track_response(session, survey.id, sent.tracking_id)
    assert _campaign(session, campaign_id).responded_count == 1


def test_response_for_other_survey_is_ignored(session, sent_campaign):
    _, sent, _ = sent_campaign

    assert track_response(session, "other-survey", sent.tracking_id) is None
    session.refresh(sent)
    assert sent.status == RecipientStatus.SENT


def test_open_is_not_kept_when_event_write_fails(session, sent_campaign, monkeypatch):
    from sqlalchemy.exc import OperationalError

    import surveymail.tracking.correlator as correlator

    campaign_id, sent, _ = sent_campaign

    def broken(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(correlator, "_record_event", broken)
    with pytest.raises(OperationalError):
        track_email_open(session, sent.tracking_id)
    session.rollback()

    session.refresh(sent)
    assert sent.status == RecipientStatus.SENT
    assert _campaign(session, campaign_id).opened_count == 0


def test_simultaneous_pixel_hits_count_once(tmp_path, config):
    import threading

    from sqlmodel import Session, SQLModel, create_engine

    from surveymail.models.survey_models import AudienceMember

    # Each hit gets its own connection; the in-memory StaticPool would share one
    file_engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    SQLModel.metadata.create_all(file_engine)
    with Session(file_engine) as setup:
        survey = Survey(title="Race", category="IT Sector")
        member = AudienceMember(first_name="Asha", email="asha@example.com")
        setup.add_all([survey, member])
        setup.commit()
        orchestrator = CampaignOrchestrator(setup, FakeTransport(), config)
        result = asyncio.run(
            orchestrator.create_campaign_and_send(survey, [member], "Race", "user-1")
        )
        token = setup.exec(select(EmailRecipient.tracking_id)).one()

    outcomes = []
    barrier = threading.Barrier(8)

    def hit():
        with Session(file_engine) as own:
            barrier.wait()
            outcomes.append(track_email_open(own, token, "9.9.9.9", "Mail/1.0"))

    threads = [threading.Thread(target=hit) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count(True) == 1
    assert len(outcomes) == 8
    with Session(file_engine) as check:
        assert check.get(EmailCampaign, result.campaign_id).opened_count == 1
        assert len(check.exec(select(SurveyTracking)).all()) == 1
    file_engine.dispose()
