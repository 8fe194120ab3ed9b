import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from surveymail.api.deps import get_campaign_config, get_transport
from surveymail.config import CampaignConfig
from surveymail.connectors.mail.base_transport import MailTransport
from surveymail.core.errors import TransportError
from surveymail.database import get_session
from surveymail.main import app
from surveymail.models.survey_models import AudienceMember, Survey

BASE_URL = "http://surveys.test"


class FakeTransport(MailTransport):
    """Records sends; raises TransportError for addresses in `failing`."""

    name = "fake"

    def __init__(self, failing=None, message="Mailbox unavailable"):
        self.failing = set(failing or [])
        self.message = message
        self.sent = []

    def is_available(self) -> bool:
        return True

    async def send(self, to, subject, html_body):
        if to in self.failing:
            raise TransportError(self.message, recipient=to)
        self.sent.append({"to": to, "subject": subject, "html": html_body})


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def config():
    return CampaignConfig(base_url=BASE_URL)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def make_member(session):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        n = counter["n"]
        data = {
            "first_name": f"Member{n}",
            "last_name": "Test",
            "email": f"member{n}@example.com",
            "age_group": "25-34",
            "gender": "Female",
            "country": "India",
            "industry": "IT Sector",
        }
        data.update(overrides)
        member = AudienceMember(**data)
        session.add(member)
        session.commit()
        session.refresh(member)
        return member

    return _make


@pytest.fixture
def survey(session):
    survey = Survey(
        title="Work Satisfaction",
        description="How do you feel about work?",
        category="IT Sector",
        questions=[
            {
                "id": "q1",
                "type": "multiple_choice",
                "question": "How satisfied are you?",
                "options": ["Very", "Somewhat", "Not at all"],
                "required": True,
            },
            {"id": "q2", "type": "text", "question": "Anything else?"},
        ],
        audience_criteria={
            "ageGroups": ["25-34", "35-44"],
            "genders": ["Female"],
            "locations": ["India"],
            "industries": ["IT Sector"],
        },
    )
    session.add(survey)
    session.commit()
    session.refresh(survey)
    return survey


@pytest.fixture
def client(session, transport, config):
    def _session_override():
        return session

    async def _transport_override():
        yield transport

    app.dependency_overrides[get_session] = _session_override
    app.dependency_overrides[get_transport] = _transport_override
    app.dependency_overrides[get_campaign_config] = lambda: config
    yield TestClient(app)
    app.dependency_overrides.clear()
