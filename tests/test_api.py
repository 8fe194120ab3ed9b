from sqlmodel import select

from surveymail.core.status import CampaignStatus, RecipientStatus
from surveymail.models.campaign_models import EmailCampaign, EmailRecipient, SurveyTracking
from surveymail.models.survey_models import AudienceMember, Survey, SurveyResponse


def _send(client, survey_id, **body):
    return client.post(f"/api/surveys/{survey_id}/send", json=body)


def _recipients(session, campaign_id):
    return session.exec(
        select(EmailRecipient).where(EmailRecipient.campaign_id == campaign_id)
    ).all()


# ── Send ──


def test_send_reports_counts_and_errors(client, survey, make_member, transport):
    members = [make_member(), make_member(), make_member()]
    transport.failing = {members[1].email}

    resp = _send(client, survey.id, selected_audience=[m.id for m in members])

    assert resp.status_code == 200
    data = resp.json()
    assert data["sent_count"] == 2
    assert data["failed_count"] == 1
    assert data["total_recipients"] == 3
    assert data["campaign_status"] == CampaignStatus.PARTIALLY_FAILED.value
    assert data["errors"] == [f"{members[1].email}: Mailbox unavailable"]


def test_send_uses_survey_criteria(client, survey, make_member, transport):
    make_member()
    make_member(country="Spain")

    data = _send(client, survey.id, campaign_name="Pulse").json()

    assert data["sent_count"] == 1
    assert data["campaign_status"] == CampaignStatus.COMPLETED.value
    assert len(transport.sent) == 1


def test_send_unknown_survey(client):
    resp = _send(client, "missing")

    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "RES_001"


def test_send_without_recipients(client, survey, session):
    resp = _send(client, survey.id, selected_audience=["nobody"])

    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "VAL_001"
    assert session.exec(select(EmailCampaign)).all() == []


def test_campaign_listing_and_analytics(client, survey, make_member):
    campaign_id = _send(client, survey.id, selected_audience=[make_member().id]).json()[
        "campaign_id"
    ]

    listing = client.get(f"/api/surveys/{survey.id}/campaigns").json()
    assert listing["count"] == 1
    assert listing["campaigns"][0]["id"] == campaign_id

    analytics = client.get(f"/api/campaigns/{campaign_id}/analytics").json()
    assert analytics["campaign"]["campaign_name"] == f"Campaign for {survey.title}"
    assert analytics["stats"]["sent"] == 1
    assert len(analytics["recipients"]) == 1


def test_analytics_unknown_campaign(client):
    resp = client.get("/api/campaigns/nope/analytics")

    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "RES_001"


# ── Tracking ──


def test_pixel_marks_recipient_opened(client, survey, make_member, session):
    campaign_id = _send(client, survey.id, selected_audience=[make_member().id]).json()[
        "campaign_id"
    ]
    recipient = _recipients(session, campaign_id)[0]

    resp = client.get(f"/api/track/open/{recipient.tracking_id}")

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    session.refresh(recipient)
    assert recipient.status == RecipientStatus.OPENED
    assert session.get(EmailCampaign, campaign_id).opened_count == 1


def test_pixel_unknown_token_still_returns_image(client):
    resp = client.get("/api/track/open/unknown-token")

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    assert resp.headers["cache-control"] == "no-cache, no-store, must-revalidate"
    assert resp.content.startswith(b"\x89PNG")


def test_survey_page_unknown_survey(client):
    resp = client.get("/survey/missing")

    assert resp.status_code == 404
    assert "Survey not found" in resp.text


def test_survey_page_with_token_opens_recipient(client, survey, make_member, session):
    campaign_id = _send(client, survey.id, selected_audience=[make_member().id]).json()[
        "campaign_id"
    ]
    recipient = _recipients(session, campaign_id)[0]

    resp = client.get(f"/survey/{survey.id}", params={"t": recipient.tracking_id})

    assert resp.status_code == 200
    assert survey.title in resp.text
    session.refresh(recipient)
    assert recipient.status == RecipientStatus.OPENED
    assert len(session.exec(select(SurveyTracking)).all()) == 1


def test_submit_response_correlates_invitation(client, survey, make_member, session):
    member = make_member()
    campaign_id = _send(client, survey.id, selected_audience=[member.id]).json()[
        "campaign_id"
    ]
    recipient = _recipients(session, campaign_id)[0]

    resp = client.post(
        f"/api/public/survey/{survey.id}/submit",
        json={
            "answers": [{"question_id": "q1", "answer": "Very"}],
            "completion_time": 42,
            "tracking_id": recipient.tracking_id,
        },
    )

    assert resp.status_code == 200
    session.refresh(recipient)
    assert recipient.status == RecipientStatus.RESPONDED
    stored = session.exec(select(SurveyResponse)).one()
    assert stored.audience_member_id == member.id
    assert session.get(Survey, survey.id).response_count == 1

    results = client.get(f"/api/surveys/{survey.id}/results").json()["results"]
    assert results["total_responses"] == 1
    assert results["email_stats"]["total_responded"] == 1


def test_submit_requires_answers(client, survey, session):
    resp = client.post(f"/api/public/survey/{survey.id}/submit", json={})

    assert resp.status_code == 400
    assert session.exec(select(SurveyResponse)).all() == []


# ── Surveys ──


def test_create_and_fetch_survey(client):
    created = client.post(
        "/api/surveys", json={"title": "Commute", "category": "Transport"}
    ).json()["survey"]

    fetched = client.get(f"/api/surveys/{created['id']}").json()["survey"]

    assert fetched["title"] == "Commute"
    assert fetched["status"] == "draft"
    assert fetched["has_html"] is False


def test_create_survey_requires_title(client):
    resp = client.post("/api/surveys", json={"category": "Transport"})

    assert resp.status_code == 400


def test_create_html_stores_public_page(client, survey, config):
    data = client.post(f"/api/surveys/{survey.id}/create-html", json={}).json()

    assert data["public_url"] == f"{config.base_url}/survey/{survey.id}"
    assert data["campaign_id"] is None
    details = client.get(f"/api/surveys/{survey.id}/details").json()
    assert details["survey"]["has_html"] is True


def test_delete_survey_removes_dependants(client, survey, make_member, session):
    campaign_id = _send(client, survey.id, selected_audience=[make_member().id]).json()[
        "campaign_id"
    ]
    token = _recipients(session, campaign_id)[0].tracking_id
    client.get(f"/api/track/open/{token}")
    client.post(f"/api/public/survey/{survey.id}/submit", json={"answers": []})

    resp = client.delete(f"/api/surveys/{survey.id}")

    assert resp.status_code == 200
    for model in (Survey, EmailCampaign, EmailRecipient, SurveyTracking, SurveyResponse):
        assert session.exec(select(model)).all() == []
    # members are not owned by the survey
    assert len(session.exec(select(AudienceMember)).all()) == 1


# ── Audience ──


def test_create_member_requires_email(client):
    resp = client.post("/api/audience", json={"first_name": "Ana"})

    assert resp.status_code == 400


def test_import_skips_existing_emails(client, make_member):
    existing = make_member()

    data = client.post(
        "/api/audience/import",
        json={"members": [{"email": existing.email}, {"email": "new@example.com"}, {}]},
    ).json()

    assert data["imported"] == 1
    assert data["skipped"] == 2

    listing = client.get("/api/audience", params={"search": "new@"}).json()
    assert listing["total"] == 1


def test_unknown_member(client):
    assert client.get("/api/audience/missing").status_code == 404


def test_health(client):
    data = client.get("/health").json()

    assert data["status"] == "healthy"
    assert data["service"] == "surveymail"


def test_tracking_failures_do_not_reach_the_response(client, survey, monkeypatch):
    from sqlalchemy.exc import OperationalError

    import surveymail.api.tracking_routes as tracking_routes

    def broken(*args, **kwargs):
        raise OperationalError("UPDATE", {}, Exception("database is locked"))

    monkeypatch.setattr(tracking_routes, "track_email_open", broken)
    monkeypatch.setattr(tracking_routes, "track_survey_access", broken)

    pixel = client.get("/api/track/open/any-token")
    assert pixel.status_code == 200
    assert pixel.headers["content-type"] == "image/png"
    assert pixel.headers["cache-control"] == "no-cache, no-store, must-revalidate"

    page = client.get(f"/survey/{survey.id}", params={"t": "any-token"})
    assert page.status_code == 200
    assert survey.title in page.text

    data = client.get(f"/api/public/survey/{survey.id}").json()
    assert data["survey"]["title"] == survey.title


def test_duplicate_survey_starts_as_empty_draft(client, survey):
    survey_id = survey.id
    client.post(f"/api/public/survey/{survey_id}/submit", json={"answers": []})

    copy = client.post(f"/api/surveys/{survey_id}/duplicate").json()["survey"]

    assert copy["id"] != survey_id
    assert copy["title"] == "Work Satisfaction (Copy)"
    assert copy["status"] == "draft"
    assert copy["response_count"] == 0
    assert copy["questions"][0]["id"] == "q1"
    assert copy["audience_criteria"]["genders"] == ["Female"]


def test_duplicate_unknown_survey(client):
    assert client.post("/api/surveys/missing/duplicate").status_code == 404


def test_responses_are_paged(client, survey):
    for seconds in (10, 20, 30):
        client.post(
            f"/api/public/survey/{survey.id}/submit",
            json={"answers": [{"question_id": "q1", "answer": "Very"}], "completion_time": seconds},
        )

    data = client.get(f"/api/surveys/{survey.id}/responses", params={"limit": 2}).json()

    assert data["total"] == 3
    assert data["pages"] == 2
    assert len(data["responses"]) == 2
    assert data["responses"][0]["answers"] == [{"question_id": "q1", "answer": "Very"}]


def test_responses_unknown_survey(client):
    assert client.get("/api/surveys/missing/responses").status_code == 404


def test_download_html_requires_stored_page(client, survey):
    resp = client.get(f"/api/surveys/{survey.id}/download-html")

    assert resp.status_code == 404
    assert "create HTML version first" in resp.json()["detail"]["message"]


def test_download_html_serves_attachment(client, survey):
    client.post(f"/api/surveys/{survey.id}/create-html", json={})

    resp = client.get(f"/api/surveys/{survey.id}/download-html")

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/html")
    assert (
        resp.headers["content-disposition"]
        == 'attachment; filename="Work_Satisfaction_survey.html"'
    )
    assert "<h1>Work Satisfaction</h1>" in resp.text


def test_audience_stats_group_members(client, make_member):
    make_member(country="India")
    make_member(country="India", gender="Male")
    make_member(country="Spain", is_active=False)
    make_member(country="")

    stats = client.get("/api/audience/stats").json()["stats"]

    assert stats["total"] == 4
    assert stats["active"] == 3
    assert stats["by_country"] == {"India": 2, "Spain": 1}
    assert stats["by_gender"] == {"Female": 3, "Male": 1}
    assert stats["by_age_group"] == {"25-34": 4}
