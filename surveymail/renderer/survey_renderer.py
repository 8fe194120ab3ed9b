"""SurveyMail — Survey Renderer.

Produces the public survey page and the per-recipient invitation email
from jinja2 templates. Autoescaping is on for every template.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

from jinja2 import Environment

from surveymail.models.survey_models import Survey

DEFAULT_RECIPIENT_NAME = "Valued Participant"

_env = Environment(autoescape=True, trim_blocks=True, lstrip_blocks=True)


def survey_url(base_url: str, survey_id: str, tracking_id: Optional[str] = None) -> str:
    url = f"{base_url}/survey/{survey_id}"
    if tracking_id:
        url += f"?t={quote(tracking_id)}"
    return url


def pixel_url(base_url: str, tracking_id: str) -> str:
    return f"{base_url}/api/track/open/{quote(tracking_id)}"


def invitation_subject(survey: Survey, prefix: str = "Survey Invitation") -> str:
    return f"{prefix}: {survey.title}"


# ─────────────────────────────────────────────
# INVITATION EMAIL
# ─────────────────────────────────────────────

INVITATION_TEMPLATE = _env.from_string(
    """<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Survey Invitation: {{ title }}</title>
</head>
<body style="margin: 0; padding: 0; font-family: Arial, sans-serif; background-color: #f5f5f5;">
    <table width="100%" cellpadding="0" cellspacing="0" style="background-color: #f5f5f5; padding: 20px;">
        <tr>
            <td align="center">
                <table width="600" cellpadding="0" cellspacing="0" style="background-color: white; border-radius: 8px;">
                    <tr>
                        <td style="background: #667eea; color: white; padding: 40px 30px; text-align: center; border-radius: 8px 8px 0 0;">
                            <h1 style="margin: 0; font-size: 28px;">You're Invited to Participate</h1>
                            <p style="margin: 10px 0 0 0; font-size: 16px;">Your feedback matters to us</p>
                        </td>
                    </tr>
                    <tr>
                        <td style="padding: 40px 30px;">
                            <p style="margin: 0 0 20px 0; font-size: 16px; color: #333;">Dear {{ recipient_name }},</p>
                            <p style="margin: 0 0 20px 0; font-size: 16px; color: #666; line-height: 1.6;">
                                We would like to invite you to participate in our survey: <strong>{{ title }}</strong>
                            </p>
                            {% if description %}
                            <p style="margin: 0 0 20px 0; font-size: 16px; color: #666; line-height: 1.6;">{{ description }}</p>
                            {% endif %}
                            <p style="margin: 0 0 30px 0; font-size: 16px; color: #666; line-height: 1.6;">
                                Your participation is voluntary and your responses will be kept confidential.
                            </p>
                            <p style="text-align: center; padding: 20px 0;">
                                <a href="{{ link }}" style="background: #667eea; color: white; padding: 16px 40px; text-decoration: none; border-radius: 8px; font-size: 18px;">Take Survey Now</a>
                            </p>
                            <p style="margin: 20px 0 0 0; font-size: 14px; color: #999; text-align: center;">
                                Or copy and paste this link in your browser:<br>
                                <a href="{{ link }}" style="color: #667eea; word-break: break-all;">{{ link }}</a>
                            </p>
                        </td>
                    </tr>
                    <tr>
                        <td style="background-color: #f8f9fa; padding: 20px 30px; text-align: center; border-radius: 0 0 8px 8px;">
                            <p style="margin: 0; font-size: 14px; color: #666;">Thank you for your time and participation!</p>
                            <p style="margin: 10px 0 0 0; font-size: 12px; color: #999;">This email was sent regarding the survey: {{ title }}</p>
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
    <img src="{{ pixel }}" width="1" height="1" alt="" style="display: none;">
</body>
</html>"""
)


def render_invitation_email(
    survey: Survey,
    tracking_id: str,
    recipient_name: str = DEFAULT_RECIPIENT_NAME,
    base_url: str = "http://localhost:5000",
) -> str:
    """Email body with a tokenised survey link and a hidden open pixel."""
    return INVITATION_TEMPLATE.render(
        title=survey.title,
        description=survey.description,
        recipient_name=recipient_name,
        link=survey_url(base_url, survey.id, tracking_id),
        pixel=pixel_url(base_url, tracking_id),
    )


# ─────────────────────────────────────────────
# PUBLIC SURVEY PAGE
# ─────────────────────────────────────────────

SURVEY_PAGE_TEMPLATE = _env.from_string(
    """<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{{ title }}</title>
    <style>
        body { font-family: Arial, sans-serif; max-width: 720px; margin: 40px auto; color: #333; }
        .question { margin-bottom: 24px; }
        .required { color: #c00; }
        label { display: block; margin: 4px 0; }
    </style>
</head>
<body>
    <h1>{{ title }}</h1>
    <p>{{ description }}</p>
    <form id="survey-form">
    {% for q in questions %}
        <div class="question" data-question-id="{{ q.id }}" data-type="{{ q.type }}">
            <p>{{ loop.index }}. {{ q.prompt }}{% if q.required %} <span class="required">*</span>{% endif %}</p>
            {% if q.options %}
            {% for option in q.options %}
            <label><input type="radio" name="{{ q.id }}" value="{{ option }}"{% if q.required %} required{% endif %}> {{ option }}</label>
            {% endfor %}
            {% else %}
            <textarea name="{{ q.id }}" rows="3"{% if q.required %} required{% endif %}></textarea>
            {% endif %}
        </div>
    {% endfor %}
        <button type="submit">Submit</button>
    </form>
    <script>
        const started = Date.now();
        const params = new URLSearchParams(window.location.search);
        document.getElementById("survey-form").addEventListener("submit", async (event) => {
            event.preventDefault();
            const answers = [];
            document.querySelectorAll(".question").forEach((el) => {
                const id = el.dataset.questionId;
                const checked = el.querySelector("input:checked");
                const text = el.querySelector("textarea");
                const value = checked ? checked.value : (text ? text.value : "");
                answers.push({ question_id: id, answer: value });
            });
            await fetch({{ submit_url|tojson }}, {
                method: "POST",
                headers: { "Content-Type": "application/json" },
                body: JSON.stringify({
                    answers,
                    completion_time: Math.round((Date.now() - started) / 1000),
                    tracking_id: params.get("t"),
                }),
            });
            document.body.innerHTML = "<h1>Thank you for completing the survey!</h1>";
        });
    </script>
</body>
</html>"""
)


def _question_view(index: int, question: Dict[str, Any]) -> Dict[str, Any]:
    """Normalise a stored question into what the page template expects."""
    qtype = str(question.get("type", "text"))
    if qtype == "rating":
        options: List[Any] = [str(n) for n in range(1, 6)]
    elif qtype == "yes_no":
        options = question.get("options") or ["Yes", "No"]
    elif qtype == "multiple_choice":
        options = question.get("options") or []
    else:
        options = []
    return {
        "id": str(question.get("id", f"q{index}")),
        "type": qtype,
        "prompt": str(question.get("question") or question.get("prompt") or ""),
        "required": bool(question.get("required")),
        "options": [str(o) for o in options],
    }


def render_survey_page(survey: Survey, base_url: str = "http://localhost:5000") -> str:
    """Self-contained HTML form for a survey.

    The page reads `t` from its own query string and posts it back with the
    answers so the submission can be tied to the invitation.
    """
    return SURVEY_PAGE_TEMPLATE.render(
        title=survey.title,
        description=survey.description or "",
        questions=[_question_view(i, q) for i, q in enumerate(survey.questions or [], 1)],
        submit_url=f"{base_url}/api/public/survey/{survey.id}/submit",
    )
