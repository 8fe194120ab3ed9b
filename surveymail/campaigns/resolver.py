"""SurveyMail — Recipient Resolver.

Turns either an explicit list of audience-member ids or a survey's stored
targeting criteria into the concrete list of members to invite.
"""

from typing import Any, Dict, List, Optional

from sqlmodel import Session

from surveymail.audience.directory import AudienceFilters, find_members, get_active_member
from surveymail.core.errors import NoRecipientsError
from surveymail.core.logging import get_logger
from surveymail.models.survey_models import AudienceMember, Survey

logger = get_logger("campaigns.resolver")

DEFAULT_TARGET_COUNT = 1000


def _first(criteria: Dict[str, Any], key: str) -> str:
    """First value of a multi-value criterion, or "" when absent."""
    values = criteria.get(key) or []
    if isinstance(values, str):
        return values
    return str(values[0]) if values else ""


def criteria_filters(survey: Survey) -> AudienceFilters:
    """Build the audience filter for a survey's targeting criteria.

    Only the first listed value of each criterion is applied.
    """
    criteria = survey.audience_criteria or {}
    return AudienceFilters(
        page=1,
        limit=survey.target_count or DEFAULT_TARGET_COUNT,
        age_group=_first(criteria, "ageGroups") or _first(criteria, "age_groups"),
        gender=_first(criteria, "genders"),
        country=_first(criteria, "locations"),
        industry=_first(criteria, "industries"),
        active_only=True,
    )


def resolve(
    session: Session,
    survey: Survey,
    explicit_member_ids: Optional[List[str]] = None,
) -> List[AudienceMember]:
    """Resolve the recipients for a send.

    Explicit ids keep their input order; ids that are unknown or inactive
    are dropped silently. Raises NoRecipientsError on an empty result.
    """
    if explicit_member_ids:
        members: List[AudienceMember] = []
        seen: set[str] = set()
        for member_id in explicit_member_ids:
            if member_id in seen:
                continue
            seen.add(member_id)
            member = get_active_member(session, member_id)
            if member is not None:
                members.append(member)
        dropped = len(seen) - len(members)
        if dropped:
            logger.info(f"Dropped {dropped} unknown or inactive member ids")
    else:
        members, _ = find_members(session, criteria_filters(survey))

    if not members:
        raise NoRecipientsError()

    logger.info(
        f"Resolved {len(members)} recipients for survey {survey.id}",
        extra={"survey_id": survey.id},
    )
    return members
