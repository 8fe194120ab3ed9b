"""SurveyMail — Audience Directory.

Lookup, filtering and import of audience members.
"""

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy import func, or_
from sqlmodel import Session, select

from surveymail.core.errors import AudienceMemberNotFoundError, ValidationError
from surveymail.core.logging import get_logger
from surveymail.models.survey_models import AudienceMember

logger = get_logger("audience.directory")

MEMBER_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "phone",
    "age_group",
    "gender",
    "city",
    "state",
    "country",
    "industry",
    "job_title",
    "education",
    "income",
)


class AudienceFilters(BaseModel):
    """Filter + page for audience listing. Empty strings mean "any"."""

    page: int = 1
    limit: int = 10
    search: str = ""
    age_group: str = ""
    gender: str = ""
    country: str = ""
    industry: str = ""
    active_only: bool = False


class AudienceStats(BaseModel):
    """Headcounts by segment. Country and industry keep their top five."""

    total: int = 0
    active: int = 0
    by_age_group: Dict[str, int] = {}
    by_gender: Dict[str, int] = {}
    by_country: Dict[str, int] = {}
    by_industry: Dict[str, int] = {}


class ImportResult(BaseModel):
    imported: int = 0
    skipped: int = 0
    errors: List[str] = []


def _apply_filters(query, filters: AudienceFilters):
    if filters.search:
        pattern = f"%{filters.search}%"
        query = query.where(
            or_(
                AudienceMember.first_name.like(pattern),  # type: ignore
                AudienceMember.last_name.like(pattern),  # type: ignore
                AudienceMember.email.like(pattern),  # type: ignore
            )
        )
    if filters.age_group:
        query = query.where(AudienceMember.age_group == filters.age_group)
    if filters.gender:
        query = query.where(AudienceMember.gender == filters.gender)
    if filters.country:
        query = query.where(AudienceMember.country == filters.country)
    if filters.industry:
        query = query.where(AudienceMember.industry == filters.industry)
    if filters.active_only:
        query = query.where(AudienceMember.is_active == True)  # noqa: E712
    return query


def find_members(
    session: Session, filters: AudienceFilters
) -> Tuple[List[AudienceMember], int]:
    """Return one page of matching members (newest first) and the total count."""
    count_query = _apply_filters(select(func.count()).select_from(AudienceMember), filters)
    total = session.exec(count_query).one()

    page = max(filters.page, 1)
    query = (
        _apply_filters(select(AudienceMember), filters)
        .order_by(AudienceMember.created_at.desc())  # type: ignore
        .offset((page - 1) * filters.limit)
        .limit(filters.limit)
    )
    return list(session.exec(query).all()), total


def get_member(session: Session, member_id: str) -> AudienceMember:
    member = session.get(AudienceMember, member_id)
    if not member:
        raise AudienceMemberNotFoundError(member_id)
    return member


def create_member(
    session: Session, data: Dict[str, Any], user_id: str = "default-user"
) -> AudienceMember:
    """Insert one member. Email is the only required field."""
    email = (data.get("email") or "").strip()
    if not email:
        raise ValidationError("Email is required")

    member = AudienceMember(
        user_id=data.get("user_id") or user_id,
        tags=list(data.get("tags") or []),
        is_active=bool(data.get("is_active", True)),
        **{k: (data.get(k) or "") for k in MEMBER_FIELDS if k != "email"},
        email=email,
    )
    session.add(member)
    session.commit()
    session.refresh(member)
    return member


def import_members(
    session: Session, rows: List[Dict[str, Any]], user_id: str = "default-user"
) -> ImportResult:
    """Bulk insert, skipping emails that already exist."""
    result = ImportResult()
    seen: set[str] = set()

    for row in rows:
        email = (row.get("email") or "").strip()
        if not email:
            result.skipped += 1
            result.errors.append("Failed to import row: email is required")
            continue

        existing = session.exec(
            select(AudienceMember.id).where(AudienceMember.email == email)
        ).first()
        if existing or email in seen:
            result.skipped += 1
            continue

        seen.add(email)
        session.add(
            AudienceMember(
                user_id=row.get("user_id") or user_id,
                tags=list(row.get("tags") or []),
                **{k: (row.get(k) or "") for k in MEMBER_FIELDS if k != "email"},
                email=email,
            )
        )
        result.imported += 1

    session.commit()
    logger.info(f"Imported {result.imported} audience members, skipped {result.skipped}")
    return result


def get_active_member(session: Session, member_id: str) -> Optional[AudienceMember]:
    """Return the member if it exists and is active, else None."""
    member = session.get(AudienceMember, member_id)
    if member is None or not member.is_active:
        return None
    return member


# ── Stats ──

TOP_SEGMENTS = 5


def _group_counts(session: Session, column, limit: Optional[int] = None) -> Dict[str, int]:
    query = (
        select(column, func.count())
        .where(column != "")
        .group_by(column)
        .order_by(func.count().desc(), column)
    )
    if limit:
        query = query.limit(limit)
    return {value: count for value, count in session.exec(query).all()}


def audience_stats(session: Session) -> AudienceStats:
    """Member totals and GROUP BY counts per demographic field. Blank values are skipped."""
    total = session.exec(select(func.count()).select_from(AudienceMember)).one()
    active = session.exec(
        select(func.count())
        .select_from(AudienceMember)
        .where(AudienceMember.is_active == True)  # noqa: E712
    ).one()
    return AudienceStats(
        total=total,
        active=active,
        by_age_group=_group_counts(session, AudienceMember.age_group),
        by_gender=_group_counts(session, AudienceMember.gender),
        by_country=_group_counts(session, AudienceMember.country, TOP_SEGMENTS),
        by_industry=_group_counts(session, AudienceMember.industry, TOP_SEGMENTS),
    )
