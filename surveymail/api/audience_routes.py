"""SurveyMail — Audience API Routes."""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlmodel import Session

from surveymail.api.deps import http_error
from surveymail.audience.directory import (
    AudienceFilters,
    audience_stats,
    create_member,
    find_members,
    get_member,
    import_members,
)
from surveymail.config import settings
from surveymail.core.errors import SurveyMailError
from surveymail.database import get_session

router = APIRouter(prefix="/api/audience", tags=["Audience"])


class MemberPayload(BaseModel):
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    age_group: str = ""
    gender: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    industry: str = ""
    job_title: str = ""
    education: str = ""
    income: str = ""
    is_active: bool = True
    tags: List[str] = []


class ImportPayload(BaseModel):
    members: List[Dict[str, Any]]


@router.get("")
async def index(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=1000),
    search: str = "",
    age_group: str = "",
    gender: str = "",
    country: str = "",
    industry: str = "",
    active_only: bool = False,
    session: Session = Depends(get_session),
):
    filters = AudienceFilters(
        page=page,
        limit=limit,
        search=search,
        age_group=age_group,
        gender=gender,
        country=country,
        industry=industry,
        active_only=active_only,
    )
    members, total = find_members(session, filters)
    return {"status": "success", "total": total, "page": page, "members": members}


@router.post("")
async def create(payload: MemberPayload, session: Session = Depends(get_session)):
    try:
        member = create_member(session, payload.model_dump(), settings.default_user_id)
    except SurveyMailError as e:
        raise http_error(e)
    return {"status": "success", "member": member}


@router.get("/stats")
async def stats(session: Session = Depends(get_session)):
    """Member counts by age group, gender, country and industry."""
    return {"status": "success", "stats": audience_stats(session)}


@router.post("/import")
async def bulk_import(payload: ImportPayload, session: Session = Depends(get_session)):
    """Import many members; existing emails are skipped."""
    result = import_members(session, payload.members, settings.default_user_id)
    return {"status": "success", **result.model_dump()}


@router.get("/{member_id}")
async def show(member_id: str, session: Session = Depends(get_session)):
    try:
        member = get_member(session, member_id)
    except SurveyMailError as e:
        raise http_error(e)
    return {"status": "success", "member": member}
