"""SurveyMail — Recipient Status Transitions.

Every status change is a single compare-and-set UPDATE guarded on the
current status, so two writers racing on the same row cannot both win.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import update
from sqlmodel import Session, select

from surveymail.core.status import RecipientStatus, require_transition
from surveymail.models.campaign_models import EmailRecipient


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _compare_and_set(
    session: Session,
    condition: Any,
    current: RecipientStatus,
    target: RecipientStatus,
    commit: bool = True,
    **values: Any,
) -> bool:
    """Move matching rows from current → target. True if a row changed.

    With commit=False the caller owns the transaction, so the transition can
    land together with the counter updates that depend on it.
    """
    require_transition(current, target)
    stmt = (
        update(EmailRecipient)
        .where(condition, EmailRecipient.status == current)
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    result = session.exec(stmt)  # type: ignore[call-overload]
    if commit:
        session.commit()
    return result.rowcount > 0


def mark_sent(session: Session, recipient_id: str) -> bool:
    return _compare_and_set(
        session,
        EmailRecipient.id == recipient_id,
        RecipientStatus.PENDING,
        RecipientStatus.SENT,
        sent_at=_utcnow(),
        error_message=None,
    )


def mark_failed(session: Session, recipient_id: str, error_message: str) -> bool:
    return _compare_and_set(
        session,
        EmailRecipient.id == recipient_id,
        RecipientStatus.PENDING,
        RecipientStatus.FAILED,
        error_message=error_message,
    )


def mark_opened(session: Session, tracking_id: str, commit: bool = True) -> bool:
    """sent → opened for the recipient holding this token."""
    return _compare_and_set(
        session,
        EmailRecipient.tracking_id == tracking_id,
        RecipientStatus.SENT,
        RecipientStatus.OPENED,
        commit=commit,
        opened_at=_utcnow(),
    )


def mark_responded(session: Session, tracking_id: str, commit: bool = True) -> bool:
    """opened → responded for the recipient holding this token."""
    return _compare_and_set(
        session,
        EmailRecipient.tracking_id == tracking_id,
        RecipientStatus.OPENED,
        RecipientStatus.RESPONDED,
        commit=commit,
        responded_at=_utcnow(),
    )


def get_by_tracking_id(session: Session, tracking_id: str) -> Optional[EmailRecipient]:
    recipient = session.exec(
        select(EmailRecipient).where(EmailRecipient.tracking_id == tracking_id)
    ).first()
    if recipient is not None:
        session.refresh(recipient)
    return recipient
