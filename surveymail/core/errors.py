"""SurveyMail — Domain Exceptions.

Routes map these onto HTTP status codes; the send loop recovers only from
TransportError.
"""


class SurveyMailError(Exception):
    """Base class for all domain errors."""

    code = "SRV_001"
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(SurveyMailError):
    """Missing or malformed input. No state is mutated."""

    code = "VAL_001"
    status_code = 400


class NoRecipientsError(ValidationError):
    """Recipient resolution produced an empty set."""

    def __init__(self, message: str = "No recipients found for this survey"):
        super().__init__(message)


class NotFoundError(SurveyMailError):
    """Unknown survey / campaign / audience member id."""

    code = "RES_001"
    status_code = 404


class SurveyNotFoundError(NotFoundError):
    def __init__(self, survey_id: str):
        self.survey_id = survey_id
        super().__init__("Survey not found")


class CampaignNotFoundError(NotFoundError):
    def __init__(self, campaign_id: str):
        self.campaign_id = campaign_id
        super().__init__("Campaign not found")


class AudienceMemberNotFoundError(NotFoundError):
    def __init__(self, member_id: str):
        self.member_id = member_id
        super().__init__("Audience member not found")


class TransportError(SurveyMailError):
    """Mail dispatch failed for a single message."""

    def __init__(self, message: str, recipient: str = ""):
        self.recipient = recipient
        super().__init__(message)


class PersistenceError(SurveyMailError):
    """The store is unavailable or rejected a write."""


class InvalidTransitionError(SurveyMailError):
    """A status change that would skip a state or move backward."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Illegal status transition: {current} → {target}")
