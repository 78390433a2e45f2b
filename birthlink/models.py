"""
Domain records for mothers, volunteers and help requests.

These are loaded snapshots handed out by the repositories in
``birthlink.database``; the matching core only holds them for the duration
of a single operation.
"""

from datetime import UTC, date, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from birthlink.errors import InvalidTransitionError


def utcnow() -> datetime:
    return datetime.now(UTC)


class Language(StrEnum):
    ENGLISH = "ENGLISH"
    ARABIC = "ARABIC"


class RiskLevel(StrEnum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class SkillType(StrEnum):
    MIDWIFE = "MIDWIFE"
    NURSE = "NURSE"
    TRAINED_ATTENDANT = "TRAINED_ATTENDANT"
    COMMUNITY_HEALTH_WORKER = "COMMUNITY_HEALTH_WORKER"
    COMMUNITY_VOLUNTEER = "COMMUNITY_VOLUNTEER"

    @property
    def priority(self) -> int:
        """Matching priority, lower is more qualified."""
        return _SKILL_PRIORITY[self]


_SKILL_PRIORITY = {
    SkillType.MIDWIFE: 1,
    SkillType.NURSE: 2,
    SkillType.TRAINED_ATTENDANT: 3,
    SkillType.COMMUNITY_HEALTH_WORKER: 4,
    SkillType.COMMUNITY_VOLUNTEER: 5,
}

CERTIFIED_SKILLS = frozenset({SkillType.MIDWIFE, SkillType.NURSE})


class AvailabilityStatus(StrEnum):
    AVAILABLE = "AVAILABLE"
    BUSY = "BUSY"
    OFFLINE = "OFFLINE"


class RequestType(StrEnum):
    EMERGENCY = "EMERGENCY"
    SUPPORT = "SUPPORT"


class RequestStatus(StrEnum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


ACTIVE_STATUSES = frozenset(
    {RequestStatus.PENDING, RequestStatus.ACCEPTED, RequestStatus.IN_PROGRESS}
)
TERMINAL_STATUSES = frozenset({RequestStatus.COMPLETED, RequestStatus.CANCELLED})


class Mother(BaseModel):
    phone: str
    camp: str
    zone: str
    due_date: date | None = None
    risk_level: RiskLevel = RiskLevel.LOW
    preferred_language: Language = Language.ENGLISH
    registered_at: datetime = Field(default_factory=utcnow)
    last_contact_at: datetime | None = None


class Volunteer(BaseModel):
    phone: str
    name: str | None = None
    camp: str | None = None
    skill_type: SkillType = SkillType.COMMUNITY_VOLUNTEER
    zones: list[str] = Field(default_factory=list)
    availability: AvailabilityStatus = AvailabilityStatus.AVAILABLE
    preferred_language: Language = Language.ENGLISH
    completed_cases: int = 0
    registered_at: datetime = Field(default_factory=utcnow)

    def covers(self, zone: str) -> bool:
        return zone in self.zones

    @property
    def display_name(self) -> str:
        return self.name or self.phone


class HelpRequest(BaseModel):
    """
    A case. Zone, risk level, due date and the mother's phone are copied from
    the mother when the case is opened and never change afterwards, so the
    case keeps describing the situation volunteers were alerted about.
    """

    case_id: str = Field(frozen=True)
    mother_phone: str = Field(frozen=True)
    request_type: RequestType = Field(frozen=True)
    zone: str = Field(frozen=True)
    risk_level: RiskLevel | None = Field(default=None, frozen=True)
    due_date: date | None = Field(default=None, frozen=True)

    status: RequestStatus = RequestStatus.PENDING
    accepted_by: str | None = None  # volunteer phone
    created_at: datetime = Field(default_factory=utcnow)
    accepted_at: datetime | None = None
    in_progress_at: datetime | None = None
    closed_at: datetime | None = None
    alerts_sent: int = 0
    eta_responses: dict[str, int] = Field(default_factory=dict)  # volunteer phone -> minutes

    def __setattr__(self, name, value):
        if name in type(self).model_fields and self.is_closed:
            raise InvalidTransitionError(self.case_id, self.status.value, f"modify {name}")
        super().__setattr__(name, value)

    @property
    def is_emergency(self) -> bool:
        return self.request_type == RequestType.EMERGENCY

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_closed(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def _require(self, allowed: frozenset[RequestStatus] | set[RequestStatus], target: RequestStatus):
        if self.status not in allowed:
            raise InvalidTransitionError(self.case_id, self.status.value, target.value)

    def accept(self, volunteer_phone: str, at: datetime) -> None:
        self._require({RequestStatus.PENDING}, RequestStatus.ACCEPTED)
        self.accepted_by = volunteer_phone
        self.accepted_at = at
        self.status = RequestStatus.ACCEPTED

    def start_progress(self, at: datetime) -> None:
        self._require({RequestStatus.ACCEPTED}, RequestStatus.IN_PROGRESS)
        self.in_progress_at = at
        self.status = RequestStatus.IN_PROGRESS

    def complete(self, at: datetime) -> None:
        self._require(
            {RequestStatus.ACCEPTED, RequestStatus.IN_PROGRESS}, RequestStatus.COMPLETED
        )
        self.closed_at = at
        self.status = RequestStatus.COMPLETED

    def cancel(self, at: datetime) -> None:
        self._require(ACTIVE_STATUSES, RequestStatus.CANCELLED)
        self.closed_at = at
        self.status = RequestStatus.CANCELLED
