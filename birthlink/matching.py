import asyncio
import logging

from pydantic import BaseModel, Field

from birthlink.database import HelpRequestRepository, VolunteerRepository
from birthlink.logging import mask_phone
from birthlink.models import CERTIFIED_SKILLS, HelpRequest, SkillType, Volunteer
from birthlink.notifier import NotificationDispatcher

logger = logging.getLogger(__name__)


def _by_priority(volunteers: list[Volunteer], *, reverse: bool = False) -> list[Volunteer]:
    # sorted() is stable, so registration order breaks ties within a tier
    return sorted(volunteers, key=lambda v: v.skill_type.priority, reverse=reverse)


class MatchResult(BaseModel):
    """Outcome of one alert batch."""

    attempted: list[Volunteer] = Field(default_factory=list)
    # volunteer phone -> relay/carrier request id
    handed_off: dict[str, str] = Field(default_factory=dict)

    @property
    def reached(self) -> list[Volunteer]:
        return [v for v in self.attempted if v.phone in self.handed_off]

    @property
    def undeliverable(self) -> list[Volunteer]:
        return [v for v in self.attempted if v.phone not in self.handed_off]


class MatchingEngine:
    """
    Picks the volunteers to alert for a help request and notifies them.

    Matching never leaves the request's zone. Volunteers inside one skill tier
    are alerted in registration order; midwives and nurses form a single tier.
    """

    def __init__(
        self,
        volunteers: VolunteerRepository,
        requests: HelpRequestRepository,
        dispatcher: NotificationDispatcher,
    ) -> None:
        self.volunteers = volunteers
        self.requests = requests
        self.dispatcher = dispatcher

    def find_volunteers_to_alert(self, request: HelpRequest) -> list[Volunteer]:
        available = self.volunteers.find_available_by_zone(request.zone)
        if not available:
            logger.warning(f"No available volunteers in zone {request.zone}")
            return []

        if not request.is_emergency:
            # community-level volunteers first, specialists are kept for emergencies
            return _by_priority(available, reverse=True)

        certified = [v for v in available if v.skill_type in CERTIFIED_SKILLS]
        trained = [v for v in available if v.skill_type == SkillType.TRAINED_ATTENDANT]
        if certified or trained:
            return certified + trained

        # last resort: everyone below trained attendant
        return _by_priority(available)

    async def match_and_notify(self, request: HelpRequest) -> MatchResult:
        """
        Alert every matched volunteer in parallel and count it as one batch.

        ``attempted`` lists every volunteer an alert was tried for. Only the
        ones whose alert reached a transport appear in ``handed_off``; a failed
        or undeliverable alert is logged and does not stop the others.
        """
        volunteers = self.find_volunteers_to_alert(request)
        if not volunteers:
            return MatchResult()

        logger.info(
            f"Alerting {len(volunteers)} volunteer(s) for {request.case_id} "
            f"({request.request_type}, zone {request.zone})"
        )
        results = await asyncio.gather(
            *(self.dispatcher.notify(v, request) for v in volunteers),
            return_exceptions=True,
        )
        result = MatchResult(attempted=volunteers)
        for volunteer, outcome in zip(volunteers, results):
            if isinstance(outcome, Exception):
                logger.error(
                    f"Failed to notify volunteer {mask_phone(volunteer.phone)} "
                    f"for {request.case_id}: {outcome}"
                )
            elif outcome is not None:
                result.handed_off[volunteer.phone] = outcome

        if not result.handed_off:
            logger.warning(f"No alert for {request.case_id} reached a transport")
        self.requests.increment_alerts_sent(request.case_id)
        return result
