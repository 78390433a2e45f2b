import itertools
import logging
from collections.abc import Iterator, MutableMapping
from datetime import datetime

from birthlink.errors import CaseNotFoundError
from birthlink.models import (
    AvailabilityStatus,
    HelpRequest,
    Mother,
    RequestType,
    Volunteer,
    utcnow,
)

logger = logging.getLogger(__name__)


class InMemoryKeyValueDatabase[K, V]:
    """
    Simple in-memory key/value database.

    Iteration follows insertion order. Replacing the value of an existing key
    keeps its original position.
    """

    def __init__(self) -> None:
        self._store: MutableMapping[K, V] = {}

    def put(self, key: K, value: V) -> None:
        self._store[key] = value

    def get(self, key: K) -> V | None:
        return self._store.get(key)

    def delete(self, key: K) -> None:
        self._store.pop(key, None)

    def all(self) -> list[V]:
        return list(self._store.values())

    def clear(self) -> None:
        self._store.clear()

    def __iter__(self) -> Iterator[V]:
        return iter(list(self._store.values()))

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: K) -> bool:
        return key in self._store


class MotherRepository:
    def __init__(self, db: InMemoryKeyValueDatabase[str, Mother] | None = None) -> None:
        self._db = db if db is not None else InMemoryKeyValueDatabase()

    def save(self, mother: Mother) -> Mother:
        self._db.put(mother.phone, mother)
        return mother

    def find_by_phone(self, phone: str) -> Mother | None:
        return self._db.get(phone)

    def record_contact(self, phone: str) -> None:
        mother = self._db.get(phone)
        if mother is not None:
            mother.last_contact_at = utcnow()

    def all(self) -> list[Mother]:
        return self._db.all()


class VolunteerRepository:
    def __init__(self, db: InMemoryKeyValueDatabase[str, Volunteer] | None = None) -> None:
        self._db = db if db is not None else InMemoryKeyValueDatabase()

    def save(self, volunteer: Volunteer) -> Volunteer:
        self._db.put(volunteer.phone, volunteer)
        return volunteer

    def find_by_phone(self, phone: str) -> Volunteer | None:
        return self._db.get(phone)

    def find_available_by_zone(self, zone: str) -> list[Volunteer]:
        """AVAILABLE volunteers covering ``zone``, in registration order."""
        return [
            v
            for v in self._db
            if v.availability == AvailabilityStatus.AVAILABLE and v.covers(zone)
        ]

    def update_availability(self, phone: str, status: AvailabilityStatus) -> Volunteer | None:
        volunteer = self._db.get(phone)
        if volunteer is not None:
            volunteer.availability = status
        return volunteer

    def increment_completed_cases(self, phone: str) -> None:
        volunteer = self._db.get(phone)
        if volunteer is not None:
            volunteer.completed_cases += 1

    def all(self) -> list[Volunteer]:
        return self._db.all()


class HelpRequestRepository:
    def __init__(
        self,
        db: InMemoryKeyValueDatabase[str, HelpRequest] | None = None,
        *,
        prefix: str = "HR",
    ) -> None:
        self._db = db if db is not None else InMemoryKeyValueDatabase()
        self._prefix = prefix
        self._sequence = itertools.count(1)

    def next_case_id(self) -> str:
        # no await between allocation and use, so ids stay unique per event loop
        return f"{self._prefix}-{next(self._sequence):04d}"

    def normalize_id(self, case_id: str) -> str:
        digits = "".join(ch for ch in case_id if ch.isdigit())
        if not digits:
            return case_id
        return f"{self._prefix}-{int(digits):04d}"

    def create(
        self, mother: Mother, request_type: RequestType, at: datetime | None = None
    ) -> HelpRequest:
        request = HelpRequest(
            case_id=self.next_case_id(),
            mother_phone=mother.phone,
            request_type=request_type,
            zone=mother.zone,
            risk_level=mother.risk_level,
            due_date=mother.due_date,
            created_at=at or utcnow(),
        )
        self._db.put(request.case_id, request)
        return request

    def find_by_case_id(self, case_id: str) -> HelpRequest | None:
        return self._db.get(self.normalize_id(case_id))

    def get(self, case_id: str) -> HelpRequest:
        request = self.find_by_case_id(case_id)
        if request is None:
            raise CaseNotFoundError(case_id)
        return request

    def increment_alerts_sent(self, case_id: str) -> bool:
        """Count one alert batch. Closed cases keep their final count."""
        request = self.find_by_case_id(case_id)
        if request is None:
            return False
        if request.is_closed:
            logger.info(f"Case {request.case_id} closed while alerting, batch not counted")
            return False
        request.alerts_sent += 1
        return True

    def record_eta(self, case_id: str, volunteer_phone: str, minutes: int) -> None:
        request = self.get(case_id)
        request.eta_responses[volunteer_phone] = minutes

    def find_active_by_volunteer(self, volunteer_phone: str) -> list[HelpRequest]:
        return [r for r in self._db if r.accepted_by == volunteer_phone and r.is_active]

    def all(self) -> list[HelpRequest]:
        return self._db.all()


class Database:
    """Container for all repositories."""

    def __init__(self, *, case_id_prefix: str = "HR") -> None:
        self.mothers = MotherRepository()
        self.volunteers = VolunteerRepository()
        self.requests = HelpRequestRepository(prefix=case_id_prefix)
