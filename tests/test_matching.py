from unittest.mock import AsyncMock

import pytest

from birthlink.database import Database
from birthlink.matching import MatchingEngine
from birthlink.models import (
    AvailabilityStatus,
    Mother,
    RequestType,
    SkillType,
    Volunteer,
)
from birthlink.notifier import NotificationDispatcher


def _p(msg: str) -> None:
    # pytest captures stdout unless you run with -s
    print(msg, flush=True)


@pytest.fixture
def db() -> Database:
    db = Database()
    db.mothers.save(Mother(phone="+962790000100", camp="Zaatari", zone="3"))
    return db


@pytest.fixture
def sender() -> AsyncMock:
    sender = AsyncMock()
    sender.send.return_value = "WS-0000abcd"
    return sender


@pytest.fixture
def engine(db: Database, sender: AsyncMock) -> MatchingEngine:
    return MatchingEngine(db.volunteers, db.requests, NotificationDispatcher(sender))


def _volunteer(
    db: Database,
    phone: str,
    skill: SkillType,
    zones: list[str] | None = None,
    availability: AvailabilityStatus = AvailabilityStatus.AVAILABLE,
) -> Volunteer:
    return db.volunteers.save(
        Volunteer(
            phone=phone,
            skill_type=skill,
            zones=zones if zones is not None else ["3"],
            availability=availability,
        )
    )


def _request(db: Database, request_type: RequestType):
    mother = db.mothers.find_by_phone("+962790000100")
    return db.requests.create(mother, request_type)


def _phones(volunteers: list[Volunteer]) -> list[str]:
    return [v.phone for v in volunteers]


def test_emergency_alerts_certified_in_zone_in_registration_order(
    db: Database, engine: MatchingEngine
) -> None:
    # midwives and nurses share one tier
    _volunteer(db, "+1001", SkillType.NURSE)
    _volunteer(db, "+1002", SkillType.MIDWIFE)
    _volunteer(db, "+1003", SkillType.MIDWIFE, zones=["7"])

    result = engine.find_volunteers_to_alert(_request(db, RequestType.EMERGENCY))
    _p(f"alert list: {_phones(result)}")

    assert _phones(result) == ["+1001", "+1002"]


def test_emergency_appends_trained_attendants_after_certified(
    db: Database, engine: MatchingEngine
) -> None:
    _volunteer(db, "+1001", SkillType.TRAINED_ATTENDANT)
    _volunteer(db, "+1002", SkillType.MIDWIFE)
    _volunteer(db, "+1003", SkillType.COMMUNITY_VOLUNTEER)

    result = engine.find_volunteers_to_alert(_request(db, RequestType.EMERGENCY))

    assert _phones(result) == ["+1002", "+1001"]


def test_emergency_without_certified_includes_trained_but_not_community(
    db: Database, engine: MatchingEngine
) -> None:
    _volunteer(db, "+1001", SkillType.TRAINED_ATTENDANT)
    assert _phones(engine.find_volunteers_to_alert(_request(db, RequestType.EMERGENCY))) == [
        "+1001"
    ]

    _volunteer(db, "+1002", SkillType.COMMUNITY_VOLUNTEER)
    result = engine.find_volunteers_to_alert(_request(db, RequestType.EMERGENCY))

    assert _phones(result) == ["+1001"]


def test_emergency_falls_back_to_community_tier_as_last_resort(
    db: Database, engine: MatchingEngine
) -> None:
    _volunteer(db, "+1001", SkillType.COMMUNITY_VOLUNTEER)
    _volunteer(db, "+1002", SkillType.COMMUNITY_HEALTH_WORKER)
    _volunteer(db, "+1003", SkillType.COMMUNITY_VOLUNTEER)

    result = engine.find_volunteers_to_alert(_request(db, RequestType.EMERGENCY))

    assert _phones(result) == ["+1002", "+1001", "+1003"]


def test_support_routes_least_qualified_first(db: Database, engine: MatchingEngine) -> None:
    _volunteer(db, "+1001", SkillType.MIDWIFE)
    _volunteer(db, "+1002", SkillType.COMMUNITY_VOLUNTEER)
    _volunteer(db, "+1003", SkillType.TRAINED_ATTENDANT)

    result = engine.find_volunteers_to_alert(_request(db, RequestType.SUPPORT))

    assert _phones(result) == ["+1002", "+1003", "+1001"]


def test_ties_within_a_tier_keep_registration_order(db: Database, engine: MatchingEngine) -> None:
    _volunteer(db, "+1003", SkillType.NURSE)
    _volunteer(db, "+1001", SkillType.NURSE)
    _volunteer(db, "+1002", SkillType.NURSE)
    # re-registering keeps the original position
    _volunteer(db, "+1003", SkillType.NURSE)

    result = engine.find_volunteers_to_alert(_request(db, RequestType.EMERGENCY))

    assert _phones(result) == ["+1003", "+1001", "+1002"]


def test_unavailable_volunteers_are_never_alerted(db: Database, engine: MatchingEngine) -> None:
    _volunteer(db, "+1001", SkillType.MIDWIFE, availability=AvailabilityStatus.BUSY)
    _volunteer(db, "+1002", SkillType.NURSE, availability=AvailabilityStatus.OFFLINE)

    assert engine.find_volunteers_to_alert(_request(db, RequestType.EMERGENCY)) == []
    assert engine.find_volunteers_to_alert(_request(db, RequestType.SUPPORT)) == []


@pytest.mark.asyncio
async def test_match_and_notify_empty_zone_sends_nothing(
    db: Database, engine: MatchingEngine, sender: AsyncMock
) -> None:
    _volunteer(db, "+1001", SkillType.MIDWIFE, zones=["9"])
    request = _request(db, RequestType.EMERGENCY)

    result = await engine.match_and_notify(request)

    assert result.attempted == []
    assert result.handed_off == {}
    assert sender.send.await_count == 0
    assert request.alerts_sent == 0


@pytest.mark.asyncio
async def test_match_and_notify_counts_one_batch(
    db: Database, engine: MatchingEngine, sender: AsyncMock
) -> None:
    _volunteer(db, "+1001", SkillType.MIDWIFE)
    _volunteer(db, "+1002", SkillType.NURSE)
    _volunteer(db, "+1003", SkillType.TRAINED_ATTENDANT)
    request = _request(db, RequestType.EMERGENCY)

    result = await engine.match_and_notify(request)
    for i, (args, _kw) in enumerate(sender.send.await_args_list, start=1):
        recipients, msg = args
        _p(f"  sms[{i}] -> {recipients}: {msg!r}")

    assert _phones(result.attempted) == ["+1001", "+1002", "+1003"]
    assert _phones(result.reached) == ["+1001", "+1002", "+1003"]
    assert sender.send.await_count == 3
    assert sorted(args[0][0] for (args, _) in sender.send.await_args_list) == [
        "+1001",
        "+1002",
        "+1003",
    ]
    assert request.alerts_sent == 1


@pytest.mark.asyncio
async def test_match_and_notify_separates_undeliverable_alerts(
    db: Database, engine: MatchingEngine, sender: AsyncMock
) -> None:
    _volunteer(db, "+1001", SkillType.MIDWIFE)
    _volunteer(db, "+1002", SkillType.NURSE)
    _volunteer(db, "+1003", SkillType.NURSE)

    async def flaky(recipients, message):
        if recipients == ["+1002"]:
            raise ConnectionError("relay socket closed")
        if recipients == ["+1003"]:
            return None  # no transport right now
        return "WS-0000abcd"

    sender.send.side_effect = flaky
    request = _request(db, RequestType.EMERGENCY)

    result = await engine.match_and_notify(request)

    assert _phones(result.attempted) == ["+1001", "+1002", "+1003"]
    assert result.handed_off == {"+1001": "WS-0000abcd"}
    assert _phones(result.undeliverable) == ["+1002", "+1003"]
    assert sender.send.await_count == 3
    assert request.alerts_sent == 1


@pytest.mark.asyncio
async def test_match_and_notify_without_any_transport(
    db: Database, engine: MatchingEngine, sender: AsyncMock
) -> None:
    _volunteer(db, "+1001", SkillType.MIDWIFE)
    _volunteer(db, "+1002", SkillType.NURSE)
    sender.send.return_value = None
    request = _request(db, RequestType.EMERGENCY)

    result = await engine.match_and_notify(request)

    assert _phones(result.attempted) == ["+1001", "+1002"]
    assert result.reached == []
    assert request.alerts_sent == 1


@pytest.mark.asyncio
async def test_case_closed_during_batch_keeps_its_count(
    db: Database, engine: MatchingEngine, sender: AsyncMock
) -> None:
    _volunteer(db, "+1001", SkillType.MIDWIFE)
    _volunteer(db, "+1002", SkillType.NURSE)
    request = _request(db, RequestType.EMERGENCY)

    async def accepted_then_cancelled(recipients, message):
        if recipients == ["+1002"]:
            request.accept("+1001", request.created_at)
            request.cancel(request.created_at)
        return "WS-0000abcd"

    sender.send.side_effect = accepted_then_cancelled

    result = await engine.match_and_notify(request)

    assert _phones(result.reached) == ["+1001", "+1002"]
    assert request.alerts_sent == 0
    assert request.is_closed
