"""
Alert text and the transport-agnostic send used to deliver it.

Every transport answers ``send`` with a correlation id when the message was
handed over, or ``None`` when it could not be attempted right now. Callers
treat ``None`` as a soft failure.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable
from datetime import date, datetime
from typing import Protocol

from birthlink.intent import ACCEPT_KEYWORD
from birthlink.logging import mask_phone, truncate_for_log
from birthlink.models import HelpRequest, Language, RiskLevel, SkillType, Volunteer, utcnow

logger = logging.getLogger(__name__)


class SmsSender(Protocol):
    async def send(self, recipients: list[str], message: str) -> str | None: ...


async def send_sms(sender: SmsSender, phone: str, message: str) -> str | None:
    return await sender.send([phone], message)


RISK_LABELS = {
    Language.ENGLISH: {RiskLevel.HIGH: "HIGH", RiskLevel.MEDIUM: "MEDIUM", RiskLevel.LOW: "LOW"},
    Language.ARABIC: {RiskLevel.HIGH: "عالية", RiskLevel.MEDIUM: "متوسطة", RiskLevel.LOW: "منخفضة"},
}
NOT_SET = {Language.ENGLISH: "N/A", Language.ARABIC: "غير محدد"}
TYPE_LABELS = {
    Language.ENGLISH: {True: "EMERGENCY", False: "SUPPORT"},
    Language.ARABIC: {True: "طوارئ", False: "مساعدة"},
}
SKILL_LABELS = {
    Language.ENGLISH: {
        SkillType.MIDWIFE: "Midwife",
        SkillType.NURSE: "Nurse",
        SkillType.TRAINED_ATTENDANT: "Trained Attendant",
        SkillType.COMMUNITY_HEALTH_WORKER: "Community Health Worker",
        SkillType.COMMUNITY_VOLUNTEER: "Community Volunteer",
    },
    Language.ARABIC: {
        SkillType.MIDWIFE: "قابلة",
        SkillType.NURSE: "ممرضة",
        SkillType.TRAINED_ATTENDANT: "مدربة",
        SkillType.COMMUNITY_HEALTH_WORKER: "عامل صحة مجتمعي",
        SkillType.COMMUNITY_VOLUNTEER: "متطوع مجتمعي",
    },
}

ALERT_TEMPLATES = {
    Language.ENGLISH: (
        "🚨 {type} Zone {zone}\n"
        "Risk: {risk} | Due: {due}\n"
        "📞 Mother: {mother}\n"
        "Reply: {accept} {case_id}"
    ),
    Language.ARABIC: (
        "🚨 {type} منطقة {zone}\n"
        "الخطورة: {risk} | الموعد: {due}\n"
        "📞 رقم الأم: {mother}\n"
        "للقبول أرسل: {accept} {case_id}"
    ),
}


def format_risk_level(risk: RiskLevel | None, language: Language) -> str:
    if risk is None:
        return NOT_SET[language]
    return RISK_LABELS[language][risk]


def format_skill(skill: SkillType, language: Language) -> str:
    return SKILL_LABELS[language][skill]


def format_due_date(due: date | None, language: Language, today: date | None = None) -> str:
    if due is None:
        return NOT_SET[language]
    today = today or utcnow().date()
    days = (due - today).days
    arabic = language == Language.ARABIC
    if days <= 0:
        return "اليوم/متأخر" if arabic else "Today/Overdue"
    if days == 1:
        return "غداً" if arabic else "Tomorrow"
    if days <= 7:
        return f"{days} أيام" if arabic else f"{days} days"
    return due.strftime("%d/%m")


def build_alert_message(
    volunteer: Volunteer, request: HelpRequest, today: date | None = None
) -> str:
    language = volunteer.preferred_language
    return ALERT_TEMPLATES[language].format(
        type=TYPE_LABELS[language][request.is_emergency],
        zone=request.zone,
        risk=format_risk_level(request.risk_level, language),
        due=format_due_date(request.due_date, language, today),
        mother=request.mother_phone,
        accept=ACCEPT_KEYWORD[language],
        case_id=request.case_id,
    )


class NotificationDispatcher:
    def __init__(self, sender: SmsSender, now_fn: Callable[[], datetime] = utcnow) -> None:
        self.sender = sender
        self.now_fn = now_fn

    async def notify(self, volunteer: Volunteer, request: HelpRequest) -> str | None:
        message = build_alert_message(volunteer, request, self.now_fn().date())
        logger.info(
            f"Notifying volunteer {mask_phone(volunteer.phone)} about request {request.case_id}"
        )
        request_id = await send_sms(self.sender, volunteer.phone, message)
        if request_id is None:
            logger.warning(
                f"Alert for {request.case_id} to {mask_phone(volunteer.phone)} "
                "could not be delivered now: no transport available"
            )
        return request_id


def new_request_id() -> str:
    return f"WS-{uuid.uuid4().hex[:8]}"


class LoggingSender:
    """Development transport: logs outgoing SMS and keeps them for inspection."""

    def __init__(self) -> None:
        self.outbox: list[tuple[str, list[str], str]] = []

    async def send(self, recipients: list[str], message: str) -> str | None:
        request_id = new_request_id()
        self.outbox.append((request_id, list(recipients), message))
        logger.info(
            f"[log transport] {request_id} to {[mask_phone(r) for r in recipients]}: "
            f"{truncate_for_log(message, 100)}"
        )
        return request_id


class TwilioSender:
    """Direct carrier transport through the Twilio REST API."""

    def __init__(self, account_sid: str, auth_token: str, from_number: str, client=None) -> None:
        if client is None:
            from twilio.rest import Client

            client = Client(account_sid, auth_token)
        self.client = client
        self.from_number = from_number

    async def send(self, recipients: list[str], message: str) -> str | None:
        if not recipients:
            return None
        request_id = new_request_id()
        for recipient in recipients:
            try:
                await asyncio.to_thread(
                    self.client.messages.create,
                    body=message,
                    from_=self.from_number,
                    to=recipient,
                )
            except Exception as e:
                logger.error(f"Twilio send to {mask_phone(recipient)} failed: {e}")
                return None
        return request_id


class FallbackSender:
    """Try ``primary`` (the relay); use ``secondary`` when it cannot send now."""

    def __init__(self, primary: SmsSender, secondary: SmsSender | None = None) -> None:
        self.primary = primary
        self.secondary = secondary

    async def send(self, recipients: list[str], message: str) -> str | None:
        request_id = await self.primary.send(recipients, message)
        if request_id is not None or self.secondary is None:
            return request_id
        logger.info("Relay unavailable, falling back to direct transport")
        return await self.secondary.send(recipients, message)
