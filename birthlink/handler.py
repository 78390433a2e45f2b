import logging
from collections.abc import Callable
from datetime import datetime
from typing import assert_never

from birthlink.conversation import ConversationStore
from birthlink.database import Database
from birthlink.errors import BirthlinkError
from birthlink.escalation import EscalationScheduler
from birthlink.intent import (
    ACCEPT_KEYWORD,
    COMPLETE_KEYWORD,
    EMERGENCY_KEYWORD,
    HELP_KEYWORD,
    CommandType,
    ParsedCommand,
    parse_due_date,
    parse_risk_level,
    parse_skill_type,
    parse_zones,
)
from birthlink.logging import mask_phone
from birthlink.matching import MatchingEngine, MatchResult
from birthlink.models import (
    AvailabilityStatus,
    HelpRequest,
    Language,
    Mother,
    RequestStatus,
    RequestType,
    Volunteer,
    utcnow,
)
from birthlink.notifier import SmsSender, format_risk_level, format_skill, send_sms

logger = logging.getLogger(__name__)

NowFn = Callable[[], datetime]


def localized(language: Language, english: str, arabic: str) -> str:
    return arabic if language == Language.ARABIC else english


AVAILABILITY_LABELS = {
    Language.ENGLISH: {
        AvailabilityStatus.AVAILABLE: "AVAILABLE",
        AvailabilityStatus.BUSY: "BUSY",
        AvailabilityStatus.OFFLINE: "OFFLINE",
    },
    Language.ARABIC: {
        AvailabilityStatus.AVAILABLE: "متاح",
        AvailabilityStatus.BUSY: "مشغول",
        AvailabilityStatus.OFFLINE: "غير متاح",
    },
}

HELP_TEXT = {
    Language.ENGLISH: (
        "📱 BirthLink Commands:\n"
        "\n"
        "REGISTRATION:\n"
        "• REG MOTHER CAMP [name] ZONE [number]\n"
        "• REG VOLUNTEER NAME [name] CAMP [name] ZONE [number] SKILL [type]\n"
        "\n"
        "REQUESTS:\n"
        "• EMERGENCY - Request urgent help\n"
        "• SUPPORT - Request non-urgent support\n"
        "\n"
        "VOLUNTEER:\n"
        "• ACCEPT HR-xxxx - Accept a case\n"
        "• COMPLETE HR-xxxx - Complete a case\n"
        "• CANCEL HR-xxxx - Cancel a case\n"
        "• AVAILABLE / BUSY / OFFLINE - Change status\n"
        "• [minutes] - Reply to an alert with your ETA\n"
        "\n"
        "• STATUS - Check your status\n"
        "• INFO - Show this message"
    ),
    Language.ARABIC: (
        "📱 أوامر BirthLink:\n"
        "\n"
        "التسجيل:\n"
        "• تسجيل ام مخيم [اسم] منطقة [رقم]\n"
        "• تسجيل متطوع الاسم [اسم] مخيم [اسم] منطقة [رقم] مهارة [نوع]\n"
        "\n"
        "الطلبات:\n"
        "• طوارئ - طلب مساعدة عاجلة\n"
        "• مساعدة - طلب دعم غير عاجل\n"
        "\n"
        "المتطوعين:\n"
        "• قبول HR-xxxx - قبول حالة\n"
        "• اكتمل HR-xxxx - إنهاء حالة\n"
        "• إلغاء HR-xxxx - إلغاء حالة\n"
        "• متاح / مشغول / غير متاح - تغيير الحالة\n"
        "• [دقائق] - الرد على التنبيه بوقت الوصول\n"
        "\n"
        "• حالة - التحقق من حالتك\n"
        "• تعليمات - عرض هذه الرسالة"
    ),
}


def unknown_command_reply(language: Language) -> str:
    return localized(
        language,
        f"❓ Unknown command. Send {HELP_KEYWORD[Language.ENGLISH]} for available commands.",
        f"❓ أمر غير معروف. أرسل '{HELP_KEYWORD[Language.ARABIC]}' للحصول على الأوامر المتاحة.",
    )


def not_registered_volunteer_reply(language: Language) -> str:
    return localized(
        language,
        "❌ You are not registered as a volunteer. Please register first.",
        "❌ لم يتم تسجيلك كمتطوع. يرجى التسجيل أولاً.",
    )


class CommandHandler:
    """
    Executes parsed commands against the repositories and returns the reply.

    Replies use the language the command was written in. Messages to a third
    party (the mother on acceptance, the other side of a cancellation) use
    that party's preferred language.
    """

    def __init__(
        self,
        db: Database,
        matching: MatchingEngine,
        sender: SmsSender,
        conversations: ConversationStore,
        escalations: EscalationScheduler | None = None,
        *,
        now_fn: NowFn = utcnow,
    ) -> None:
        self.db = db
        self.matching = matching
        self.sender = sender
        self.conversations = conversations
        self.escalations = escalations
        self.now_fn = now_fn

    async def handle(self, command: ParsedCommand) -> str:
        logger.info(f"Handling command: {command.type} from {mask_phone(command.phone)}")
        try:
            match command.type:
                case CommandType.REGISTER_MOTHER:
                    return self.register_mother(command)
                case CommandType.REGISTER_VOLUNTEER:
                    return self.register_volunteer(command)
                case CommandType.EMERGENCY:
                    return await self.open_case(command, RequestType.EMERGENCY)
                case CommandType.SUPPORT:
                    return await self.open_case(command, RequestType.SUPPORT)
                case CommandType.ACCEPT_CASE:
                    return await self.accept_case(command)
                case CommandType.COMPLETE_CASE:
                    return self.complete_case(command)
                case CommandType.CANCEL_CASE:
                    return await self.cancel_case(command)
                case CommandType.AVAILABLE:
                    return self.change_availability(command, AvailabilityStatus.AVAILABLE)
                case CommandType.BUSY:
                    return self.change_availability(command, AvailabilityStatus.BUSY)
                case CommandType.OFFLINE:
                    return self.change_availability(command, AvailabilityStatus.OFFLINE)
                case CommandType.STATUS:
                    return self.status(command)
                case CommandType.ETA:
                    return await self.record_eta(command)
                case CommandType.HELP:
                    return HELP_TEXT[command.language]
                case CommandType.UNKNOWN:
                    return unknown_command_reply(command.language)
                case _:
                    assert_never(command.type)
        except BirthlinkError as e:
            logger.warning(f"Rejected {command.type} from {mask_phone(command.phone)}: {e}")
            return localized(command.language, f"❌ Error: {e}", f"❌ خطأ: {e}")

    # registration

    def register_mother(self, command: ParsedCommand) -> str:
        lang = command.language
        camp, zone = command.param("camp"), command.param("zone")
        if not camp:
            return localized(
                lang,
                "❌ Camp is required. Example: REG MOTHER CAMP A ZONE 3",
                "❌ المخيم مطلوب. مثال: تسجيل ام مخيم أ منطقة 3",
            )
        if not zone:
            return localized(
                lang,
                "❌ Zone is required. Example: REG MOTHER CAMP A ZONE 3",
                "❌ المنطقة مطلوبة. مثال: تسجيل ام مخيم أ منطقة 3",
            )

        due_date = parse_due_date(command.param("dueDate"), self.now_fn().date())
        mother = self.db.mothers.find_by_phone(command.phone)
        if mother is None:
            mother = Mother(
                phone=command.phone,
                camp=camp,
                zone=zone,
                due_date=due_date,
                risk_level=parse_risk_level(command.param("riskLevel")),
                preferred_language=lang,
            )
        else:
            mother.camp = camp
            mother.zone = zone
            mother.preferred_language = lang
            if due_date is not None:
                mother.due_date = due_date
            if command.param("riskLevel"):
                mother.risk_level = parse_risk_level(command.param("riskLevel"))
        self.db.mothers.save(mother)
        logger.info(
            f"Registered mother {mask_phone(mother.phone)}: camp={camp}, zone={zone}, "
            f"due={mother.due_date}, risk={mother.risk_level}"
        )

        return localized(
            lang,
            f"✅ Registered!\nCamp: {camp}, Zone: {zone}\n"
            f"Send {EMERGENCY_KEYWORD[Language.ENGLISH]} if you need urgent help.",
            f"✅ تم التسجيل!\nالمخيم: {camp}، المنطقة: {zone}\n"
            f"أرسل '{EMERGENCY_KEYWORD[Language.ARABIC]}' إذا احتجت مساعدة عاجلة.",
        )

    def register_volunteer(self, command: ParsedCommand) -> str:
        lang = command.language
        zones = parse_zones(command.param("zones"))
        if not zones:
            return localized(
                lang,
                "❌ Zone is required. Example: REG VOLUNTEER NAME Ali CAMP A ZONE 3 SKILL MIDWIFE",
                "❌ المنطقة مطلوبة. مثال: تسجيل متطوع الاسم علي مخيم أ منطقة 3 مهارة قابلة",
            )

        skill = parse_skill_type(command.param("skillType"))
        volunteer = self.db.volunteers.find_by_phone(command.phone)
        if volunteer is None:
            volunteer = Volunteer(
                phone=command.phone,
                name=command.param("name"),
                camp=command.param("camp"),
                skill_type=skill,
                zones=zones,
                preferred_language=lang,
            )
        else:
            volunteer.name = command.param("name") or volunteer.name
            volunteer.camp = command.param("camp") or volunteer.camp
            volunteer.skill_type = skill
            volunteer.zones = zones
            volunteer.preferred_language = lang
        self.db.volunteers.save(volunteer)
        logger.info(
            f"Registered volunteer {mask_phone(volunteer.phone)}: skill={skill}, zones={zones}"
        )

        return localized(
            lang,
            f"✅ Volunteer registered!\nSkill: {format_skill(skill, lang)}, "
            f"Zones: {', '.join(zones)}\nYou are now AVAILABLE to receive alerts.",
            f"✅ تم تسجيل المتطوع!\nالمهارة: {format_skill(skill, lang)}، "
            f"المناطق: {', '.join(zones)}\nأنت الآن متاح لاستلام التنبيهات.",
        )

    # cases

    async def open_case(self, command: ParsedCommand, request_type: RequestType) -> str:
        lang = command.language
        mother = self.db.mothers.find_by_phone(command.phone)
        if mother is None:
            return localized(
                lang,
                "❌ You are not registered. Please register first: REG MOTHER CAMP [name] ZONE [number]",
                "❌ لم يتم تسجيلك. يرجى التسجيل أولاً: تسجيل ام مخيم [اسم] منطقة [رقم]",
            )

        self.db.mothers.record_contact(mother.phone)
        request = self.db.requests.create(mother, request_type, self.now_fn())
        if request.is_emergency:
            logger.warning(f"EMERGENCY {request.case_id} from {mask_phone(mother.phone)}")
        else:
            logger.info(f"Support request {request.case_id} from {mask_phone(mother.phone)}")

        result = await self.matching.match_and_notify(request)
        if request.status != RequestStatus.PENDING:
            # accepted or cancelled while the alerts were still going out
            logger.info(f"Case {request.case_id} settled during its alert batch")
        else:
            for volunteer in result.reached:
                self.conversations.mark_awaiting_eta(volunteer.phone, request.case_id)
            if self.escalations is not None:
                self.escalations.schedule(request.case_id)

        return self._case_opened_reply(lang, request, result)

    def _case_opened_reply(self, lang: Language, request: HelpRequest, result: MatchResult) -> str:
        case_id = request.case_id
        notified = len(result.reached)
        if result.attempted and not notified:
            if request.is_emergency:
                return localized(
                    lang,
                    f"🚨 EMERGENCY received! Case: {case_id}\n⚠️ We could not reach volunteers "
                    "right now. Stay calm, we will try again shortly.",
                    f"🚨 تم استلام الطوارئ! الحالة: {case_id}\n⚠️ تعذر الوصول إلى المتطوعين حالياً. "
                    "ابق هادئاً، سنحاول مرة أخرى قريباً.",
                )
            return localized(
                lang,
                f"📞 Support request received! Case: {case_id}\n⚠️ We could not reach volunteers "
                "right now. We will try again shortly.",
                f"📞 تم استلام طلب المساعدة! الحالة: {case_id}\n⚠️ تعذر الوصول إلى المتطوعين حالياً. "
                "سنحاول مرة أخرى قريباً.",
            )
        if request.is_emergency and notified:
            return localized(
                lang,
                f"🚨 EMERGENCY received! Case: {case_id}\n✅ {notified} volunteer(s) have been "
                "alerted. Help is on the way. Stay calm.",
                f"🚨 تم استلام الطوارئ! الحالة: {case_id}\n✅ تم إخطار {notified} متطوع(ين). "
                "المساعدة في الطريق. ابق هادئاً.",
            )
        if request.is_emergency:
            return localized(
                lang,
                f"🚨 EMERGENCY received! Case: {case_id}\n⚠️ No volunteers available in your "
                "zone. Stay calm, we are trying to find help.",
                f"🚨 تم استلام الطوارئ! الحالة: {case_id}\n⚠️ لا يوجد متطوعين متاحين في منطقتك. "
                "ابق هادئاً، نحاول إيجاد المساعدة.",
            )
        if notified:
            return localized(
                lang,
                f"📞 Support request received! Case: {case_id}\n✅ {notified} volunteer(s) "
                "notified. Someone will contact you soon.",
                f"📞 تم استلام طلب المساعدة! الحالة: {case_id}\n✅ تم إخطار {notified} متطوع(ين). "
                "سيتواصل معك أحدهم قريباً.",
            )
        return localized(
            lang,
            f"📞 Support request received! Case: {case_id}\n⚠️ No volunteers available right "
            "now. We will notify you when someone is available.",
            f"📞 تم استلام طلب المساعدة! الحالة: {case_id}\n⚠️ لا يوجد متطوعين متاحين حالياً. "
            "سنخبرك عندما يتوفر أحد.",
        )

    def _missing_case_id(self, lang: Language, english_keyword: str, arabic_keyword: str) -> str:
        return localized(
            lang,
            f"❌ Case ID is required. Example: {english_keyword} HR-0042",
            f"❌ رقم الحالة مطلوب. مثال: {arabic_keyword} HR-0042",
        )

    def _case_not_found(self, lang: Language, case_id: str) -> str:
        return localized(lang, f"❌ Case {case_id} not found.", f"❌ الحالة {case_id} غير موجودة.")

    async def accept_case(self, command: ParsedCommand) -> str:
        lang = command.language
        case_id = command.case_id
        if not case_id:
            return self._missing_case_id(
                lang, ACCEPT_KEYWORD[Language.ENGLISH], ACCEPT_KEYWORD[Language.ARABIC]
            )
        volunteer = self.db.volunteers.find_by_phone(command.phone)
        if volunteer is None:
            return not_registered_volunteer_reply(lang)

        request = self.db.requests.get(case_id)
        request.accept(volunteer.phone, self.now_fn())
        logger.info(f"Case {request.case_id} accepted by {mask_phone(volunteer.phone)}")
        self._case_settled(request.case_id)
        await self._notify_mother_of_acceptance(request, volunteer)

        return localized(
            lang,
            f"✅ You have accepted case {request.case_id}.\nMother in Zone {request.zone} has "
            f"been notified.\nSend {COMPLETE_KEYWORD[Language.ENGLISH]} {request.case_id} "
            "when finished.",
            f"✅ لقد قبلت الحالة {request.case_id}.\nتم إخطار الأم في المنطقة {request.zone}.\n"
            f"أرسل {COMPLETE_KEYWORD[Language.ARABIC]} {request.case_id} عند الانتهاء.",
        )

    def complete_case(self, command: ParsedCommand) -> str:
        lang = command.language
        case_id = command.case_id
        if not case_id:
            return self._missing_case_id(
                lang, COMPLETE_KEYWORD[Language.ENGLISH], COMPLETE_KEYWORD[Language.ARABIC]
            )
        volunteer = self.db.volunteers.find_by_phone(command.phone)
        if volunteer is None:
            return not_registered_volunteer_reply(lang)
        request = self.db.requests.find_by_case_id(case_id)
        if request is None:
            return self._case_not_found(lang, case_id)
        if request.accepted_by != volunteer.phone:
            return localized(
                lang,
                f"❌ You are not assigned to case {request.case_id}.",
                f"❌ لست مسؤولاً عن الحالة {request.case_id}.",
            )

        request.complete(self.now_fn())
        self.db.volunteers.increment_completed_cases(volunteer.phone)
        logger.info(f"Case {request.case_id} completed by {mask_phone(volunteer.phone)}")

        return localized(
            lang,
            f"✅ Case {request.case_id} marked as COMPLETE.\nThank you for your help! "
            f"Total cases completed: {volunteer.completed_cases}",
            f"✅ تم وضع علامة اكتمال على الحالة {request.case_id}.\nشكراً لمساعدتك! "
            f"إجمالي الحالات المكتملة: {volunteer.completed_cases}",
        )

    async def cancel_case(self, command: ParsedCommand) -> str:
        lang = command.language
        case_id = command.case_id
        if not case_id:
            return self._missing_case_id(lang, "CANCEL", "إلغاء")
        request = self.db.requests.find_by_case_id(case_id)
        if request is None:
            return self._case_not_found(lang, case_id)

        by_mother = request.mother_phone == command.phone
        by_volunteer = request.accepted_by is not None and request.accepted_by == command.phone
        if not by_mother and not by_volunteer:
            return localized(
                lang,
                f"❌ You are not authorized to cancel case {request.case_id}.",
                f"❌ ليس لديك صلاحية لإلغاء الحالة {request.case_id}.",
            )

        accepted_by = request.accepted_by
        request.cancel(self.now_fn())
        logger.info(f"Case {request.case_id} cancelled by {mask_phone(command.phone)}")
        self._case_settled(request.case_id)

        if by_mother and accepted_by is not None:
            await self._notify_volunteer_of_cancellation(request, accepted_by)
        elif by_volunteer:
            await self._notify_mother_of_cancellation(request)

        return localized(
            lang,
            f"✅ Case {request.case_id} has been cancelled.",
            f"✅ تم إلغاء الحالة {request.case_id}.",
        )

    def _case_settled(self, case_id: str) -> None:
        """The case no longer needs volunteers: stop re-matching and ETA waits."""
        if self.escalations is not None:
            self.escalations.cancel(case_id)
        self.conversations.clear_case(case_id)

    async def record_eta(self, command: ParsedCommand) -> str:
        lang = command.language
        volunteer = self.db.volunteers.find_by_phone(command.phone)
        if volunteer is None:
            return not_registered_volunteer_reply(lang)
        minutes = int(command.param("minutes") or 0)

        accepted = [
            r
            for r in self.db.requests.find_active_by_volunteer(volunteer.phone)
            if r.status == RequestStatus.ACCEPTED
        ]
        if accepted:
            request = accepted[0]
            request.start_progress(self.now_fn())
            logger.info(
                f"Volunteer {mask_phone(volunteer.phone)} on the way to {request.case_id}, "
                f"ETA {minutes} min"
            )
            await self._notify_mother_of_eta(request, volunteer, minutes)
            return localized(
                lang,
                f"✅ Mother notified that you arrive in {minutes} min (case {request.case_id}).",
                f"✅ تم إخطار الأم بأنك ستصل خلال {minutes} دقيقة (الحالة {request.case_id}).",
            )

        state = self.conversations.get(volunteer.phone)
        if state is None or not state.awaiting_eta:
            return localized(
                lang,
                "❓ No case is waiting for your reply.",
                "❓ لا توجد حالة بانتظار ردك.",
            )
        request = self.db.requests.find_by_case_id(state.case_id)
        if request is None or request.status != RequestStatus.PENDING:
            self.conversations.reset(volunteer.phone)
            return localized(
                lang,
                "ℹ️ This case no longer needs volunteers. Thank you.",
                "ℹ️ هذه الحالة لم تعد بحاجة لمتطوعين. شكراً لك.",
            )

        self.db.requests.record_eta(request.case_id, volunteer.phone, minutes)
        self.conversations.reset(volunteer.phone)
        logger.info(
            f"Volunteer {mask_phone(volunteer.phone)} answered {request.case_id} "
            f"with ETA {minutes} min"
        )
        return localized(
            lang,
            f"✅ ETA of {minutes} min recorded for case {request.case_id}.\n"
            f"Reply: {ACCEPT_KEYWORD[Language.ENGLISH]} {request.case_id} to take the case.",
            f"✅ تم تسجيل وقت الوصول {minutes} دقيقة للحالة {request.case_id}.\n"
            f"للقبول أرسل: {ACCEPT_KEYWORD[Language.ARABIC]} {request.case_id}",
        )

    # volunteer status

    def change_availability(self, command: ParsedCommand, status: AvailabilityStatus) -> str:
        lang = command.language
        if self.db.volunteers.update_availability(command.phone, status) is None:
            return not_registered_volunteer_reply(lang)
        logger.info(f"Availability change: {mask_phone(command.phone)} -> {status}")

        match status:
            case AvailabilityStatus.AVAILABLE:
                return localized(
                    lang,
                    "✅ You are now AVAILABLE. You will receive alerts for emergencies in your zones.",
                    "✅ أنت الآن متاح. ستتلقى تنبيهات للطوارئ في مناطقك.",
                )
            case AvailabilityStatus.BUSY:
                return localized(
                    lang,
                    "✅ You are now BUSY. You will not receive new alerts until you set "
                    "yourself as AVAILABLE.",
                    "✅ أنت الآن مشغول. لن تتلقى تنبيهات جديدة حتى تضع نفسك متاحاً.",
                )
            case AvailabilityStatus.OFFLINE:
                return localized(
                    lang,
                    "✅ You are now OFFLINE. You will not receive any alerts.",
                    "✅ أنت الآن غير متاح. لن تتلقى أي تنبيهات.",
                )
            case _:
                assert_never(status)

    def status(self, command: ParsedCommand) -> str:
        lang = command.language
        mother = self.db.mothers.find_by_phone(command.phone)
        if mother is not None:
            return localized(
                lang,
                f"📊 Your Status:\nCamp: {mother.camp}, Zone: {mother.zone}\n"
                f"Risk: {format_risk_level(mother.risk_level, lang)}\n"
                f"Send {EMERGENCY_KEYWORD[Language.ENGLISH]} if you need urgent help.",
                f"📊 حالتك:\nالمخيم: {mother.camp}، المنطقة: {mother.zone}\n"
                f"الخطورة: {format_risk_level(mother.risk_level, lang)}\n"
                f"أرسل '{EMERGENCY_KEYWORD[Language.ARABIC]}' إذا احتجت مساعدة عاجلة.",
            )

        volunteer = self.db.volunteers.find_by_phone(command.phone)
        if volunteer is not None:
            active = len(self.db.requests.find_active_by_volunteer(volunteer.phone))
            availability = AVAILABILITY_LABELS[lang][volunteer.availability]
            return localized(
                lang,
                f"📊 Your Status:\nName: {volunteer.display_name}\nStatus: {availability}\n"
                f"Active cases: {active}\nCompleted: {volunteer.completed_cases}",
                f"📊 حالتك:\nالاسم: {volunteer.display_name}\nالحالة: {availability}\n"
                f"الحالات النشطة: {active}\nالمكتملة: {volunteer.completed_cases}",
            )

        return localized(
            lang,
            "❓ You are not registered. Register as:\n"
            "• Mother: REG MOTHER CAMP [name] ZONE [number]\n"
            "• Volunteer: REG VOLUNTEER NAME [name] CAMP [name] ZONE [number] SKILL [type]",
            "❓ لم يتم تسجيلك. للتسجيل:\n"
            "• أم: تسجيل ام مخيم [اسم] منطقة [رقم]\n"
            "• متطوع: تسجيل متطوع الاسم [اسم] مخيم [اسم] منطقة [رقم] مهارة [نوع]",
        )

    # third-party notifications

    async def _notify(self, phone: str, message: str) -> None:
        if await send_sms(self.sender, phone, message) is None:
            logger.warning(f"Could not deliver notification to {mask_phone(phone)} now")

    def _mother_language(self, request: HelpRequest) -> Language:
        mother = self.db.mothers.find_by_phone(request.mother_phone)
        return mother.preferred_language if mother is not None else Language.ENGLISH

    async def _notify_mother_of_acceptance(
        self, request: HelpRequest, volunteer: Volunteer
    ) -> None:
        lang = self._mother_language(request)
        skill = format_skill(volunteer.skill_type, lang)
        await self._notify(
            request.mother_phone,
            localized(
                lang,
                f"✅ Your request {request.case_id} has been accepted!\n"
                f"Volunteer: {volunteer.display_name} ({skill})\nHelp is on the way.",
                f"✅ تم قبول طلبك {request.case_id}!\n"
                f"المتطوع: {volunteer.display_name} ({skill})\nالمساعدة في الطريق.",
            ),
        )

    async def _notify_mother_of_eta(
        self, request: HelpRequest, volunteer: Volunteer, minutes: int
    ) -> None:
        lang = self._mother_language(request)
        await self._notify(
            request.mother_phone,
            localized(
                lang,
                f"🚶 {volunteer.display_name} is on the way for case {request.case_id}.\n"
                f"Expected in about {minutes} min.",
                f"🚶 {volunteer.display_name} في الطريق إليك للحالة {request.case_id}.\n"
                f"الوصول المتوقع خلال {minutes} دقيقة تقريباً.",
            ),
        )

    async def _notify_volunteer_of_cancellation(self, request: HelpRequest, phone: str) -> None:
        volunteer = self.db.volunteers.find_by_phone(phone)
        lang = volunteer.preferred_language if volunteer is not None else Language.ENGLISH
        await self._notify(
            phone,
            localized(
                lang,
                f"ℹ️ Case {request.case_id} has been cancelled by the mother.",
                f"ℹ️ تم إلغاء الحالة {request.case_id} من قبل الأم.",
            ),
        )

    async def _notify_mother_of_cancellation(self, request: HelpRequest) -> None:
        lang = self._mother_language(request)
        await self._notify(
            request.mother_phone,
            localized(
                lang,
                f"ℹ️ Your case {request.case_id} has been cancelled by the volunteer. "
                f"Send {EMERGENCY_KEYWORD[Language.ENGLISH]} to request help again.",
                f"ℹ️ تم إلغاء حالتك {request.case_id} من قبل المتطوع. "
                f"أرسل '{EMERGENCY_KEYWORD[Language.ARABIC]}' لطلب المساعدة مرة أخرى.",
            ),
        )
