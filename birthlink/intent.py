"""
Turns raw SMS text into a typed command.

The grammar is keyword-first and bilingual. Arabic keywords are mapped onto
their English equivalents token by token, so both languages share one set of
rules. Parsing never raises and never touches domain state: input that does
not fit the grammar comes back as ``CommandType.UNKNOWN`` with the raw body
kept in the ``body`` parameter, and parameters that cannot be extracted are
simply left out for the handler to reject.
"""

import logging
import re
from datetime import date
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from birthlink.logging import mask_phone, truncate_for_log
from birthlink.models import Language, RiskLevel, SkillType

logger = logging.getLogger(__name__)


class CommandType(StrEnum):
    EMERGENCY = "EMERGENCY"
    SUPPORT = "SUPPORT"
    ACCEPT_CASE = "ACCEPT_CASE"
    COMPLETE_CASE = "COMPLETE_CASE"
    CANCEL_CASE = "CANCEL_CASE"
    REGISTER_MOTHER = "REGISTER_MOTHER"
    REGISTER_VOLUNTEER = "REGISTER_VOLUNTEER"
    AVAILABLE = "AVAILABLE"
    BUSY = "BUSY"
    OFFLINE = "OFFLINE"
    STATUS = "STATUS"
    HELP = "HELP"
    ETA = "ETA"
    UNKNOWN = "UNKNOWN"


class ParsedCommand(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: CommandType
    phone: str
    language: Language
    raw_body: str
    parameters: dict[str, str] = Field(default_factory=dict)

    def param(self, key: str) -> str | None:
        return self.parameters.get(key)

    @property
    def case_id(self) -> str | None:
        return self.parameters.get("caseId")

    @property
    def is_recognized(self) -> bool:
        return self.type != CommandType.UNKNOWN


# Reply keywords embedded in outgoing alerts; they must stay parseable below.
ACCEPT_KEYWORD = {Language.ENGLISH: "ACCEPT", Language.ARABIC: "قبول"}
COMPLETE_KEYWORD = {Language.ENGLISH: "COMPLETE", Language.ARABIC: "اكتمل"}
EMERGENCY_KEYWORD = {Language.ENGLISH: "EMERGENCY", Language.ARABIC: "طوارئ"}
HELP_KEYWORD = {Language.ENGLISH: "INFO", Language.ARABIC: "تعليمات"}

ARABIC_PHRASES = {
    "غير متاحة": "OFFLINE",
    "غير متاح": "OFFLINE",
}

ARABIC_KEYWORDS = {
    # commands
    "تسجيل": "REG",
    "ام": "MOTHER",
    "أم": "MOTHER",
    "متطوع": "VOLUNTEER",
    "متطوعة": "VOLUNTEER",
    "طوارئ": "EMERGENCY",
    "مساعدة": "SUPPORT",
    "تعليمات": "INFO",
    "قائمة": "MENU",
    "قبول": "ACCEPT",
    "اكتمل": "COMPLETE",
    "انهاء": "COMPLETE",
    "إنهاء": "COMPLETE",
    "إلغاء": "CANCEL",
    "الغاء": "CANCEL",
    "متاح": "AVAILABLE",
    "متاحة": "AVAILABLE",
    "مشغول": "BUSY",
    "مشغولة": "BUSY",
    "حالة": "STATUS",
    "دقيقة": "MIN",
    "دقائق": "MIN",
    # field names
    "مخيم": "CAMP",
    "منطقة": "ZONE",
    "موعد": "DUE",
    "خطورة": "RISK",
    "الاسم": "NAME",
    "اسم": "NAME",
    "مهارة": "SKILL",
    # risk levels
    "عالية": "HIGH",
    "عالي": "HIGH",
    "متوسطة": "MEDIUM",
    "متوسط": "MEDIUM",
    "منخفضة": "LOW",
    "منخفض": "LOW",
    # skills
    "قابلة": "MIDWIFE",
    "ممرضة": "NURSE",
    "ممرض": "NURSE",
    "مدربة": "TRAINED",
    "مدرب": "TRAINED",
    "مجتمعي": "COMMUNITY",
    "مجتمعية": "COMMUNITY",
}

ENGLISH_KEYWORDS = frozenset(
    {
        "REG", "REGISTER", "MOTHER", "VOLUNTEER", "EMERGENCY", "SOS", "URGENT",
        "SUPPORT", "HELP", "INFO", "MENU", "COMMANDS", "ACCEPT", "COMPLETE",
        "DONE", "CANCEL", "AVAILABLE", "BUSY", "OFFLINE", "UNAVAILABLE", "STATUS",
    }
)

EMERGENCY_WORDS = frozenset({"EMERGENCY", "SOS", "URGENT"})
SUPPORT_WORDS = frozenset({"SUPPORT", "HELP"})
HELP_WORDS = frozenset({"INFO", "MENU", "COMMANDS", "?"})
CASE_COMMANDS = {
    "ACCEPT": CommandType.ACCEPT_CASE,
    "COMPLETE": CommandType.COMPLETE_CASE,
    "DONE": CommandType.COMPLETE_CASE,
    "CANCEL": CommandType.CANCEL_CASE,
}
SINGLE_WORD_COMMANDS = {
    "AVAILABLE": CommandType.AVAILABLE,
    "BUSY": CommandType.BUSY,
    "OFFLINE": CommandType.OFFLINE,
    "UNAVAILABLE": CommandType.OFFLINE,
    "STATUS": CommandType.STATUS,
}
MOTHER_FIELDS = {"CAMP": "camp", "ZONE": "zone", "DUE": "dueDate", "RISK": "riskLevel"}
VOLUNTEER_FIELDS = {"NAME": "name", "CAMP": "camp", "ZONE": "zones", "SKILL": "skillType"}
RISK_VALUES = frozenset(level.value for level in RiskLevel)
SKILL_VALUES = {
    "MIDWIFE": SkillType.MIDWIFE,
    "NURSE": SkillType.NURSE,
    "TRAINED": SkillType.TRAINED_ATTENDANT,
    "TRAINED_ATTENDANT": SkillType.TRAINED_ATTENDANT,
    "TBA": SkillType.TRAINED_ATTENDANT,
    "CHW": SkillType.COMMUNITY_HEALTH_WORKER,
    "COMMUNITY_HEALTH": SkillType.COMMUNITY_HEALTH_WORKER,
    "HEALTH_WORKER": SkillType.COMMUNITY_HEALTH_WORKER,
    "COMMUNITY": SkillType.COMMUNITY_VOLUNTEER,
    "COMMUNITY_VOLUNTEER": SkillType.COMMUNITY_VOLUNTEER,
    "VOLUNTEER": SkillType.COMMUNITY_VOLUNTEER,
}

_DIGITS = str.maketrans("٠١٢٣٤٥٦٧٨٩۰۱۲۳۴۵۶۷۸۹", "01234567890123456789")
_INSTRUCTION_PREFIX = re.compile(r"^\s*(?:reply\s*:|للقبول\s+أرسل\s*:)\s*", re.IGNORECASE)
_DATE_TOKEN = re.compile(r"^(\d{1,2})[/-](\d{1,2})(?:[/-](\d{2,4}))?$")
_MINUTES_TOKEN = re.compile(r"^\d{1,3}$")
_EDGE_PUNCTUATION = ".,!؟?:;،\"'"


def _is_arabic(ch: str) -> bool:
    return (
        "\u0600" <= ch <= "\u06ff"
        or "\u0750" <= ch <= "\u077f"
        or "\ufb50" <= ch <= "\ufdff"
        or "\ufe70" <= ch <= "\ufeff"
    )


def _clean(token: str) -> str:
    return token.strip(_EDGE_PUNCTUATION) or token


def detect_language(text: str | None) -> Language:
    """
    Best-effort language of a message, independent of whether it parses.

    An Arabic command keyword wins, then an English one; otherwise the message
    is Arabic when more than a fifth of its characters are Arabic script.
    """
    if not text or not text.strip():
        return Language.ENGLISH
    if any(phrase in text for phrase in ARABIC_PHRASES):
        return Language.ARABIC
    tokens = [_clean(t) for t in text.split()]
    if any(t in ARABIC_KEYWORDS for t in tokens):
        return Language.ARABIC
    if any(t.upper() in ENGLISH_KEYWORDS for t in tokens):
        return Language.ENGLISH
    arabic = sum(1 for ch in text if _is_arabic(ch))
    return Language.ARABIC if arabic > len(text) * 0.2 else Language.ENGLISH


class CommandParser:
    def __init__(self, case_id_prefix: str = "HR") -> None:
        self.case_id_prefix = case_id_prefix
        self._case_id = re.compile(
            rf"^(?:{re.escape(case_id_prefix)}-?|#)?(\d+)$", re.IGNORECASE
        )

    def parse(self, phone: str, body: str | None) -> ParsedCommand:
        raw = body or ""
        language = detect_language(raw)
        try:
            command_type, params = self._parse(raw)
        except Exception:
            logger.exception(f"Parser failure for message from {mask_phone(phone)}")
            command_type, params = CommandType.UNKNOWN, {}
        if command_type == CommandType.UNKNOWN:
            params = {**params, "body": raw}
        logger.debug(
            f"Parsed SMS from {mask_phone(phone)}: type={command_type} language={language} "
            f"body={truncate_for_log(raw, 100)}"
        )
        return ParsedCommand(
            type=command_type,
            phone=phone,
            language=language,
            raw_body=raw,
            parameters=params,
        )

    def normalize_case_id(self, token: str) -> str | None:
        match = self._case_id.match(token.strip())
        if not match:
            return None
        return f"{self.case_id_prefix}-{int(match.group(1)):04d}"

    def _tokens(self, text: str) -> list[tuple[str, str]]:
        """(canonical keyword form, original value) pairs."""
        text = text.translate(_DIGITS).replace("،", ",")
        text = _INSTRUCTION_PREFIX.sub("", text)
        for phrase, keyword in ARABIC_PHRASES.items():
            text = text.replace(phrase, keyword)
        pairs = []
        for token in text.split():
            cleaned = _clean(token)
            canonical = ARABIC_KEYWORDS.get(cleaned, cleaned.upper())
            pairs.append((canonical, token))
        return pairs

    def _parse(self, raw: str) -> tuple[CommandType, dict[str, str]]:
        stripped = raw.strip()
        if not stripped:
            return CommandType.UNKNOWN, {}
        if stripped == "?":
            return CommandType.HELP, {}

        tokens = self._tokens(stripped)
        if not tokens:
            return CommandType.UNKNOWN, {}
        head = tokens[0][0]
        rest = tokens[1:]

        if head in ("REG", "REGISTER"):
            role = rest[0][0] if rest else None
            if role == "MOTHER":
                return CommandType.REGISTER_MOTHER, self._mother_params(rest[1:])
            if role == "VOLUNTEER":
                return CommandType.REGISTER_VOLUNTEER, self._volunteer_params(rest[1:])
            return CommandType.UNKNOWN, {}

        if head in EMERGENCY_WORDS:
            return CommandType.EMERGENCY, {}
        if head in SUPPORT_WORDS:
            return CommandType.SUPPORT, {}

        if head in CASE_COMMANDS:
            params = {}
            case_id = self.normalize_case_id("".join(original for _, original in rest))
            if case_id is None and rest:
                case_id = self.normalize_case_id(rest[0][1])
            if case_id is not None:
                params["caseId"] = case_id
            return CASE_COMMANDS[head], params

        if len(tokens) == 1 and head in SINGLE_WORD_COMMANDS:
            return SINGLE_WORD_COMMANDS[head], {}
        if len(tokens) == 1 and head in HELP_WORDS:
            return CommandType.HELP, {}

        if _MINUTES_TOKEN.match(tokens[0][1]) and all(
            canonical in ("MIN", "MINS", "MINUTES") for canonical, _ in rest
        ):
            return CommandType.ETA, {"minutes": str(int(tokens[0][1]))}

        return CommandType.UNKNOWN, {}

    def _mother_params(self, tokens: list[tuple[str, str]]) -> dict[str, str]:
        buckets: dict[str, list[str]] = {"camp": [], "zone": []}
        params: dict[str, str] = {}
        current = "camp"
        for canonical, original in tokens:
            if canonical in MOTHER_FIELDS:
                current = MOTHER_FIELDS[canonical]
                continue
            value = _clean(original)
            if current == "dueDate" or _DATE_TOKEN.match(value):
                if _DATE_TOKEN.match(value):
                    params.setdefault("dueDate", value)
                continue
            if current == "riskLevel" or canonical in RISK_VALUES:
                if canonical in RISK_VALUES:
                    params.setdefault("riskLevel", canonical)
                continue
            buckets[current].append(value)
        if buckets["camp"]:
            params["camp"] = " ".join(buckets["camp"])
        # a mother lives in one zone, written the way volunteers list theirs
        zones = parse_zones(" ".join(buckets["zone"]))
        if zones:
            params["zone"] = zones[0]
        return params

    def _volunteer_params(self, tokens: list[tuple[str, str]]) -> dict[str, str]:
        buckets: dict[str, list[str]] = {"name": [], "camp": [], "zones": []}
        params: dict[str, str] = {}
        current = "name"
        for canonical, original in tokens:
            if canonical in VOLUNTEER_FIELDS:
                current = VOLUNTEER_FIELDS[canonical]
                continue
            if current == "skillType":
                if canonical in SKILL_VALUES:
                    params.setdefault("skillType", canonical)
                continue
            buckets[current].append(original if current == "zones" else _clean(original))
        if buckets["name"]:
            params["name"] = " ".join(buckets["name"])
        if buckets["camp"]:
            params["camp"] = " ".join(buckets["camp"])
        zones = parse_zones(" ".join(buckets["zones"]))
        if zones:
            params["zones"] = ",".join(zones)
        return params


def parse_zones(value: str | None) -> list[str]:
    """Comma or whitespace separated zone labels, upper-cased and de-duplicated."""
    if not value:
        return []
    zones: list[str] = []
    for part in re.split(r"[,،\s]+", value.translate(_DIGITS)):
        part = part.strip(_EDGE_PUNCTUATION).upper()
        if part and part not in zones:
            zones.append(part)
    return zones


def parse_due_date(value: str | None, today: date) -> date | None:
    """
    ``15-02`` / ``15/02/26`` / ``15-02-2026``. Without a year the current year is
    assumed; a day-month that already passed rolls over to next year.
    """
    if not value:
        return None
    match = _DATE_TOKEN.match(value.strip().translate(_DIGITS))
    if not match:
        logger.warning(f"Could not parse due date: {value}")
        return None
    day, month, year = match.groups()
    explicit_year = year is not None
    if year is None:
        year_num = today.year
    elif len(year) == 2:
        year_num = 2000 + int(year)
    else:
        year_num = int(year)
    try:
        due = date(year_num, int(month), int(day))
    except ValueError:
        logger.warning(f"Could not parse due date: {value}")
        return None
    if not explicit_year and due < today:
        try:
            due = due.replace(year=due.year + 1)
        except ValueError:  # 29 Feb
            due = due.replace(year=due.year + 1, day=28)
    return due


def parse_risk_level(value: str | None) -> RiskLevel:
    if not value:
        return RiskLevel.LOW
    try:
        return RiskLevel(value.strip().upper())
    except ValueError:
        logger.warning(f"Unknown risk level '{value}', defaulting to LOW")
        return RiskLevel.LOW


def parse_skill_type(value: str | None) -> SkillType:
    if not value:
        return SkillType.COMMUNITY_VOLUNTEER
    skill = SKILL_VALUES.get(value.strip().upper())
    if skill is None:
        logger.warning(f"Unknown skill type '{value}', defaulting to COMMUNITY_VOLUNTEER")
        return SkillType.COMMUNITY_VOLUNTEER
    return skill


_default_parser = CommandParser()


def parse(phone: str, body: str | None) -> ParsedCommand:
    return _default_parser.parse(phone, body)
