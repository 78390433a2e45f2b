from datetime import date

import pytest

from birthlink.intent import (
    CommandParser,
    CommandType,
    detect_language,
    parse,
    parse_due_date,
    parse_risk_level,
    parse_skill_type,
    parse_zones,
)
from birthlink.models import Language, RiskLevel, SkillType

PHONE = "+962790000001"


@pytest.mark.parametrize(
    ("english", "arabic", "expected"),
    [
        ("EMERGENCY", "طوارئ", CommandType.EMERGENCY),
        ("SUPPORT", "مساعدة", CommandType.SUPPORT),
        ("HELP", "مساعدة", CommandType.SUPPORT),
        ("ACCEPT HR-0001", "قبول HR-0001", CommandType.ACCEPT_CASE),
        ("COMPLETE HR-0001", "اكتمل HR-0001", CommandType.COMPLETE_CASE),
        ("CANCEL HR-0001", "إلغاء HR-0001", CommandType.CANCEL_CASE),
        ("REG MOTHER CAMP A ZONE 3", "تسجيل ام مخيم أ منطقة 3", CommandType.REGISTER_MOTHER),
        (
            "REG VOLUNTEER NAME Ali ZONE 3",
            "تسجيل متطوع الاسم علي منطقة 3",
            CommandType.REGISTER_VOLUNTEER,
        ),
        ("AVAILABLE", "متاح", CommandType.AVAILABLE),
        ("BUSY", "مشغول", CommandType.BUSY),
        ("OFFLINE", "غير متاح", CommandType.OFFLINE),
        ("STATUS", "حالة", CommandType.STATUS),
        ("INFO", "تعليمات", CommandType.HELP),
    ],
)
def test_keyword_pairs_map_to_same_command(english, arabic, expected) -> None:
    en = parse(PHONE, english)
    ar = parse(PHONE, arabic)

    assert en.type == expected
    assert ar.type == expected
    assert en.language == Language.ENGLISH
    assert ar.language == Language.ARABIC
    assert en.case_id == ar.case_id


@pytest.mark.parametrize("body", ["emergency", "  EMERGENCY  ", "Emergency!", "SOS", "urgent"])
def test_emergency_is_case_insensitive_and_tolerant(body) -> None:
    assert parse(PHONE, body).type == CommandType.EMERGENCY


@pytest.mark.parametrize(
    ("body", "case_id"),
    [
        ("ACCEPT HR-0042", "HR-0042"),
        ("accept hr0042", "HR-0042"),
        ("ACCEPT 42", "HR-0042"),
        ("ACCEPT #7", "HR-0007"),
        ("ACCEPT HR-0001 thanks", "HR-0001"),
        ("قبول HR-٠٠٤٢", "HR-0042"),
        ("Reply: ACCEPT HR-0003", "HR-0003"),
        ("للقبول أرسل: قبول HR-0003", "HR-0003"),
    ],
)
def test_case_id_is_normalized(body, case_id) -> None:
    command = parse(PHONE, body)
    assert command.type == CommandType.ACCEPT_CASE
    assert command.case_id == case_id


def test_case_command_without_id_keeps_type_and_leaves_id_absent() -> None:
    command = parse(PHONE, "ACCEPT")
    assert command.type == CommandType.ACCEPT_CASE
    assert command.case_id is None
    assert "caseId" not in command.parameters


def test_done_and_arabic_variants_complete_a_case() -> None:
    assert parse(PHONE, "DONE 3").case_id == "HR-0003"
    assert parse(PHONE, "DONE 3").type == CommandType.COMPLETE_CASE
    assert parse(PHONE, "انهاء HR-0003").type == CommandType.COMPLETE_CASE
    assert parse(PHONE, "الغاء HR-0003").type == CommandType.CANCEL_CASE


def test_custom_case_prefix() -> None:
    parser = CommandParser(case_id_prefix="BL")
    assert parser.parse(PHONE, "ACCEPT BL-12").case_id == "BL-0012"
    assert parser.normalize_case_id("nonsense") is None


def test_register_mother_extracts_camp_zone_and_optional_fields() -> None:
    command = parse(PHONE, "REG MOTHER CAMP Zaatari ZONE 3 DUE 15-03 RISK HIGH")

    assert command.type == CommandType.REGISTER_MOTHER
    assert command.parameters == {
        "camp": "Zaatari",
        "zone": "3",
        "dueDate": "15-03",
        "riskLevel": "HIGH",
    }


def test_register_mother_without_camp_keyword() -> None:
    command = parse(PHONE, "register mother Zaatari zone 3")
    assert command.param("camp") == "Zaatari"
    assert command.param("zone") == "3"


def test_register_mother_arabic() -> None:
    command = parse(PHONE, "تسجيل أم مخيم الزعتري منطقة ٣ خطورة عالية")

    assert command.type == CommandType.REGISTER_MOTHER
    assert command.language == Language.ARABIC
    assert command.param("camp") == "الزعتري"
    assert command.param("zone") == "3"
    assert command.param("riskLevel") == "HIGH"


def test_register_mother_missing_parameters_does_not_fail() -> None:
    command = parse(PHONE, "REG MOTHER")
    assert command.type == CommandType.REGISTER_MOTHER
    assert command.parameters == {}

    command = parse(PHONE, "REG MOTHER CAMP A")
    assert command.param("camp") == "A"
    assert command.param("zone") is None


def test_register_volunteer_extracts_fields() -> None:
    command = parse(PHONE, "REG VOLUNTEER NAME Fatima Ali CAMP A ZONE 3,4 SKILL MIDWIFE")

    assert command.type == CommandType.REGISTER_VOLUNTEER
    assert command.parameters == {
        "name": "Fatima Ali",
        "camp": "A",
        "zones": "3,4",
        "skillType": "MIDWIFE",
    }


def test_register_volunteer_arabic_with_arabic_comma() -> None:
    command = parse(PHONE, "تسجيل متطوعة الاسم فاطمة مخيم أ منطقة 3، 4 مهارة قابلة")

    assert command.type == CommandType.REGISTER_VOLUNTEER
    assert command.language == Language.ARABIC
    assert command.param("name") == "فاطمة"
    assert command.param("zones") == "3,4"
    assert command.param("skillType") == "MIDWIFE"


@pytest.mark.parametrize(
    ("body", "minutes"),
    [("15", "15"), ("١٥", "15"), ("15 min", "15"), ("20 دقيقة", "20"), ("007", "7")],
)
def test_bare_number_is_an_eta(body, minutes) -> None:
    command = parse(PHONE, body)
    assert command.type == CommandType.ETA
    assert command.param("minutes") == minutes


@pytest.mark.parametrize("body", ["?", "MENU", "commands", "قائمة"])
def test_help_words(body) -> None:
    assert parse(PHONE, body).type == CommandType.HELP


@pytest.mark.parametrize(
    ("body", "language"),
    [
        ("hello there", Language.ENGLISH),
        ("مرحبا كيف الحال", Language.ARABIC),
        ("REG", Language.ENGLISH),
        ("", Language.ENGLISH),
        (None, Language.ENGLISH),
    ],
)
def test_unrecognized_input_is_unknown_with_body_and_language(body, language) -> None:
    command = parse(PHONE, body)

    assert command.type == CommandType.UNKNOWN
    assert not command.is_recognized
    assert command.param("body") == (body or "")
    assert command.language == language
    assert command.phone == PHONE


def test_detect_language_prefers_keywords_over_script_ratio() -> None:
    assert detect_language("طوارئ please") == Language.ARABIC
    assert detect_language("EMERGENCY يا") == Language.ENGLISH
    assert detect_language("   ") == Language.ENGLISH


def test_parse_due_date() -> None:
    today = date(2026, 1, 10)

    assert parse_due_date("15-03", today) == date(2026, 3, 15)
    assert parse_due_date("05/01", today) == date(2027, 1, 5)
    assert parse_due_date("15/03/27", today) == date(2027, 3, 15)
    assert parse_due_date("١٥-٠٣-٢٠٢٦", today) == date(2026, 3, 15)
    assert parse_due_date("31-02", today) is None
    assert parse_due_date("soon", today) is None
    assert parse_due_date(None, today) is None


def test_parse_risk_and_skill_defaults() -> None:
    assert parse_risk_level("medium") == RiskLevel.MEDIUM
    assert parse_risk_level(None) == RiskLevel.LOW
    assert parse_risk_level("extreme") == RiskLevel.LOW

    assert parse_skill_type("CHW") == SkillType.COMMUNITY_HEALTH_WORKER
    assert parse_skill_type("trained") == SkillType.TRAINED_ATTENDANT
    assert parse_skill_type(None) == SkillType.COMMUNITY_VOLUNTEER
    assert parse_skill_type("astronaut") == SkillType.COMMUNITY_VOLUNTEER


def test_parse_zones_dedupes_and_splits() -> None:
    assert parse_zones("3, 4,3 ، 5") == ["3", "4", "5"]
    assert parse_zones("") == []


def test_mother_and_volunteer_zones_normalize_alike() -> None:
    mother = parse(PHONE, "REG MOTHER CAMP Azraq ZONE b 4")
    volunteer = parse(PHONE, "REG VOLUNTEER NAME Ali ZONE B, 4")

    assert mother.param("zone") == "B"
    assert parse_zones(volunteer.param("zones")) == ["B", "4"]
    assert mother.param("zone") in parse_zones(volunteer.param("zones"))
