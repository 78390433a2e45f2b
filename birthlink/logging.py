import logging

from birthlink.config import Settings, settings as default_settings


def setup_logging(settings: Settings | None = None):
    settings = settings or default_settings
    level = logging.DEBUG if settings.ENV == "local" else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def mask_phone(phone: str | None) -> str:
    if phone is None or len(phone) < 4:
        return "***"
    return phone[:-4] + "****"


def truncate_for_log(text: str | None, limit: int = 200) -> str:
    if text is None:
        return "null"
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."
