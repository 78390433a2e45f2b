import logging
from typing import assert_never

from pydantic import BaseModel

from birthlink.conversation import ConversationStore
from birthlink.fallback import ConversationalFallback
from birthlink.handler import CommandHandler
from birthlink.intent import CommandParser, CommandType, ParsedCommand
from birthlink.logging import mask_phone, truncate_for_log

logger = logging.getLogger(__name__)

GENERIC_ERROR_REPLY = "An error occurred. Please try again. / حدث خطأ. يرجى المحاولة مرة أخرى."


def requires_location_matching(command_type: CommandType) -> bool:
    """Commands that need authoritative zone and volunteer lookups."""
    match command_type:
        case (
            CommandType.EMERGENCY
            | CommandType.SUPPORT
            | CommandType.ACCEPT_CASE
            | CommandType.COMPLETE_CASE
            | CommandType.CANCEL_CASE
        ):
            return True
        case (
            CommandType.REGISTER_MOTHER
            | CommandType.REGISTER_VOLUNTEER
            | CommandType.AVAILABLE
            | CommandType.BUSY
            | CommandType.OFFLINE
            | CommandType.STATUS
            | CommandType.HELP
            | CommandType.ETA
            | CommandType.UNKNOWN
        ):
            return False
        case _:
            assert_never(command_type)


class RouteResult(BaseModel):
    command: ParsedCommand
    reply: str
    success: bool


class InboundRouter:
    """
    Single entry point for inbound SMS, whichever transport delivered it.

    Messages from the same phone number are handled one at a time. The sender
    always gets a reply, the generic apology if anything fails.
    """

    def __init__(
        self,
        parser: CommandParser,
        handler: CommandHandler,
        fallback: ConversationalFallback,
        conversations: ConversationStore,
    ) -> None:
        self.parser = parser
        self.handler = handler
        self.fallback = fallback
        self.conversations = conversations

    async def dispatch(self, phone: str, body: str | None) -> RouteResult:
        command = self.parser.parse(phone, body)
        logger.info(
            f"Inbound SMS from {mask_phone(phone)}: {command.type} "
            f"({command.language}) {truncate_for_log(body, 100)}"
        )
        async with self.conversations.session(phone):
            try:
                if requires_location_matching(command.type):
                    reply = await self.handler.handle(command)
                else:
                    reply = await self.fallback.reply(command)
            except Exception:
                logger.exception(f"Error handling SMS from {mask_phone(phone)}")
                return RouteResult(command=command, reply=GENERIC_ERROR_REPLY, success=False)
        return RouteResult(command=command, reply=reply, success=command.is_recognized)

    async def route(self, phone: str, body: str | None) -> str:
        return (await self.dispatch(phone, body)).reply
