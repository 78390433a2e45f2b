import logging
from typing import Protocol

from birthlink.conversation import ConversationStore
from birthlink.handler import CommandHandler, localized
from birthlink.intent import ACCEPT_KEYWORD, CommandType, ParsedCommand
from birthlink.logging import mask_phone
from birthlink.models import Language

logger = logging.getLogger(__name__)


class ConversationalFallback(Protocol):
    """Answers every command that does not need zone/volunteer matching."""

    async def reply(self, command: ParsedCommand) -> str: ...


class RuleBasedFallback:
    """
    Conversation-aware answers without a language model.

    Records activity for the sender, nudges volunteers who were alerted but
    sent something unparseable, and hands everything else to the command
    handler.
    """

    def __init__(self, handler: CommandHandler, conversations: ConversationStore) -> None:
        self.handler = handler
        self.conversations = conversations

    async def reply(self, command: ParsedCommand) -> str:
        state = self.conversations.touch(command.phone, command.language)
        if command.type == CommandType.UNKNOWN and state.awaiting_eta:
            logger.debug(
                f"Unparsed reply from {mask_phone(command.phone)} while awaiting ETA "
                f"for {state.case_id}"
            )
            return localized(
                command.language,
                f"⏱️ Reply with your arrival time in minutes (e.g. 15), or "
                f"{ACCEPT_KEYWORD[Language.ENGLISH]} {state.case_id} to take the case.",
                f"⏱️ أرسل وقت وصولك بالدقائق (مثال: 15)، أو "
                f"{ACCEPT_KEYWORD[Language.ARABIC]} {state.case_id} لقبول الحالة.",
            )
        return await self.handler.handle(command)
