"""
Session protocol between the server and SMS relay devices.

A relay is a phone running the gateway app. It connects over a WebSocket,
forwards the SMS it receives (``incoming_sms``) and delivers the SMS the
server asks for (``send_sms``), confirming each batch with ``sms_sent``.
``ping`` is answered with ``pong``.

Every open session gets every send. A reconnecting device is a new session.
Confirmations are informational: they clear the pending entry and are logged.
Nothing is retried, and unconfirmed sends stay visible through
``RelayHub.pending_requests``.
"""

import asyncio
import json
import logging
import uuid
from collections.abc import Awaitable, Callable, Coroutine
from datetime import datetime
from enum import StrEnum
from typing import Any, Literal, Protocol

from pydantic import BaseModel, Field, ValidationError, field_validator

from birthlink.logging import mask_phone, truncate_for_log
from birthlink.models import utcnow
from birthlink.notifier import new_request_id

logger = logging.getLogger(__name__)

NowFn = Callable[[], datetime]
InboundHandler = Callable[[str, str], Awaitable[str]]


class DeliveryStatus(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"


def delivery_status(success_count: int, failure_count: int) -> DeliveryStatus:
    if failure_count == 0:
        return DeliveryStatus.SUCCESS
    if success_count == 0:
        return DeliveryStatus.FAILED
    return DeliveryStatus.PARTIAL


class IncomingSms(BaseModel):
    type: Literal["incoming_sms"] = "incoming_sms"
    sender: str
    message: str
    timestamp: int | None = None  # device clock, epoch millis

    @field_validator("sender")
    @classmethod
    def _sender_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("sender must not be blank")
        return v


class SendSms(BaseModel):
    type: Literal["send_sms"] = "send_sms"
    request_id: str
    recipients: list[str]
    message: str


class SmsSent(BaseModel):
    type: Literal["sms_sent"] = "sms_sent"
    request_id: str = Field(min_length=1)
    recipients: list[str] = Field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0
    status: str | None = None  # as reported by the device

    @property
    def delivery_status(self) -> DeliveryStatus:
        return delivery_status(self.success_count, self.failure_count)


class Pong(BaseModel):
    type: Literal["pong"] = "pong"


class RelayConnection(Protocol):
    async def send_text(self, data: str) -> None: ...


class SessionState(StrEnum):
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"


class RelaySession:
    def __init__(self, connection: RelayConnection, opened_at: datetime) -> None:
        self.session_id = uuid.uuid4().hex[:12]
        self.connection = connection
        self.opened_at = opened_at
        self.state = SessionState.CONNECTED

    @property
    def is_open(self) -> bool:
        return self.state == SessionState.CONNECTED

    def close(self) -> None:
        self.state = SessionState.DISCONNECTED


class PendingRelayRequest(BaseModel):
    request_id: str
    recipients: list[str]
    message: str
    created_at: datetime


class RelayHub:
    """
    Owns the open relay sessions and the sends still waiting for confirmation.

    Both registries are plain dicts mutated only between awaits on the event
    loop, and every iteration works on a snapshot, so a session closing or a
    confirmation arriving mid-broadcast never tears a read.
    """

    def __init__(
        self,
        *,
        io_timeout: float = 5.0,
        now_fn: NowFn = utcnow,
        inbound: InboundHandler | None = None,
    ) -> None:
        self.io_timeout = io_timeout
        self.now_fn = now_fn
        self.inbound = inbound
        self._sessions: dict[str, RelaySession] = {}
        self._pending: dict[str, PendingRelayRequest] = {}
        self._tasks: set[asyncio.Task] = set()

    # sessions

    def open_session(self, connection: RelayConnection) -> RelaySession:
        session = RelaySession(connection, self.now_fn())
        self._sessions[session.session_id] = session
        logger.info(f"SMS relay connected: session={session.session_id}")
        return session

    def close_session(self, session: RelaySession) -> None:
        session.close()
        self._sessions.pop(session.session_id, None)
        logger.info(f"SMS relay disconnected: session={session.session_id}")

    def open_sessions(self) -> list[RelaySession]:
        return [s for s in list(self._sessions.values()) if s.is_open]

    def is_connected(self) -> bool:
        return bool(self.open_sessions())

    def connected_count(self) -> int:
        return len(self.open_sessions())

    # pending sends

    def pending_requests(self) -> list[PendingRelayRequest]:
        return list(self._pending.values())

    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, request_id: str) -> bool:
        return request_id in self._pending

    # outbound

    async def send(self, recipients: list[str], message: str) -> str | None:
        """
        Broadcast ``message`` to every open relay and return its request id.

        Returns ``None`` without recording anything when no relay is
        connected. Delivery happens in the background.
        """
        sessions = self.open_sessions()
        if not sessions:
            logger.warning("No SMS relay connected, cannot send SMS")
            return None

        request_id = new_request_id()
        self._pending[request_id] = PendingRelayRequest(
            request_id=request_id,
            recipients=list(recipients),
            message=message,
            created_at=self.now_fn(),
        )
        payload = SendSms(request_id=request_id, recipients=list(recipients), message=message)
        self._spawn(self._broadcast(sessions, payload.model_dump_json()))
        logger.info(
            f"SMS command queued for relay: request_id={request_id}, "
            f"recipients={len(recipients)}, sessions={len(sessions)}"
        )
        return request_id

    async def _broadcast(self, sessions: list[RelaySession], payload: str) -> None:
        await asyncio.gather(*(self._send_to(s, payload) for s in sessions))

    async def _send_to(self, session: RelaySession, payload: str) -> bool:
        if not session.is_open:
            return False
        try:
            await asyncio.wait_for(session.connection.send_text(payload), self.io_timeout)
        except TimeoutError:
            logger.warning(
                f"Relay session {session.session_id} did not accept a message "
                f"within {self.io_timeout}s"
            )
            return False
        except Exception as e:
            logger.error(f"Failed to send to relay session {session.session_id}: {e}")
            return False
        logger.debug(f"WS sent to {session.session_id}: {truncate_for_log(payload)}")
        return True

    # inbound

    async def handle_message(self, session: RelaySession, raw: str) -> None:
        """Dispatch one frame from a relay. Bad frames are logged and dropped."""
        logger.debug(f"WS received from {session.session_id}: {truncate_for_log(raw)}")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse relay message: {e}")
            return
        if not isinstance(data, dict) or not data.get("type"):
            logger.warning(f"Relay message without type field: {truncate_for_log(raw)}")
            return

        message_type = data["type"]
        try:
            match message_type:
                case "incoming_sms":
                    incoming = IncomingSms.model_validate(data)
                    self._spawn(self._handle_incoming(session, incoming))
                case "sms_sent":
                    self._handle_confirmation(SmsSent.model_validate(data))
                case "ping":
                    await self._send_to(session, Pong().model_dump_json())
                case _:
                    logger.warning(f"Unknown relay message type: {message_type}")
        except ValidationError as e:
            logger.warning(f"Invalid {message_type} message: {e.error_count()} error(s)")

    async def _handle_incoming(self, session: RelaySession, incoming: IncomingSms) -> None:
        logger.info(
            f"Incoming SMS via relay: from={mask_phone(incoming.sender)}, "
            f"message={truncate_for_log(incoming.message)}"
        )
        if self.inbound is None:
            logger.warning("No inbound handler configured, dropping relay SMS")
            return
        try:
            reply = await self.inbound(incoming.sender, incoming.message)
        except Exception:
            logger.exception(f"Error handling SMS from {mask_phone(incoming.sender)}")
            return

        request_id = new_request_id()
        self._pending[request_id] = PendingRelayRequest(
            request_id=request_id,
            recipients=[incoming.sender],
            message=reply,
            created_at=self.now_fn(),
        )
        payload = SendSms(request_id=request_id, recipients=[incoming.sender], message=reply)
        if await self._send_to(session, payload.model_dump_json()):
            logger.info(
                f"Reply sent via relay: request_id={request_id}, "
                f"to={mask_phone(incoming.sender)}"
            )

    def _handle_confirmation(self, confirmation: SmsSent) -> None:
        pending = self._pending.pop(confirmation.request_id, None)
        if pending is None:
            logger.debug(f"Confirmation for unknown request {confirmation.request_id}")
            return
        status = confirmation.delivery_status
        if status == DeliveryStatus.SUCCESS:
            logger.info(
                f"SMS delivery confirmed: request_id={confirmation.request_id}, "
                f"success_count={confirmation.success_count}"
            )
        else:
            logger.warning(
                f"SMS delivery {status}: request_id={confirmation.request_id}, "
                f"failure_count={confirmation.failure_count}"
            )

    # background tasks

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait until every background send and inbound handler has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for session in list(self._sessions.values()):
            self.close_session(session)
