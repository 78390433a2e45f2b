import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field
from twilio.twiml.messaging_response import MessagingResponse

from birthlink.config import Settings, settings as default_settings
from birthlink.conversation import ConversationStore
from birthlink.database import Database
from birthlink.escalation import EscalationScheduler
from birthlink.fallback import RuleBasedFallback
from birthlink.handler import CommandHandler
from birthlink.intent import CommandParser
from birthlink.logging import mask_phone, setup_logging
from birthlink.matching import MatchingEngine
from birthlink.notifier import (
    FallbackSender,
    LoggingSender,
    NotificationDispatcher,
    SmsSender,
    TwilioSender,
)
from birthlink.relay import RelayHub
from birthlink.router import GENERIC_ERROR_REPLY, InboundRouter

logger = logging.getLogger(__name__)

router = APIRouter()

NowFn = Callable[[], datetime]
SleepFn = Callable[[float], Awaitable[None]]

CONVERSATION_SWEEP_SECONDS = 60


class SimulateRequest(BaseModel):
    from_: str = Field(alias="from")
    body: str


class SimulateResponse(BaseModel):
    command_type: str
    detected_language: str
    response_message: str
    success: bool
    parsed_parameters: dict[str, str]


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/sms/incoming")
async def incoming_sms(request: Request) -> Response:
    """Carrier webhook. Always answers with a TwiML reply."""
    reply = GENERIC_ERROR_REPLY
    try:
        form = await request.form()
        sender = form.get("From")
        body = form.get("Body")
        if sender:
            logger.info(f"Incoming SMS webhook: from={mask_phone(str(sender))}")
            reply = await request.app.state.inbound_router.route(str(sender), body and str(body))
        else:
            logger.warning("Incoming SMS webhook without From field")
    except Exception:
        logger.exception("Error handling incoming SMS webhook")
        reply = GENERIC_ERROR_REPLY

    twiml = MessagingResponse()
    twiml.message(reply)
    return Response(content=str(twiml), media_type="application/xml")


@router.post("/sms/simulate")
async def simulate_sms(message: SimulateRequest, request: Request) -> SimulateResponse:
    result = await request.app.state.inbound_router.dispatch(message.from_, message.body)
    return SimulateResponse(
        command_type=result.command.type.value,
        detected_language=result.command.language.value,
        response_message=result.reply,
        success=result.success,
        parsed_parameters=dict(result.command.parameters),
    )


@router.get("/relay/status")
async def relay_status(request: Request) -> dict[str, int]:
    hub: RelayHub = request.app.state.relay_hub
    return {
        "connected_sessions": hub.connected_count(),
        "pending_requests": hub.pending_count(),
    }


@router.get("/relay/pending")
async def relay_pending(request: Request) -> list[dict]:
    """Relay sends that were never confirmed. They are not retried."""
    hub: RelayHub = request.app.state.relay_hub
    now = request.app.state.now_fn()
    return [
        {
            "request_id": p.request_id,
            "recipients": p.recipients,
            "created_at": p.created_at.isoformat(),
            "age_seconds": round((now - p.created_at).total_seconds(), 1),
        }
        for p in hub.pending_requests()
    ]


@router.websocket("/ws/sms-gateway")
async def sms_gateway(websocket: WebSocket) -> None:
    hub: RelayHub = websocket.app.state.relay_hub
    await websocket.accept()
    session = hub.open_session(websocket)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(
                    f"Relay session {session.session_id} closed with code {message.get('code')}"
                )
                break
            raw = message.get("text")
            if raw is None:
                logger.warning(f"Ignoring binary frame from relay session {session.session_id}")
                continue
            await hub.handle_message(session, raw)
    except WebSocketDisconnect as e:
        logger.info(f"Relay session {session.session_id} dropped with code {e.code}")
    finally:
        hub.close_session(session)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.critical(
        f"Unhandled exception for request {request.method} {request.url.path}", exc_info=exc
    )
    return JSONResponse(
        status_code=500,
        content={"message": "An internal server error occurred."},
    )


async def sweep_conversations(store: ConversationStore, sleep_fn: SleepFn) -> None:
    try:
        while True:
            await sleep_fn(CONVERSATION_SWEEP_SECONDS)
            store.sweep()
    except asyncio.CancelledError:
        return


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    sweeper = asyncio.create_task(
        sweep_conversations(app.state.conversations, app.state.sleep_fn)
    )
    try:
        yield
    finally:
        sweeper.cancel()
        await app.state.escalations.shutdown()
        await app.state.relay_hub.shutdown()


def build_sender(settings: Settings, relay: RelayHub) -> SmsSender:
    """Relay first; the carrier API (or the log, locally) when no relay is connected."""
    direct: SmsSender | None = None
    if settings.twilio_configured:
        direct = TwilioSender(
            settings.TWILIO_ACCOUNT_SID,
            settings.TWILIO_AUTH_TOKEN,
            settings.TWILIO_PHONE_NUMBER,
        )
    elif settings.ENV == "local":
        direct = LoggingSender()
    return FallbackSender(relay, direct)


def create_app(
    settings: Settings | None = None,
    *,
    sender: SmsSender | None = None,
    now_fn: NowFn | None = None,
    sleep_fn: SleepFn | None = None,
) -> FastAPI:
    settings = settings or default_settings
    setup_logging(settings)

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

    app.state.settings = settings
    app.state.now_fn = now_fn or (lambda: datetime.now(UTC))
    app.state.sleep_fn = sleep_fn or asyncio.sleep

    db = Database(case_id_prefix=settings.CASE_ID_PREFIX)
    app.state.database = db

    relay = RelayHub(io_timeout=settings.RELAY_IO_TIMEOUT_SECONDS, now_fn=app.state.now_fn)
    app.state.relay_hub = relay
    app.state.sender = sender or build_sender(settings, relay)

    conversations = ConversationStore(
        timedelta(minutes=settings.CONVERSATION_TIMEOUT_MINUTES), app.state.now_fn
    )
    app.state.conversations = conversations

    matching = MatchingEngine(
        db.volunteers,
        db.requests,
        NotificationDispatcher(app.state.sender, app.state.now_fn),
    )
    app.state.matching = matching

    escalations = EscalationScheduler(
        db.requests,
        matching,
        conversations,
        window=timedelta(minutes=settings.MATCHING_WINDOW_MINUTES),
        now_fn=app.state.now_fn,
        sleep_fn=app.state.sleep_fn,
    )
    app.state.escalations = escalations

    handler = CommandHandler(
        db, matching, app.state.sender, conversations, escalations, now_fn=app.state.now_fn
    )
    inbound_router = InboundRouter(
        CommandParser(settings.CASE_ID_PREFIX),
        handler,
        RuleBasedFallback(handler, conversations),
        conversations,
    )
    app.state.inbound_router = inbound_router
    relay.inbound = inbound_router.route

    app.add_exception_handler(Exception, global_exception_handler)
    app.include_router(router)
    return app
