import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

from birthlink.conversation import ConversationStore
from birthlink.database import HelpRequestRepository
from birthlink.matching import MatchingEngine
from birthlink.models import RequestStatus, utcnow

logger = logging.getLogger(__name__)

NowFn = Callable[[], datetime]
SleepFn = Callable[[float], Awaitable[None]]


async def rematch_if_unanswered(
    case_id: str,
    requests: HelpRequestRepository,
    matching: MatchingEngine,
    conversations: ConversationStore,
    *,
    window: timedelta,
    now_fn: NowFn,
    sleep_fn: SleepFn,
) -> None:
    """
    Wait out the ETA window of a case, then alert again once if nobody
    accepted it or answered with an ETA in the meantime.
    """
    request = requests.find_by_case_id(case_id)
    if request is None:
        return

    start = request.created_at
    if start.tzinfo is None:
        start = start.replace(tzinfo=UTC)

    target = start + window

    try:
        remaining = (target - now_fn()).total_seconds()
        if remaining > 0:
            await sleep_fn(remaining)

        request = requests.find_by_case_id(case_id)
        if request is None or request.status != RequestStatus.PENDING:
            return
        if request.eta_responses:
            logger.info(
                f"Case {case_id}: {len(request.eta_responses)} ETA response(s), not re-matching"
            )
            return

        logger.warning(f"Case {case_id} unanswered after {window}, re-running matching")
        result = await matching.match_and_notify(request)
        if request.status != RequestStatus.PENDING:
            return
        for volunteer in result.reached:
            conversations.mark_awaiting_eta(volunteer.phone, case_id)

    except asyncio.CancelledError:
        return


class EscalationScheduler:
    """One re-match task per open case, dropped when it finishes or is cancelled."""

    def __init__(
        self,
        requests: HelpRequestRepository,
        matching: MatchingEngine,
        conversations: ConversationStore,
        *,
        window: timedelta,
        now_fn: NowFn = utcnow,
        sleep_fn: SleepFn = asyncio.sleep,
    ) -> None:
        self.requests = requests
        self.matching = matching
        self.conversations = conversations
        self.window = window
        self.now_fn = now_fn
        self.sleep_fn = sleep_fn
        self.tasks: set[asyncio.Task] = set()
        self.tasks_by_case: dict[str, asyncio.Task] = {}

    def schedule(self, case_id: str) -> asyncio.Task:
        task = asyncio.create_task(
            rematch_if_unanswered(
                case_id,
                self.requests,
                self.matching,
                self.conversations,
                window=self.window,
                now_fn=self.now_fn,
                sleep_fn=self.sleep_fn,
            )
        )
        self.tasks.add(task)
        self.tasks_by_case[case_id] = task

        def _cleanup(_t: asyncio.Task) -> None:
            self.tasks.discard(_t)
            if self.tasks_by_case.get(case_id) is _t:
                self.tasks_by_case.pop(case_id, None)

        task.add_done_callback(_cleanup)
        return task

    def cancel(self, case_id: str) -> bool:
        task = self.tasks_by_case.get(case_id)
        if task is None:
            return False
        task.cancel()
        return True

    async def shutdown(self) -> None:
        tasks = list(self.tasks)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
