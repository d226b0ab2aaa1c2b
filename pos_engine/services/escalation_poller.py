"""
Escalation poller.

Background loop that fetches the salesperson's escalations on a fixed
interval, feeds them to the discount authority engine, and tells subscribers
which ones to surface.

What gets surfaced is decided by an explicit transition table keyed by
(previous status, current status):

    approved and unused, any observation   -> surface on every poll until dismissed
    pending -> denied / expired             -> surface once
    approved -> expired                     -> surface once
    first seen already denied / expired     -> surface once, only if resolved recently
    anything else                           -> ignore

Dismissals and observed statuses live in memory only; starting the poller
again begins from a clean slate.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Final

from shared.config.constants import EscalationStatus, validate_escalation_transition
from shared.config.logging import escalation_logger as logger
from shared.config.settings import settings
from shared.infrastructure.retry import calculate_delay_with_jitter, create_poll_backoff_config
from shared.utils.exceptions import AppException
from pos_engine.clients.authority import DiscountAuthorityClient
from pos_engine.models.authority import Escalation
from pos_engine.services.discount_authority import DiscountAuthorityEngine


# =============================================================================
# Transition policy
# =============================================================================


class PollAction(str, Enum):
    SURFACE_UNTIL_DISMISSED = "surface_until_dismissed"
    SURFACE_ONCE = "surface_once"
    SURFACE_IF_RECENT = "surface_if_recent"
    IGNORE = "ignore"


TRANSITION_ACTIONS: Final[dict[tuple[str | None, str], PollAction]] = {
    (None, EscalationStatus.APPROVED): PollAction.SURFACE_UNTIL_DISMISSED,
    (EscalationStatus.PENDING, EscalationStatus.APPROVED): PollAction.SURFACE_UNTIL_DISMISSED,
    (EscalationStatus.APPROVED, EscalationStatus.APPROVED): PollAction.SURFACE_UNTIL_DISMISSED,
    (EscalationStatus.PENDING, EscalationStatus.DENIED): PollAction.SURFACE_ONCE,
    (EscalationStatus.PENDING, EscalationStatus.EXPIRED): PollAction.SURFACE_ONCE,
    (EscalationStatus.APPROVED, EscalationStatus.EXPIRED): PollAction.SURFACE_ONCE,
    (None, EscalationStatus.DENIED): PollAction.SURFACE_IF_RECENT,
    (None, EscalationStatus.EXPIRED): PollAction.SURFACE_IF_RECENT,
}


def classify_transition(previous: str | None, current: str) -> PollAction:
    """Action for an escalation seen as ``current`` after ``previous`` (None = first sighting)."""
    return TRANSITION_ACTIONS.get((previous, current), PollAction.IGNORE)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True, slots=True)
class EscalationEvent:
    """An escalation the UI should show."""

    escalation: Escalation
    previous_status: str | None
    action: PollAction


@dataclass(slots=True)
class PollResult:
    events: list[EscalationEvent] = field(default_factory=list)
    escalations: list[Escalation] = field(default_factory=list)
    # Team queue size, managers only
    team_pending_count: int | None = None
    revoked_item_ids: list[str] = field(default_factory=list)


PollListener = Callable[[PollResult], None]


# =============================================================================
# Poller
# =============================================================================


class EscalationPoller:
    """
    Fixed-interval escalation polling for an active session.

    Usage:
        poller = EscalationPoller(client, engine)
        poller.subscribe(on_result)
        await poller.start()
        ...
        await poller.stop()
    """

    def __init__(
        self,
        client: DiscountAuthorityClient,
        engine: DiscountAuthorityEngine,
        interval_seconds: float | None = None,
        recency_window_seconds: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._client = client
        self._engine = engine
        self._interval = interval_seconds or settings.escalation_poll_interval_seconds
        self._recency_window = timedelta(
            seconds=recency_window_seconds
            if recency_window_seconds is not None
            else settings.escalation_recency_window_seconds
        )
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._backoff = create_poll_backoff_config(self._interval)

        self._last_status: dict[int, str] = {}
        self._dismissed: set[int] = set()
        self._listeners: list[PollListener] = []

        self._running = False
        self._task: asyncio.Task | None = None
        # Bumped on start/stop; a poll started under an older generation is discarded
        self._generation = 0
        self._consecutive_failures = 0

    # =========================================================================
    # Subscription and dismissal
    # =========================================================================

    def subscribe(self, listener: PollListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dismiss(self, escalation_id: int) -> None:
        """Stop surfacing an escalation for the rest of this session."""
        self._dismissed.add(escalation_id)

    def is_dismissed(self, escalation_id: int) -> bool:
        return escalation_id in self._dismissed

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start polling. Resets dismissal and transition tracking."""
        if self._running:
            logger.warning("Escalation poller already running")
            return

        self._last_status.clear()
        self._dismissed.clear()
        self._consecutive_failures = 0
        self._generation += 1
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Escalation poller started", interval=self._interval)

    async def stop(self) -> None:
        """Stop polling immediately. In-flight results are discarded."""
        self._running = False
        self._generation += 1
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Escalation poller stopped")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.poll_once()
                self._consecutive_failures = 0
                delay = self._interval
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._consecutive_failures += 1
                delay = calculate_delay_with_jitter(self._consecutive_failures, self._backoff)
                logger.error(
                    "Escalation poll failed",
                    error=str(e),
                    consecutive_failures=self._consecutive_failures,
                    retry_in=round(delay, 1),
                )
            await asyncio.sleep(delay)

    # =========================================================================
    # Polling
    # =========================================================================

    async def poll_once(self) -> PollResult | None:
        """
        Fetch escalations and classify them.

        Returns None if the poller was stopped or restarted while fetching.
        """
        generation = self._generation
        escalations = await self._client.get_my_escalations()
        if generation != self._generation:
            return None

        result = PollResult(escalations=escalations)
        result.revoked_item_ids = self._engine.ingest(escalations)

        now = _as_utc(self._clock())
        for escalation in escalations:
            previous = self._last_status.get(escalation.id)
            if previous is not None and not validate_escalation_transition(previous, escalation.status):
                logger.warning(
                    "Unexpected escalation transition",
                    escalation_id=escalation.id,
                    from_status=previous,
                    to_status=escalation.status,
                )
            self._last_status[escalation.id] = escalation.status
            action = classify_transition(previous, escalation.status)
            if self._should_surface(escalation, action, now):
                result.events.append(EscalationEvent(escalation, previous, action))

        if self._engine.is_manager:
            result.team_pending_count = await self._team_pending_count()
            if generation != self._generation:
                return None

        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception as e:
                logger.error("Escalation listener failed", error=str(e), exc_info=True)
        return result

    def _should_surface(self, escalation: Escalation, action: PollAction, now: datetime) -> bool:
        if action == PollAction.IGNORE or escalation.id in self._dismissed:
            return False
        if action == PollAction.SURFACE_UNTIL_DISMISSED:
            return not self._engine.is_consumed(escalation)
        if action == PollAction.SURFACE_IF_RECENT:
            if escalation.reviewed_at is None:
                return False
            return now - _as_utc(escalation.reviewed_at) <= self._recency_window
        return True

    async def _team_pending_count(self) -> int | None:
        try:
            return len(await self._client.get_pending_escalations())
        except AppException as e:
            logger.warning("Team escalation count unavailable", error=e.detail)
            return None
