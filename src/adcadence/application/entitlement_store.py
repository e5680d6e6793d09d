"""
Entitlement store: owns the premium record and its transitions.

The record is persisted as one JSON document so it is always overwritten
whole. Persistence failures are logged; the in-memory record stays
authoritative and the next mutation writes it again.
"""

import logging
import math

from pydantic import ValidationError

from adcadence.domain.constants import ENTITLEMENT_KEY, SECONDS_PER_HOUR
from adcadence.domain.errors import InvalidGrantError, PersistenceError
from adcadence.domain.models import EntitlementRecord, EntitlementStatus
from adcadence.domain.ports import CancelToken, Clock, Dispatcher, PersistentKVStore

from .events import ENTITLEMENT_CHANGED, EventBus

logger = logging.getLogger(__name__)

PLAN_STATUSES = (
    EntitlementStatus.FREE,
    EntitlementStatus.MONTHLY_PREMIUM,
    EntitlementStatus.ANNUAL_PREMIUM,
)


class EntitlementStore:
    def __init__(
        self,
        kv_store: PersistentKVStore,
        clock: Clock,
        events: EventBus,
        check_interval: float = 60.0,
        dispatcher: Dispatcher | None = None,
    ):
        self._kv = kv_store
        self._clock = clock
        self._events = events
        self._check_interval = check_interval
        self._dispatcher = dispatcher
        self._record = EntitlementRecord.free()
        self._dirty = False
        self._timer: CancelToken | None = None
        self._restored = False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def record(self) -> EntitlementRecord:
        return self._record

    @property
    def status(self) -> EntitlementStatus:
        return self._record.status

    @property
    def needs_persist(self) -> bool:
        return self._dirty

    def is_premium(self) -> bool:
        """
        True for any non-free status.

        Does not evaluate expiry on its own except on a cold start (first
        query before restore); call tick() for freshness.
        """
        if not self._restored:
            self.restore()
        return self._record.is_premium

    def time_remaining(self, now: float | None = None) -> float | None:
        """Seconds left on a temporary grant, or None when there is none."""
        if self._record.expires_at is None:
            return None
        now = self._clock.now() if now is None else now
        return max(0.0, self._record.expires_at - now)

    def format_time_remaining(self, now: float | None = None) -> str | None:
        remaining = self.time_remaining(now)
        if remaining is None:
            return None
        if remaining <= 0:
            return "Expired"

        hours = int(remaining) // 3600
        minutes = (int(remaining) % 3600) // 60
        if hours > 0:
            return f"{hours}h {minutes}m remaining"
        return f"{minutes} minutes remaining"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def restore(self) -> EntitlementRecord:
        """Load the persisted record and correct for time spent suspended."""
        self._restored = True
        raw = None
        try:
            raw = self._kv.get(ENTITLEMENT_KEY)
        except PersistenceError as e:
            logger.error(f"Failed to read entitlement record: {e}")

        if raw:
            try:
                self._record = EntitlementRecord.model_validate_json(raw)
            except ValidationError as e:
                logger.warning(f"Discarding corrupt entitlement record: {e}")
                self._record = EntitlementRecord.free()
                self._dirty = True

        logger.debug(f"Restored entitlement: {self._record.status.value}")
        # Cold start: the grant may have lapsed while the process was not running
        self.tick()
        return self._record

    def start(self) -> None:
        if self._timer is not None:
            return
        if not self._restored:
            self.restore()
        fire = self._dispatcher.wrap(self._on_timer) if self._dispatcher else self._on_timer
        self._timer = self._clock.schedule_repeating(self._check_interval, fire)

    def stop(self) -> None:
        self._clock.cancel(self._timer)
        self._timer = None

    def _on_timer(self) -> None:
        # A firing already queued on the owner context may land after stop()
        if self._timer is None:
            return
        self.tick()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def grant_temporary(self, hours: float) -> EntitlementRecord:
        """
        Grant temporary premium for the given number of hours.

        Overwrites any existing temporary grant; grants do not stack.

        Raises:
            InvalidGrantError: hours is not a positive finite number, or the
                user already holds a paid plan.
        """
        if isinstance(hours, bool) or not isinstance(hours, (int, float)):
            raise InvalidGrantError(f"hours must be a number, got {hours!r}")
        if not math.isfinite(hours) or hours <= 0:
            raise InvalidGrantError(f"hours must be positive, got {hours}")
        if self._record.status in (
            EntitlementStatus.MONTHLY_PREMIUM,
            EntitlementStatus.ANNUAL_PREMIUM,
        ):
            raise InvalidGrantError(
                f"Cannot grant temporary premium over a {self._record.status.display_name} plan"
            )

        now = self._clock.now()
        expires_at = now + hours * SECONDS_PER_HOUR
        if expires_at <= now:
            raise InvalidGrantError(f"hours too small to extend past now, got {hours}")
        self._apply(
            EntitlementRecord(status=EntitlementStatus.TEMPORARY_PREMIUM, expires_at=expires_at)
        )
        logger.info(f"Granted temporary premium for {hours}h")
        return self._record

    def set_plan(self, status: EntitlementStatus) -> EntitlementRecord:
        """
        Explicit plan change after a purchase or restore. Clears any expiry.

        Raises:
            InvalidGrantError: status is TEMPORARY_PREMIUM (use grant_temporary).
        """
        status = EntitlementStatus(status)
        if status not in PLAN_STATUSES:
            raise InvalidGrantError(f"set_plan does not accept {status.value}")

        self._apply(EntitlementRecord(status=status))
        logger.info(f"Plan set to {status.display_name}")
        return self._record

    def tick(self, now: float | None = None) -> bool:
        """
        Demote an expired temporary grant to free.

        Idempotent. Returns True when a transition happened.
        """
        record = self._record
        if record.status is not EntitlementStatus.TEMPORARY_PREMIUM:
            return False

        now = self._clock.now() if now is None else now
        if now < record.expires_at:
            return False

        self._apply(EntitlementRecord.free())
        logger.info("Temporary premium expired")
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply(self, record: EntitlementRecord) -> None:
        self._restored = True
        self._record = record
        self._dirty = True
        self._persist()
        self._events.publish(ENTITLEMENT_CHANGED, record)

    def _persist(self) -> None:
        try:
            self._kv.set(ENTITLEMENT_KEY, self._record.model_dump_json())
        except PersistenceError as e:
            # In-memory record stays authoritative; the next mutation retries
            logger.error(f"Failed to persist entitlement record: {e}", exc_info=True)
            return
        self._dirty = False
