"""
Ad inventory: per-slot readiness state machine.

    UNLOADED --load()--> LOADING --success--> READY --consume()--> UNLOADED
    LOADING --failure--> FAILED --backoff (banner/native)--> LOADING

Ads are single use: every presentation attempt ends in consume(), which
drops the handle and immediately requests the next ad.
"""

import logging
from collections.abc import Callable
from typing import Any

from adcadence.domain.models import AdSlotSnapshot, AdSlotState, Readiness, SlotType
from adcadence.domain.ports import AdNetwork, CancelToken, Clock, Dispatcher

from .events import AD_READINESS_CHANGED, AdReadinessChanged, EventBus

logger = logging.getLogger(__name__)


class AdInventory:
    """
    Owns every AdSlotState. Load callbacks from the ad network are marshaled
    through the dispatcher and matched to the request that produced them, so
    stale or duplicate results are dropped.
    """

    def __init__(
        self,
        network: AdNetwork,
        clock: Clock,
        dispatcher: Dispatcher,
        events: EventBus,
        is_premium: Callable[[], bool],
        ad_unit_id: Callable[[SlotType], str],
        retry_backoff: float = 30.0,
        banner_excluded_screens: list[str] | None = None,
    ):
        self._network = network
        self._clock = clock
        self._dispatcher = dispatcher
        self._events = events
        self._is_premium = is_premium
        self._ad_unit_id = ad_unit_id
        self._retry_backoff = retry_backoff
        self._banner_excluded = set(banner_excluded_screens or [])
        self._slots = {slot: AdSlotState(slot=slot) for slot in SlotType}
        self._retry_timers: dict[SlotType, CancelToken] = {}
        self._disposed = False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def state(self, slot: SlotType) -> AdSlotSnapshot:
        return self._slots[slot].snapshot()

    def readiness(self, slot: SlotType) -> Readiness:
        return self._slots[slot].readiness

    def is_ready(self, slot: SlotType) -> bool:
        state = self._slots[slot]
        return state.readiness is Readiness.READY and not state.presenting

    def is_presenting(self, slot: SlotType) -> bool:
        return self._slots[slot].presenting

    def has_pending_retry(self, slot: SlotType) -> bool:
        return slot in self._retry_timers

    def should_show_banner(self, screen_name: str) -> bool:
        if self._is_premium():
            return False
        return screen_name not in self._banner_excluded

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, slot: SlotType) -> bool:
        """
        Request an ad for the slot.

        No-op while the slot is LOADING, READY, mid-presentation, or when the
        user is premium (rewarded stays loadable for the upsell screen).
        Returns True if a request was issued.
        """
        if self._disposed:
            return False

        state = self._slots[slot]
        if state.readiness in (Readiness.LOADING, Readiness.READY) or state.presenting:
            return False
        if slot is not SlotType.REWARDED and self._is_premium():
            logger.debug(f"Skipping {slot.value} load: premium user")
            return False

        self._cancel_retry(slot)
        state.load_generation += 1
        state.handle = None
        state.last_error = None
        self._set_readiness(state, Readiness.LOADING)

        generation = state.load_generation

        def on_result(success: bool, payload: Any = None) -> None:
            self.on_load_result(slot, success, payload, generation=generation)

        try:
            self._network.load(slot, self._ad_unit_id(slot), self._dispatcher.wrap(on_result))
        except Exception as e:
            logger.warning(f"Ad network rejected {slot.value} load request: {e}")
            self.on_load_result(slot, False, str(e), generation=generation)
        return True

    def on_load_result(
        self,
        slot: SlotType,
        success: bool,
        payload: Any = None,
        *,
        generation: int | None = None,
    ) -> None:
        """
        Apply a load result. payload is the ad handle on success, the error otherwise.

        Results for a slot that is not LOADING, or for a superseded request,
        are ignored.
        """
        if self._disposed:
            logger.debug(f"Dropping {slot.value} load result after teardown")
            return

        state = self._slots[slot]
        if state.readiness is not Readiness.LOADING:
            logger.debug(f"Ignoring duplicate {slot.value} load result ({state.readiness.value})")
            return
        if generation is not None and generation != state.load_generation:
            logger.debug(f"Ignoring stale {slot.value} load result")
            return

        if success:
            state.handle = payload
            self._set_readiness(state, Readiness.READY)
            logger.info(f"{slot.value.capitalize()} ad loaded")
            return

        state.handle = None
        state.last_error = str(payload) if payload is not None else "unknown error"
        self._set_readiness(state, Readiness.FAILED)
        logger.warning(f"Failed to load {slot.value} ad: {state.last_error}")

        # Full-screen slots reload lazily on the next presentation attempt
        if slot.retries_on_failure:
            self._schedule_retry(slot)

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    def begin_presentation(self, slot: SlotType) -> Any:
        """
        Hand out the loaded ad for display and mark the slot as mid-presentation.

        Returns None if the slot is not ready.
        """
        state = self._slots[slot]
        if not self.is_ready(slot):
            return None
        state.presenting = True
        return state.handle

    def mark_shown(self, slot: SlotType, now: float) -> None:
        if slot.tracks_last_shown:
            self._slots[slot].last_shown_at = now

    def consume(self, slot: SlotType) -> None:
        """Drop the current ad after a presentation attempt and request the next one."""
        if self._disposed:
            return
        state = self._slots[slot]
        state.presenting = False
        state.handle = None
        self._cancel_retry(slot)
        self._set_readiness(state, Readiness.UNLOADED)
        self.load(slot)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def teardown(self) -> None:
        for slot in list(self._retry_timers):
            self._cancel_retry(slot)
        self._disposed = True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set_readiness(self, state: AdSlotState, readiness: Readiness) -> None:
        if state.readiness is readiness:
            return
        state.readiness = readiness
        self._events.publish(AD_READINESS_CHANGED, AdReadinessChanged(state.slot, readiness))

    def _schedule_retry(self, slot: SlotType) -> None:
        self._cancel_retry(slot)

        def retry() -> None:
            self._retry_timers.pop(slot, None)
            if self._slots[slot].readiness is Readiness.FAILED:
                logger.debug(f"Retrying {slot.value} load")
                self.load(slot)

        self._retry_timers[slot] = self._clock.schedule_once(
            self._retry_backoff, self._dispatcher.wrap(retry)
        )

    def _cancel_retry(self, slot: SlotType) -> None:
        token = self._retry_timers.pop(slot, None)
        self._clock.cancel(token)
