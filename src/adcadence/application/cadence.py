"""
Cadence coordinator: turns UI events into interstitial attempts.

Three triggers feed the same attempt path:
1. Every Nth navigation (counter wraps to 0 when it reaches the threshold)
2. Returning to the app after a long background stay (probabilistic)
3. Leaving one of the configured exit screens (probabilistic)

An attempt re-evaluates the frequency gate fresh each time, so an earlier
decision never carries over to a later event.
"""

import itertools
import logging
import random
from collections.abc import Callable
from typing import Any

from adcadence.domain.models import DenyReason, OutcomeKind, PresentationOutcome, SlotType
from adcadence.domain.ports import AdNetwork, Clock, Dispatcher

from .ad_inventory import AdInventory
from .frequency_gate import FrequencyGate

logger = logging.getLogger(__name__)


class CadenceCoordinator:
    def __init__(
        self,
        gate: FrequencyGate,
        inventory: AdInventory,
        network: AdNetwork,
        clock: Clock,
        dispatcher: Dispatcher,
        is_premium: Callable[[], bool],
        rng: random.Random | None = None,
        navigation_threshold: int = 5,
        return_threshold: float = 600.0,
        return_probability: float = 0.4,
        exit_probability: float = 0.3,
        exit_trigger_screens: list[str] | None = None,
        surface_provider: Callable[[], Any] | None = None,
    ):
        if navigation_threshold < 1:
            raise ValueError("navigation_threshold must be at least 1")
        self._gate = gate
        self._inventory = inventory
        self._network = network
        self._clock = clock
        self._dispatcher = dispatcher
        self._is_premium = is_premium
        self._rng = rng or random.Random()
        self.navigation_threshold = navigation_threshold
        self.return_threshold = return_threshold
        self.return_probability = return_probability
        self.exit_probability = exit_probability
        self.exit_trigger_screens = set(exit_trigger_screens or [])
        self._surface_provider = surface_provider

        self._navigation_count = 0
        self._last_foreground_at: float | None = None
        self._attempt_ids = itertools.count(1)
        self._pending_attempt: int | None = None
        self._disposed = False

    @property
    def navigation_count(self) -> int:
        return self._navigation_count

    @property
    def last_foreground_at(self) -> float | None:
        return self._last_foreground_at

    @property
    def awaiting_outcome(self) -> bool:
        return self._pending_attempt is not None

    # ------------------------------------------------------------------
    # UI events
    # ------------------------------------------------------------------

    def track_navigation(self) -> bool:
        """Count one navigation; True exactly when the threshold is reached."""
        if self._is_premium():
            return False

        self._navigation_count += 1
        if self._navigation_count >= self.navigation_threshold:
            self._navigation_count = 0
            return True
        return False

    def on_navigate(self) -> bool:
        """Count a navigation and attempt a presentation when the threshold is reached."""
        if not self.track_navigation():
            return False
        self.attempt_presentation()
        return True

    def on_app_foreground(self, now: float | None = None) -> bool:
        """Returns True if a presentation was attempted."""
        if self._is_premium():
            return False

        now = self._clock.now() if now is None else now
        if self._last_foreground_at is None:
            self._last_foreground_at = now
            return False

        attempted = False
        if now - self._last_foreground_at > self.return_threshold:
            if self._rng.random() < self.return_probability:
                self.attempt_presentation(now)
                attempted = True
            else:
                logger.debug("Return-to-app interstitial skipped by chance")

        self._last_foreground_at = now
        return attempted

    def on_app_background(self, now: float | None = None) -> None:
        # Runs while premium too, so timing is right if premium later lapses
        self._last_foreground_at = self._clock.now() if now is None else now

    def on_screen_exit(self, screen_name: str) -> bool:
        """Returns True if a presentation was attempted."""
        if self._is_premium():
            return False
        if screen_name not in self.exit_trigger_screens:
            return False
        if self._rng.random() >= self.exit_probability:
            logger.debug(f"Exit interstitial for {screen_name} skipped by chance")
            return False
        self.attempt_presentation()
        return True

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    def attempt_presentation(self, now: float | None = None) -> bool:
        """
        Present an interstitial if the gate allows it right now.

        Returns True if the ad was handed to the presenter. A denied attempt
        mutates no counters; a not-ready slot is asked to reload.
        """
        if self._disposed:
            return False

        now = self._clock.now() if now is None else now
        decision = self._gate.evaluate_interstitial(now)
        if not decision.allowed:
            logger.debug(f"Interstitial denied: {decision.reason.value}")
            if decision.reason is DenyReason.NOT_READY:
                self._inventory.load(SlotType.INTERSTITIAL)
            return False

        surface = None
        if self._surface_provider is not None:
            surface = self._surface_provider()
            if surface is None:
                logger.debug("No host surface available; skipping interstitial")
                return False

        handle = self._inventory.begin_presentation(SlotType.INTERSTITIAL)
        attempt = next(self._attempt_ids)
        self._pending_attempt = attempt

        def on_outcome(outcome: PresentationOutcome) -> None:
            self._on_outcome(attempt, now, outcome)

        logger.info("Presenting interstitial")
        try:
            self._network.present(handle, surface, self._dispatcher.wrap(on_outcome))
        except Exception as e:
            logger.warning(f"Presenter raised while showing interstitial: {e}")
            self._on_outcome(attempt, now, PresentationOutcome.failed(str(e)))
        return True

    def _on_outcome(self, attempt: int, now: float, outcome: PresentationOutcome) -> None:
        if self._disposed:
            logger.debug("Dropping interstitial outcome after teardown")
            return
        if attempt != self._pending_attempt:
            logger.debug(f"Ignoring duplicate interstitial outcome ({outcome.kind.value})")
            return
        self._pending_attempt = None

        if outcome.kind in (OutcomeKind.SHOWN, OutcomeKind.REWARD_EARNED):
            self._gate.record_interstitial_shown(now)
            self._inventory.mark_shown(SlotType.INTERSTITIAL, now)
        elif outcome.kind is OutcomeKind.FAILED:
            logger.warning(f"Interstitial failed to present: {outcome.error}")
        else:
            logger.debug("Interstitial dismissed before it was shown")

        self._inventory.consume(SlotType.INTERSTITIAL)

    def teardown(self) -> None:
        self._disposed = True
        self._pending_attempt = None
