"""
Rewarded-ad flow: trade one completed rewarded view for temporary premium.

The rewarded slot stays loadable for premium users so the upsell screen
keeps working.
"""

import itertools
import logging
from collections.abc import Callable
from typing import Any

from adcadence.domain.constants import MAX_VIDEOS_PER_TRIAL, REWARDED_TRIAL_DURATIONS
from adcadence.domain.errors import InvalidGrantError
from adcadence.domain.models import (
    OutcomeKind,
    PresentationOutcome,
    RewardedRequestResult,
    RewardOutcome,
    SlotType,
)
from adcadence.domain.ports import AdNetwork, Clock, Dispatcher

from .ad_inventory import AdInventory
from .entitlement_store import EntitlementStore

logger = logging.getLogger(__name__)


def trial_durations() -> list[int]:
    """Trial lengths (hours) offered on the rewarded upsell screen."""
    return list(REWARDED_TRIAL_DURATIONS)


def videos_needed(index: int) -> int:
    """Longer trials ask for more videos, capped at three."""
    if index < 0:
        raise ValueError("index must be non-negative")
    return min(index + 1, MAX_VIDEOS_PER_TRIAL)


class RewardedGrantFlow:
    def __init__(
        self,
        inventory: AdInventory,
        entitlements: EntitlementStore,
        network: AdNetwork,
        clock: Clock,
        dispatcher: Dispatcher,
        grant_hours: float = 24,
        surface_provider: Callable[[], Any] | None = None,
    ):
        self._inventory = inventory
        self._entitlements = entitlements
        self._network = network
        self._clock = clock
        self._dispatcher = dispatcher
        self.grant_hours = grant_hours
        self._surface_provider = surface_provider
        self._attempt_ids = itertools.count(1)
        self._pending_attempt: int | None = None
        self._disposed = False

    @property
    def awaiting_outcome(self) -> bool:
        return self._pending_attempt is not None

    def request_rewarded_presentation(
        self,
        on_complete: Callable[[RewardOutcome], None] | None = None,
        hours: float | None = None,
    ) -> RewardedRequestResult:
        """
        Show a rewarded ad if one is loaded; otherwise start loading one.

        on_complete receives the RewardOutcome once the presenter reports back.
        """
        grant_hours = self.grant_hours if hours is None else hours
        if isinstance(grant_hours, bool) or not grant_hours > 0:
            raise InvalidGrantError(f"hours must be positive, got {grant_hours!r}")

        if not self._inventory.is_ready(SlotType.REWARDED):
            self._inventory.load(SlotType.REWARDED)
            logger.info("Rewarded ad not ready")
            return RewardedRequestResult.NOT_READY

        surface = None
        if self._surface_provider is not None:
            surface = self._surface_provider()
            if surface is None:
                return RewardedRequestResult.NO_SURFACE

        handle = self._inventory.begin_presentation(SlotType.REWARDED)
        attempt = next(self._attempt_ids)
        self._pending_attempt = attempt

        def on_outcome(outcome: PresentationOutcome) -> None:
            self._on_outcome(attempt, outcome, grant_hours, on_complete)

        logger.info("Presenting rewarded ad")
        try:
            self._network.present(handle, surface, self._dispatcher.wrap(on_outcome))
        except Exception as e:
            logger.warning(f"Presenter raised while showing rewarded ad: {e}")
            self._on_outcome(attempt, PresentationOutcome.failed(str(e)), grant_hours, on_complete)
        return RewardedRequestResult.PRESENTING

    def _on_outcome(
        self,
        attempt: int,
        outcome: PresentationOutcome,
        grant_hours: float,
        on_complete: Callable[[RewardOutcome], None] | None,
    ) -> None:
        if self._disposed:
            logger.debug("Dropping rewarded outcome after teardown")
            return
        if attempt != self._pending_attempt:
            logger.debug(f"Ignoring duplicate rewarded outcome ({outcome.kind.value})")
            return
        self._pending_attempt = None

        if outcome.kind is OutcomeKind.REWARD_EARNED:
            logger.info(f"User earned reward: {outcome.reward_amount}")
            try:
                self._entitlements.grant_temporary(grant_hours)
                result = RewardOutcome.GRANTED
            except InvalidGrantError as e:
                logger.warning(f"Reward not applied: {e}")
                result = (
                    RewardOutcome.ALREADY_PREMIUM
                    if self._entitlements.record.is_premium
                    else RewardOutcome.FAILED
                )
        elif outcome.kind is OutcomeKind.FAILED:
            logger.warning(f"Rewarded ad failed to present: {outcome.error}")
            result = RewardOutcome.FAILED
        else:
            logger.info("Rewarded ad closed before the reward was earned")
            result = RewardOutcome.NOT_EARNED

        if outcome.kind in (OutcomeKind.SHOWN, OutcomeKind.REWARD_EARNED):
            self._inventory.mark_shown(SlotType.REWARDED, self._clock.now())
        self._inventory.consume(SlotType.REWARDED)

        if on_complete is not None:
            on_complete(result)

    def teardown(self) -> None:
        self._disposed = True
        self._pending_attempt = None
