"""
In-process stand-in for the third-party ad SDK.

Used by the CLI simulator: loads settle after a latency on the supplied
clock and fill according to fill_rate; presentations report one terminal
outcome after display_time.
"""

import itertools
import logging
import random
from dataclasses import dataclass
from typing import Any

from adcadence.domain.models import PresentationOutcome, SlotType
from adcadence.domain.ports import AdNetwork, Clock, LoadCallback, PresentCallback

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulatedAd:
    slot: SlotType
    serial: int
    ad_unit_id: str


class SimulatedAdNetwork(AdNetwork):
    def __init__(
        self,
        clock: Clock,
        rng: random.Random | None = None,
        fill_rate: float = 1.0,
        latency: float = 1.0,
        display_time: float = 5.0,
        reward_amount: int = 1,
    ):
        self._clock = clock
        self._rng = rng or random.Random()
        self.fill_rate = fill_rate
        self.latency = latency
        self.display_time = display_time
        self.reward_amount = reward_amount
        self._serials = itertools.count(1)
        self.load_requests: list[SlotType] = []
        self.presented: list[SimulatedAd] = []

    def load(self, slot: SlotType, ad_unit_id: str, callback: LoadCallback) -> None:
        self.load_requests.append(slot)
        filled = self._rng.random() < self.fill_rate
        ad = SimulatedAd(slot, next(self._serials), ad_unit_id)

        def settle() -> None:
            if filled:
                callback(True, ad)
            else:
                callback(False, "No fill")

        self._clock.schedule_once(self.latency, settle)

    def present(self, handle: Any, host_surface: Any, callback: PresentCallback) -> None:
        self.presented.append(handle)
        if handle.slot is SlotType.REWARDED:
            outcome = PresentationOutcome.reward_earned(self.reward_amount)
        else:
            outcome = PresentationOutcome.shown()
        logger.debug(f"Simulated {handle.slot.value} ad #{handle.serial} on screen")
        self._clock.schedule_once(self.display_time, lambda: callback(outcome))
