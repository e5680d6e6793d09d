"""Frequency gate: daily impression cap and interstitial cooldown."""

import json
import logging
from collections.abc import Callable

from adcadence.domain.constants import FREQUENCY_KEY
from adcadence.domain.errors import PersistenceError
from adcadence.domain.models import DenyReason, GateDecision, SlotType
from adcadence.domain.ports import PersistentKVStore

from .ad_inventory import AdInventory

logger = logging.getLogger(__name__)


class FrequencyGate:
    """
    Decides whether an interstitial may be presented right now.

    Checks, in order: premium, daily cap (>=), cooldown (<), readiness.
    Owns session_impressions and last_interstitial_at.
    """

    def __init__(
        self,
        inventory: AdInventory,
        is_premium: Callable[[], bool],
        max_daily_impressions: int = 10,
        min_interval: float = 180.0,
        kv_store: PersistentKVStore | None = None,
    ):
        self._inventory = inventory
        self._is_premium = is_premium
        self.max_daily_impressions = max_daily_impressions
        self.min_interval = min_interval
        self._kv = kv_store
        self._session_impressions = 0
        self._last_interstitial_at: float | None = None

    @property
    def session_impressions(self) -> int:
        return self._session_impressions

    @property
    def last_interstitial_at(self) -> float | None:
        return self._last_interstitial_at

    def evaluate_interstitial(self, now: float) -> GateDecision:
        if self._is_premium():
            return GateDecision(False, DenyReason.PREMIUM)
        if self._session_impressions >= self.max_daily_impressions:
            return GateDecision(False, DenyReason.DAILY_CAP)
        if (
            self._last_interstitial_at is not None
            and now - self._last_interstitial_at < self.min_interval
        ):
            return GateDecision(False, DenyReason.COOLDOWN)
        if not self._inventory.is_ready(SlotType.INTERSTITIAL):
            return GateDecision(False, DenyReason.NOT_READY)
        return GateDecision(True)

    def can_show_interstitial(self, now: float) -> bool:
        return self.evaluate_interstitial(now).allowed

    def record_interstitial_shown(self, now: float) -> None:
        """Count one shown interstitial. Call once per genuinely shown ad."""
        self._session_impressions += 1
        self._last_interstitial_at = now
        logger.info(
            f"Interstitial shown ({self._session_impressions}/{self.max_daily_impressions} today)"
        )
        self._persist()

    def reset_daily_impressions(self) -> None:
        self._session_impressions = 0
        logger.info("Daily impression counter reset")
        self._persist()

    # ------------------------------------------------------------------
    # Persistence (optional)
    # ------------------------------------------------------------------

    def restore(self) -> None:
        if self._kv is None:
            return
        try:
            raw = self._kv.get(FREQUENCY_KEY)
        except PersistenceError as e:
            logger.error(f"Failed to read frequency counters: {e}")
            return
        if not raw:
            return

        try:
            data = json.loads(raw)
            impressions = int(data.get("session_impressions", 0))
            last = data.get("last_interstitial_at")
            last = float(last) if last is not None else None
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Discarding corrupt frequency counters: {e}")
            return

        self._session_impressions = max(0, impressions)
        self._last_interstitial_at = last

    def _persist(self) -> None:
        if self._kv is None:
            return
        payload = json.dumps(
            {
                "session_impressions": self._session_impressions,
                "last_interstitial_at": self._last_interstitial_at,
            }
        )
        try:
            self._kv.set(FREQUENCY_KEY, payload)
        except PersistenceError as e:
            logger.error(f"Failed to persist frequency counters: {e}", exc_info=True)
