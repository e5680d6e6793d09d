"""
Composition root for the entitlement and ad-cadence controller.

Wires explicitly constructed components together; there are no module-level
singletons, so tests can build as many isolated controllers as they need.
"""

import logging
import random
from collections.abc import Callable
from typing import Any

from adcadence.domain.errors import ControllerDisposedError
from adcadence.domain.models import (
    EntitlementRecord,
    EntitlementStatus,
    FrequencyCounters,
    RewardedRequestResult,
    RewardOutcome,
    SlotType,
)
from adcadence.domain.ports import AdNetwork, Clock, Dispatcher, PersistentKVStore

from .ad_inventory import AdInventory
from .cadence import CadenceCoordinator
from .config import ControllerConfig
from .entitlement_store import EntitlementStore
from .events import ENTITLEMENT_CHANGED, EventBus
from .feature_access import FeatureAccess
from .frequency_gate import FrequencyGate
from .rewarded import RewardedGrantFlow

logger = logging.getLogger(__name__)

PRELOAD_SLOTS = (SlotType.INTERSTITIAL, SlotType.REWARDED)


class AdController:
    """
    Facade over the components, driven by UI and lifecycle events.

    All methods must run on the owner context; collaborator callbacks reach
    it through the dispatcher.
    """

    def __init__(
        self,
        entitlements: EntitlementStore,
        inventory: AdInventory,
        gate: FrequencyGate,
        cadence: CadenceCoordinator,
        rewarded: RewardedGrantFlow,
        features: FeatureAccess,
        events: EventBus,
    ):
        self.entitlements = entitlements
        self.inventory = inventory
        self.gate = gate
        self.cadence = cadence
        self.rewarded = rewarded
        self.features = features
        self.events = events
        self._subscription = None
        self._started = False
        self._disposed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self._ensure_active()
        if self._started:
            return
        self._started = True

        self.entitlements.start()
        self.gate.restore()
        self._subscription = self.events.subscribe(
            ENTITLEMENT_CHANGED, self._on_entitlement_changed
        )
        for slot in PRELOAD_SLOTS:
            self.inventory.load(slot)
        logger.info(f"Controller started ({self.entitlements.status.display_name})")

    def teardown(self) -> None:
        """Cancel every timer and drop any callback that arrives later."""
        if self._disposed:
            return
        self._disposed = True
        self.entitlements.stop()
        self.inventory.teardown()
        self.cadence.teardown()
        self.rewarded.teardown()
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        logger.info("Controller torn down")

    # ------------------------------------------------------------------
    # Entitlement
    # ------------------------------------------------------------------

    def is_premium(self) -> bool:
        return self.entitlements.is_premium()

    def grant_temporary(self, hours: float) -> EntitlementRecord:
        self._ensure_active()
        return self.entitlements.grant_temporary(hours)

    def set_plan(self, status: EntitlementStatus) -> EntitlementRecord:
        self._ensure_active()
        return self.entitlements.set_plan(status)

    def tick(self, now: float | None = None) -> bool:
        self._ensure_active()
        return self.entitlements.tick(now)

    # ------------------------------------------------------------------
    # UI events
    # ------------------------------------------------------------------

    def on_navigate(self) -> bool:
        self._ensure_active()
        return self.cadence.on_navigate()

    def on_app_foreground(self, now: float | None = None) -> bool:
        self._ensure_active()
        return self.cadence.on_app_foreground(now)

    def on_app_background(self, now: float | None = None) -> None:
        self._ensure_active()
        self.cadence.on_app_background(now)

    def on_screen_exit(self, screen_name: str) -> bool:
        self._ensure_active()
        return self.cadence.on_screen_exit(screen_name)

    def should_show_banner(self, screen_name: str) -> bool:
        return self.inventory.should_show_banner(screen_name)

    def request_rewarded_presentation(
        self,
        on_complete: Callable[[RewardOutcome], None] | None = None,
        hours: float | None = None,
    ) -> RewardedRequestResult:
        self._ensure_active()
        return self.rewarded.request_rewarded_presentation(on_complete, hours)

    def reset_daily_impressions(self) -> None:
        self._ensure_active()
        self.gate.reset_daily_impressions()

    def counters(self) -> FrequencyCounters:
        return FrequencyCounters(
            session_impressions=self.gate.session_impressions,
            navigation_count=self.cadence.navigation_count,
            last_interstitial_at=self.gate.last_interstitial_at,
            last_foreground_at=self.cadence.last_foreground_at,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_entitlement_changed(self, record: EntitlementRecord) -> None:
        if not record.is_premium:
            # Ads are back on the menu
            self.inventory.load(SlotType.INTERSTITIAL)

    def _ensure_active(self) -> None:
        if self._disposed:
            raise ControllerDisposedError("Controller has been torn down")


def build_controller(
    config: ControllerConfig,
    kv_store: PersistentKVStore,
    network: AdNetwork,
    clock: Clock,
    dispatcher: Dispatcher,
    rng: random.Random | None = None,
    events: EventBus | None = None,
    surface_provider: Callable[[], Any] | None = None,
) -> AdController:
    """Construct a fully wired controller. Call start() before feeding events."""
    events = events or EventBus()
    rng = rng or random.Random(config.random_seed)

    entitlements = EntitlementStore(
        kv_store,
        clock,
        events,
        check_interval=config.expiry_check_interval,
        dispatcher=dispatcher,
    )
    inventory = AdInventory(
        network,
        clock,
        dispatcher,
        events,
        is_premium=entitlements.is_premium,
        ad_unit_id=config.ad_unit_id,
        retry_backoff=config.load_retry_backoff,
        banner_excluded_screens=config.banner_excluded_screens,
    )
    gate = FrequencyGate(
        inventory,
        is_premium=entitlements.is_premium,
        max_daily_impressions=config.max_daily_impressions,
        min_interval=config.min_interstitial_interval,
        kv_store=kv_store if config.persist_impressions else None,
    )
    cadence = CadenceCoordinator(
        gate,
        inventory,
        network,
        clock,
        dispatcher,
        is_premium=entitlements.is_premium,
        rng=rng,
        navigation_threshold=config.navigation_threshold,
        return_threshold=config.return_threshold,
        return_probability=config.return_probability,
        exit_probability=config.exit_probability,
        exit_trigger_screens=config.exit_trigger_screens,
        surface_provider=surface_provider,
    )
    rewarded = RewardedGrantFlow(
        inventory,
        entitlements,
        network,
        clock,
        dispatcher,
        grant_hours=config.rewarded_grant_hours,
        surface_provider=surface_provider,
    )
    return AdController(
        entitlements=entitlements,
        inventory=inventory,
        gate=gate,
        cadence=cadence,
        rewarded=rewarded,
        features=FeatureAccess(entitlements.is_premium),
        events=events,
    )
