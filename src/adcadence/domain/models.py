"""
Domain models for entitlement and ad-slot state.

These are pure data structures with no I/O or external dependencies.
The entitlement record is a pydantic model because it is persisted as a
single JSON document; everything else is a plain dataclass.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator


class EntitlementStatus(str, Enum):
    FREE = "free"
    TEMPORARY_PREMIUM = "temporary_premium"
    MONTHLY_PREMIUM = "monthly_premium"
    ANNUAL_PREMIUM = "annual_premium"

    @property
    def display_name(self) -> str:
        return {
            EntitlementStatus.FREE: "Free",
            EntitlementStatus.TEMPORARY_PREMIUM: "Temporary",
            EntitlementStatus.MONTHLY_PREMIUM: "Monthly",
            EntitlementStatus.ANNUAL_PREMIUM: "Annual",
        }[self]

    @property
    def is_premium(self) -> bool:
        return self is not EntitlementStatus.FREE


class EntitlementRecord(BaseModel):
    """
    The user's current premium access level.

    Attributes:
        status: Current entitlement level.
        expires_at: Epoch seconds; set only for TEMPORARY_PREMIUM.
    """

    model_config = ConfigDict(frozen=True)

    status: EntitlementStatus = EntitlementStatus.FREE
    expires_at: float | None = None

    @model_validator(mode="after")
    def _check_expiry_matches_status(self) -> "EntitlementRecord":
        temporary = self.status is EntitlementStatus.TEMPORARY_PREMIUM
        if temporary and self.expires_at is None:
            raise ValueError("temporary premium requires expires_at")
        if not temporary and self.expires_at is not None:
            raise ValueError(f"expires_at must be empty for status {self.status.value}")
        return self

    @classmethod
    def free(cls) -> "EntitlementRecord":
        return cls(status=EntitlementStatus.FREE)

    @property
    def is_premium(self) -> bool:
        return self.status.is_premium


class SlotType(str, Enum):
    BANNER = "banner"
    INTERSTITIAL = "interstitial"
    REWARDED = "rewarded"
    NATIVE = "native"

    @property
    def retries_on_failure(self) -> bool:
        """Banner and native slots retry on a timer; full-screen slots reload lazily."""
        return self in (SlotType.BANNER, SlotType.NATIVE)

    @property
    def tracks_last_shown(self) -> bool:
        return self in (SlotType.INTERSTITIAL, SlotType.REWARDED)


class Readiness(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass
class AdSlotState:
    """
    Mutable readiness state for one ad placement type.

    Owned exclusively by AdInventory; other components only see snapshots.
    """

    slot: SlotType
    readiness: Readiness = Readiness.UNLOADED
    handle: Any = None
    last_error: str | None = None
    last_shown_at: float | None = None
    presenting: bool = False  # a presentation was handed off and has not reported back
    load_generation: int = 0

    def snapshot(self) -> "AdSlotSnapshot":
        return AdSlotSnapshot(
            slot=self.slot,
            readiness=self.readiness,
            last_shown_at=self.last_shown_at,
            presenting=self.presenting,
            last_error=self.last_error,
        )


@dataclass(frozen=True)
class AdSlotSnapshot:
    slot: SlotType
    readiness: Readiness
    last_shown_at: float | None
    presenting: bool
    last_error: str | None


@dataclass(frozen=True)
class FrequencyCounters:
    """
    Read-only view of the counters shared by FrequencyGate and CadenceCoordinator.

    Attributes:
        session_impressions: Interstitials shown since the last daily reset.
        navigation_count: Navigations since the last threshold wrap.
        last_interstitial_at: Epoch of the last shown interstitial.
        last_foreground_at: Epoch of the last background transition.
    """

    session_impressions: int = 0
    navigation_count: int = 0
    last_interstitial_at: float | None = None
    last_foreground_at: float | None = None


class OutcomeKind(str, Enum):
    SHOWN = "shown"
    DISMISSED = "dismissed"
    FAILED = "failed"
    REWARD_EARNED = "reward_earned"


@dataclass(frozen=True)
class PresentationOutcome:
    """Terminal result of one presentation, reported by the ad network presenter."""

    kind: OutcomeKind
    reward_amount: int = 0
    error: str | None = None

    @classmethod
    def shown(cls) -> "PresentationOutcome":
        return cls(OutcomeKind.SHOWN)

    @classmethod
    def dismissed(cls) -> "PresentationOutcome":
        return cls(OutcomeKind.DISMISSED)

    @classmethod
    def failed(cls, error: str) -> "PresentationOutcome":
        return cls(OutcomeKind.FAILED, error=error)

    @classmethod
    def reward_earned(cls, amount: int) -> "PresentationOutcome":
        return cls(OutcomeKind.REWARD_EARNED, reward_amount=amount)


class DenyReason(str, Enum):
    PREMIUM = "premium"
    DAILY_CAP = "daily_cap"
    COOLDOWN = "cooldown"
    NOT_READY = "not_ready"


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    reason: DenyReason | None = None

    def __bool__(self) -> bool:
        return self.allowed


class RewardedRequestResult(str, Enum):
    NOT_READY = "not_ready"
    PRESENTING = "presenting"
    NO_SURFACE = "no_surface"


class RewardOutcome(str, Enum):
    GRANTED = "granted"
    NOT_EARNED = "not_earned"
    FAILED = "failed"
    ALREADY_PREMIUM = "already_premium"
