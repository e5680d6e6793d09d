import pytest

from adcadence.application.rewarded import trial_durations, videos_needed
from adcadence.domain.errors import InvalidGrantError
from adcadence.domain.models import (
    EntitlementStatus,
    PresentationOutcome,
    Readiness,
    RewardedRequestResult,
    RewardOutcome,
    SlotType,
)


def test_not_ready_triggers_load_and_grants_nothing(controller, network):
    network.fail(SlotType.REWARDED)
    assert len(network.loads_for(SlotType.REWARDED)) == 1

    result = controller.request_rewarded_presentation()

    assert result is RewardedRequestResult.NOT_READY
    assert len(network.loads_for(SlotType.REWARDED)) == 2
    assert controller.inventory.readiness(SlotType.REWARDED) is Readiness.LOADING
    assert controller.entitlements.status is EntitlementStatus.FREE
    assert network.presents == []


def test_not_ready_while_loading_does_not_duplicate_request(controller, network):
    assert controller.request_rewarded_presentation() is RewardedRequestResult.NOT_READY
    assert len(network.loads_for(SlotType.REWARDED)) == 1


def test_reward_grants_temporary_premium_and_reloads(controller, network, clock):
    network.fill(SlotType.REWARDED, handle="rv-1")
    outcomes = []

    result = controller.request_rewarded_presentation(on_complete=outcomes.append)
    assert result is RewardedRequestResult.PRESENTING
    assert network.presents[0].handle == "rv-1"

    network.finish(PresentationOutcome.reward_earned(1))

    assert outcomes == [RewardOutcome.GRANTED]
    record = controller.entitlements.record
    assert record.status is EntitlementStatus.TEMPORARY_PREMIUM
    assert record.expires_at == clock.now() + 24 * 3600
    assert controller.inventory.readiness(SlotType.REWARDED) is Readiness.LOADING
    assert len(network.loads_for(SlotType.REWARDED)) == 2


def test_dismiss_before_reward_grants_nothing(controller, network):
    network.fill(SlotType.REWARDED)
    outcomes = []
    controller.request_rewarded_presentation(on_complete=outcomes.append)

    network.finish(PresentationOutcome.dismissed())

    assert outcomes == [RewardOutcome.NOT_EARNED]
    assert controller.is_premium() is False
    assert controller.inventory.readiness(SlotType.REWARDED) is Readiness.LOADING


def test_presentation_failure_reports_failed(controller, network):
    network.fill(SlotType.REWARDED)
    outcomes = []
    controller.request_rewarded_presentation(on_complete=outcomes.append)

    network.finish(PresentationOutcome.failed("video error"))

    assert outcomes == [RewardOutcome.FAILED]
    assert controller.is_premium() is False


def test_duplicate_reward_callback_grants_once(controller, network, clock):
    network.fill(SlotType.REWARDED)
    outcomes = []
    controller.request_rewarded_presentation(on_complete=outcomes.append)

    network.finish(PresentationOutcome.reward_earned(1))
    expires = controller.entitlements.record.expires_at
    clock.advance(30)
    network.finish(PresentationOutcome.reward_earned(1))

    assert outcomes == [RewardOutcome.GRANTED]
    assert controller.entitlements.record.expires_at == expires


def test_rewarded_still_works_for_temporary_premium(controller, network, clock):
    controller.grant_temporary(1)
    network.fill(SlotType.REWARDED)

    controller.request_rewarded_presentation()
    network.finish(PresentationOutcome.reward_earned(1))

    assert controller.entitlements.record.expires_at == clock.now() + 24 * 3600


def test_paid_plan_reward_is_not_applied(controller, network):
    controller.set_plan(EntitlementStatus.MONTHLY_PREMIUM)
    network.fill(SlotType.REWARDED)
    outcomes = []

    controller.request_rewarded_presentation(on_complete=outcomes.append)
    network.finish(PresentationOutcome.reward_earned(1))

    assert outcomes == [RewardOutcome.ALREADY_PREMIUM]
    assert controller.entitlements.status is EntitlementStatus.MONTHLY_PREMIUM


def test_unusable_grant_for_free_user_reports_failed(controller, network):
    network.fill(SlotType.REWARDED)
    outcomes = []

    controller.request_rewarded_presentation(on_complete=outcomes.append, hours=1e-20)
    network.finish(PresentationOutcome.reward_earned(1))

    assert outcomes == [RewardOutcome.FAILED]
    assert controller.entitlements.status is EntitlementStatus.FREE


def test_hours_override(controller, network, clock):
    network.fill(SlotType.REWARDED)
    controller.request_rewarded_presentation(hours=3)
    network.finish(PresentationOutcome.reward_earned(1))

    assert controller.entitlements.record.expires_at == clock.now() + 3 * 3600


@pytest.mark.parametrize("hours", [0, -2])
def test_invalid_hours_rejected_up_front(controller, network, hours):
    network.fill(SlotType.REWARDED)
    with pytest.raises(InvalidGrantError):
        controller.request_rewarded_presentation(hours=hours)
    assert network.presents == []
    assert controller.inventory.is_ready(SlotType.REWARDED)


def test_trial_catalogue():
    assert trial_durations() == [1, 3, 6, 12]
    assert [videos_needed(i) for i in range(4)] == [1, 2, 3, 3]
    with pytest.raises(ValueError):
        videos_needed(-1)
