import pytest

from adcadence.application.cadence import CadenceCoordinator
from adcadence.application.controller import build_controller
from adcadence.domain.models import EntitlementStatus, PresentationOutcome, Readiness, SlotType


@pytest.fixture
def make_controller(config, kv, network, clock, dispatcher, events, scripted_random):
    built = []

    def make(rng_values=(), **overrides):
        cfg = config.model_copy(update=overrides)
        ctrl = build_controller(
            cfg, kv, network, clock, dispatcher, rng=scripted_random(rng_values), events=events
        )
        ctrl.start()
        built.append(ctrl)
        return ctrl

    yield make
    for ctrl in built:
        ctrl.teardown()


def ready_interstitial(network):
    network.fill(SlotType.INTERSTITIAL)


# ---------- Navigation ----------


@pytest.mark.parametrize("threshold", [1, 2, 5, 7])
def test_track_navigation_true_on_every_nth_call(make_controller, threshold):
    ctrl = make_controller(navigation_threshold=threshold)
    results = [ctrl.cadence.track_navigation() for _ in range(threshold * 3)]

    expected = [(i + 1) % threshold == 0 for i in range(threshold * 3)]
    assert results == expected
    assert ctrl.cadence.navigation_count < threshold


def test_navigation_counter_wraps_to_zero(make_controller):
    ctrl = make_controller()
    for _ in range(4):
        ctrl.cadence.track_navigation()
    assert ctrl.cadence.navigation_count == 4
    assert ctrl.cadence.track_navigation() is True
    assert ctrl.cadence.navigation_count == 0


def test_navigation_skipped_while_premium(make_controller, network):
    ctrl = make_controller()
    ctrl.cadence.track_navigation()
    ctrl.set_plan(EntitlementStatus.MONTHLY_PREMIUM)

    assert [ctrl.on_navigate() for _ in range(10)] == [False] * 10
    assert ctrl.cadence.navigation_count == 1
    assert network.presents == []


def test_five_navigations_present_once(make_controller, network):
    ctrl = make_controller()
    ready_interstitial(network)

    results = [ctrl.on_navigate() for _ in range(5)]

    assert results == [False, False, False, False, True]
    assert len(network.presents) == 1
    network.finish(PresentationOutcome.shown())
    assert ctrl.counters().session_impressions == 1


def test_threshold_hit_without_ready_ad_requests_load(make_controller, network):
    ctrl = make_controller()
    network.fail(SlotType.INTERSTITIAL)
    assert ctrl.inventory.readiness(SlotType.INTERSTITIAL) is Readiness.FAILED

    for _ in range(5):
        ctrl.on_navigate()

    assert network.presents == []
    assert ctrl.counters().session_impressions == 0
    assert ctrl.inventory.readiness(SlotType.INTERSTITIAL) is Readiness.LOADING
    assert len(network.loads_for(SlotType.INTERSTITIAL)) == 2


# ---------- Foreground / background ----------


def test_first_foreground_only_records(make_controller, clock, network):
    ctrl = make_controller()
    ready_interstitial(network)

    assert ctrl.on_app_foreground() is False
    assert ctrl.counters().last_foreground_at == clock.now()


def test_return_after_threshold_presents_on_low_draw(make_controller, clock, network):
    ctrl = make_controller(rng_values=[0.39])
    ready_interstitial(network)
    ctrl.on_app_background()
    clock.advance(601)

    assert ctrl.on_app_foreground() is True
    assert len(network.presents) == 1
    assert ctrl.counters().last_foreground_at == clock.now()


def test_return_skipped_on_high_draw(make_controller, clock, network):
    ctrl = make_controller(rng_values=[0.4])
    ready_interstitial(network)
    ctrl.on_app_background()
    clock.advance(601)

    assert ctrl.on_app_foreground() is False
    assert network.presents == []
    assert ctrl.counters().last_foreground_at == clock.now()


def test_return_at_exact_threshold_draws_nothing(make_controller, clock, network):
    # ScriptedRandom with no values would raise if a draw happened
    ctrl = make_controller(rng_values=[])
    ready_interstitial(network)
    ctrl.on_app_background()
    clock.advance(600)

    assert ctrl.on_app_foreground() is False


def test_background_recorded_while_premium(make_controller, clock):
    ctrl = make_controller()
    ctrl.set_plan(EntitlementStatus.ANNUAL_PREMIUM)
    ctrl.on_app_background()
    assert ctrl.counters().last_foreground_at == clock.now()

    clock.advance(900)
    before = ctrl.counters().last_foreground_at
    assert ctrl.on_app_foreground() is False
    assert ctrl.counters().last_foreground_at == before


def test_timing_survives_premium_expiry(make_controller, clock, network):
    ctrl = make_controller(rng_values=[0.1])
    ctrl.grant_temporary(1)
    ctrl.on_app_background()
    clock.advance(2 * 3600)

    # Premium lapsed while backgrounded; the controller reloads ads on expiry
    assert ctrl.is_premium() is False
    ready_interstitial(network)
    assert ctrl.on_app_foreground() is True


# ---------- Screen exit ----------


def test_exit_trigger_screen_presents_on_low_draw(make_controller, network):
    ctrl = make_controller(rng_values=[0.29])
    ready_interstitial(network)

    assert ctrl.on_screen_exit("FavoritesView") is True
    assert len(network.presents) == 1


def test_exit_trigger_screen_skipped_on_high_draw(make_controller, network):
    ctrl = make_controller(rng_values=[0.3])
    ready_interstitial(network)

    assert ctrl.on_screen_exit("CategoriesView") is False
    assert network.presents == []


def test_exit_from_other_screen_draws_nothing(make_controller, network):
    ctrl = make_controller(rng_values=[])
    ready_interstitial(network)
    assert ctrl.on_screen_exit("HomeQuoteView") is False


def test_exit_skipped_while_premium(make_controller):
    ctrl = make_controller(rng_values=[])
    ctrl.set_plan(EntitlementStatus.MONTHLY_PREMIUM)
    assert ctrl.on_screen_exit("QuoteDetailsView") is False


# ---------- Presentation outcomes ----------


def test_shown_outcome_records_and_reloads(make_controller, network, clock):
    ctrl = make_controller()
    ready_interstitial(network)
    attempted_at = clock.now()
    assert ctrl.cadence.attempt_presentation() is True
    assert ctrl.cadence.awaiting_outcome
    assert ctrl.inventory.is_presenting(SlotType.INTERSTITIAL)

    clock.advance(5)
    network.finish(PresentationOutcome.shown())

    counters = ctrl.counters()
    assert counters.session_impressions == 1
    assert counters.last_interstitial_at == attempted_at
    assert ctrl.inventory.state(SlotType.INTERSTITIAL).last_shown_at == attempted_at
    assert not ctrl.inventory.is_presenting(SlotType.INTERSTITIAL)
    assert ctrl.inventory.readiness(SlotType.INTERSTITIAL) is Readiness.LOADING


def test_impression_stamped_with_attempt_time(make_controller, network, clock):
    ctrl = make_controller()
    ready_interstitial(network)
    attempted_at = clock.now() + 1000

    assert ctrl.cadence.attempt_presentation(attempted_at) is True
    network.finish(PresentationOutcome.shown())

    assert ctrl.counters().last_interstitial_at == attempted_at
    assert ctrl.inventory.state(SlotType.INTERSTITIAL).last_shown_at == attempted_at
    ready_interstitial(network)
    assert not ctrl.gate.can_show_interstitial(attempted_at + 100)
    assert ctrl.gate.can_show_interstitial(attempted_at + 180)


@pytest.mark.parametrize(
    "outcome", [PresentationOutcome.failed("render error"), PresentationOutcome.dismissed()]
)
def test_failed_or_dismissed_does_not_count(make_controller, network, outcome):
    ctrl = make_controller()
    ready_interstitial(network)
    ctrl.cadence.attempt_presentation()

    network.finish(outcome)

    assert ctrl.counters().session_impressions == 0
    assert ctrl.counters().last_interstitial_at is None
    assert ctrl.inventory.readiness(SlotType.INTERSTITIAL) is Readiness.LOADING


def test_duplicate_outcome_counts_once(make_controller, network):
    ctrl = make_controller()
    ready_interstitial(network)
    ctrl.cadence.attempt_presentation()

    network.finish(PresentationOutcome.shown())
    network.finish(PresentationOutcome.shown())

    assert ctrl.counters().session_impressions == 1


def test_no_second_attempt_while_awaiting_presenter(make_controller, network):
    ctrl = make_controller()
    ready_interstitial(network)
    ctrl.cadence.attempt_presentation()

    assert ctrl.cadence.attempt_presentation() is False
    assert len(network.presents) == 1
    assert len(network.loads_for(SlotType.INTERSTITIAL)) == 1


def test_cooldown_blocks_next_threshold(make_controller, network, clock):
    ctrl = make_controller()
    ready_interstitial(network)
    for _ in range(5):
        ctrl.on_navigate()
    network.finish(PresentationOutcome.shown())
    ready_interstitial(network)

    clock.advance(60)
    for _ in range(5):
        ctrl.on_navigate()
    assert len(network.presents) == 1

    clock.advance(120)
    for _ in range(5):
        ctrl.on_navigate()
    assert len(network.presents) == 2


def test_presenter_exception_is_a_failed_outcome(make_controller, network):
    ctrl = make_controller()
    ready_interstitial(network)
    def broken_present(handle, surface, callback):
        raise RuntimeError("no window")

    network.present = broken_present

    assert ctrl.cadence.attempt_presentation() is True
    assert ctrl.counters().session_impressions == 0
    assert not ctrl.cadence.awaiting_outcome
    assert ctrl.inventory.readiness(SlotType.INTERSTITIAL) is Readiness.LOADING


def test_missing_host_surface_skips_attempt(config, kv, network, clock, dispatcher):
    ctrl = build_controller(
        config, kv, network, clock, dispatcher, surface_provider=lambda: None
    )
    ctrl.start()
    ready_interstitial(network)

    assert ctrl.cadence.attempt_presentation() is False
    assert network.presents == []
    assert ctrl.inventory.is_ready(SlotType.INTERSTITIAL)
    ctrl.teardown()


def test_host_surface_is_passed_to_presenter(config, kv, network, clock, dispatcher):
    surface = object()
    ctrl = build_controller(
        config, kv, network, clock, dispatcher, surface_provider=lambda: surface
    )
    ctrl.start()
    ready_interstitial(network)

    ctrl.cadence.attempt_presentation()
    assert network.presents[0].host_surface is surface
    ctrl.teardown()


def test_invalid_threshold_rejected():
    with pytest.raises(ValueError):
        CadenceCoordinator(None, None, None, None, None, lambda: False, navigation_threshold=0)
