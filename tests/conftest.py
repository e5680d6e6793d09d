import random
from dataclasses import dataclass, field
from typing import Any

import pytest

from adcadence.application.config import ControllerConfig
from adcadence.application.controller import build_controller
from adcadence.application.events import EventBus
from adcadence.domain.models import PresentationOutcome, SlotType
from adcadence.domain.ports import AdNetwork, LoadCallback, PresentCallback
from adcadence.infrastructure.clock import ManualClock
from adcadence.infrastructure.dispatcher import InlineDispatcher
from adcadence.infrastructure.kv_store import InMemoryKVStore

T0 = 1_700_000_000.0


@dataclass
class LoadRequest:
    slot: SlotType
    ad_unit_id: str
    callback: LoadCallback


@dataclass
class PresentRequest:
    handle: Any
    host_surface: Any
    callback: PresentCallback


@dataclass
class FakeAdNetwork(AdNetwork):
    """Records requests; tests settle them by calling the stored callbacks."""

    loads: list[LoadRequest] = field(default_factory=list)
    presents: list[PresentRequest] = field(default_factory=list)

    def load(self, slot, ad_unit_id, callback):
        self.loads.append(LoadRequest(slot, ad_unit_id, callback))

    def present(self, handle, host_surface, callback):
        self.presents.append(PresentRequest(handle, host_surface, callback))

    def loads_for(self, slot: SlotType) -> list[LoadRequest]:
        return [r for r in self.loads if r.slot is slot]

    def fill(self, slot: SlotType, handle: Any = "ad") -> None:
        """Succeed the most recent load for the slot."""
        self.loads_for(slot)[-1].callback(True, handle)

    def fail(self, slot: SlotType, error: str = "No fill") -> None:
        self.loads_for(slot)[-1].callback(False, error)

    def finish(self, outcome: PresentationOutcome) -> None:
        self.presents[-1].callback(outcome)


class ScriptedRandom(random.Random):
    """random.Random whose random() returns scripted values in order."""

    def __init__(self, values):
        super().__init__(0)
        self._values = list(values)

    def random(self):
        return self._values.pop(0)


@pytest.fixture
def clock():
    return ManualClock(start=T0)


@pytest.fixture
def kv():
    return InMemoryKVStore()


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def network():
    return FakeAdNetwork()


@pytest.fixture
def dispatcher():
    return InlineDispatcher()


@pytest.fixture
def config(tmp_path):
    return ControllerConfig(state_file=tmp_path / "state.json")


@pytest.fixture
def controller(config, kv, network, clock, dispatcher, events):
    ctrl = build_controller(
        config, kv, network, clock, dispatcher, rng=random.Random(7), events=events
    )
    ctrl.start()
    yield ctrl
    ctrl.teardown()


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Point HOME at a temp dir so no real config file is picked up."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home


@pytest.fixture
def scripted_random():
    return ScriptedRandom
