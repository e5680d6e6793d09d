"""
Typed event bus for state-change broadcasts.

The core publishes; UI-level observers subscribe. A failing observer is
logged and never breaks the publisher.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from adcadence.domain.models import EntitlementRecord, Readiness, SlotType

logger = logging.getLogger(__name__)

P = TypeVar("P")


@dataclass(frozen=True)
class Topic(Generic[P]):
    name: str


@dataclass(frozen=True)
class AdReadinessChanged:
    slot: SlotType
    readiness: Readiness


ENTITLEMENT_CHANGED: Topic[EntitlementRecord] = Topic("entitlementChanged")
AD_READINESS_CHANGED: Topic[AdReadinessChanged] = Topic("adReadinessChanged")


class Subscription:
    def __init__(self, bus: "EventBus", topic: Topic[Any], handler: Callable[[Any], None]):
        self._bus = bus
        self.topic = topic
        self.handler = handler

    def unsubscribe(self) -> None:
        self._bus._remove(self)


class EventBus:
    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscription]] = {}

    def subscribe(self, topic: Topic[P], handler: Callable[[P], None]) -> Subscription:
        sub = Subscription(self, topic, handler)
        self._subscribers.setdefault(topic.name, []).append(sub)
        return sub

    def publish(self, topic: Topic[P], payload: P) -> None:
        # Copy so handlers may unsubscribe while being notified
        for sub in list(self._subscribers.get(topic.name, [])):
            try:
                sub.handler(payload)
            except Exception:
                logger.error(f"Subscriber for '{topic.name}' raised", exc_info=True)

    def subscriber_count(self, topic: Topic[Any]) -> int:
        return len(self._subscribers.get(topic.name, []))

    def _remove(self, sub: Subscription) -> None:
        subs = self._subscribers.get(sub.topic.name, [])
        if sub in subs:
            subs.remove(sub)
