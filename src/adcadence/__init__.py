"""adcadence: entitlement and ad-cadence controller."""

from adcadence.consts import VERSION

__version__ = VERSION
