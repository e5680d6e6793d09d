"""Free-tier limits and premium-only feature flags."""

from collections.abc import Callable

from adcadence.domain.constants import (
    FREE_NOTE_LIMIT,
    FREE_THEME_LIMIT,
    FREE_WIDGET_STYLE_LIMIT,
)


class FeatureAccess:
    """
    Answers "may the user do X" from the current entitlement.

    Limits return None for unlimited.
    """

    def __init__(self, is_premium: Callable[[], bool]):
        self._is_premium = is_premium

    def notes_limit(self) -> int | None:
        return None if self._is_premium() else FREE_NOTE_LIMIT

    def has_reached_note_limit(self, current_count: int) -> bool:
        return not self._is_premium() and current_count >= FREE_NOTE_LIMIT

    def widget_style_limit(self) -> int | None:
        return None if self._is_premium() else FREE_WIDGET_STYLE_LIMIT

    def theme_limit(self) -> int | None:
        return None if self._is_premium() else FREE_THEME_LIMIT

    def is_theme_available(self, index: int) -> bool:
        """Themes are ordered; free users get the first few."""
        return self._is_premium() or index < FREE_THEME_LIMIT

    def todo_custom_fields_available(self) -> bool:
        return self._is_premium()

    def advanced_pomodoro_available(self) -> bool:
        return self._is_premium()

    def streak_forgiveness_available(self) -> bool:
        return self._is_premium()
