"""Centralized constants for the adcadence controller.

All thresholds and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Entitlement ----------
SECONDS_PER_HOUR = 3600
EXPIRY_CHECK_INTERVAL = 60.0  # seconds
REWARDED_GRANT_HOURS = 24
REWARDED_TRIAL_DURATIONS = [1, 3, 6, 12]  # hours
MAX_VIDEOS_PER_TRIAL = 3

# ---------- Frequency gate ----------
MAX_DAILY_IMPRESSIONS = 10
MIN_INTERSTITIAL_INTERVAL = 180.0  # seconds

# ---------- Cadence ----------
NAVIGATION_THRESHOLD = 5
RETURN_THRESHOLD = 600.0  # seconds in background before a return ad is considered
RETURN_PROBABILITY = 0.4
EXIT_PROBABILITY = 0.3
EXIT_TRIGGER_SCREENS = ["QuoteDetailsView", "FavoritesView", "CategoriesView"]

# ---------- Inventory ----------
LOAD_RETRY_BACKOFF = 30.0  # seconds, banner/native only
BANNER_EXCLUDED_SCREENS = [
    "AboutView",
    "FeedbackView",
    "PrivacyPolicyView",
    "TermsOfServiceView",
    "StreakCelebrationView",
    "PremiumView",
]

TEST_AD_UNIT_IDS = {
    "banner": "ca-app-pub-3940256099942544/2934735716",
    "interstitial": "ca-app-pub-3940256099942544/4411468910",
    "rewarded": "ca-app-pub-3940256099942544/1712485313",
    "native": "ca-app-pub-3940256099942544/3986624511",
}

# ---------- Free tier limits ----------
FREE_NOTE_LIMIT = 10
FREE_WIDGET_STYLE_LIMIT = 2
FREE_THEME_LIMIT = 2

# ---------- Persistence keys ----------
ENTITLEMENT_KEY = "entitlement.record"
FREQUENCY_KEY = "frequency.counters"
