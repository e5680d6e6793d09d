from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from adcadence.domain import constants as c
from adcadence.domain.models import SlotType

CONFIG_FILES = [
    Path.home() / ".config/adcadence/config.toml",
    Path.home() / ".adcadence.toml",
]


class ControllerConfig(BaseSettings):
    """
    Tunables for the entitlement and ad-cadence controller.
    Supports loading from:
    1. Environment variables (ADCADENCE_*)
    2. Config file (~/.config/adcadence/config.toml)
    3. Manual overrides (CLI / tests)
    """

    model_config = SettingsConfigDict(
        env_prefix="ADCADENCE_",
        extra="ignore",
    )

    # Frequency gate
    max_daily_impressions: int = Field(default=c.MAX_DAILY_IMPRESSIONS, ge=0)
    min_interstitial_interval: float = Field(default=c.MIN_INTERSTITIAL_INTERVAL, ge=0)
    persist_impressions: bool = True

    # Cadence
    navigation_threshold: int = Field(default=c.NAVIGATION_THRESHOLD, ge=1)
    return_threshold: float = Field(default=c.RETURN_THRESHOLD, ge=0)
    return_probability: float = Field(default=c.RETURN_PROBABILITY, ge=0.0, le=1.0)
    exit_probability: float = Field(default=c.EXIT_PROBABILITY, ge=0.0, le=1.0)
    exit_trigger_screens: list[str] = Field(
        default_factory=lambda: list(c.EXIT_TRIGGER_SCREENS)
    )
    random_seed: int | None = None

    # Entitlement
    expiry_check_interval: float = Field(default=c.EXPIRY_CHECK_INTERVAL, gt=0)
    rewarded_grant_hours: float = Field(default=c.REWARDED_GRANT_HOURS, gt=0)

    # Inventory
    load_retry_backoff: float = Field(default=c.LOAD_RETRY_BACKOFF, ge=0)
    banner_excluded_screens: list[str] = Field(
        default_factory=lambda: list(c.BANNER_EXCLUDED_SCREENS)
    )
    use_test_ad_units: bool = True
    ad_unit_ids: dict[SlotType, str] = Field(default_factory=dict)

    # Local state (CLI)
    state_file: Path = Field(
        default_factory=lambda: Path.home() / ".config/adcadence/state.json"
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # First existing file wins
        toml_file = next((f for f in CONFIG_FILES if f.exists()), None)

        # Explicit overrides beat env, env beats the file
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("state_file", mode="before")
    @classmethod
    def resolve_state_file(cls, v: Any) -> Path:
        return Path(v).expanduser()

    @field_validator("exit_trigger_screens", "banner_excluded_screens", mode="before")
    @classmethod
    def split_screen_list(cls, v: Any) -> Any:
        # Allow "A, B, C" as well as a list
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    def ad_unit_id(self, slot: SlotType) -> str:
        """Resolve the ad unit for a slot; configured IDs win over test IDs."""
        if slot in self.ad_unit_ids:
            return self.ad_unit_ids[slot]
        if self.use_test_ad_units:
            return c.TEST_AD_UNIT_IDS[slot.value]
        raise KeyError(f"No production ad unit configured for slot '{slot.value}'")


def resolve_config(overrides: dict[str, Any] | None = None) -> ControllerConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in ControllerConfig
    2. ~/.config/adcadence/config.toml (if exists)
    3. Environment variables (ADCADENCE_*)
    4. overrides (None values are ignored)
    """
    clean = {k: v for k, v in (overrides or {}).items() if v is not None}
    return ControllerConfig(**clean)
