from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from cadence.domain import constants as c


def config_files() -> list[Path]:
    return [
        Path.home() / ".config/cadence/config.toml",
        Path.home() / ".cadence.toml",
    ]


class EngineConfig(BaseSettings):
    """
    Configuration model for the cadence engine.
    Supports loading from:
    1. Environment variables (CADENCE_*)
    2. Config file (~/.config/cadence/config.toml)
    3. Manual overrides (CLI / HTTP)
    """

    model_config = SettingsConfigDict(
        env_prefix="CADENCE_",
        extra="ignore",
    )

    # Storage
    backend: Literal["memory", "json"] = "json"
    store_path: Path = Field(default_factory=lambda: Path.home() / ".config/cadence/store.json")
    curriculum_path: Path | None = None
    verbose: int = 1

    # Memory model
    target_retention: float = Field(default=c.DEFAULT_TARGET_RETENTION, ge=0.7, le=0.99)
    weights: tuple[float, ...] = c.DEFAULT_WEIGHTS
    difficulty_min: float = Field(default=c.DIFFICULTY_MIN, gt=0)
    difficulty_max: float = c.DIFFICULTY_MAX
    min_stability: float = Field(default=c.MIN_STABILITY, gt=0)
    max_stability: float = c.MAX_STABILITY
    min_interval_minutes: int = Field(default=c.MIN_INTERVAL_MINUTES, ge=1)
    max_interval_days: int = Field(default=c.MAX_INTERVAL_DAYS, ge=1)
    learning_steps_minutes: tuple[int, ...] = c.LEARNING_STEPS_MINUTES
    relearning_steps_minutes: tuple[int, ...] = c.RELEARNING_STEPS_MINUTES

    # Mastery thresholds (T1 < T2 < T3) and lapse ceilings per band
    familiar_stability_days: float = c.FAMILIAR_STABILITY_DAYS
    proficient_stability_days: float = c.PROFICIENT_STABILITY_DAYS
    mastered_stability_days: float = c.MASTERED_STABILITY_DAYS
    lapse_ceiling_low: int = Field(default=c.LAPSE_CEILING_LOW, ge=0)
    lapse_ceiling_mid: int = Field(default=c.LAPSE_CEILING_MID, ge=0)
    lapse_ceiling_high: int = Field(default=c.LAPSE_CEILING_HIGH, ge=0)

    # Lesson gate / quiz
    demotion_policy: Literal["badge", "review-lock"] = c.DEMOTION_POLICY_BADGE
    quiz_passing_score: int = Field(default=c.QUIZ_PASSING_SCORE, ge=0, le=100)

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
        toml_file = next((f for f in config_files() if f.exists()), None)

        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (
            init_settings,
            env_settings,
        )

    @field_validator("weights")
    @classmethod
    def check_weights(cls, v: tuple[float, ...]) -> tuple[float, ...]:
        if len(v) != c.FSRS_WEIGHT_COUNT:
            raise ValueError(f"expected {c.FSRS_WEIGHT_COUNT} weights, got {len(v)}")
        return v

    @field_validator("learning_steps_minutes", "relearning_steps_minutes")
    @classmethod
    def check_steps(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        if not v:
            raise ValueError("step ladder must not be empty")
        if any(step <= 0 for step in v):
            raise ValueError("steps must be positive minute counts")
        if any(b <= a for a, b in zip(v, v[1:])):
            raise ValueError("steps must be strictly increasing")
        return v

    @field_validator("store_path", "curriculum_path", mode="before")
    @classmethod
    def resolve_path(cls, v: Any) -> Path | None:
        if v is None:
            return None
        return Path(v).expanduser().resolve()

    @model_validator(mode="after")
    def check_ordering(self) -> "EngineConfig":
        if not (
            0 < self.familiar_stability_days
            < self.proficient_stability_days
            < self.mastered_stability_days
        ):
            raise ValueError("mastery thresholds must satisfy 0 < T1 < T2 < T3")
        if self.difficulty_min >= self.difficulty_max:
            raise ValueError("difficulty_min must be below difficulty_max")
        if self.min_stability >= self.max_stability:
            raise ValueError("min_stability must be below max_stability")
        return self


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> EngineConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in EngineConfig
    2. ~/.config/cadence/config.toml (if exists)
    3. Environment variables (CADENCE_*)
    4. cli_overrides (non-None values only)
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return EngineConfig(**overrides)
