"""Configuration schema using Pydantic."""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator


class VerificationConfig(BaseModel):
    """Verification layer configuration."""

    mode: str = "moderate"  # strict, moderate, dev
    thresholds: dict[str, float] = Field(
        default_factory=lambda: {"strict": 0.9, "moderate": 0.7, "dev": 0.5}
    )
    # Score a check must exceed to count as passed
    pass_marks: dict[str, float] = Field(
        default_factory=lambda: {
            "sprint_alignment": 0.6,
            "quality_standards": 0.75,
            "cross_agent_consistency": 0.5,
            "historical_compliance": 0.6,
            "context_accuracy": 0.6,
        }
    )
    valid_task_types: list[str] = Field(
        default_factory=lambda: [
            "implementation",
            "debugging",
            "analysis",
            "documentation",
            "testing",
            "refactoring",
        ]
    )
    min_description_length: int = 10
    consistency_window_hours: float = 24.0
    no_history_consistency_score: float = 1.0
    no_pattern_historical_score: float = 0.8
    no_context_accuracy_score: float = 0.5
    complexity_tolerance: float = 0.3
    pattern_examples_cap: int = 10
    pattern_top_keywords: int = 5
    rollback_history_cap: int = 50

    @field_validator("mode")
    @classmethod
    def _known_mode(cls, value: str) -> str:
        if value not in ("strict", "moderate", "dev"):
            raise ValueError(f"unknown verification mode: {value}")
        return value

    @field_validator("thresholds")
    @classmethod
    def _ordered_thresholds(cls, value: dict[str, float]) -> dict[str, float]:
        missing = {"strict", "moderate", "dev"} - value.keys()
        if missing:
            raise ValueError(f"missing thresholds for: {', '.join(sorted(missing))}")
        if not value["strict"] > value["moderate"] > value["dev"]:
            raise ValueError("thresholds must satisfy strict > moderate > dev")
        return value


class RatingConfig(BaseModel):
    """Elo-style agent rating configuration."""

    initial_rating: float = 1500.0
    min_rating: float = 800.0
    max_rating: float = 2400.0
    k_factor: float = 32.0
    difficulty_scale: float = 800.0
    history_cap: int = 50
    trend_window: int = 10
    trend_threshold: float = 5.0
    quality_bonus_threshold: float = 0.8
    score_weights: dict[str, float] = Field(
        default_factory=lambda: {
            "completed": 0.4,
            "quality": 0.1,
            "on_time": 0.1,
            "compliance": 0.4,
            "innovative": 0.1,
            "helped_others": 0.05,
            "documentation": 0.05,
        }
    )
    # Class name -> lower bound of its rating band
    performance_classes: dict[str, float] = Field(
        default_factory=lambda: {
            "Master": 2200.0,
            "Expert": 2000.0,
            "Advanced": 1800.0,
            "Intermediate": 1600.0,
            "Developing": 1400.0,
            "Novice": 1200.0,
        }
    )
    lowest_class: str = "Beginner"


class CriticConfig(BaseModel):
    """Critic-fixer cycle configuration."""

    max_cycles: int = 3
    improvement_threshold: float = 0.1
    fix_below: float = 0.8
    strength_above: float = 0.8
    weakness_below: float = 0.6
    no_goals_alignment: float = 0.7
    factor_weights: dict[str, float] = Field(
        default_factory=lambda: {
            "sprint_alignment": 0.3,
            "technical_quality": 0.25,
            "implementation_feasibility": 0.25,
            "risk_assessment": 0.15,
            "innovation_factor": 0.05,
        }
    )


class ComplianceConfig(BaseModel):
    """Sprint compliance weighting."""

    goal_weight: float = 0.4
    constraint_weight: float = 0.3
    quality_weight: float = 0.3
    default_goal_alignment: float = 0.8
    default_constraint_adherence: float = 0.9
    default_quality_compliance: float = 0.8
    max_complexity_penalty: float = 0.3
    required_pattern_penalty: float = 0.2
    quality_base: float = 0.5


class EngineConfig(BaseModel):
    """Accountability engine configuration."""

    storage_dir: str | None = None  # defaults to ~/.config/oversight/state
    continuous_learning: bool = True
    adaptive_thresholds: bool = True
    retune_min_samples: int = 50
    tighten_above: float = 0.9
    loosen_below: float = 0.6
    learning_history_cap: int = 50
    suggestion_count: int = 3


class GlobalConfig(BaseModel):
    """Global oversight configuration."""

    output_format: str = "text"  # text, json
    color: bool = True
    verbose: bool = False

    @field_validator("output_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        if value not in ("text", "json"):
            raise ValueError(f"unknown output format: {value}")
        return value


class OversightConfig(BaseModel):
    """Root configuration model for oversight."""

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    verification: VerificationConfig = Field(default_factory=VerificationConfig)
    rating: RatingConfig = Field(default_factory=RatingConfig)
    critic: CriticConfig = Field(default_factory=CriticConfig)
    compliance: ComplianceConfig = Field(default_factory=ComplianceConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)

    model_config = {"populate_by_name": True}

    @classmethod
    def default(cls) -> "OversightConfig":
        """Create default configuration."""
        return cls()

    def get_storage_dir(self) -> Path:
        """Resolve the directory engine state is persisted to."""
        if self.engine.storage_dir:
            return Path(self.engine.storage_dir).expanduser()
        return get_state_dir()


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_dir = Path.home() / ".config" / "oversight"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_config_file() -> Path:
    """Get the main configuration file path."""
    return get_config_dir() / "config.toml"


def get_state_dir() -> Path:
    """Get the default engine state directory."""
    state_dir = get_config_dir() / "state"
    state_dir.mkdir(parents=True, exist_ok=True)
    return state_dir
