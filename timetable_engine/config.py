"""Engine configuration loaded from the environment (prefix ``TIMETABLE_``)."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constraints import ConstraintWeights


class EngineSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TIMETABLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Backtracking budget
    node_budget_per_occurrence: int = Field(default=200, ge=1)
    min_node_budget: int = Field(default=20_000, ge=1)
    time_limit_seconds: float = Field(default=30.0, gt=0)

    # Annealing repair
    repair_time_limit_seconds: float = Field(default=10.0, ge=0)
    repair_iterations: int = Field(default=20_000, ge=0)
    initial_temperature: float = Field(default=4.0, gt=0)
    final_temperature: float = Field(default=0.05, gt=0)
    unplaced_weight: int = Field(default=10, ge=1)

    # Independent trials per run (different seeds)
    parallel_trials: int = Field(default=1, ge=1, le=32)

    # Soft constraint weights; the load/gap balance is a product decision
    weight_teacher_load: int = Field(default=3, ge=0)
    weight_teacher_gaps: int = Field(default=2, ge=0)
    weight_class_gaps: int = Field(default=2, ge=0)
    weight_subject_spread: int = Field(default=5, ge=0)

    # Per-school generation lease
    lease_ttl_seconds: float = Field(default=900.0, gt=0)

    # Runtime
    environment: str = "development"
    log_level: str | None = None

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, v: str) -> str:
        return (v or "development").strip().lower()

    def weights(self) -> ConstraintWeights:
        """Soft constraint weights as used by the constraint engine."""
        return ConstraintWeights(
            teacher_load=self.weight_teacher_load,
            teacher_gaps=self.weight_teacher_gaps,
            class_gaps=self.weight_class_gaps,
            subject_spread=self.weight_subject_spread,
        )

    def node_budget_for(self, num_occurrences: int) -> int:
        """Default node budget, proportional to problem size."""
        return max(self.min_node_budget, self.node_budget_per_occurrence * num_occurrences)


@lru_cache
def get_settings() -> EngineSettings:
    return EngineSettings()
