"""Core accountability engine."""
from oversight.engine.accountability import (
    AccountabilityEngine,
    EngineStats,
    TaskProcessingResult,
)
from oversight.engine.critic_fixer import CriticFixerCycle, EvaluationContext, ImprovementCycleResult
from oversight.engine.models import Solution, SprintContext, TaskOutput, VerificationRecord
from oversight.engine.rating import AgentRatingSystem
from oversight.engine.store import EngineStore
from oversight.engine.verification import VerificationLayer

__all__ = [
    "AccountabilityEngine",
    "AgentRatingSystem",
    "CriticFixerCycle",
    "EngineStats",
    "EngineStore",
    "EvaluationContext",
    "ImprovementCycleResult",
    "Solution",
    "SprintContext",
    "TaskOutput",
    "TaskProcessingResult",
    "VerificationLayer",
    "VerificationRecord",
]
