"""Sprint accountability engine.

Sequences the verification layer, the critic-fixer cycle and the agent
rating system into one pipeline per task:

    verify -> (blocked: rank alternatives as guidance, negative rating)
           -> (verified: improve candidate solutions, compliance, positive rating)

Every call returns a TaskProcessingResult; exceptions never escape
``process_agent_task``.
"""
import json
import logging
import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Any

from oversight.config.manager import ConfigManager
from oversight.config.schema import OversightConfig
from oversight.engine.analytics import AnalyticsLogger, FailureRecord
from oversight.engine.critic_fixer import (
    CriticFixerCycle,
    EvaluationContext,
    ImprovementCycleResult,
)
from oversight.engine.keywords import extract_keywords, matching_keywords
from oversight.engine.models import (
    LearningRecord,
    RatingUpdate,
    Solution,
    SprintCompliance,
    SprintContext,
    TaskOutput,
    TaskResult,
    VerificationRecord,
)
from oversight.engine.rating import AgentRatingSystem
from oversight.engine.store import EngineStore
from oversight.engine.verification import VerificationLayer

logger = logging.getLogger(__name__)

STATUS_APPROVED = "approved"
STATUS_BLOCKED = "blocked"
STATUS_ERROR = "error"


@dataclass
class EngineStats:
    """Aggregate counters across all processed tasks"""
    total_tasks: int = 0
    verifications_passed: int = 0
    verifications_blocked: int = 0
    improvement_cycles: int = 0
    agents_ranked: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict) -> "EngineStats":
        known = {f.name for f in fields(cls)}
        return cls(**{k: int(v) for k, v in data.items() if k in known})


@dataclass
class TaskProcessingResult:
    """Full output of the pipeline for one task"""
    agent_id: str
    task_id: str
    timestamp: datetime
    status: str = "pending"  # "approved" | "blocked" | "error"
    verification: VerificationRecord | None = None
    critic_fixer: ImprovementCycleResult | None = None
    rating_update: RatingUpdate | None = None
    sprint_compliance: SprintCompliance | None = None
    improvements: dict[str, Any] = field(default_factory=dict)
    final_result: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    def to_dict(self) -> dict:
        """Convert to dict for serialization"""
        return {
            "agent_id": self.agent_id,
            "task_id": self.task_id,
            "timestamp": self.timestamp.isoformat(),
            "status": self.status,
            "phases": {
                "verification": self.verification.to_dict() if self.verification else None,
                "critic_fixer": self.critic_fixer.to_dict() if self.critic_fixer else None,
                "rating_update": self.rating_update.to_dict() if self.rating_update else None,
            },
            "sprint_compliance": self.sprint_compliance.to_dict() if self.sprint_compliance else None,
            "improvements": self.improvements,
            "final_result": self.final_result,
            "error": self.error,
        }


class AccountabilityEngine:
    """Orchestrates verification, improvement and rating for agent tasks"""

    def __init__(
        self,
        config: OversightConfig | None = None,
        store: EngineStore | None = None,
        analytics: AnalyticsLogger | None = None,
    ):
        self.config = config or ConfigManager.get_config()
        self.store = store or EngineStore(self.config.get_storage_dir())
        self.analytics = analytics or AnalyticsLogger(self.store.storage_dir)

        self.verification_layer = VerificationLayer(self.config.verification, self.store)
        self.rating_system = AgentRatingSystem(self.config.rating, self.store)
        self.critic_fixer = CriticFixerCycle(self.config.critic)

        self.stats = EngineStats()
        self.learning_history: dict[str, list[LearningRecord]] = {}

    # --- Lifecycle ---

    async def initialize(self) -> None:
        """Load persisted state and retune the verification mode"""
        self.verification_layer.load()
        self.rating_system.load()
        self._load_engine_data()

        if self.config.engine.adaptive_thresholds:
            self.adjust_adaptive_thresholds()

        logger.info(
            "Accountability engine ready (mode: %s, %d tasks processed)",
            self.verification_layer.mode, self.stats.total_tasks,
        )

    async def shutdown(self) -> None:
        """Flush all state to storage"""
        self.verification_layer.persist()
        self.rating_system.persist()
        self.persist_engine_data()
        logger.info("Accountability engine shut down after %d tasks", self.stats.total_tasks)

    # --- Pipeline ---

    async def process_agent_task(
        self,
        agent_id: str,
        task_data: TaskOutput | dict,
        sprint_context: SprintContext | dict | None,
    ) -> TaskProcessingResult:
        """Run one task through verification, improvement and rating"""
        self.stats.total_tasks += 1
        result = TaskProcessingResult(
            agent_id=agent_id,
            task_id=self._task_id(task_data),
            timestamp=datetime.now(),
        )
        phase = "verification"

        try:
            task = task_data if isinstance(task_data, TaskOutput) else TaskOutput.from_dict(task_data)
            context = (
                sprint_context if isinstance(sprint_context, SprintContext)
                else SprintContext.from_dict(sprint_context)
            )
            logger.info("Processing task %s for agent %s", result.task_id, agent_id)

            # Phase 1: verification
            record = self.verification_layer.enforce_verification(task, context)
            result.verification = record

            if not record.verified:
                phase = "critic_fixer"
                self.stats.verifications_blocked += 1
                result.improvements = self.generate_improvement_suggestions(task, context, record)

                phase = "rating"
                result.rating_update = self.rating_system.update_agent_rating(
                    agent_id,
                    TaskResult(
                        completed=False,
                        quality=record.score,
                        on_time=False,
                        complexity=self._complexity(task),
                    ),
                    SprintCompliance(overall_compliance=record.score),
                )
                self._update_continuous_learning(agent_id, task, record, record.score, False)

                result.status = STATUS_BLOCKED
                result.final_result = {
                    "status": STATUS_BLOCKED,
                    "reason": "verification_failed",
                    "verification_score": record.score,
                    "threshold": record.threshold,
                    "guidance": record.guidance,
                    "recommended_actions": self.verification_layer.recommended_actions(record),
                    "suggestions": result.improvements,
                }
                self.analytics.log_failure(FailureRecord(
                    task_id=result.task_id,
                    agent_id=agent_id,
                    phase="verification",
                    error_type="verification_failed",
                    error_message=f"Score {record.score:.3f} below threshold {record.threshold}",
                    context={"failed_checks": record.failed_checks()},
                ))
                self.persist_engine_data()
                logger.info("Task %s blocked by verification layer", result.task_id)
                return result

            self.stats.verifications_passed += 1

            # Phase 2: critic-fixer enhancement of competing solutions
            enhanced = False
            if self.config.engine.continuous_learning and len(task.solutions) > 1:
                phase = "critic_fixer"
                cycle_result = self.critic_fixer.evaluate_and_improve(
                    task.solutions, EvaluationContext.from_sprint_context(context)
                )
                result.critic_fixer = cycle_result
                self.stats.improvement_cycles += 1
                if cycle_result.final_solutions:
                    task = replace(task, solutions=cycle_result.final_solutions)
                    enhanced = True
                    logger.info(
                        "Solutions enhanced through %d critic-fixer cycles", cycle_result.cycles
                    )

            # Phase 3: sprint compliance and rating
            phase = "compliance"
            compliance = self.calculate_sprint_compliance(task, context)
            result.sprint_compliance = compliance

            phase = "rating"
            rating_update = self.rating_system.update_agent_rating(
                agent_id,
                TaskResult(
                    completed=True,
                    quality=record.score,
                    on_time=True,
                    complexity=self._complexity(task),
                    innovative=enhanced,
                    documentation=task.documentation,
                    helped_others=task.collaboration,
                ),
                compliance,
            )
            result.rating_update = rating_update
            self.stats.agents_ranked += 1
            self._update_continuous_learning(
                agent_id, task, record, compliance.overall_compliance, enhanced
            )

            result.status = STATUS_APPROVED
            result.final_result = {
                "status": STATUS_APPROVED,
                "verification_score": record.score,
                "rating": rating_update.new_rating,
                "performance_class": rating_update.performance_class,
                "sprint_compliance": compliance.overall_compliance,
                "enhanced": enhanced,
                "solutions": [s.to_dict() for s in task.solutions],
            }
            self.persist_engine_data()
            logger.info(
                "Task %s approved for agent %s (rating: %.0f)",
                result.task_id, agent_id, rating_update.new_rating,
            )
            return result

        except Exception as e:
            logger.exception("Error processing task %s for agent %s", result.task_id, agent_id)
            self.stats.errors += 1
            result.status = STATUS_ERROR
            result.error = str(e)
            result.final_result = {"status": STATUS_ERROR, "phase": phase, "error": str(e)}
            self.analytics.log_failure(FailureRecord(
                task_id=result.task_id,
                agent_id=agent_id,
                phase=phase,
                error_type="exception",
                error_message=str(e),
                context={"exception": type(e).__name__},
            ))
            return result

    async def process_batch(
        self,
        tasks: list[tuple[str, TaskOutput | dict, SprintContext | dict | None]],
    ) -> list[TaskProcessingResult]:
        """Process tasks one after another, then retune the verification mode"""
        results = []
        for agent_id, task_data, sprint_context in tasks:
            results.append(await self.process_agent_task(agent_id, task_data, sprint_context))

        if self.config.engine.adaptive_thresholds:
            self.adjust_adaptive_thresholds()
        return results

    def _task_id(self, task_data: TaskOutput | dict) -> str:
        task_id = task_data.id if isinstance(task_data, TaskOutput) else (
            task_data.get("id") if isinstance(task_data, dict) else None
        )
        return str(task_id) if task_id is not None else f"task_{uuid.uuid4().hex[:8]}"

    def _complexity(self, task: TaskOutput) -> float:
        if task.complexity is None:
            return 0.5
        return min(1.0, max(0.0, task.complexity))

    # --- Guidance for blocked tasks ---

    def generate_improvement_suggestions(
        self, task: TaskOutput, context: SprintContext, record: VerificationRecord
    ) -> dict[str, Any]:
        """Rank alternative approaches with the critic-fixer cycle"""
        alternatives = self.generate_alternative_solutions(task, context)
        if not alternatives:
            return {
                "type": "verification_guidance",
                "guidance": record.guidance,
                "recommended_actions": self.verification_layer.recommended_actions(record),
            }

        cycle_result = self.critic_fixer.evaluate_and_improve(
            alternatives, EvaluationContext.from_sprint_context(context)
        )
        limit = self.config.engine.suggestion_count
        return {
            "type": "alternative_solutions",
            "count": len(cycle_result.final_solutions),
            "solutions": [s.to_dict() for s in cycle_result.final_solutions[:limit]],
            "scores": cycle_result.final_scores[:limit],
            "improvement_cycles": cycle_result.cycles,
            "average_improvement": cycle_result.avg_improvement,
        }

    def generate_alternative_solutions(
        self, task: TaskOutput, context: SprintContext
    ) -> list[Solution]:
        """Conservative, balanced and (when allowed) innovative variants"""
        complexity = self._complexity(task)
        base = Solution(
            name="Base Implementation",
            description=task.description or "Task implementation",
            technical_details="Simplified approach focusing on core requirements",
            architecture={"pattern": "layered", "complexity": "moderate"},
            testing={"strategy": "unit_tests", "coverage": "basic"},
            complexity=complexity * 0.8,
        )

        alternatives = [
            replace(
                base,
                name="Conservative Implementation",
                complexity=complexity * 0.6,
                risks=[{"risk": "Technical debt", "mitigation": "Planned refactoring phase"}],
            ),
            replace(
                base,
                name="Balanced Implementation",
                complexity=complexity,
                architecture={"pattern": "microservices", "complexity": "moderate"},
                testing={"strategy": "comprehensive", "coverage": "high"},
            ),
        ]
        if context.allow_innovation:
            alternatives.append(replace(
                base,
                name="Innovative Implementation",
                complexity=min(1.0, complexity * 1.2),
                innovative={"features": True},
                novel={"approach": True},
                risks=[
                    {"risk": "New technology adoption", "mitigation": "Proof of concept first"},
                    {"risk": "Timeline uncertainty", "mitigation": "Agile iterations"},
                ],
            ))
        return alternatives

    # --- Sprint compliance ---

    def calculate_sprint_compliance(self, task: TaskOutput, context: SprintContext) -> SprintCompliance:
        """Weighted adherence to goals, constraints and quality standards"""
        cfg = self.config.compliance
        factors: dict[str, float] = {}

        if context.goals:
            factors["goal_alignment"] = self.calculate_goal_alignment(task, context.goals)
        else:
            factors["goal_alignment"] = cfg.default_goal_alignment

        if context.constraints:
            factors["constraint_adherence"] = self.calculate_constraint_adherence(
                task, context.constraints
            )
        else:
            factors["constraint_adherence"] = cfg.default_constraint_adherence

        if context.quality_standards:
            factors["quality_compliance"] = self.calculate_quality_compliance(
                task, context.quality_standards
            )
        else:
            factors["quality_compliance"] = cfg.default_quality_compliance

        overall = (
            factors["goal_alignment"] * cfg.goal_weight
            + factors["constraint_adherence"] * cfg.constraint_weight
            + factors["quality_compliance"] * cfg.quality_weight
        )
        return SprintCompliance(overall_compliance=min(1.0, overall), factors=factors)

    def calculate_goal_alignment(self, task: TaskOutput, goals: list[str]) -> float:
        goal_keywords: list[str] = []
        for goal in goals:
            for kw in extract_keywords(goal):
                if kw not in goal_keywords:
                    goal_keywords.append(kw)
        if not goal_keywords:
            return self.config.compliance.default_goal_alignment

        matches = matching_keywords(extract_keywords(task.description), goal_keywords)
        return min(1.0, len(matches) / (len(goal_keywords) * 0.3))

    def calculate_constraint_adherence(self, task: TaskOutput, constraints: dict[str, Any]) -> float:
        cfg = self.config.compliance
        adherence = 1.0

        max_complexity = constraints.get("max_complexity")
        if (
            isinstance(max_complexity, (int, float))
            and task.complexity is not None
            and task.complexity > max_complexity
        ):
            adherence -= cfg.max_complexity_penalty

        required_patterns = constraints.get("required_patterns")
        if required_patterns:
            architecture = json.dumps(task.architecture) if task.architecture else ""
            if not all(str(pattern) in architecture for pattern in required_patterns):
                adherence -= cfg.required_pattern_penalty

        return max(0.0, adherence)

    def calculate_quality_compliance(self, task: TaskOutput, standards: dict[str, Any]) -> float:
        compliance = 0.0
        if standards.get("require_testing") and task.testing:
            compliance += 0.3
        if standards.get("require_documentation") and task.documentation:
            compliance += 0.3
        if standards.get("require_architecture") and task.architecture:
            compliance += 0.2
        minimum = standards.get("minimum_complexity")
        if (
            isinstance(minimum, (int, float))
            and minimum
            and task.complexity is not None
            and task.complexity >= minimum
        ):
            compliance += 0.2
        return min(1.0, compliance + self.config.compliance.quality_base)

    # --- Adaptive thresholds ---

    def adjust_adaptive_thresholds(self) -> str | None:
        """Tighten or loosen the verification mode from the observed success rate.

        Returns the new mode if it changed.
        """
        cfg = self.config.engine
        stats = self.verification_layer.get_stats()
        if stats["total_verifications"] < cfg.retune_min_samples:
            return None

        success_rate = stats["success_rate"]
        changed = False
        if success_rate > cfg.tighten_above:
            changed = self.verification_layer.tighten_mode()
        elif success_rate < cfg.loosen_below:
            changed = self.verification_layer.loosen_mode()

        if not changed:
            return None
        logger.info(
            "Adjusted verification mode to %s (success rate %.1f%%)",
            self.verification_layer.mode, success_rate * 100,
        )
        self.verification_layer.persist()
        return self.verification_layer.mode

    # --- Continuous learning and queries ---

    def _update_continuous_learning(
        self,
        agent_id: str,
        task: TaskOutput,
        record: VerificationRecord,
        compliance: float,
        enhanced: bool,
    ) -> None:
        if not self.config.engine.continuous_learning:
            return
        history = self.learning_history.setdefault(agent_id, [])
        history.append(LearningRecord(
            timestamp=datetime.now(),
            task_type=task.type,
            complexity=task.complexity,
            verification_score=record.score,
            sprint_compliance=compliance,
            successful=record.verified,
            enhanced=enhanced,
        ))
        cap = self.config.engine.learning_history_cap
        if len(history) > cap:
            del history[: len(history) - cap]

    def get_agent_recommendations(self, agent_id: str) -> dict[str, Any]:
        """Coaching suggestions from an agent's rating and recent tasks"""
        agent_stats = self.rating_system.get_agent_stats(agent_id)
        recent = self.learning_history.get(agent_id, [])[-10:]
        recommendations: list[str] = []

        if recent:
            avg_score = sum(r.verification_score for r in recent) / len(recent)
            avg_compliance = sum(r.sprint_compliance for r in recent) / len(recent)
            if avg_score < 0.7:
                recommendations.append(
                    "Focus on improving verification scores through better sprint alignment"
                )
            if avg_compliance < 0.7:
                recommendations.append(
                    "Review sprint compliance patterns and improve goal alignment"
                )
            task_types = {r.task_type for r in recent}
            if len(task_types) == 1:
                only_type = next(iter(task_types)) or "untyped tasks"
                recommendations.append(f"Consider diversifying task types beyond {only_type}")

        rating = agent_stats["current_rating"]
        if rating < 1400:
            recommendations.append("Focus on completing basic tasks successfully to build rating")
        elif rating > 1800:
            recommendations.append("Consider taking on more complex, innovative tasks")

        return {
            "agent_id": agent_id,
            "current_rating": rating,
            "performance_class": agent_stats["performance_class"],
            "trending": agent_stats["trending"],
            "recommendations": recommendations,
        }

    def get_top_performers(self, limit: int = 10) -> list[dict]:
        return self.rating_system.get_top_performers(limit)

    def get_stats(self) -> dict[str, Any]:
        return {
            "engine": self.stats.to_dict(),
            "verification": self.verification_layer.get_stats(),
            "agents": len(self.rating_system.agent_ratings),
        }

    # --- Persistence ---

    def persist_engine_data(self) -> None:
        self.store.save(EngineStore.STATS_FILE, {
            "stats": self.stats.to_dict(),
            "learning_history": {
                agent_id: [r.to_dict() for r in history]
                for agent_id, history in self.learning_history.items()
            },
        })

    def _load_engine_data(self) -> None:
        data = self.store.load(EngineStore.STATS_FILE)
        try:
            stats = EngineStats.from_dict(data.get("stats", {}))
            learning = {
                str(agent_id): [LearningRecord.from_dict(r) for r in records]
                for agent_id, records in data.get("learning_history", {}).items()
            }
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding malformed engine stats: %s", e)
            return

        self.stats = stats
        self.learning_history = learning
        logger.info("Loaded engine stats: %d total tasks processed", self.stats.total_tasks)
