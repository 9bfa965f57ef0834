"""Elo-style rating system for agent performance"""
import logging
from datetime import datetime

from oversight.config.schema import RatingConfig
from oversight.engine.models import (
    PerformanceRecord,
    RatingUpdate,
    SprintCompliance,
    TaskResult,
)
from oversight.engine.store import EngineStore

logger = logging.getLogger(__name__)


class AgentRatingSystem:
    """Tracks a bounded rating per agent and its recent history.

    Each task is treated as a game against the task itself: the task's
    complexity is mapped onto the rating scale and the agent's expected score
    comes from the standard logistic Elo curve.
    """

    def __init__(self, config: RatingConfig | None = None, store: EngineStore | None = None):
        self.config = config or RatingConfig()
        self.store = store
        self.agent_ratings: dict[str, float] = {}
        self.performance_history: dict[str, list[PerformanceRecord]] = {}

    def get_rating(self, agent_id: str) -> float:
        return self.agent_ratings.get(agent_id, self.config.initial_rating)

    def update_agent_rating(
        self,
        agent_id: str,
        task_result: TaskResult,
        sprint_compliance: SprintCompliance,
    ) -> RatingUpdate:
        """Apply one task outcome to an agent's rating"""
        current_rating = self.get_rating(agent_id)

        expected = self.calculate_expected_score(current_rating, task_result.complexity)
        actual = self.calculate_actual_score(task_result, sprint_compliance)

        delta = self.config.k_factor * (actual - expected)
        new_rating = self.clamp(current_rating + delta)
        self.agent_ratings[agent_id] = new_rating

        self._append_history(agent_id, PerformanceRecord(
            timestamp=datetime.now(),
            previous_rating=current_rating,
            new_rating=new_rating,
            delta=delta,
            task_result=task_result.to_dict(),
            sprint_compliance=sprint_compliance.to_dict(),
            expected_score=expected,
            actual_score=actual,
        ))
        self.persist()

        performance_class = self.classify_performance(new_rating)
        logger.info(
            "Agent %s rating: %.0f -> %.0f (%+.0f) [%s]",
            agent_id, current_rating, new_rating, delta, performance_class,
        )

        return RatingUpdate(
            agent_id=agent_id,
            previous_rating=current_rating,
            new_rating=new_rating,
            delta=delta,
            performance_class=performance_class,
            expected_score=expected,
            actual_score=actual,
        )

    def clamp(self, rating: float) -> float:
        return max(self.config.min_rating, min(self.config.max_rating, rating))

    def task_difficulty_rating(self, complexity: float) -> float:
        """Map task complexity in [0, 1] onto the rating scale"""
        return self.config.initial_rating + (complexity - 0.5) * self.config.difficulty_scale

    def calculate_expected_score(self, agent_rating: float, complexity: float) -> float:
        difference = agent_rating - self.task_difficulty_rating(complexity)
        return 1 / (1 + 10 ** (-difference / 400))

    def calculate_actual_score(
        self, task_result: TaskResult, sprint_compliance: SprintCompliance
    ) -> float:
        weights = self.config.score_weights
        score = 0.0

        if task_result.completed:
            score += weights["completed"]
        if task_result.quality > self.config.quality_bonus_threshold:
            score += weights["quality"]
        if task_result.on_time:
            score += weights["on_time"]

        score += sprint_compliance.overall_compliance * weights["compliance"]

        if task_result.innovative:
            score += weights["innovative"]
        if task_result.helped_others:
            score += weights["helped_others"]
        if task_result.documentation:
            score += weights["documentation"]

        return max(0.0, min(1.0, score))

    def classify_performance(self, rating: float) -> str:
        bands = sorted(self.config.performance_classes.items(), key=lambda item: item[1], reverse=True)
        for name, lower_bound in bands:
            if rating >= lower_bound:
                return name
        return self.config.lowest_class

    def _append_history(self, agent_id: str, record: PerformanceRecord) -> None:
        history = self.performance_history.setdefault(agent_id, [])
        history.append(record)
        cap = self.config.history_cap
        if len(history) > cap:
            del history[: len(history) - cap]

    # --- Queries ---

    def get_agent_stats(self, agent_id: str) -> dict:
        rating = self.get_rating(agent_id)
        history = self.performance_history.get(agent_id, [])
        recent = history[-self.config.trend_window:]
        recent_avg = sum(r.delta for r in recent) / len(recent) if recent else 0.0

        if recent_avg > self.config.trend_threshold:
            trending = "up"
        elif recent_avg < -self.config.trend_threshold:
            trending = "down"
        else:
            trending = "stable"

        return {
            "agent_id": agent_id,
            "current_rating": rating,
            "performance_class": self.classify_performance(rating),
            "total_tasks": len(history),
            "recent_tasks": len(recent),
            "recent_avg_rating_change": recent_avg,
            "trending": trending,
        }

    def get_top_performers(self, limit: int = 10) -> list[dict]:
        ranked = sorted(self.agent_ratings.items(), key=lambda item: item[1], reverse=True)
        return [
            {
                "agent_id": agent_id,
                "rating": rating,
                "performance_class": self.classify_performance(rating),
            }
            for agent_id, rating in ranked[:limit]
        ]

    # --- Persistence ---

    def to_state(self) -> dict:
        return {
            "agent_ratings": self.agent_ratings,
            "performance_history": {
                agent_id: [r.to_dict() for r in history]
                for agent_id, history in self.performance_history.items()
            },
            "system_info": {
                "initial_rating": self.config.initial_rating,
                "k_factor": self.config.k_factor,
            },
        }

    def load_state(self, data: dict) -> None:
        try:
            ratings = {
                str(agent_id): self.clamp(float(rating))
                for agent_id, rating in data.get("agent_ratings", {}).items()
            }
            history = {
                str(agent_id): [PerformanceRecord.from_dict(r) for r in records][-self.config.history_cap:]
                for agent_id, records in data.get("performance_history", {}).items()
            }
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding malformed agent rankings: %s", e)
            return

        self.agent_ratings = ratings
        self.performance_history = history
        logger.info("Loaded agent rankings: %d agents", len(self.agent_ratings))

    def load(self) -> None:
        if self.store is not None:
            self.load_state(self.store.load(EngineStore.RANKINGS_FILE))

    def persist(self) -> None:
        if self.store is not None:
            self.store.save(EngineStore.RANKINGS_FILE, self.to_state())
