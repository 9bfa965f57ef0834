"""Critic-fixer cycle: evaluate candidate solutions and regenerate weak ones"""
import logging
from dataclasses import dataclass, field, replace
from typing import Any

from oversight.config.schema import CriticConfig
from oversight.engine.keywords import extract_keywords, matching_keywords
from oversight.engine.models import Solution, SprintContext

logger = logging.getLogger(__name__)

FACTORS = (
    "sprint_alignment",
    "technical_quality",
    "implementation_feasibility",
    "risk_assessment",
    "innovation_factor",
)

TECHNICAL_DETAIL_TEXT = (
    "Layered design with explicit module boundaries, input validation at the "
    "edges and structured logging around external calls."
)

STANDARD_RISKS = [
    {"risk": "Technical complexity", "mitigation": "Proof of concept development"},
    {"risk": "Timeline pressure", "mitigation": "Agile approach with MVP focus"},
    {"risk": "Resource constraints", "mitigation": "Staged implementation approach"},
]


@dataclass
class EvaluationContext:
    """What solutions are judged against"""
    sprint_goals: list[str] = field(default_factory=list)
    constraints: dict[str, Any] = field(default_factory=dict)
    quality_standards: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_sprint_context(cls, context: SprintContext) -> "EvaluationContext":
        return cls(
            sprint_goals=list(context.goals),
            constraints=dict(context.constraints),
            quality_standards=dict(context.quality_standards),
        )


@dataclass
class CriticEvaluation:
    """Critic's verdict on one solution"""
    solution: Solution
    score: float
    factors: dict[str, float] = field(default_factory=dict)
    strengths: list[str] = field(default_factory=list)
    weaknesses: list[str] = field(default_factory=list)
    improvement_areas: list[str] = field(default_factory=list)


@dataclass
class FixResult:
    """Outcome of the fixer for one solution"""
    solution: Solution
    original_score: float
    improved_score: float
    applied_fixes: list[str] = field(default_factory=list)

    @property
    def improvement(self) -> float:
        return self.improved_score - self.original_score


@dataclass
class CycleImprovement:
    """Score movement across one critic-fixer cycle"""
    cycle: int
    original_average: float
    improved_average: float
    avg_improvement: float
    significant: bool
    improvement_count: int

    def to_dict(self) -> dict:
        return {
            "cycle": self.cycle,
            "original_average": self.original_average,
            "improved_average": self.improved_average,
            "avg_improvement": self.avg_improvement,
            "significant": self.significant,
            "improvement_count": self.improvement_count,
        }


@dataclass
class ImprovementCycleResult:
    """Result of running the critic-fixer loop over a set of solutions"""
    original_solutions: list[Solution]
    final_solutions: list[Solution]  # best first
    cycles: int
    improvements: list[CycleImprovement] = field(default_factory=list)
    final_scores: list[float] = field(default_factory=list)
    avg_improvement: float = 0.0

    def to_dict(self) -> dict:
        return {
            "original_solutions": [s.to_dict() for s in self.original_solutions],
            "final_solutions": [s.to_dict() for s in self.final_solutions],
            "cycles": self.cycles,
            "improvements": [i.to_dict() for i in self.improvements],
            "final_scores": self.final_scores,
            "avg_improvement": self.avg_improvement,
        }


class CriticFixerCycle:
    """Iteratively scores solutions and regenerates the weak ones"""

    def __init__(self, config: CriticConfig | None = None):
        self.config = config or CriticConfig()

    def evaluate_and_improve(
        self,
        solutions: list[Solution | dict],
        context: EvaluationContext | SprintContext | None = None,
    ) -> ImprovementCycleResult:
        """Run critic and fixer phases until improvement stalls or the cycle cap"""
        context = self._coerce_context(context)
        originals = [s if isinstance(s, Solution) else Solution.from_dict(s) for s in solutions]
        logger.info("Starting critic-fixer cycle with %d solutions", len(originals))

        current = list(originals)
        improvements: list[CycleImprovement] = []
        cycle = 0

        while current and cycle < self.config.max_cycles:
            cycle += 1
            evaluations = self.critic_phase(current, context)
            fixes = self.fixer_phase(evaluations, context)
            improvement = self.calculate_improvement(cycle, evaluations, fixes)
            improvements.append(improvement)

            if not improvement.significant:
                # Fixes from a converging cycle are discarded
                logger.debug(
                    "Cycle %d converged (improvement %.3f <= %.2f)",
                    cycle, improvement.avg_improvement, self.config.improvement_threshold,
                )
                break

            current = [fix.solution for fix in fixes]
            logger.debug("Cycle %d improved solutions by %.3f", cycle, improvement.avg_improvement)

        final = self.critic_phase(current, context)
        avg_improvement = (
            sum(i.avg_improvement for i in improvements) / len(improvements)
            if improvements else 0.0
        )
        return ImprovementCycleResult(
            original_solutions=originals,
            final_solutions=[e.solution for e in final],
            cycles=cycle,
            improvements=improvements,
            final_scores=[e.score for e in final],
            avg_improvement=avg_improvement,
        )

    def _coerce_context(self, context: EvaluationContext | SprintContext | None) -> EvaluationContext:
        if context is None:
            return EvaluationContext()
        if isinstance(context, SprintContext):
            return EvaluationContext.from_sprint_context(context)
        return context

    # --- Critic ---

    def critic_phase(
        self, solutions: list[Solution], context: EvaluationContext
    ) -> list[CriticEvaluation]:
        """Evaluate every solution, best first"""
        evaluations = [self.evaluate_solution(s, context) for s in solutions]
        evaluations.sort(key=lambda e: e.score, reverse=True)
        logger.debug("Critic scores: %s", ", ".join(f"{e.score:.2f}" for e in evaluations))
        return evaluations

    def evaluate_solution(self, solution: Solution, context: EvaluationContext) -> CriticEvaluation:
        """Weighted multi-factor evaluation"""
        factors = {
            "sprint_alignment": self.evaluate_sprint_alignment(solution, context),
            "technical_quality": self.evaluate_technical_quality(solution),
            "implementation_feasibility": self.evaluate_implementation_feasibility(solution),
            "risk_assessment": self.evaluate_risk_assessment(solution),
            "innovation_factor": self.evaluate_innovation_factor(solution),
        }
        weights = self.config.factor_weights

        evaluation = CriticEvaluation(solution=solution, score=0.0, factors=factors)
        for factor in FACTORS:
            score = factors[factor]
            evaluation.score += score * weights[factor]
            if score > self.config.strength_above:
                evaluation.strengths.append(factor)
            elif score < self.config.weakness_below:
                evaluation.weaknesses.append(factor)
                evaluation.improvement_areas.append(factor)
        return evaluation

    def solution_keywords(self, solution: Solution) -> list[str]:
        parts = [solution.name, solution.description, solution.technical_details]
        parts.extend(solution.enhancements.get("sprint_alignment", {}).get("goal_mapping", []))
        keywords: list[str] = []
        for part in parts:
            for kw in extract_keywords(str(part)):
                if kw not in keywords:
                    keywords.append(kw)
        return keywords

    def evaluate_sprint_alignment(self, solution: Solution, context: EvaluationContext) -> float:
        if not context.sprint_goals:
            return self.config.no_goals_alignment

        goal_keywords: list[str] = []
        for goal in context.sprint_goals:
            for kw in extract_keywords(goal):
                if kw not in goal_keywords:
                    goal_keywords.append(kw)

        matches = matching_keywords(self.solution_keywords(solution), goal_keywords)
        return min(1.0, len(matches) / max(len(goal_keywords) * 0.3, 1))

    def evaluate_technical_quality(self, solution: Solution) -> float:
        score = 0.5
        if len(solution.technical_details) > 50:
            score += 0.2
        if solution.architecture:
            score += 0.15
        if solution.testing.get("strategy"):
            score += 0.1
        if solution.error_handling:
            score += 0.05
        return min(1.0, score)

    def evaluate_implementation_feasibility(self, solution: Solution) -> float:
        score = 0.6
        if solution.complexity is not None:
            if solution.complexity <= 0.7:
                score += 0.2
            elif solution.complexity > 0.9:
                score -= 0.1
        if solution.resource_requirements.get("realistic"):
            score += 0.15
        if solution.timeline.get("realistic"):
            score += 0.05
        return min(1.0, max(0.1, score))

    def evaluate_risk_assessment(self, solution: Solution) -> float:
        score = 0.7
        if solution.risks is not None:
            risk_count = len(solution.risks)
            if risk_count == 0:
                score += 0.2
            else:
                mitigated = sum(1 for risk in solution.risks if risk.get("mitigation"))
                ratio = mitigated / risk_count
                if ratio > 0.8:
                    score += 0.3
                elif ratio < 0.5:
                    score -= 0.2
        return min(1.0, max(0.1, score))

    def evaluate_innovation_factor(self, solution: Solution) -> float:
        score = 0.5
        if solution.innovative and solution.innovative.get("features"):
            score += 0.3
        if solution.novel and solution.novel.get("approach"):
            score += 0.2
        return min(1.0, score)

    # --- Fixer ---

    def fixer_phase(
        self, evaluations: list[CriticEvaluation], context: EvaluationContext
    ) -> list[FixResult]:
        """Regenerate low scorers; high scorers pass through unchanged"""
        results = []
        for evaluation in evaluations:
            if evaluation.score < self.config.fix_below and evaluation.improvement_areas:
                improved = self.apply_solution_fixes(
                    evaluation.solution, evaluation.improvement_areas, context
                )
                rescored = self.evaluate_solution(improved, context)
                results.append(FixResult(
                    solution=improved,
                    original_score=evaluation.score,
                    improved_score=rescored.score,
                    applied_fixes=list(evaluation.improvement_areas),
                ))
                logger.debug(
                    "Fixed %s: %.2f -> %.2f", improved.name, evaluation.score, rescored.score
                )
            else:
                results.append(FixResult(
                    solution=evaluation.solution,
                    original_score=evaluation.score,
                    improved_score=evaluation.score,
                ))
        return results

    def apply_solution_fixes(
        self, solution: Solution, improvement_areas: list[str], context: EvaluationContext
    ) -> Solution:
        """Return a new solution with one enhancement per weak factor"""
        updates: dict[str, Any] = {}
        enhancements = dict(solution.enhancements)

        for area in improvement_areas:
            if area == "sprint_alignment":
                enhancements[area] = {
                    "alignment_strategy": "Enhanced alignment with sprint goals",
                    "goal_mapping": list(context.sprint_goals),
                }
            elif area == "technical_quality":
                enhancements[area] = {
                    "added_architecture": "Layered architecture with clear separation of concerns",
                    "added_testing": "Unit tests, integration tests, and end-to-end testing strategy",
                    "added_error_handling": "Comprehensive error handling and logging",
                }
                updates["architecture"] = dict(solution.architecture) or {
                    "pattern": "layered", "separation_of_concerns": True,
                }
                updates["testing"] = {
                    **solution.testing,
                    "strategy": solution.testing.get("strategy") or "unit_integration_e2e",
                }
                updates["error_handling"] = (
                    solution.error_handling or "Comprehensive error handling and logging"
                )
                if len(solution.technical_details) <= 50:
                    updates["technical_details"] = (
                        f"{solution.technical_details} {TECHNICAL_DETAIL_TEXT}".strip()
                    )
            elif area == "implementation_feasibility":
                enhancements[area] = {
                    "simplified_approach": "Broken down into smaller, manageable phases",
                    "resource_optimization": "Optimized resource requirements",
                    "realistic_timeline": "Adjusted timeline based on team capacity",
                }
                complexity = solution.complexity if solution.complexity is not None else 0.7
                updates["complexity"] = min(complexity, 0.7)
                updates["resource_requirements"] = {**solution.resource_requirements, "realistic": True}
                updates["timeline"] = {**solution.timeline, "realistic": True}
            elif area == "risk_assessment":
                enhancements[area] = {
                    "identified_risks": [dict(r) for r in STANDARD_RISKS],
                    "contingency_plans": "Multiple fallback options identified",
                }
                existing = [
                    r if r.get("mitigation") else {**r, "mitigation": "Revisit at sprint review"}
                    for r in solution.risks or []
                ]
                updates["risks"] = existing + [dict(r) for r in STANDARD_RISKS]
            elif area == "innovation_factor":
                enhancements[area] = {
                    "innovative_aspects": "Unique approach to problem solving",
                    "novel_techniques": "Modern practices and emerging patterns",
                    "future_proofing": "Extensible design for future enhancements",
                }
                updates["innovative"] = {**(solution.innovative or {}), "features": True}
                updates["novel"] = {**(solution.novel or {}), "approach": True}

        return replace(solution, enhancements=enhancements, **updates)

    def calculate_improvement(
        self, cycle: int, evaluations: list[CriticEvaluation], fixes: list[FixResult]
    ) -> CycleImprovement:
        original_avg = sum(e.score for e in evaluations) / len(evaluations)
        improved_avg = sum(f.improved_score for f in fixes) / len(fixes)
        avg_improvement = improved_avg - original_avg
        return CycleImprovement(
            cycle=cycle,
            original_average=original_avg,
            improved_average=improved_avg,
            avg_improvement=avg_improvement,
            significant=avg_improvement > self.config.improvement_threshold,
            improvement_count=sum(1 for f in fixes if f.improvement > 0),
        )
