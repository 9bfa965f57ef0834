"""Verification layer - truth is enforced, not assumed.

Every agent output is run through five independent checks whose mean is
compared against a mode-dependent threshold. Passing outputs feed the
per-type success patterns; failing outputs produce improvement guidance and
a rollback entry. The layer never touches agent ratings; the caller decides
what a failure costs.
"""
import logging
import uuid
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable

from oversight.config.schema import VerificationConfig
from oversight.engine.keywords import (
    extract_keywords,
    flatten_text,
    keyword_alignment,
    matching_keywords,
)
from oversight.engine.models import (
    CHECK_NAMES,
    CheckResult,
    PatternExample,
    RollbackEntry,
    SprintContext,
    SuccessPattern,
    TaskOutput,
    VerificationRecord,
)
from oversight.engine.store import EngineStore

logger = logging.getLogger(__name__)

# Loosest to strictest
MODES = ("dev", "moderate", "strict")

CONTEXT_ELEMENTS = ("goals", "requirements", "constraints", "acceptance_criteria")

# check name -> (guidance label, guidance remedy, recommended actions)
REMEDIATION: dict[str, tuple[str, str, list[str]]] = {
    "sprint_alignment": (
        "Improve sprint alignment",
        "Review sprint goals and ensure task directly supports them",
        [
            "Review sprint goals and align task objectives",
            "Include specific sprint goal references in task description",
        ],
    ),
    "quality_standards": (
        "Enhance quality standards",
        "Provide detailed description, proper type, and complexity estimate",
        [
            "Provide a detailed task description",
            "Specify valid task type and complexity estimate",
        ],
    ),
    "cross_agent_consistency": (
        "Improve consistency with team",
        "Review recent agent outputs for alignment",
        [
            "Review recent team outputs for consistency patterns",
            "Align with established team conventions",
        ],
    ),
    "historical_compliance": (
        "Learn from historical patterns",
        "Study successful similar tasks",
        [
            "Study successful similar tasks from history",
            "Apply proven patterns and approaches",
        ],
    ),
    "context_accuracy": (
        "Improve context accuracy",
        "Verify understanding of sprint context",
        [
            "Verify understanding of sprint requirements",
            "Include references to specific context elements",
        ],
    ),
}


class VerificationLayer:
    """Runs the five verification checks and keeps verification memory"""

    def __init__(
        self,
        config: VerificationConfig | None = None,
        store: EngineStore | None = None,
        mode: str | None = None,
    ):
        self.config = config or VerificationConfig()
        self.store = store
        self.mode = mode or self.config.mode
        if self.mode not in MODES:
            raise ValueError(f"Unknown verification mode: {self.mode}")

        self.verification_memory: dict[str, VerificationRecord] = {}
        self.success_patterns: dict[str, SuccessPattern] = {}
        self.rollback_history: list[RollbackEntry] = []

    # --- Mode control ---

    def threshold(self, mode: str | None = None) -> float:
        """Acceptance threshold for a mode (current mode by default)"""
        return self.config.thresholds[mode or self.mode]

    def set_mode(self, mode: str) -> None:
        if mode not in MODES:
            raise ValueError(f"Unknown verification mode: {mode}")
        if mode != self.mode:
            logger.info("Verification mode changed: %s -> %s", self.mode, mode)
        self.mode = mode

    def tighten_mode(self) -> bool:
        """Move one step stricter. Returns False if already strict."""
        index = MODES.index(self.mode)
        if index == len(MODES) - 1:
            return False
        self.set_mode(MODES[index + 1])
        return True

    def loosen_mode(self) -> bool:
        """Move one step looser. Returns False if already dev."""
        index = MODES.index(self.mode)
        if index == 0:
            return False
        self.set_mode(MODES[index - 1])
        return True

    # --- Verification ---

    def enforce_verification(
        self,
        output: TaskOutput | dict,
        context: SprintContext | dict | None,
    ) -> VerificationRecord:
        """Verify an agent output against the sprint context"""
        if not isinstance(output, TaskOutput):
            output = TaskOutput.from_dict(output)
        if not isinstance(context, SprintContext):
            context = SprintContext.from_dict(context)

        logger.info("Enforcing verification (mode: %s)", self.mode)

        checks: dict[str, CheckResult] = {
            "sprint_alignment": self._run_check(
                "sprint_alignment", lambda: self.verify_sprint_alignment(output, context)
            ),
            "quality_standards": self._run_check(
                "quality_standards", lambda: self.verify_quality_standards(output)
            ),
            "cross_agent_consistency": self._run_check(
                "cross_agent_consistency", lambda: self.verify_cross_agent_consistency(output)
            ),
            "historical_compliance": self._run_check(
                "historical_compliance", lambda: self.verify_historical_compliance(output)
            ),
            "context_accuracy": self._run_check(
                "context_accuracy", lambda: self.verify_context_accuracy(output, context)
            ),
        }

        score = sum(check.score for check in checks.values()) / len(checks)
        threshold = self.threshold()
        record = VerificationRecord(
            id=f"verify_{uuid.uuid4().hex[:12]}",
            timestamp=datetime.now(),
            mode=self.mode,
            checks=checks,
            score=score,
            threshold=threshold,
            verified=score >= threshold,
            output=output,
        )

        if record.verified:
            logger.info("Verification passed (%.3f >= %.2f)", score, threshold)
            self.store_success_pattern(record)
        else:
            logger.info("Verification failed (%.3f < %.2f)", score, threshold)
            record.guidance = self.generate_improvement_guidance(record)
            self._record_rollback(record)

        self.verification_memory[record.id] = record
        self.persist()
        return record

    def _run_check(self, name: str, check: Callable[[], CheckResult]) -> CheckResult:
        """Run one check; an error degrades its score instead of propagating"""
        try:
            result = check()
        except Exception as e:
            logger.warning("Verification check %s failed: %s", name, e)
            return CheckResult(score=0.0, passed=False, details={"error": str(e)})
        result.score = min(1.0, max(0.0, result.score))
        return result

    def _passes(self, name: str, score: float) -> bool:
        return score > self.config.pass_marks[name]

    def verify_sprint_alignment(self, output: TaskOutput, context: SprintContext) -> CheckResult:
        """Keyword overlap between the output and the sprint goals"""
        output_keywords = extract_keywords(output.description)
        goal_keywords = [kw for goal in context.goals for kw in extract_keywords(goal)]
        score = keyword_alignment(output_keywords, goal_keywords)
        return CheckResult(
            score=score,
            passed=self._passes("sprint_alignment", score),
            details={
                "output_keywords": output_keywords[:10],
                "goal_keywords": goal_keywords[:10],
                "alignment_score": score,
            },
        )

    def verify_quality_standards(self, output: TaskOutput) -> CheckResult:
        """Structural completeness of the output"""
        description = output.description.strip()
        quality_checks = {
            "has_description": len(description) > self.config.min_description_length,
            "has_valid_type": output.type in self.config.valid_task_types,
            "has_complexity_estimate": (
                output.complexity is not None and 0.0 <= output.complexity <= 1.0
            ),
            "has_required_fields": bool(description) and output.type is not None,
        }
        score = sum(quality_checks.values()) / len(quality_checks)
        return CheckResult(
            score=score,
            passed=self._passes("quality_standards", score),
            details=quality_checks,
        )

    def recent_verified_outputs(self, now: datetime | None = None) -> list[TaskOutput]:
        """Verified outputs inside the consistency window"""
        now = now or datetime.now()
        window = timedelta(hours=self.config.consistency_window_hours)
        return [
            record.output
            for record in self.verification_memory.values()
            if record.verified and now - record.timestamp < window
        ]

    def verify_cross_agent_consistency(self, output: TaskOutput) -> CheckResult:
        """Compare against other recently verified outputs"""
        recent = self.recent_verified_outputs()
        if not recent:
            score = self.config.no_history_consistency_score
            return CheckResult(
                score=score,
                passed=True,
                details={"reason": "No recent outputs to compare"},
            )

        same_type = sum(1 for r in recent if r.type == output.type) / len(recent)

        avg_complexity = sum(r.complexity or 0.0 for r in recent) / len(recent)
        complexity_diff = abs((output.complexity or 0.0) - avg_complexity)
        complexity_score = max(0.0, 1.0 - complexity_diff * 2)

        output_keywords = extract_keywords(output.description)
        recent_keywords: list[str] = []
        for r in recent:
            for kw in extract_keywords(r.description):
                if kw not in recent_keywords:
                    recent_keywords.append(kw)
        similarity = keyword_alignment(output_keywords, recent_keywords)

        score = same_type * 0.3 + complexity_score * 0.4 + similarity * 0.3
        return CheckResult(
            score=score,
            passed=self._passes("cross_agent_consistency", score),
            details={
                "compared_outputs": len(recent),
                "type_consistency": same_type,
                "complexity_consistency": complexity_score,
                "description_similarity": similarity,
            },
        )

    def verify_historical_compliance(self, output: TaskOutput) -> CheckResult:
        """Compare against the success pattern of the output's type"""
        pattern = self.success_patterns.get(output.type or "general")
        if pattern is None:
            score = self.config.no_pattern_historical_score
            return CheckResult(
                score=score,
                passed=True,
                details={"reason": "No historical pattern available"},
            )

        in_range = (
            abs((output.complexity or 0.0) - pattern.avg_complexity)
            < self.config.complexity_tolerance
        )
        output_keywords = extract_keywords(output.description)
        matches = matching_keywords(output_keywords, pattern.top_keywords)
        keyword_score = len(matches) / max(len(pattern.top_keywords), 1)

        score = (0.4 if in_range else 0.0) + min(1.0, keyword_score) * 0.4 + 0.2
        return CheckResult(
            score=score,
            passed=self._passes("historical_compliance", score),
            details={
                "pattern_count": pattern.count,
                "avg_complexity": pattern.avg_complexity,
                "top_keywords": pattern.top_keywords,
                "complexity_in_range": in_range,
                "keyword_matches": matches,
            },
        )

    def verify_context_accuracy(self, output: TaskOutput, context: SprintContext) -> CheckResult:
        """Keyword overlap with each sprint-context element that is present"""
        output_keywords = extract_keywords(output.description)
        details: dict[str, float] = {}
        for element in CONTEXT_ELEMENTS:
            value = getattr(context, element)
            if not value:
                continue
            element_keywords = extract_keywords(flatten_text(value))
            details[element] = keyword_alignment(output_keywords, element_keywords)

        if details:
            score = sum(details.values()) / len(details)
        else:
            score = self.config.no_context_accuracy_score
        return CheckResult(
            score=score,
            passed=self._passes("context_accuracy", score),
            details=details,
        )

    # --- Outcome handling ---

    def generate_improvement_guidance(self, record: VerificationRecord) -> list[str]:
        """One remediation line per failed check"""
        guidance = []
        for name in CHECK_NAMES:
            check = record.checks.get(name)
            if check is None or check.passed:
                continue
            label, remedy, _ = REMEDIATION[name]
            guidance.append(f"{label} ({check.score * 100:.1f}%) - {remedy}")
        return guidance

    def recommended_actions(self, record: VerificationRecord) -> list[str]:
        """Concrete next steps for each failed check"""
        actions = []
        for name in record.failed_checks():
            actions.extend(REMEDIATION[name][2])
        return actions

    def _record_rollback(self, record: VerificationRecord) -> RollbackEntry:
        entry = RollbackEntry(
            verification_id=record.id,
            timestamp=record.timestamp,
            score=record.score,
            failed_checks=[
                {"name": name, "score": record.checks[name].score}
                for name in record.failed_checks()
            ],
            guidance=list(record.guidance),
        )
        for item in entry.guidance:
            logger.info("Improvement guidance: %s", item)

        self.rollback_history.append(entry)
        cap = self.config.rollback_history_cap
        if len(self.rollback_history) > cap:
            del self.rollback_history[: len(self.rollback_history) - cap]
        return entry

    def store_success_pattern(self, record: VerificationRecord) -> SuccessPattern:
        """Fold a verified output into the success pattern of its type"""
        task_type = record.output.type or "general"
        pattern = self.success_patterns.setdefault(task_type, SuccessPattern(task_type=task_type))
        pattern.count += 1
        pattern.examples.append(
            PatternExample(timestamp=record.timestamp, score=record.score, output=record.output)
        )
        cap = self.config.pattern_examples_cap
        if len(pattern.examples) > cap:
            pattern.examples = pattern.examples[-cap:]

        pattern.avg_complexity = sum(
            e.output.complexity or 0.0 for e in pattern.examples
        ) / len(pattern.examples)

        counts: Counter[str] = Counter()
        for example in pattern.examples:
            counts.update(extract_keywords(example.output.description))
        pattern.top_keywords = [
            kw for kw, _ in counts.most_common(self.config.pattern_top_keywords)
        ]
        return pattern

    # --- Stats and persistence ---

    def get_stats(self) -> dict:
        total = len(self.verification_memory)
        successful = sum(1 for r in self.verification_memory.values() if r.verified)
        return {
            "total_verifications": total,
            "successful_verifications": successful,
            "rollbacks": len(self.rollback_history),
            "success_rate": successful / total if total > 0 else 0.0,
            "patterns": len(self.success_patterns),
            "mode": self.mode,
        }

    def to_state(self) -> dict:
        return {
            "mode": self.mode,
            "verification_memory": [r.to_dict() for r in self.verification_memory.values()],
            "success_patterns": [p.to_dict() for p in self.success_patterns.values()],
            "rollback_history": [e.to_dict() for e in self.rollback_history],
        }

    def load_state(self, data: dict) -> None:
        """Restore memory from a persisted state document"""
        try:
            memory = [VerificationRecord.from_dict(r) for r in data.get("verification_memory", [])]
            patterns = [SuccessPattern.from_dict(p) for p in data.get("success_patterns", [])]
            rollbacks = [RollbackEntry.from_dict(e) for e in data.get("rollback_history", [])]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding malformed verification memory: %s", e)
            return

        for pattern in patterns:
            pattern.examples = pattern.examples[-self.config.pattern_examples_cap:]

        self.verification_memory = {r.id: r for r in memory}
        self.success_patterns = {p.task_type: p for p in patterns}
        self.rollback_history = rollbacks[-self.config.rollback_history_cap:]
        if data.get("mode") in MODES:
            self.mode = data["mode"]
        logger.info("Loaded verification memory: %d records", len(self.verification_memory))

    def load(self) -> None:
        if self.store is not None:
            self.load_state(self.store.load(EngineStore.VERIFICATION_FILE))

    def persist(self) -> None:
        if self.store is not None:
            self.store.save(EngineStore.VERIFICATION_FILE, self.to_state())
