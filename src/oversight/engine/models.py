"""Core data models for sprint accountability."""
import math
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

CHECK_NAMES = (
    "sprint_alignment",
    "quality_standards",
    "cross_agent_consistency",
    "historical_compliance",
    "context_accuracy",
)


def _snake(key: str) -> str:
    """Convert a camelCase key to snake_case"""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def _snake_keys(data: Any) -> dict:
    if not isinstance(data, dict):
        return {}
    return {_snake(str(k)): v for k, v in data.items()}


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    # NaN and infinities would poison pattern averages
    if not math.isfinite(value):
        return None
    return float(value)


def _as_dict(value: Any) -> dict:
    return dict(value) if isinstance(value, dict) else {}


def _as_str_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return []


@dataclass
class Solution:
    """A candidate solution scored by the critic-fixer cycle"""
    name: str = "Unnamed solution"
    description: str = ""
    technical_details: str = ""
    architecture: dict = field(default_factory=dict)
    testing: dict = field(default_factory=dict)
    complexity: float | None = None
    risks: list[dict] | None = None  # None: no risk assessment declared
    innovative: dict | None = None
    novel: dict | None = None
    error_handling: str | None = None
    resource_requirements: dict = field(default_factory=dict)
    timeline: dict = field(default_factory=dict)
    enhancements: dict[str, dict] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Solution":
        """Load from dict, accepting camelCase keys"""
        data = _snake_keys(data)
        risks = data.get("risks")
        return cls(
            name=str(data.get("name") or "Unnamed solution"),
            description=str(data.get("description") or ""),
            technical_details=str(data.get("technical_details") or ""),
            architecture=_as_dict(data.get("architecture")),
            testing=_as_dict(data.get("testing")),
            complexity=_as_float(data.get("complexity")),
            risks=[r for r in risks if isinstance(r, dict)] if isinstance(risks, list) else None,
            innovative=data.get("innovative") if isinstance(data.get("innovative"), dict) else None,
            novel=data.get("novel") if isinstance(data.get("novel"), dict) else None,
            error_handling=str(data["error_handling"]) if data.get("error_handling") else None,
            resource_requirements=_as_dict(data.get("resource_requirements")),
            timeline=_as_dict(data.get("timeline")),
            enhancements=_as_dict(data.get("enhancements")),
        )


@dataclass
class TaskOutput:
    """An agent's output submitted for verification"""
    description: str = ""
    type: str | None = None  # "implementation", "debugging", "analysis", ...
    complexity: float | None = None  # expected in [0, 1]
    solutions: list[Solution] = field(default_factory=list)
    documentation: bool = False
    collaboration: bool = False
    architecture: dict | None = None
    testing: dict | None = None
    id: str | None = None
    extra: dict = field(default_factory=dict)

    _FIELDS = (
        "description", "type", "complexity", "solutions", "documentation",
        "collaboration", "architecture", "testing", "id",
    )

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization"""
        return {
            "id": self.id,
            "description": self.description,
            "type": self.type,
            "complexity": self.complexity,
            "solutions": [s.to_dict() for s in self.solutions],
            "documentation": self.documentation,
            "collaboration": self.collaboration,
            "architecture": self.architecture,
            "testing": self.testing,
            "extra": self.extra,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TaskOutput":
        """Load from caller-supplied dict.

        Malformed fields fall back to empty values so that the verification
        layer scores them down instead of the caller seeing an exception.
        """
        data = data if isinstance(data, dict) else {}
        description = data.get("description")
        task_type = data.get("type")
        solutions = data.get("solutions")
        extra = _as_dict(data.get("extra"))
        extra.update({k: v for k, v in data.items() if k not in cls._FIELDS and k != "extra"})
        task_id = data.get("id")
        return cls(
            description=description if isinstance(description, str) else "",
            type=task_type if isinstance(task_type, str) and task_type else None,
            complexity=_as_float(data.get("complexity")),
            solutions=[
                s if isinstance(s, Solution) else Solution.from_dict(s)
                for s in (solutions if isinstance(solutions, list) else [])
                if isinstance(s, (Solution, dict))
            ],
            documentation=bool(data.get("documentation")),
            collaboration=bool(data.get("collaboration")),
            architecture=data.get("architecture") if isinstance(data.get("architecture"), dict) else None,
            testing=data.get("testing") if isinstance(data.get("testing"), dict) else None,
            id=str(task_id) if task_id is not None else None,
            extra=extra,
        )


@dataclass
class SprintContext:
    """Sprint goals, constraints and quality standards supplied by the caller"""
    goals: list[str] = field(default_factory=list)
    constraints: dict[str, Any] = field(default_factory=dict)
    quality_standards: dict[str, Any] = field(default_factory=dict)
    allow_innovation: bool = True
    requirements: list[str] = field(default_factory=list)
    acceptance_criteria: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict | None) -> "SprintContext":
        """Load from dict, accepting camelCase keys"""
        data = _snake_keys(data)
        allow = data.get("allow_innovation")
        return cls(
            goals=_as_str_list(data.get("goals")),
            constraints=_snake_keys(data.get("constraints")),
            quality_standards=_snake_keys(data.get("quality_standards")),
            allow_innovation=True if allow is None else bool(allow),
            requirements=_as_str_list(data.get("requirements")),
            acceptance_criteria=_as_str_list(data.get("acceptance_criteria")),
        )


@dataclass
class CheckResult:
    """Outcome of a single verification check"""
    score: float
    passed: bool
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "CheckResult":
        return cls(score=data["score"], passed=data["passed"], details=data.get("details", {}))


@dataclass
class VerificationRecord:
    """Result of one verification call"""
    id: str
    timestamp: datetime
    mode: str
    checks: dict[str, CheckResult]
    score: float  # mean of the check scores
    threshold: float
    verified: bool
    output: TaskOutput
    guidance: list[str] = field(default_factory=list)

    def failed_checks(self) -> list[str]:
        """Names of the checks that did not pass"""
        return [name for name, check in self.checks.items() if not check.passed]

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization"""
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "mode": self.mode,
            "checks": {name: check.to_dict() for name, check in self.checks.items()},
            "score": self.score,
            "threshold": self.threshold,
            "verified": self.verified,
            "output": self.output.to_dict(),
            "guidance": self.guidance,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "VerificationRecord":
        """Load from dict"""
        return cls(
            id=data["id"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            mode=data["mode"],
            checks={name: CheckResult.from_dict(c) for name, c in data["checks"].items()},
            score=data["score"],
            threshold=data["threshold"],
            verified=data["verified"],
            output=TaskOutput.from_dict(data["output"]),
            guidance=data.get("guidance", []),
        )


@dataclass
class PatternExample:
    """A verified output retained as an example of its task type"""
    timestamp: datetime
    score: float
    output: TaskOutput

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "score": self.score,
            "output": self.output.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PatternExample":
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            score=data["score"],
            output=TaskOutput.from_dict(data["output"]),
        )


@dataclass
class SuccessPattern:
    """Aggregate of verified outputs for one task type"""
    task_type: str
    count: int = 0
    examples: list[PatternExample] = field(default_factory=list)
    avg_complexity: float = 0.0
    top_keywords: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "task_type": self.task_type,
            "count": self.count,
            "examples": [e.to_dict() for e in self.examples],
            "avg_complexity": self.avg_complexity,
            "top_keywords": self.top_keywords,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SuccessPattern":
        return cls(
            task_type=data["task_type"],
            count=data.get("count", 0),
            examples=[PatternExample.from_dict(e) for e in data.get("examples", [])],
            avg_complexity=data.get("avg_complexity", 0.0),
            top_keywords=data.get("top_keywords", []),
        )


@dataclass
class RollbackEntry:
    """A failed verification together with the guidance produced for it"""
    verification_id: str
    timestamp: datetime
    score: float
    failed_checks: list[dict[str, Any]]
    guidance: list[str]
    requires_reexecution: bool = True

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "RollbackEntry":
        data = dict(data)
        data["timestamp"] = datetime.fromisoformat(data["timestamp"])
        return cls(**data)


@dataclass
class TaskResult:
    """Outcome of a task as seen by the rating system"""
    completed: bool
    quality: float = 0.0
    on_time: bool = False
    complexity: float = 0.5
    innovative: bool = False
    documentation: bool = False
    helped_others: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SprintCompliance:
    """Weighted adherence to sprint goals, constraints and quality standards"""
    overall_compliance: float
    factors: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PerformanceRecord:
    """One rating update in an agent's history"""
    timestamp: datetime
    previous_rating: float
    new_rating: float
    delta: float
    task_result: dict
    sprint_compliance: dict
    expected_score: float
    actual_score: float

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "PerformanceRecord":
        data = dict(data)
        data["timestamp"] = datetime.fromisoformat(data["timestamp"])
        return cls(**data)


@dataclass
class RatingUpdate:
    """Result of applying one task outcome to an agent's rating"""
    agent_id: str
    previous_rating: float
    new_rating: float
    delta: float
    performance_class: str
    expected_score: float
    actual_score: float

    @property
    def improvement(self) -> bool:
        return self.delta > 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["improvement"] = self.improvement
        return data


@dataclass
class LearningRecord:
    """Per-agent continuous learning sample"""
    timestamp: datetime
    task_type: str | None
    complexity: float | None
    verification_score: float
    sprint_compliance: float
    successful: bool
    enhanced: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "LearningRecord":
        data = dict(data)
        data["timestamp"] = datetime.fromisoformat(data["timestamp"])
        return cls(**data)
