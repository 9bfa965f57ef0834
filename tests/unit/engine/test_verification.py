"""Tests for the verification layer"""
import json
import math
from datetime import datetime, timedelta

import pytest

from oversight.config.schema import VerificationConfig
from oversight.engine.models import CHECK_NAMES, CheckResult, SprintContext, TaskOutput
from oversight.engine.store import EngineStore
from oversight.engine.verification import MODES, VerificationLayer


def _output(**overrides):
    data = {
        "description": "Implement secure auth with JWT",
        "type": "implementation",
        "complexity": 0.7,
    }
    data.update(overrides)
    return TaskOutput.from_dict(data)


def test_thresholds_are_ordered():
    layer = VerificationLayer()
    assert layer.threshold("strict") > layer.threshold("moderate") > layer.threshold("dev")


def test_unknown_mode_rejected():
    with pytest.raises(ValueError):
        VerificationLayer(mode="lenient")


def test_scenario_aligned_output_passes():
    """A well-formed output aligned with the sprint goal passes in moderate mode"""
    layer = VerificationLayer(mode="moderate")
    context = SprintContext(goals=["Implement secure user authentication"])

    record = layer.enforce_verification(_output(), context)

    assert record.checks["sprint_alignment"].score > 0.6
    assert record.checks["sprint_alignment"].passed
    assert record.checks["quality_standards"].score == 1.0
    assert record.checks["cross_agent_consistency"].score == 1.0
    assert record.checks["historical_compliance"].score == 0.8
    assert record.verified is True
    assert record.guidance == []


def test_scenario_malformed_output_fails_with_guidance():
    """Empty description and out-of-range complexity block verification"""
    layer = VerificationLayer(mode="moderate")
    context = SprintContext(goals=["Implement secure user authentication"])

    record = layer.enforce_verification(_output(description="", complexity=1.5), context)

    assert not record.checks["quality_standards"].passed
    assert record.score < 0.7
    assert record.verified is False
    assert record.guidance
    assert any("quality standards" in line for line in record.guidance)
    assert len(layer.rollback_history) == 1


def test_verified_iff_score_meets_threshold():
    for mode in MODES:
        layer = VerificationLayer(mode=mode)
        for description in ["", "Implement secure auth with JWT", "Write docs for the billing api"]:
            record = layer.enforce_verification(
                _output(description=description), {"goals": ["Implement secure user authentication"]}
            )
            assert record.verified == (record.score >= layer.threshold(mode))
            assert 0.0 <= record.score <= 1.0
            assert all(0.0 <= c.score <= 1.0 for c in record.checks.values())


def test_overall_score_is_mean_of_checks():
    layer = VerificationLayer()
    record = layer.enforce_verification(_output(), {"goals": ["Implement secure user authentication"]})

    expected = sum(record.checks[name].score for name in CHECK_NAMES) / 5
    assert record.score == pytest.approx(expected)


def test_quality_standards_details():
    layer = VerificationLayer()

    result = layer.verify_quality_standards(_output(type="poetry", complexity=None))

    assert result.details["has_description"] is True
    assert result.details["has_valid_type"] is False
    assert result.details["has_complexity_estimate"] is False
    assert result.score == 0.5
    assert result.passed is False


def test_sprint_alignment_without_goals_is_neutral():
    layer = VerificationLayer()
    result = layer.verify_sprint_alignment(_output(), SprintContext())
    assert result.score == 0.5
    assert result.passed is False


def test_context_accuracy_averages_present_elements():
    layer = VerificationLayer()
    context = SprintContext(
        goals=["Implement secure user authentication"],
        acceptance_criteria=["Billing invoices exported nightly"],
    )

    result = layer.verify_context_accuracy(_output(), context)

    assert set(result.details) == {"goals", "acceptance_criteria"}
    assert result.score == pytest.approx((0.75 + 0.0) / 2)


def test_context_accuracy_without_context_uses_default():
    layer = VerificationLayer()
    result = layer.verify_context_accuracy(_output(), SprintContext())
    assert result.score == 0.5


def test_cross_agent_consistency_compares_recent_outputs():
    layer = VerificationLayer(mode="dev")
    context = {"goals": ["Implement secure user authentication"]}
    layer.enforce_verification(_output(), context)

    result = layer.verify_cross_agent_consistency(_output())

    assert result.details["compared_outputs"] == 1
    assert result.score == pytest.approx(1.0)


def test_cross_agent_consistency_ignores_stale_outputs():
    layer = VerificationLayer(mode="dev")
    record = layer.enforce_verification(_output(), {"goals": ["Implement secure user authentication"]})
    record.timestamp = datetime.now() - timedelta(hours=25)

    result = layer.verify_cross_agent_consistency(_output(type="analysis"))

    assert result.score == 1.0
    assert result.details["reason"] == "No recent outputs to compare"


def test_success_pattern_upserted_on_pass():
    layer = VerificationLayer(mode="dev")
    context = {"goals": ["Implement secure user authentication"]}

    layer.enforce_verification(_output(), context)
    layer.enforce_verification(_output(complexity=0.5), context)

    pattern = layer.success_patterns["implementation"]
    assert pattern.count == 2
    assert pattern.avg_complexity == pytest.approx(0.6)
    assert pattern.top_keywords[:3] == ["implement", "secure", "auth"]


def test_success_pattern_examples_capped():
    layer = VerificationLayer(mode="dev")
    context = {"goals": ["Implement secure user authentication"]}

    for _ in range(25):
        layer.enforce_verification(_output(), context)

    pattern = layer.success_patterns["implementation"]
    assert pattern.count == 25
    assert len(pattern.examples) == 10
    assert len(pattern.top_keywords) <= 5


def test_nan_complexity_does_not_poison_patterns():
    layer = VerificationLayer(mode="dev")
    context = {"goals": ["Implement secure user authentication"]}

    first = layer.enforce_verification(_output(complexity=float("nan")), context)

    assert first.output.complexity is None
    assert first.checks["quality_standards"].details["has_complexity_estimate"] is False
    assert first.verified is True
    assert math.isfinite(layer.success_patterns["implementation"].avg_complexity)

    second = layer.enforce_verification(_output(complexity=0.0), context)
    assert second.checks["cross_agent_consistency"].details["complexity_consistency"] == 1.0


def test_failures_do_not_create_patterns():
    layer = VerificationLayer(mode="strict")
    layer.enforce_verification(_output(description="", complexity=2.0), {})
    assert layer.success_patterns == {}


def test_historical_compliance_against_pattern():
    layer = VerificationLayer(mode="dev")
    layer.enforce_verification(_output(), {"goals": ["Implement secure user authentication"]})

    matching = layer.verify_historical_compliance(_output())
    distant = layer.verify_historical_compliance(
        _output(description="Refresh marketing copy", complexity=0.1)
    )

    assert matching.score == pytest.approx(1.0)
    assert distant.score == pytest.approx(0.2)
    assert distant.passed is False


def test_rollback_history_capped():
    layer = VerificationLayer(mode="strict")
    for _ in range(60):
        layer.enforce_verification(_output(description="", complexity=2.0), {})

    assert len(layer.rollback_history) == 50
    assert layer.get_stats()["rollbacks"] == 50


def test_failing_check_degrades_instead_of_raising(monkeypatch):
    layer = VerificationLayer(mode="dev")

    def broken(output):
        raise RuntimeError("pattern store unavailable")

    monkeypatch.setattr(layer, "verify_historical_compliance", broken)
    record = layer.enforce_verification(_output(), {"goals": ["Implement secure user authentication"]})

    check = record.checks["historical_compliance"]
    assert check.score == 0.0
    assert check.passed is False
    assert "pattern store unavailable" in check.details["error"]
    assert set(record.checks) == set(CHECK_NAMES)


def test_guidance_one_line_per_failed_check():
    layer = VerificationLayer()
    record = layer.enforce_verification(_output(description="", complexity=2.0), {"goals": ["Ship billing"]})

    assert len(record.guidance) == len(record.failed_checks())
    assert len(layer.recommended_actions(record)) == 2 * len(record.failed_checks())


def test_mode_stepping_is_idempotent_at_extremes():
    layer = VerificationLayer(mode="dev")
    assert layer.tighten_mode() is True
    assert layer.mode == "moderate"
    assert layer.tighten_mode() is True
    assert layer.tighten_mode() is False
    assert layer.mode == "strict"

    assert layer.loosen_mode() is True
    assert layer.loosen_mode() is True
    assert layer.loosen_mode() is False
    assert layer.mode == "dev"


def test_get_stats_idempotent():
    layer = VerificationLayer()
    layer.enforce_verification(_output(), {"goals": ["Implement secure user authentication"]})
    layer.enforce_verification(_output(description=""), {})

    first = layer.get_stats()
    second = layer.get_stats()

    assert first == second
    assert first["total_verifications"] == 2
    assert first["successful_verifications"] == 1
    assert first["success_rate"] == 0.5


def test_memory_round_trips_through_store(tmp_path):
    store = EngineStore(tmp_path)
    layer = VerificationLayer(VerificationConfig(), store=store, mode="moderate")
    layer.enforce_verification(_output(), {"goals": ["Implement secure user authentication"]})
    layer.enforce_verification(_output(description=""), {})
    assert layer.rollback_history

    restored = VerificationLayer(VerificationConfig(), store=store, mode="strict")
    restored.load()

    assert restored.get_stats() == layer.get_stats()
    assert restored.success_patterns["implementation"].top_keywords == (
        layer.success_patterns["implementation"].top_keywords
    )
    assert restored.rollback_history[0].guidance == layer.rollback_history[0].guidance


def test_loaded_pattern_examples_capped():
    layer = VerificationLayer(mode="dev")
    for _ in range(3):
        layer.enforce_verification(_output(), {"goals": ["Implement secure user authentication"]})
    state = layer.to_state()
    pattern = state["success_patterns"][0]
    pattern["examples"] = pattern["examples"] * 8

    restored = VerificationLayer()
    restored.load_state(state)

    assert len(restored.success_patterns["implementation"].examples) == 10


def test_malformed_memory_starts_fresh(tmp_path):
    store = EngineStore(tmp_path)
    (tmp_path / EngineStore.VERIFICATION_FILE).write_text(
        json.dumps({"verification_memory": [{"id": "broken"}]})
    )

    layer = VerificationLayer(store=store)
    layer.load()

    assert layer.verification_memory == {}


def test_check_result_serialization():
    check = CheckResult(score=0.4, passed=False, details={"reason": "x"})
    assert CheckResult.from_dict(check.to_dict()) == check
