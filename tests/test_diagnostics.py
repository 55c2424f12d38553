"""
Tests for station 6: diagnostics and treatment.
"""

import asyncio

from src.dramaanalyst.models import Character, Conflict, StageStatus
from src.dramaanalyst.network import ConflictNetwork
from src.dramaanalyst.stages.diagnostics import (
    CRITICAL,
    SUGGESTION,
    WARNING,
    DiagnosticIssue,
    DiagnosticsStage,
    NetworkDiagnostics,
    Station6Input,
    build_report,
    build_treatment_plan,
)
from src.dramaanalyst.stages.dynamic_analysis import DynamicAnalysisStage
from src.dramaanalyst.stages.efficiency_metrics import EfficiencyAnalyzer, EfficiencyMetricsStage, Station4Output


def issue(bucket, severity=5, issue_id="issue_1"):
    return DiagnosticIssue(
        id=issue_id,
        bucket=bucket,
        category="test",
        description="d",
        severity=severity,
        suggested_fix=f"fix {issue_id}",
    )


def run_station6(client, station3_output, station4_output, station5_output, text):
    stage_input = Station6Input(
        station3_output=station3_output,
        station4_output=station4_output,
        station5_output=station5_output,
        full_text=text,
    )
    return asyncio.run(DiagnosticsStage(client).execute(stage_input))


class TestRules:
    """Test rule-based diagnostics."""

    def test_empty_network(self, model_client):
        """Test the issues raised for an empty network."""
        station4 = EfficiencyMetricsStage(model_client).get_error_fallback()
        station5 = DynamicAnalysisStage(model_client).get_error_fallback()
        issues = NetworkDiagnostics().run(ConflictNetwork(), station4, station5)

        assert [(i.bucket, i.category) for i in issues] == [
            (CRITICAL, "characters"),
            (SUGGESTION, "symbolism"),
        ]

    def test_isolated_and_single_character_conflict(self, model_client, station5_output):
        """Test isolation, single-participant and weak conflict rules."""
        network = ConflictNetwork()
        for cid in ("a", "b", "c"):
            network.add_character(Character(id=cid, name=cid.upper()))
        network.add_conflict(Conflict(id="c1", name="Pride", involved_characters=["a"], strength=2))
        station4 = Station4Output(efficiency_metrics=EfficiencyAnalyzer().calculate(network))

        issues = NetworkDiagnostics().run(network, station4, station5_output)
        categories = {(i.bucket, i.category) for i in issues}

        assert (CRITICAL, "relationships") in categories
        assert (WARNING, "isolation") in categories
        assert (WARNING, "balance") in categories
        assert (WARNING, "density") in categories
        isolation = next(i for i in issues if i.category == "isolation")
        assert isolation.affected_elements == ["b", "c"]
        conflict_issues = [i for i in issues if i.category == "conflicts"]
        assert len(conflict_issues) == 2

    def test_issue_ids_are_sequential(self, model_client):
        """Test that rule issues are numbered in order."""
        station4 = EfficiencyMetricsStage(model_client).get_error_fallback()
        station5 = DynamicAnalysisStage(model_client).get_error_fallback()
        issues = NetworkDiagnostics().run(ConflictNetwork(), station4, station5)
        assert [i.id for i in issues] == ["issue_1", "issue_2"]


class TestReportAndPlan:
    """Test report and treatment plan assembly."""

    def test_health_score(self):
        """Test bucket penalties."""
        report = build_report([issue(CRITICAL), issue(WARNING), issue(SUGGESTION)])
        assert report.overall_health_score == 100 - 15 - 7 - 2
        assert report.total_issues_found == 3
        assert len(report.critical_issues) == 1

    def test_health_score_floor(self):
        """Test that the health score never drops below zero."""
        report = build_report([issue(CRITICAL, issue_id=f"issue_{n}") for n in range(8)])
        assert report.overall_health_score == 0.0

    def test_plan_ordering(self):
        """Test that critical issues come first, then higher severity."""
        issues = [
            issue(SUGGESTION, 9, "issue_1"),
            issue(WARNING, 4, "issue_2"),
            issue(CRITICAL, 6, "issue_3"),
            issue(WARNING, 8, "issue_4"),
        ]
        plan = build_treatment_plan(issues, build_report(issues).overall_health_score)
        assert [step.issue_id for step in plan.prioritized_recommendations] == [
            "issue_3", "issue_4", "issue_2", "issue_1",
        ]
        assert [step.priority for step in plan.prioritized_recommendations] == [1, 2, 3, 4]
        assert plan.implementation_complexity == "medium"
        assert plan.estimated_improvement == 15 + 7 + 7 + 2

    def test_plan_complexity(self):
        """Test complexity levels."""
        assert build_treatment_plan([], 100).implementation_complexity == "low"
        two_critical = [issue(CRITICAL, issue_id="issue_1"), issue(CRITICAL, issue_id="issue_2")]
        assert build_treatment_plan(two_critical, 70).implementation_complexity == "high"


class TestDiagnosticsStage:
    """Test the diagnostics station."""

    def test_model_issues_added(self, model_client, station3_output, station4_output,
                                station5_output, sample_drama_text):
        """Test that model-reported issues join the rule issues."""
        result = run_station6(model_client, station3_output, station4_output, station5_output, sample_drama_text)
        report = result.output.diagnostics_report

        assert result.status == StageStatus.SUCCESS
        assert report.critical_issues == []
        assert [i.description for i in report.warnings] == ["الأب غائب"]
        assert [i.description for i in report.suggestions] == ["البداية بطيئة"]
        assert all(i.source == "model" for i in report.warnings + report.suggestions)
        assert report.overall_health_score == 91.0
        assert result.output.treatment_plan.prioritized_recommendations[0].action == "أدخل الأب"

    def test_unstructured_model_answer(self, client_factory, station3_output, station4_output,
                                       station5_output, sample_drama_text):
        """Test that a prose answer keeps only the rule issues."""
        client, _ = client_factory([("Diagnose dramaturgical", "Looks fine to me.")])
        result = run_station6(client, station3_output, station4_output, station5_output, sample_drama_text)
        assert result.status == StageStatus.PARTIAL
        assert result.output.diagnostics_report.total_issues_found == 0
        assert result.output.diagnostics_report.overall_health_score == 100.0
