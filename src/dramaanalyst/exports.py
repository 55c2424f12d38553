"""
Export functions for analysis results.

Writes one plain-text report per station, an aggregate full report and an
index file listing them, all UTF-8, to a configurable output directory.
"""

import logging
from pathlib import Path
from typing import Callable, Dict, List, Tuple

from .stages.conceptual_analysis import Station2Output
from .stages.diagnostics import DiagnosticIssue, Station6Output
from .stages.dynamic_analysis import Station5Output
from .stages.efficiency_metrics import Station4Output
from .stages.finalization import Station7Output
from .stages.network_builder import Station3Output
from .stages.text_analysis import Station1Output
from .utils.storage import save_text

logger = logging.getLogger(__name__)

FULL_REPORT_FILENAME = "full-report.txt"
INDEX_FILENAME = "index.txt"

STATION_FILES = {
    "station1": "station1-text-analysis.txt",
    "station2": "station2-conceptual-analysis.txt",
    "station3": "station3-network-builder.txt",
    "station4": "station4-efficiency-metrics.txt",
    "station5": "station5-dynamic-symbolic-stylistic.txt",
    "station6": "station6-diagnostics-treatment.txt",
    "station7": "station7-finalization.txt",
}

TITLES = {
    "ar": {
        "station1": "المحطة 1: التحليل النصي",
        "station2": "المحطة 2: التحليل المفاهيمي",
        "station3": "المحطة 3: بناء شبكة الصراع",
        "station4": "المحطة 4: مقاييس الكفاءة",
        "station5": "المحطة 5: التحليل الديناميكي والرمزي والأسلوبي",
        "station6": "المحطة 6: التشخيص والعلاج",
        "station7": "المحطة 7: التقرير النهائي",
        "full": "التقرير الكامل",
        "index": "فهرس الملفات",
        "status": "الحالة",
    },
    "en": {
        "station1": "Station 1: Text Analysis",
        "station2": "Station 2: Conceptual Analysis",
        "station3": "Station 3: Conflict Network",
        "station4": "Station 4: Efficiency Metrics",
        "station5": "Station 5: Dynamic, Symbolic and Stylistic Analysis",
        "station6": "Station 6: Diagnostics and Treatment",
        "station7": "Station 7: Final Report",
        "full": "Full Report",
        "index": "File Index",
        "status": "Status",
    },
}


LABELS = {
    "ar": {
        "major_characters": "الشخصيات الرئيسية",
        "personality": "السمات الشخصية",
        "motivations": "الدوافع والأهداف",
        "relationships": "العلاقات",
        "narrative_function": "الوظيفة السردية",
        "potential_arc": "القوس المحتمل",
        "narrative_style": "الأسلوب السردي",
        "tone": "النبرة",
        "pacing": "الإيقاع",
        "language_style": "اللغة",
        "story_statement": "بيان القصة",
        "elevator_pitch": "العرض المختصر",
        "hybrid_genre": "النوع الهجين",
        "events_axis": "محور الأحداث",
        "meaning_axis": "محور المعنى",
        "temporal_axis": "المحور الزمني",
        "genre_contributions": "مساهمات الأنواع",
        "tone_stages": "مراحل النبرة",
        "cinematic_strategy": "الاستراتيجية السينمائية",
        "network_counts": "الشخصيات: {characters}، العلاقات: {relationships}، "
                          "الصراعات: {conflicts}، اللقطات: {snapshots}",
        "strength": "القوة {strength}",
        "overall_efficiency": "الكفاءة الإجمالية",
        "conflict_cohesion": "تماسك الصراع",
        "dramatic_balance": "التوازن الدرامي",
        "gini": "معامل جيني {gini}",
        "narrative_density": "الكثافة السردية",
        "redundancy_ratio": "نسبة التكرار",
        "priority_actions": "الإجراءات ذات الأولوية",
        "quick_fixes": "إصلاحات سريعة",
        "structural_revisions": "مراجعات هيكلية",
        "timeline_events": "أحداث الخط الزمني",
        "growth_rate": "معدل النمو",
        "structural_stability": "الاستقرار البنيوي",
        "critical_transitions": "نقاط التحول الحرجة",
        "episodes": "الحلقات: {episodes} × {seasons} موسم، {minutes} دقيقة",
        "key_symbols": "الرموز الرئيسية",
        "interpretation": "التفسير",
        "health_score": "درجة السلامة",
        "critical_issues": "مشكلات حرجة",
        "warnings": "تحذيرات",
        "suggestions": "اقتراحات",
        "implementation_complexity": "تعقيد التنفيذ",
    },
    "en": {
        "major_characters": "Major characters",
        "personality": "Personality",
        "motivations": "Motivations",
        "relationships": "Relationships",
        "narrative_function": "Narrative function",
        "potential_arc": "Potential arc",
        "narrative_style": "Narrative style",
        "tone": "Tone",
        "pacing": "Pacing",
        "language_style": "Language",
        "story_statement": "Story statement",
        "elevator_pitch": "Elevator pitch",
        "hybrid_genre": "Hybrid genre",
        "events_axis": "Events axis",
        "meaning_axis": "Meaning axis",
        "temporal_axis": "Temporal axis",
        "genre_contributions": "Genre contributions",
        "tone_stages": "Tone stages",
        "cinematic_strategy": "Cinematic strategy",
        "network_counts": "Characters: {characters}, relationships: {relationships}, "
                          "conflicts: {conflicts}, snapshots: {snapshots}",
        "strength": "strength {strength}",
        "overall_efficiency": "Overall efficiency",
        "conflict_cohesion": "Conflict cohesion",
        "dramatic_balance": "Dramatic balance",
        "gini": "Gini {gini}",
        "narrative_density": "Narrative density",
        "redundancy_ratio": "Redundancy ratio",
        "priority_actions": "Priority actions",
        "quick_fixes": "Quick fixes",
        "structural_revisions": "Structural revisions",
        "timeline_events": "Timeline events",
        "growth_rate": "Growth rate",
        "structural_stability": "Structural stability",
        "critical_transitions": "Critical transitions",
        "episodes": "Episodes: {episodes} x {seasons} season(s), {minutes} minutes",
        "key_symbols": "Key symbols",
        "interpretation": "Interpretation",
        "health_score": "Health score",
        "critical_issues": "Critical issues",
        "warnings": "Warnings",
        "suggestions": "Suggestions",
        "implementation_complexity": "Implementation complexity",
    },
}

SEPARATOR = "=" * 60


def _lines(*parts: str) -> str:
    return "\n".join(part for part in parts if part is not None)


def _labels(language: str) -> Dict[str, str]:
    return LABELS.get(language, LABELS["en"])


def format_station1(output: Station1Output, language: str = "en") -> str:
    labels = _labels(language)
    sections = [f"{labels['major_characters']}: " + ", ".join(output.major_characters)]
    for name, analysis in output.character_analysis.items():
        sections.append(_lines(
            f"\n{name}",
            f"  {labels['personality']}: {analysis.personality_traits}",
            f"  {labels['motivations']}: {analysis.motivations_goals}",
            f"  {labels['relationships']}: {analysis.key_relationships_brief}",
            f"  {labels['narrative_function']}: {analysis.narrative_function}",
            f"  {labels['potential_arc']}: {analysis.potential_arc}",
        ))
    style = output.narrative_style_analysis
    sections.append(_lines(
        f"\n{labels['narrative_style']}",
        f"  {labels['tone']}: {style.overall_tone}",
        f"  {labels['pacing']}: {style.pacing_analysis}",
        f"  {labels['language_style']}: {style.language_style}",
    ))
    if output.relationship_analysis.summary:
        sections.append(f"\n{labels['relationships']}: {output.relationship_analysis.summary}")
    return "\n".join(sections)


def format_station2(output: Station2Output, language: str = "en") -> str:
    labels = _labels(language)
    temporal = output.three_d_map.temporal_development_axis
    return _lines(
        f"{labels['story_statement']}: {output.story_statement}",
        f"{labels['elevator_pitch']}: {output.elevator_pitch}",
        f"{labels['hybrid_genre']}: {output.hybrid_genre}",
        f"{labels['events_axis']}: " + "; ".join(e.event for e in output.three_d_map.horizontal_events_axis),
        f"{labels['meaning_axis']}: " + "; ".join(
            f"{m.event_reference}: {m.symbolic_layer}" for m in output.three_d_map.vertical_meaning_axis
        ),
        f"{labels['temporal_axis']}: {temporal.past_influence} / {temporal.present_choices} / "
        f"{temporal.future_expectations}",
        f"{labels['genre_contributions']}: " + ", ".join(output.genre_contribution_matrix),
        f"{labels['tone_stages']}: " + ", ".join(output.dynamic_tone),
        f"{labels['cinematic_strategy']}: {output.artistic_references.cinematic_strategy}",
    )


def format_station3(output: Station3Output, language: str = "en") -> str:
    labels = _labels(language)
    network = output.conflict_network
    summary = output.network_summary
    lines = [
        labels["network_counts"].format(
            characters=summary.characters_count,
            relationships=summary.relationships_count,
            conflicts=summary.conflicts_count,
            snapshots=summary.snapshots_count,
        ),
    ]
    for character in network.characters.values():
        lines.append(f"  [{character.id}] {character.name}")
    for rel in network.relationships.values():
        strength = labels["strength"].format(strength=rel.strength)
        lines.append(
            f"  {rel.source} -> {rel.target}: {rel.type.value}/{rel.nature.value} "
            f"({strength}) {rel.description}"
        )
    for conflict in network.conflicts.values():
        strength = labels["strength"].format(strength=conflict.strength)
        lines.append(
            f"  {conflict.name}: {conflict.subject.value}, {conflict.scope.value}, "
            f"{conflict.phase.value} ({strength})"
        )
    return "\n".join(lines)


def format_station4(output: Station4Output, language: str = "en") -> str:
    labels = _labels(language)
    metrics = output.efficiency_metrics
    recs = output.recommendations
    gini = labels["gini"].format(gini=metrics.dramatic_balance.gini_coefficient)
    return _lines(
        f"{labels['overall_efficiency']}: {metrics.overall_efficiency_score} ({metrics.overall_rating})",
        f"{labels['conflict_cohesion']}: {metrics.conflict_cohesion}",
        f"{labels['dramatic_balance']}: {metrics.dramatic_balance.balance_score} ({gini})",
        f"{labels['narrative_density']}: {metrics.narrative_density}",
        f"{labels['redundancy_ratio']}: {metrics.redundancy_metrics.redundancy_ratio}",
        f"{labels['priority_actions']}: " + "; ".join(recs.priority_actions),
        f"{labels['quick_fixes']}: " + "; ".join(recs.quick_fixes),
        f"{labels['structural_revisions']}: " + "; ".join(recs.structural_revisions),
    )


def format_station5(output: Station5Output, language: str = "en") -> str:
    labels = _labels(language)
    dynamic = output.dynamic_analysis_results
    episodes = output.episodic_integration_results
    return _lines(
        f"{labels['timeline_events']}: {len(dynamic.event_timeline)}",
        f"{labels['growth_rate']}: {dynamic.network_evolution_analysis.growth_rate}",
        f"{labels['structural_stability']}: {dynamic.stability_metrics.structural_stability}",
        f"{labels['critical_transitions']}: "
        + "; ".join(dynamic.network_evolution_analysis.critical_transition_points),
        labels["episodes"].format(
            episodes=episodes.episodes_per_season,
            seasons=episodes.seasons,
            minutes=episodes.total_runtime_minutes,
        ),
        f"{labels['key_symbols']}: " + ", ".join(output.symbolic_analysis_results.key_symbols),
        f"{labels['interpretation']}: {output.symbolic_analysis_results.interpretation}",
        f"{labels['tone']}: {output.stylistic_analysis_results.tone_assessment}",
        f"{labels['pacing']}: {output.stylistic_analysis_results.pacing_assessment}",
    )


def _issue_lines(label: str, issues: List[DiagnosticIssue]) -> List[str]:
    lines = [f"{label} ({len(issues)})"]
    for issue in issues:
        lines.append(f"  [{issue.severity}] {issue.description} -> {issue.suggested_fix}")
    return lines


def format_station6(output: Station6Output, language: str = "en") -> str:
    labels = _labels(language)
    report = output.diagnostics_report
    lines = [f"{labels['health_score']}: {report.overall_health_score}"]
    lines += _issue_lines(labels["critical_issues"], report.critical_issues)
    lines += _issue_lines(labels["warnings"], report.warnings)
    lines += _issue_lines(labels["suggestions"], report.suggestions)
    lines.append(f"{labels['implementation_complexity']}: {output.treatment_plan.implementation_complexity}")
    for step in output.treatment_plan.prioritized_recommendations:
        lines.append(f"  {step.priority}. {step.action}")
    return "\n".join(lines)


def format_station7(output: Station7Output, language: str = "en") -> str:
    return output.final_report_text


FORMATTERS: Dict[str, Callable] = {
    "station1": format_station1,
    "station2": format_station2,
    "station3": format_station3,
    "station4": format_station4,
    "station5": format_station5,
    "station6": format_station6,
    "station7": format_station7,
}


class AnalysisExporter:
    """Writes the text artifacts of a pipeline run."""

    def __init__(self, output_dir: str):
        self.output_dir = Path(output_dir)

    def export(self, result, language: str = "ar") -> List[Path]:
        """
        Write per-station reports, the full report and the index.

        Args:
            result: PipelineRunResult
            language: Label language ('ar' or 'en')

        Returns:
            Paths of all written files, index last
        """
        titles = TITLES.get(language, TITLES["en"])
        statuses = result.station_statuses
        written: List[Path] = []
        sections: List[Tuple[str, str]] = []

        for key, filename in STATION_FILES.items():
            output = getattr(result.station_outputs, key)
            body = FORMATTERS[key](output, language)
            header = _lines(
                titles[key],
                f"{titles['status']}: {statuses.get(key, output.metadata.status.value)}",
                SEPARATOR,
            )
            text = f"{header}\n{body}\n"
            written.append(save_text(self.output_dir, filename, text))
            sections.append((titles[key], body))

        full = [titles["full"], SEPARATOR]
        for title, body in sections:
            full += ["", title, "-" * len(title), body]
        written.append(save_text(self.output_dir, FULL_REPORT_FILENAME, "\n".join(full) + "\n"))

        index = [titles["index"], SEPARATOR]
        index += [f"{path.name}" for path in written]
        written.append(save_text(self.output_dir, INDEX_FILENAME, "\n".join(index) + "\n"))

        logger.info(f"Exported {len(written)} report files to {self.output_dir}")
        return written
