import pytest

from vizrec.services import (
    ColumnDescriptor,
    DatasetSchema,
    InferredType,
    QualityScorer,
    ScoringCaps,
    UserCorrection,
    build_index,
    rank,
    validate_recommendation,
)
from vizrec.services.models import Priority

SCHEMA = DatasetSchema(
    columns=(
        ColumnDescriptor("Revenue", InferredType.number, 100, 0.0, 95.0),
        ColumnDescriptor("Sales Amount", InferredType.number, 100, 0.0, 30.0),
        ColumnDescriptor("Region", InferredType.categorical, 4, 0.0, 100.0),
        ColumnDescriptor("Segment", InferredType.categorical, 20, 0.0, 100.0),
        ColumnDescriptor("Order Date", InferredType.date, 90, 0.0, 98.0),
        ColumnDescriptor("Units", InferredType.number, 50, 0.0, 40.0),
        ColumnDescriptor("Notes", InferredType.string, 100, 60.0),
    ),
    row_count=100,
)
INDEX = build_index(SCHEMA.column_names())


def _scorer(corrections=None, caps=None):
    return QualityScorer(SCHEMA, INDEX, corrections, caps)


def _score(kind, mapping, scorer=None, **extra):
    payload = {"chartKind": kind, "title": extra.pop("title", kind), "fieldMapping": mapping}
    payload.update(extra)
    outcome = validate_recommendation(payload, INDEX)
    assert outcome.is_valid, outcome.blocking_issues
    return (scorer or _scorer()).score(outcome)


def test_metric_named_numeric_summary_scores_highest():
    item = _score("scorecard", {"metric": "Revenue"})
    assert item.factors.data_type_match == 40.0
    assert item.factors.column_confidence == 30.0
    assert item.factors.user_correction_boost == 0.0
    assert item.factors.clarity == 10.0
    assert item.quality_score == 80.0


def test_high_confidence_column_outscores_low_confidence_one():
    confident = _score("scorecard", {"metric": "Revenue"})
    doubtful = _score("scorecard", {"metric": "Sales Amount"})
    assert confident.factors.data_type_match == doubtful.factors.data_type_match
    assert doubtful.factors.column_confidence == 9.0
    assert doubtful.quality_score == 59.0
    assert confident.quality_score > doubtful.quality_score


def test_confidence_falls_back_to_completeness():
    item = _score("scorecard", {"metric": "Notes"})
    assert item.factors.data_type_match == 20.0
    assert item.factors.column_confidence == 12.0
    assert item.quality_score == 42.0


def test_scorecard_aggregation_bonus_is_capped():
    plain = _score("scorecard", {"metric": "Units"})
    averaged = _score("scorecard", {"metric": "Units", "aggregation": "avg"})
    assert averaged.factors.data_type_match == plain.factors.data_type_match + 5.0
    capped = _score("scorecard", {"metric": "Revenue", "aggregation": "max"})
    assert capped.factors.data_type_match == 40.0


def test_pie_is_penalized_for_many_slices():
    few = _score("pie", {"category": "Region", "value": "Revenue"})
    many = _score("pie", {"category": "Segment", "value": "Revenue"})
    assert few.factors.data_type_match == 30.0
    assert many.factors.data_type_match == 10.0
    assert few.quality_score == 70.0
    assert many.quality_score == 50.0


def test_trend_prefers_temporal_axis():
    line = _score("line", {"xAxis": "Order Date", "yAxis": ["Revenue"]})
    area = _score("area", {"xAxis": "Order Date", "yAxis": ["Revenue"]})
    untimed = _score("line", {"xAxis": "Region", "yAxis": ["Revenue"]})
    assert line.factors.data_type_match == 35.0
    assert line.quality_score == 75.0
    assert area.quality_score == 73.0
    assert untimed.factors.data_type_match == 25.0


def test_scatter_counts_numeric_axes():
    assert _score("scatter", {"xAxis": "Revenue", "yAxis": "Units"}).factors.data_type_match == 35.0
    assert _score("scatter", {"xAxis": "Region", "yAxis": "Units"}).factors.data_type_match == 25.0
    assert _score("scatter", {"xAxis": "Region", "yAxis": "Segment"}).factors.data_type_match == 15.0


def test_bar_rewards_ranking_setup():
    ranked = _score("bar", {"category": "Region", "values": ["Revenue"], "sortBy": "Revenue", "limit": 5})
    plain = _score("bar", {"category": "Region", "values": ["Revenue"]})
    assert plain.factors.data_type_match == 30.0
    assert ranked.factors.data_type_match == 35.0


def test_unresolved_references_only_count_toward_clarity():
    item = _score("bar", {"category": "Regoin", "values": ["Revenue"]})
    assert item.unresolved == {"category": "Regoin"}
    assert item.factors.data_type_match == 25.0
    assert item.factors.column_confidence == 30.0
    assert item.factors.clarity == 10.0
    assert item.quality_score == 65.0


def test_clarity_drops_with_more_fields():
    three = _score("table", {"columns": ["Revenue", "Region", "Units"]})
    five = _score("table", {"columns": ["Revenue", "Region", "Order Date", "Units", "Segment"]})
    assert three.factors.clarity == 7.0
    assert five.factors.clarity == 3.0
    assert five.factors.data_type_match == 25.0


def test_user_corrections_boost_and_override_confidence():
    corrections = [UserCorrection("units", InferredType.number), UserCorrection("sales amount", InferredType.number)]
    scorer = _scorer(corrections)
    single = _score("scorecard", {"metric": "Units"}, scorer)
    assert single.factors.user_correction_boost == 15.0
    assert single.factors.column_confidence == 30.0
    assert single.quality_score == 85.0

    pair = _score("scatter", {"xAxis": "Units", "yAxis": "Sales Amount"}, scorer)
    assert pair.factors.user_correction_boost == 20.0


def test_correction_changes_inferred_type():
    scorer = _scorer([UserCorrection("Notes", InferredType.number)])
    item = _score("scorecard", {"metric": "Notes"}, scorer)
    assert item.factors.data_type_match == 30.0
    assert item.factors.column_confidence == 30.0


def test_corrections_for_unknown_columns_are_ignored():
    scorer = _scorer([UserCorrection("Margin", InferredType.number)])
    assert scorer.corrected == set()


def test_scores_stay_within_bounds():
    payloads = [
        ("scorecard", {"metric": "Revenue", "aggregation": "count"}),
        ("gauge", {"metric": "Units", "target": "Revenue"}),
        ("bullet", {"actual": "Revenue", "target": "Units"}),
        ("combo", {"xAxis": "Order Date", "yAxis": ["Revenue"], "yAxis2": ["Units"]}),
        ("sparkline", {"xAxis": "Order Date", "yAxis": ["Units"]}),
        ("waterfall", {"category": "Order Date", "value": "Revenue"}),
        ("heatmap", {"xAxis": "Region", "yAxis": "Segment", "value": "Revenue"}),
        ("cohort", {"cohort": "Segment", "period": "Order Date", "retention": "Units"}),
        ("treemap", {"category": "Region", "value": "Revenue", "parent": "Segment"}),
        ("table", {"columns": ["Revenue", "Region", "Order Date", "Units", "Segment", "Notes"]}),
    ]
    corrections = [UserCorrection(name, InferredType.number) for name in ("Revenue", "Units", "Sales Amount")]
    for scorer in (_scorer(), _scorer(corrections)):
        for kind, mapping in payloads:
            item = _score(kind, mapping, scorer)
            assert 0.0 <= item.quality_score <= 100.0


def test_custom_caps_bound_each_factor():
    caps = ScoringCaps(data_type=20.0, column_confidence=10.0, user_correction=5.0, clarity=5.0, total=40.0)
    item = _score("scorecard", {"metric": "Revenue"}, _scorer([UserCorrection("Revenue", InferredType.number)], caps))
    assert item.factors.data_type_match == 20.0
    assert item.factors.column_confidence == 10.0
    assert item.factors.user_correction_boost == 5.0
    assert item.factors.clarity == 5.0
    assert item.quality_score == 40.0


def test_negative_caps_are_rejected():
    with pytest.raises(ValueError):
        ScoringCaps(clarity=-1.0)


def test_declared_confidence_sets_priority():
    assert _score("scorecard", {"metric": "Revenue"}, confidence=0.9).priority is Priority.high
    assert _score("scorecard", {"metric": "Revenue"}, confidence=65).priority is Priority.medium
    assert _score("scorecard", {"metric": "Revenue"}).priority is Priority.low


def test_rank_breaks_ties_by_bucket_then_confidence():
    medium = _score("scorecard", {"metric": "Revenue"}, title="medium", confidence=0.6)
    high = _score("scorecard", {"metric": "Revenue"}, title="high", confidence=0.85)
    higher = _score("scorecard", {"metric": "Revenue"}, title="higher", confidence=0.95)
    best = _score("line", {"xAxis": "Order Date", "yAxis": ["Revenue"]}, title="best")
    ordered = rank([medium, high, higher, best])
    assert [item.title for item in ordered] == ["higher", "high", "medium", "best"]


def test_rank_places_originals_before_synthesized_and_is_stable():
    outcome = validate_recommendation({"chartKind": "scorecard", "title": "a", "fieldMapping": {"metric": "Revenue"}}, INDEX)
    scorer = _scorer()
    synthesized = scorer.score(outcome, synthesized=True)
    first = scorer.score(outcome)
    second = scorer.score(outcome)
    ordered = rank([synthesized, first, second])
    assert ordered[0] is first
    assert ordered[1] is second
    assert ordered[2] is synthesized
