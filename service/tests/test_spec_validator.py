from vizrec.services import ChartKind, IssueKind, RawRecommendation, build_index, parse_chart_kind, validate_all, validate_recommendation
from vizrec.services.mapping_migration import migrate_legacy_mapping

INDEX = build_index(["Revenue", "Region", "Order Date", "Units", "Segment"])


def _validate(kind, mapping, **extra):
    payload = {"chartKind": kind, "title": f"{kind} chart", "fieldMapping": mapping}
    payload.update(extra)
    return validate_recommendation(payload, INDEX)


def _kinds(issues):
    return [issue.kind for issue in issues]


def test_typo_in_optional_category_is_advisory_with_suggestion():
    outcome = _validate("bar", {"category": "Regoin", "values": ["Revenue"]})
    assert outcome.is_valid
    assert outcome.normalized_mapping["category"] == "Regoin"
    assert outcome.normalized_mapping["values"] == ["Revenue"]
    assert outcome.unresolved == {"category": "Regoin"}
    issue = outcome.advisory_issues[0]
    assert issue.kind is IssueKind.column_unresolved
    assert issue.field == "category"
    assert issue.suggestions == ("Region",)


def test_scorecard_without_metric_or_formula_is_structural():
    outcome = _validate("scorecard", {"aggregation": "sum"})
    assert not outcome.is_valid
    assert _kinds(outcome.blocking_issues) == [IssueKind.structural]
    assert "metric" in outcome.blocking_issues[0].message
    assert "formula" in outcome.blocking_issues[0].message


def test_scorecard_with_formula_only_is_valid():
    outcome = _validate("scorecard", {"formula": "SUM(Revenue) / SUM(Units)", "formulaAlias": "Revenue per unit"})
    assert outcome.is_valid
    assert outcome.normalized_mapping["formula"] == "SUM(Revenue) / SUM(Units)"


def test_unresolved_required_column_blocks():
    outcome = _validate("line", {"xAxis": "Order Date", "yAxis": ["Revenue", "Profitt"]})
    assert not outcome.is_valid
    assert outcome.blocking_issues[0].field == "yAxis"
    assert "Profitt" in outcome.blocking_issues[0].message


def test_one_resolved_member_satisfies_a_required_group():
    outcome = _validate("bullet", {"actual": "Revenu", "metric": "Units"})
    assert outcome.is_valid
    assert outcome.normalized_mapping["metric"] == "Units"
    assert outcome.unresolved == {"actual": "Revenu"}
    assert _kinds(outcome.advisory_issues) == [IssueKind.column_unresolved]


def test_missing_required_fields_for_multi_field_kinds():
    outcome = _validate("heatmap", {"xAxis": "Region", "yAxis": "Segment"})
    assert not outcome.is_valid
    assert outcome.blocking_issues[0].field == "value"

    outcome = _validate("cohort", {"cohort": "Segment", "period": "Order Date", "value": "Units"})
    assert outcome.is_valid
    assert outcome.normalized_mapping["retention"] == "Units"


def test_sparkline_needs_both_axes():
    outcome = _validate("sparkline", {"yAxis": ["Revenue"]})
    assert not outcome.is_valid
    assert _kinds(outcome.blocking_issues) == [IssueKind.structural]
    assert outcome.blocking_issues[0].field == "xAxis"

    outcome = _validate("sparkline", {"xAxis": "order date", "yAxis": "Revenue"})
    assert outcome.is_valid
    assert outcome.normalized_mapping == {"xAxis": "Order Date", "yAxis": ["Revenue"]}

    legacy = migrate_legacy_mapping(ChartKind.sparkline, {"dataKey": ["Order Date", "Revenue"]})
    assert legacy == {"xAxis": "Order Date", "yAxis": ["Revenue"]}


def test_unknown_chart_kind_is_structural():
    outcome = _validate("funnel", {"stages": ["Region"]})
    assert not outcome.is_valid
    assert outcome.chart_kind is None
    assert outcome.blocking_issues[0].field == "chartKind"


def test_chart_kind_text_is_normalized():
    assert parse_chart_kind("KPI") is ChartKind.scorecard
    assert parse_chart_kind("Line Chart") is ChartKind.line
    assert parse_chart_kind("donut") is ChartKind.pie
    assert parse_chart_kind(" Bar ") is ChartKind.bar
    assert parse_chart_kind("funnel") is None
    assert parse_chart_kind(None) is None


def test_enum_synonyms_are_normalized():
    outcome = _validate("line", {"xAxis": "Order Date", "yAxis": ["Revenue"], "aggregation": "Average"})
    assert outcome.normalized_mapping["aggregation"] == "avg"
    outcome = _validate("table", {"columns": ["Region"], "sortOrder": "Descending"})
    assert outcome.normalized_mapping["sortOrder"] == "desc"


def test_enum_outside_vocabulary_blocks_even_when_optional():
    outcome = _validate("bar", {"values": ["Revenue"], "aggregation": "median"})
    assert not outcome.is_valid
    assert outcome.blocking_issues[0].field == "aggregation"


def test_limit_bounds_and_coercion():
    assert _validate("table", {"columns": ["Region"], "limit": "10"}).normalized_mapping["limit"] == 10
    assert _validate("table", {"columns": ["Region"], "limit": 25.0}).normalized_mapping["limit"] == 25
    assert not _validate("table", {"columns": ["Region"], "limit": 200}).is_valid
    assert not _validate("table", {"columns": ["Region"], "limit": 0}).is_valid
    assert not _validate("table", {"columns": ["Region"], "limit": "ten"}).is_valid
    assert not _validate("table", {"columns": ["Region"], "limit": 2.5}).is_valid
    for text in ("²", "①", "٣", "--5", "-", "1_0"):
        outcome = _validate("table", {"columns": ["Region"], "limit": text})
        assert not outcome.is_valid
        assert outcome.blocking_issues[0].field == "limit"


def test_boolean_field_accepts_text():
    outcome = _validate("bar", {"values": ["Revenue", "Units"], "category": "Region", "stacked": "true"})
    assert outcome.normalized_mapping["stacked"] is True
    assert not _validate("bar", {"values": ["Revenue"], "stacked": "sometimes"}).is_valid


def test_single_column_field_given_a_list_keeps_first():
    outcome = _validate("pie", {"category": ["region", "Segment"], "value": "Revenue"})
    assert outcome.is_valid
    assert outcome.normalized_mapping["category"] == "Region"
    assert IssueKind.arity in _kinds(outcome.advisory_issues)


def test_array_field_given_a_string_is_wrapped_and_deduplicated():
    outcome = _validate("line", {"yAxis": "revenue"})
    assert outcome.normalized_mapping["yAxis"] == ["Revenue"]
    outcome = _validate("table", {"columns": ["Revenue", "revenue", "Region"]})
    assert outcome.normalized_mapping["columns"] == ["Revenue", "Region"]


def test_field_key_aliases():
    outcome = _validate("line", {"x_axis": "order date", "y": "Units", "Aggregation": "sum"})
    assert outcome.is_valid
    assert outcome.normalized_mapping == {"yAxis": ["Units"], "xAxis": "Order Date", "aggregation": "sum"}

    outcome = _validate("bar", {"xAxis": "Region", "yAxis": ["Revenue"]})
    assert outcome.normalized_mapping["category"] == "Region"
    assert outcome.normalized_mapping["values"] == ["Revenue"]


def test_unknown_fields_are_dropped_with_advisory():
    outcome = _validate("table", {"columns": ["Region"], "colour": "red"})
    assert outcome.is_valid
    assert "colour" not in outcome.normalized_mapping
    assert _kinds(outcome.advisory_issues) == [IssueKind.unknown_field]


def test_empty_values_count_as_absent():
    outcome = _validate("bar", {"values": ["Revenue"], "category": "", "color": None})
    assert outcome.is_valid
    assert outcome.normalized_mapping == {"values": ["Revenue"]}
    assert not _validate("table", {"columns": ["", None]}).is_valid


def test_legacy_axis_fields_are_migrated():
    outcome = validate_recommendation(
        {"type": "bar", "title": "Legacy", "xAxis": "Region", "yAxis": ["Revenue"], "aggregation": "total"},
        INDEX,
    )
    assert outcome.is_valid
    assert outcome.normalized_mapping == {"values": ["Revenue"], "category": "Region", "aggregation": "sum"}
    assert IssueKind.migrated in _kinds(outcome.advisory_issues)


def test_legacy_data_key_is_consumed_in_order():
    assert migrate_legacy_mapping(ChartKind.scorecard, {"dataKey": ["Revenue"]}) == {"metric": "Revenue"}
    assert migrate_legacy_mapping(ChartKind.bar, {"dataKey": ["Region", "Revenue", "Units"]}) == {
        "category": "Region",
        "values": ["Revenue", "Units"],
    }
    assert migrate_legacy_mapping(ChartKind.cohort, {"dataKey": ["Segment", "Order Date", "Units"]}) == {
        "cohort": "Segment",
        "period": "Order Date",
        "retention": "Units",
    }
    assert migrate_legacy_mapping(ChartKind.scatter, {"xAxis": ["Units"], "dataKey": ["Revenue"]}) == {
        "xAxis": "Units",
        "yAxis": "Revenue",
    }


def test_explicit_mapping_wins_over_legacy_fields():
    outcome = validate_recommendation(
        {"chartKind": "pie", "fieldMapping": {"category": "Segment"}, "xAxis": "Region"},
        INDEX,
    )
    assert outcome.normalized_mapping == {"category": "Segment"}
    assert IssueKind.migrated not in _kinds(outcome.advisory_issues)


def test_malformed_items_never_raise():
    outcomes = validate_all(
        [None, "bar chart please", {"chartKind": "bar", "fieldMapping": ["Revenue"]}, {}],
        INDEX,
    )
    assert [outcome.is_valid for outcome in outcomes] == [False, False, False, False]
    assert all(outcome.blocking_issues for outcome in outcomes)


def test_raw_recommendation_payload_decoding():
    raw = RawRecommendation.from_payload({"chartKind": "kpi", "dataMapping": {"metric": "Revenue"}, "confidence": 0.85})
    assert raw.title == "Untitled Chart"
    assert raw.field_mapping == {"metric": "Revenue"}
    assert raw.declared_confidence == 85.0
    assert validate_recommendation(raw, INDEX).is_valid
