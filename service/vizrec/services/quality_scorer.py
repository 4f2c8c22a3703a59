from __future__ import annotations

import logging
import re
from dataclasses import dataclass, fields, replace
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

from .chart_kinds import RULES, ChartKind
from .column_matcher import ColumnIndex, normalize, resolve
from .models import (
    ColumnDescriptor,
    DatasetSchema,
    InferredType,
    Priority,
    QualityFactors,
    ScoredRecommendation,
    UserCorrection,
    ValidationOutcome,
)

logger = logging.getLogger(__name__)

_METRIC_NAME = re.compile(
    r"^(total|sum|avg|average|count|max|min)(?![a-z])"
    r"|revenue|sales|profit|cost|spend|budget|price|roas|acos|ctr|cvr"
    r"|conversions?|clicks?|impressions?|views?|engagement|rate|percentage|ratio|share"
    r"|kpi|metric|indicator|target|goal|amount|quantity"
)
_TEMPORAL_NAME = re.compile(r"date|time|day|week|month|quarter|year|timestamp|created|updated")

PIE_SLICE_SOFT_LIMIT = 7
PIE_SLICE_LIMIT = 12
CONFIDENCE_BONUS_THRESHOLD = 80.0
CONFIDENCE_BONUS = 5.0
CORRECTION_BOOST = 15.0  # base + multi bonus fits the 20-point cap
CORRECTION_MULTI_BONUS = 5.0


@dataclass(frozen=True)
class ScoringCaps:
    data_type: float = 40.0
    column_confidence: float = 30.0
    user_correction: float = 20.0
    clarity: float = 10.0
    total: float = 100.0

    def __post_init__(self) -> None:
        for item in fields(self):
            if getattr(self, item.name) < 0:
                raise ValueError(f"scoring cap '{item.name}' must not be negative")


def is_metric_name(name: str) -> bool:
    return bool(_METRIC_NAME.search(normalize(name)))


def is_numeric(column: Optional[ColumnDescriptor]) -> bool:
    return column is not None and column.inferred_type is InferredType.number


def is_temporal(column: Optional[ColumnDescriptor]) -> bool:
    if column is None:
        return False
    return column.inferred_type is InferredType.date or bool(_TEMPORAL_NAME.search(normalize(column.name)))


def is_categorical(column: Optional[ColumnDescriptor], row_count: Optional[int]) -> bool:
    if column is None:
        return False
    if column.inferred_type in (InferredType.categorical, InferredType.boolean):
        return True
    if column.inferred_type is not InferredType.string:
        return False
    if row_count:
        return column.cardinality <= row_count * 0.5
    return column.cardinality <= 50


class _References:
    """Resolved column descriptors of one normalized mapping, by field."""

    def __init__(self, outcome: ValidationOutcome, columns: Dict[str, ColumnDescriptor]) -> None:
        self.mapping = outcome.normalized_mapping
        self.by_field: Dict[str, List[ColumnDescriptor]] = {}
        self.names: List[str] = []
        referenced: List[str] = []
        specs = RULES[outcome.chart_kind].fields() if outcome.chart_kind else {}
        for name, value in self.mapping.items():
            spec = specs.get(name)
            if spec is None or not spec.references_columns:
                continue
            unresolved = outcome.unresolved.get(name)
            unresolved_set = set(unresolved) if isinstance(unresolved, list) else {unresolved}
            values = value if isinstance(value, list) else [value]
            for ref in values:
                if ref not in referenced:
                    referenced.append(ref)
                if ref in unresolved_set:
                    continue
                column = columns.get(ref)
                if column is None:
                    continue
                self.by_field.setdefault(name, []).append(column)
                if ref not in self.names:
                    self.names.append(ref)
        self.reference_count = len(referenced)

    def first(self, name: str) -> Optional[ColumnDescriptor]:
        found = self.by_field.get(name)
        return found[0] if found else None

    def all(self, *names: str) -> List[ColumnDescriptor]:
        result: List[ColumnDescriptor] = []
        for name in names:
            result.extend(self.by_field.get(name, []))
        return result


def _summary_points(kind: ChartKind, refs: _References, row_count: Optional[int]) -> float:
    primary = refs.first("metric") or refs.first("actual")
    if primary is None:
        points = 20.0
    elif is_numeric(primary):
        points = 40.0 if is_metric_name(primary.name) else 30.0
    else:
        points = 20.0
    if kind is ChartKind.scorecard and refs.mapping.get("aggregation") in ("avg", "min", "max", "count"):
        points += 5.0
    return points


def _trend_points(kind: ChartKind, refs: _References, row_count: Optional[int]) -> float:
    temporal_pts, numeric_pts, base = (33.0, 24.0, 18.0) if kind is ChartKind.area else (35.0, 25.0, 20.0)
    x = refs.first("xAxis")
    numeric = any(is_numeric(col) for col in refs.all("yAxis", "yAxis2"))
    if numeric and is_temporal(x):
        return temporal_pts
    if numeric:
        return numeric_pts
    return base


def _scatter_points(kind: ChartKind, refs: _References, row_count: Optional[int]) -> float:
    numeric = sum(1 for col in refs.all("xAxis", "yAxis") if is_numeric(col))
    if numeric >= 2:
        return 35.0
    if numeric == 1:
        return 25.0
    return 15.0


def _bar_points(kind: ChartKind, refs: _References, row_count: Optional[int]) -> float:
    numeric = any(is_numeric(col) for col in refs.all("values"))
    categorical = is_categorical(refs.first("category"), row_count)
    if categorical and numeric:
        points = 30.0
    elif numeric:
        points = 25.0
    else:
        points = 20.0
    if "sortBy" in refs.mapping and "limit" in refs.mapping:
        points += 5.0
    return points


def _pie_points(kind: ChartKind, refs: _References, row_count: Optional[int]) -> float:
    category = refs.first("category")
    if category is None:
        return 15.0
    if category.cardinality <= PIE_SLICE_SOFT_LIMIT:
        return 30.0
    if category.cardinality <= PIE_SLICE_LIMIT:
        return 20.0
    return 10.0


def _treemap_points(kind: ChartKind, refs: _References, row_count: Optional[int]) -> float:
    categorical = is_categorical(refs.first("category"), row_count)
    if categorical and is_numeric(refs.first("value")):
        return 30.0
    return 20.0 if categorical else 15.0


def _waterfall_points(kind: ChartKind, refs: _References, row_count: Optional[int]) -> float:
    category = refs.first("category")
    steps = is_categorical(category, row_count) or is_temporal(category)
    return 30.0 if steps and is_numeric(refs.first("value")) else 20.0


def _heatmap_points(kind: ChartKind, refs: _References, row_count: Optional[int]) -> float:
    axes = refs.first("xAxis") is not None and refs.first("yAxis") is not None
    return 30.0 if axes and is_numeric(refs.first("value")) else 20.0


def _cohort_points(kind: ChartKind, refs: _References, row_count: Optional[int]) -> float:
    keys = refs.first("cohort") is not None and refs.first("period") is not None
    return 30.0 if keys and is_numeric(refs.first("retention")) else 20.0


def _table_points(kind: ChartKind, refs: _References, row_count: Optional[int]) -> float:
    columns = refs.all("columns")
    kinds = {col.inferred_type for col in columns}
    if len(columns) >= 3 and len(kinds) >= 2:
        return 25.0
    if len(columns) >= 2:
        return 20.0
    return 15.0


_DATA_TYPE_RULES: Dict[ChartKind, Callable[[ChartKind, _References, Optional[int]], float]] = {
    ChartKind.scorecard: _summary_points,
    ChartKind.gauge: _summary_points,
    ChartKind.bullet: _summary_points,
    ChartKind.line: _trend_points,
    ChartKind.area: _trend_points,
    ChartKind.sparkline: _trend_points,
    ChartKind.combo: _trend_points,
    ChartKind.scatter: _scatter_points,
    ChartKind.bar: _bar_points,
    ChartKind.pie: _pie_points,
    ChartKind.treemap: _treemap_points,
    ChartKind.waterfall: _waterfall_points,
    ChartKind.heatmap: _heatmap_points,
    ChartKind.cohort: _cohort_points,
    ChartKind.table: _table_points,
}


class QualityScorer:
    """Score validated recommendations from four capped, additive factors.

    User corrections are matched through the column index and override the
    inferred type of the column they name, with the correction's confidence.
    """

    def __init__(
        self,
        schema: DatasetSchema,
        index: ColumnIndex,
        corrections: Sequence[UserCorrection] | None = None,
        caps: ScoringCaps | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.schema = schema
        self.index = index
        self.caps = caps or ScoringCaps()
        self.log = log or logger
        self.columns: Dict[str, ColumnDescriptor] = {}
        for column in schema.columns:
            self.columns.setdefault(column.name, column)
        self.corrected: Set[str] = set()
        for correction in corrections or ():
            self._apply_correction(correction)

    def _apply_correction(self, correction: UserCorrection) -> None:
        match = resolve(correction.name, self.index)
        if not match.resolved or match.match not in self.columns:
            self.log.debug("Ignoring correction for unknown column %r", correction.name)
            return
        self.columns[match.match] = replace(
            self.columns[match.match],
            inferred_type=correction.corrected_type,
            confidence=correction.confidence,
        )
        self.corrected.add(match.match)

    def factors(self, outcome: ValidationOutcome) -> QualityFactors:
        caps = self.caps
        refs = _References(outcome, self.columns)
        rule = _DATA_TYPE_RULES[outcome.chart_kind]
        data_type = min(rule(outcome.chart_kind, refs, self.schema.row_count), caps.data_type)

        used = [self.columns[name] for name in refs.names]
        if used:
            confidences = [col.effective_confidence() for col in used]
            confidence = sum(confidences) / len(confidences) / 100.0 * caps.column_confidence
            if all(value > CONFIDENCE_BONUS_THRESHOLD for value in confidences):
                confidence += CONFIDENCE_BONUS
            confidence = max(0.0, min(confidence, caps.column_confidence))
        else:
            confidence = caps.column_confidence / 2.0

        corrected = sum(1 for name in refs.names if name in self.corrected)
        boost = 0.0
        if corrected:
            boost = CORRECTION_BOOST + (CORRECTION_MULTI_BONUS if corrected >= 2 else 0.0)
        boost = min(boost, caps.user_correction)

        if refs.reference_count <= 2:
            clarity = 10.0
        elif refs.reference_count <= 4:
            clarity = 7.0
        else:
            clarity = 3.0
        clarity = min(clarity, caps.clarity)

        return QualityFactors(
            data_type_match=round(data_type, 2),
            column_confidence=round(confidence, 2),
            user_correction_boost=round(boost, 2),
            clarity=round(clarity, 2),
        )

    def score(self, outcome: ValidationOutcome, synthesized: bool = False) -> ScoredRecommendation:
        if not outcome.is_valid:
            raise ValueError("only recommendations without blocking issues can be scored")
        factors = self.factors(outcome)
        total = round(max(0.0, min(factors.total(), self.caps.total)), 2)
        item = ScoredRecommendation(
            recommendation=outcome.recommendation,
            chart_kind=outcome.chart_kind,
            mapping=dict(outcome.normalized_mapping),
            quality_score=total,
            factors=factors,
            priority=Priority.from_confidence(outcome.recommendation.declared_confidence),
            advisory_issues=list(outcome.advisory_issues),
            unresolved=dict(outcome.unresolved),
            synthesized=synthesized,
        )
        self.log.debug("Scored %r (%s) at %.2f", item.title, item.chart_kind.value, total)
        return item

    def score_all(self, outcomes: Iterable[ValidationOutcome]) -> List[ScoredRecommendation]:
        return [self.score(outcome) for outcome in outcomes if outcome.is_valid]


def ranking_key(item: ScoredRecommendation) -> tuple:
    return (-item.quality_score, -item.priority.weight, -item.declared_confidence, item.synthesized)


def rank(items: Iterable[ScoredRecommendation]) -> List[ScoredRecommendation]:
    """Stable sort: score, priority bucket, declared confidence, originals before synthesized."""

    return sorted(items, key=ranking_key)


def score_one(
    outcome: ValidationOutcome,
    schema: DatasetSchema,
    index: ColumnIndex,
    corrections: Sequence[UserCorrection] | None = None,
    caps: ScoringCaps | None = None,
) -> ScoredRecommendation:
    return QualityScorer(schema, index, corrections, caps).score(outcome)

