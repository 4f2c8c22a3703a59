from __future__ import annotations

from itertools import combinations
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .chart_kinds import RULES, Category, ChartKind
from .column_matcher import ColumnIndex
from .models import ColumnDescriptor, DatasetSchema
from .quality_scorer import is_categorical, is_numeric, is_temporal

USABLE_NULL_PERCENTAGE = 50.0
SCORECARD_AGGREGATIONS = ("sum", "avg", "max", "min", "count")
RANKING_LIMIT = 10
PIE_MAX_SLICES = 12
TABLE_MAX_COLUMNS = 10

_AGGREGATION_TITLES = {
    "sum": "Total {}",
    "avg": "Average {}",
    "max": "Maximum {}",
    "min": "Minimum {}",
    "count": "Count of {}",
    "distinct": "Distinct {}",
}

Signature = Tuple[str, Tuple[str, ...], Optional[str]]


def mapping_columns(kind: ChartKind, mapping: Mapping[str, Any]) -> List[str]:
    specs = RULES[kind].fields()
    columns: List[str] = []
    for name, value in mapping.items():
        spec = specs.get(name)
        if spec is None or not spec.references_columns:
            continue
        for ref in value if isinstance(value, list) else [value]:
            if isinstance(ref, str) and ref not in columns:
                columns.append(ref)
    return columns


def signature_of(kind: ChartKind, mapping: Mapping[str, Any]) -> Signature:
    aggregation = mapping.get("aggregation")
    return kind.value, tuple(sorted(mapping_columns(kind, mapping))), aggregation if isinstance(aggregation, str) else None


def _payload(kind: ChartKind, title: str, mapping: Dict[str, Any], description: str) -> Dict[str, Any]:
    return {
        "chartKind": kind.value,
        "title": title,
        "description": description,
        "fieldMapping": mapping,
        "confidence": 0,
        "reasoning": "Generated from the dataset schema to fill the dashboard.",
    }


class FallbackGenerator:
    """Deterministic chart proposals built from the dataset schema alone."""

    def __init__(self, schema: DatasetSchema, index: ColumnIndex) -> None:
        self.row_count = schema.row_count
        self.columns: List[ColumnDescriptor] = []
        for name in index.canonical_columns:
            column = schema.get(name)
            if column is not None:
                self.columns.append(column)

    def _usable(self) -> List[ColumnDescriptor]:
        return [col for col in self.columns if col.null_percentage < USABLE_NULL_PERCENTAGE]

    def _measures(self) -> List[ColumnDescriptor]:
        return [col for col in self._usable() if is_numeric(col)]

    def scorecards(self) -> List[Dict[str, Any]]:
        measures = self._measures()
        proposals: List[Dict[str, Any]] = []
        if measures:
            for shift in range(len(SCORECARD_AGGREGATIONS)):
                for position, column in enumerate(measures):
                    aggregation = SCORECARD_AGGREGATIONS[(position + shift) % len(SCORECARD_AGGREGATIONS)]
                    proposals.append(self._scorecard(column, aggregation))
            return proposals
        for aggregation in ("count", "distinct"):
            for column in self.columns:
                proposals.append(self._scorecard(column, aggregation))
        return proposals

    def _scorecard(self, column: ColumnDescriptor, aggregation: str) -> Dict[str, Any]:
        title = _AGGREGATION_TITLES[aggregation].format(column.name)
        mapping = {"metric": column.name, "aggregation": aggregation}
        return _payload(ChartKind.scorecard, title, mapping, f"{title} across all rows.")

    def visualizations(self) -> List[Dict[str, Any]]:
        usable = self._usable()
        measures = self._measures()
        categories = [col for col in usable if is_categorical(col, self.row_count)]
        temporals = [col for col in usable if is_temporal(col)]
        proposals: List[Dict[str, Any]] = []

        for category in categories:
            for measure in measures:
                mapping = {
                    "category": category.name,
                    "values": [measure.name],
                    "aggregation": "sum",
                    "sortBy": measure.name,
                    "sortOrder": "desc",
                    "limit": RANKING_LIMIT,
                }
                title = f"{measure.name} by {category.name}"
                proposals.append(_payload(ChartKind.bar, title, mapping, f"Top {RANKING_LIMIT} {category.name} ranked by {measure.name}."))

        for temporal in temporals:
            for measure in measures:
                if measure.name == temporal.name:
                    continue
                mapping = {"xAxis": temporal.name, "yAxis": [measure.name], "aggregation": "sum"}
                title = f"{measure.name} over {temporal.name}"
                proposals.append(_payload(ChartKind.line, title, mapping, f"Trend of {measure.name} by {temporal.name}."))

        for left, right in combinations(measures, 2):
            mapping = {"xAxis": left.name, "yAxis": right.name}
            title = f"{right.name} vs {left.name}"
            proposals.append(_payload(ChartKind.scatter, title, mapping, f"Relationship between {left.name} and {right.name}."))

        for category in categories:
            if category.cardinality > PIE_MAX_SLICES:
                continue
            for measure in measures:
                mapping = {"category": category.name, "value": measure.name, "aggregation": "sum"}
                title = f"{measure.name} share by {category.name}"
                proposals.append(_payload(ChartKind.pie, title, mapping, f"Share of {measure.name} per {category.name}."))

        for column in self.columns:
            mapping = {"category": column.name, "values": [column.name], "aggregation": "count"}
            title = f"Records by {column.name}"
            proposals.append(_payload(ChartKind.bar, title, mapping, f"Row count per {column.name}."))
        return proposals

    def tables(self) -> List[Dict[str, Any]]:
        usable = self._usable() or self.columns
        names = [col.name for col in usable[:TABLE_MAX_COLUMNS]]
        return [_payload(ChartKind.table, "Data Overview", {"columns": names}, "Row-level view of the dataset.")]

    def candidates(self, category: Category) -> List[Dict[str, Any]]:
        if category is Category.scorecard:
            return self.scorecards()
        if category is Category.table:
            return self.tables()
        return self.visualizations()


def prefer_unused(proposals: Iterable[Dict[str, Any]], used: Set[str]) -> List[Dict[str, Any]]:
    """Order proposals by how many already-used columns they touch, keeping generator order otherwise."""

    def overlap(payload: Dict[str, Any]) -> int:
        kind = ChartKind(payload["chartKind"])
        return sum(1 for name in mapping_columns(kind, payload["fieldMapping"]) if name in used)

    return sorted(proposals, key=overlap)
