from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple


class ChartKind(str, Enum):
    line = "line"
    bar = "bar"
    pie = "pie"
    area = "area"
    scatter = "scatter"
    scorecard = "scorecard"
    table = "table"
    combo = "combo"
    waterfall = "waterfall"
    heatmap = "heatmap"
    gauge = "gauge"
    cohort = "cohort"
    bullet = "bullet"
    treemap = "treemap"
    sparkline = "sparkline"


class Category(str, Enum):
    scorecard = "scorecard"
    visualization = "visualization"
    table = "table"


class Arity(str, Enum):
    column = "column"
    columns = "columns"
    enum = "enum"
    int = "int"
    bool = "bool"
    text = "text"


SCORECARD_KINDS: FrozenSet[ChartKind] = frozenset({ChartKind.scorecard})
TABLE_KINDS: FrozenSet[ChartKind] = frozenset({ChartKind.table})
SUMMARY_KINDS: FrozenSet[ChartKind] = frozenset({ChartKind.scorecard, ChartKind.gauge, ChartKind.bullet})

_KIND_SYNONYMS: Dict[str, ChartKind] = {
    "kpi": ChartKind.scorecard,
    "metric": ChartKind.scorecard,
    "card": ChartKind.scorecard,
    "kpi_card": ChartKind.scorecard,
    "donut": ChartKind.pie,
    "doughnut": ChartKind.pie,
    "column": ChartKind.bar,
    "bar_chart": ChartKind.bar,
    "grid": ChartKind.table,
    "datatable": ChartKind.table,
    "data_table": ChartKind.table,
    "trend": ChartKind.line,
    "line_chart": ChartKind.line,
    "bubble": ChartKind.scatter,
}

AGGREGATIONS: Tuple[str, ...] = ("sum", "avg", "count", "min", "max", "distinct")
AGGREGATION_SYNONYMS: Dict[str, str] = {
    "average": "avg",
    "mean": "avg",
    "total": "sum",
    "minimum": "min",
    "maximum": "max",
    "count_distinct": "distinct",
    "distinct_count": "distinct",
    "unique": "distinct",
    "nunique": "distinct",
    "cnt": "count",
}

SORT_ORDERS: Tuple[str, ...] = ("asc", "desc")
SORT_ORDER_SYNONYMS: Dict[str, str] = {"ascending": "asc", "descending": "desc"}

LIMIT_RANGE: Tuple[int, int] = (1, 100)


@dataclass(frozen=True)
class FieldSpec:
    name: str
    arity: Arity
    vocabulary: Tuple[str, ...] = ()
    synonyms: Optional[Dict[str, str]] = None
    bounds: Optional[Tuple[int, int]] = None

    @property
    def references_columns(self) -> bool:
        return self.arity in (Arity.column, Arity.columns)


@dataclass(frozen=True)
class KindRule:
    """Required field groups (any member satisfies a group) and optional fields for one chart kind."""

    kind: ChartKind
    required: Tuple[Tuple[FieldSpec, ...], ...]
    optional: Tuple[FieldSpec, ...] = ()

    def fields(self) -> Dict[str, FieldSpec]:
        merged: Dict[str, FieldSpec] = {}
        for group in self.required:
            for spec in group:
                merged[spec.name] = spec
        for spec in self.optional:
            merged[spec.name] = spec
        return merged

    def is_required(self, name: str) -> bool:
        return any(spec.name == name for group in self.required for spec in group)


def _col(name: str) -> FieldSpec:
    return FieldSpec(name, Arity.column)


def _cols(name: str) -> FieldSpec:
    return FieldSpec(name, Arity.columns)


_AGGREGATION = FieldSpec("aggregation", Arity.enum, AGGREGATIONS, AGGREGATION_SYNONYMS)
_SORT_ORDER = FieldSpec("sortOrder", Arity.enum, SORT_ORDERS, SORT_ORDER_SYNONYMS)
_LIMIT = FieldSpec("limit", Arity.int, bounds=LIMIT_RANGE)
_STACKED = FieldSpec("stacked", Arity.bool)

_LINE_LIKE = ((_cols("yAxis"),),)

RULES: Dict[ChartKind, KindRule] = {
    ChartKind.scorecard: KindRule(
        ChartKind.scorecard,
        required=((_col("metric"), FieldSpec("formula", Arity.text)),),
        optional=(_col("comparison"), _AGGREGATION, FieldSpec("formulaAlias", Arity.text)),
    ),
    ChartKind.gauge: KindRule(
        ChartKind.gauge,
        required=((_col("metric"),),),
        optional=(_AGGREGATION, _col("target")),
    ),
    ChartKind.bullet: KindRule(
        ChartKind.bullet,
        required=((_col("actual"), _col("metric")),),
        optional=(_col("target"), _col("comparative")),
    ),
    ChartKind.bar: KindRule(
        ChartKind.bar,
        required=((_cols("values"),),),
        optional=(_col("category"), _col("color"), _AGGREGATION, _col("sortBy"), _SORT_ORDER, _LIMIT, _STACKED),
    ),
    ChartKind.line: KindRule(
        ChartKind.line,
        required=_LINE_LIKE,
        optional=(_col("xAxis"), _col("color"), _AGGREGATION),
    ),
    ChartKind.area: KindRule(
        ChartKind.area,
        required=_LINE_LIKE,
        optional=(_col("xAxis"), _col("color"), _AGGREGATION),
    ),
    ChartKind.sparkline: KindRule(
        ChartKind.sparkline,
        required=((_col("xAxis"),), (_cols("yAxis"),)),
        optional=(_AGGREGATION,),
    ),
    ChartKind.combo: KindRule(
        ChartKind.combo,
        required=_LINE_LIKE,
        optional=(_col("xAxis"), _cols("yAxis2"), _AGGREGATION),
    ),
    ChartKind.pie: KindRule(
        ChartKind.pie,
        required=((_col("category"),),),
        optional=(_col("value"), _AGGREGATION, _LIMIT),
    ),
    ChartKind.scatter: KindRule(
        ChartKind.scatter,
        required=((_col("xAxis"),), (_col("yAxis"),)),
        optional=(_col("size"), _col("color")),
    ),
    ChartKind.table: KindRule(
        ChartKind.table,
        required=((_cols("columns"),),),
        optional=(_col("sortBy"), _SORT_ORDER, _LIMIT),
    ),
    ChartKind.waterfall: KindRule(
        ChartKind.waterfall,
        required=((_col("category"),), (_col("value"),)),
        optional=(_AGGREGATION,),
    ),
    ChartKind.heatmap: KindRule(
        ChartKind.heatmap,
        required=((_col("xAxis"),), (_col("yAxis"),), (_col("value"),)),
        optional=(_AGGREGATION,),
    ),
    ChartKind.cohort: KindRule(
        ChartKind.cohort,
        required=((_col("cohort"),), (_col("period"),), (_col("retention"),)),
        optional=(_AGGREGATION,),
    ),
    ChartKind.treemap: KindRule(
        ChartKind.treemap,
        required=((_col("category"),), (_col("value"),)),
        optional=(_col("parent"), _AGGREGATION),
    ),
}

_unruled = set(ChartKind) - set(RULES)
if _unruled:
    raise RuntimeError(f"chart kinds without a field rule: {sorted(k.value for k in _unruled)}")

FIELD_ALIASES: Dict[str, str] = {
    "x": "xAxis",
    "y": "yAxis",
    "x_axis": "xAxis",
    "y_axis": "yAxis",
    "xaxis": "xAxis",
    "yaxis": "yAxis",
    "y_axis2": "yAxis2",
    "yaxis2": "yAxis2",
    "sort_by": "sortBy",
    "sortby": "sortBy",
    "sort_order": "sortOrder",
    "sortorder": "sortOrder",
    "formula_alias": "formulaAlias",
    "formulaalias": "formulaAlias",
    "agg": "aggregation",
}

KIND_FIELD_ALIASES: Dict[ChartKind, Dict[str, str]] = {
    ChartKind.cohort: {"value": "retention"},
    ChartKind.gauge: {"value": "metric"},
    ChartKind.bar: {"value": "values", "xAxis": "category", "yAxis": "values"},
    ChartKind.pie: {"xAxis": "category", "yAxis": "value"},
    ChartKind.treemap: {"name": "category"},
    ChartKind.scorecard: {"value": "metric"},
}


def parse_chart_kind(text: object) -> Optional[ChartKind]:
    """Map free-form chart kind text onto the closed enum, or None."""

    if not isinstance(text, str):
        return None
    key = re.sub(r"[\s\-]+", "_", text.strip().lower())
    if not key:
        return None
    try:
        return ChartKind(key)
    except ValueError:
        pass
    if key.endswith("_chart") and key[: -len("_chart")] in ChartKind._value2member_map_:
        return ChartKind(key[: -len("_chart")])
    return _KIND_SYNONYMS.get(key)


def category_of(kind: ChartKind) -> Category:
    if kind in SCORECARD_KINDS:
        return Category.scorecard
    if kind in TABLE_KINDS:
        return Category.table
    return Category.visualization


def canonical_field_name(kind: ChartKind, key: str) -> str:
    """Resolve a mapping key spelling to the rule table's field name for ``kind``."""

    fields = RULES[kind].fields()
    if key in fields:
        return key
    lowered = key.strip().lower()
    aliased = FIELD_ALIASES.get(lowered, key)
    per_kind = KIND_FIELD_ALIASES.get(kind, {})
    if aliased in per_kind and aliased not in fields:
        return per_kind[aliased]
    if aliased in fields:
        return aliased
    for name in fields:
        if name.lower() == lowered:
            return name
    return per_kind.get(key, key)
