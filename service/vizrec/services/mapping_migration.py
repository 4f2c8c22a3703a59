from __future__ import annotations

from collections import deque
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .chart_kinds import RULES, ChartKind

LEGACY_FIELDS = ("xAxis", "yAxis", "dataKey")

_ONE = "one"
_REST = "rest"

# (target field, legacy axis that supplies it, how many values it takes).
# Fields whose axis is absent consume ``dataKey`` entries in order.
_PLANS: Dict[ChartKind, Tuple[Tuple[str, Optional[str], str], ...]] = {
    ChartKind.bar: (("category", "xAxis", _ONE), ("values", "yAxis", _REST)),
    ChartKind.line: (("xAxis", "xAxis", _ONE), ("yAxis", "yAxis", _REST)),
    ChartKind.area: (("xAxis", "xAxis", _ONE), ("yAxis", "yAxis", _REST)),
    ChartKind.sparkline: (("xAxis", "xAxis", _ONE), ("yAxis", "yAxis", _REST)),
    ChartKind.combo: (("xAxis", "xAxis", _ONE), ("yAxis", "yAxis", _REST)),
    ChartKind.pie: (("category", "xAxis", _ONE), ("value", "yAxis", _ONE)),
    ChartKind.waterfall: (("category", "xAxis", _ONE), ("value", "yAxis", _ONE)),
    ChartKind.treemap: (("category", "xAxis", _ONE), ("value", "yAxis", _ONE)),
    ChartKind.scorecard: (("metric", "yAxis", _ONE),),
    ChartKind.gauge: (("metric", "yAxis", _ONE),),
    ChartKind.bullet: (("actual", "yAxis", _ONE),),
    ChartKind.scatter: (("xAxis", "xAxis", _ONE), ("yAxis", "yAxis", _ONE)),
    ChartKind.heatmap: (("xAxis", "xAxis", _ONE), ("yAxis", "yAxis", _ONE), ("value", None, _ONE)),
    ChartKind.cohort: (("cohort", None, _ONE), ("period", None, _ONE), ("retention", None, _ONE)),
    ChartKind.table: (("columns", "yAxis", _REST),),
}


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [item for item in value if item not in (None, "")]
    if isinstance(value, str) and not value.strip():
        return []
    return [value]


def has_legacy_fields(legacy: Mapping[str, Any]) -> bool:
    return any(_as_list(legacy.get(name)) for name in LEGACY_FIELDS)


def migrate_legacy_mapping(kind: ChartKind, legacy: Mapping[str, Any]) -> Dict[str, Any]:
    """Build a field mapping for ``kind`` from positional ``xAxis``/``yAxis``/``dataKey`` fields."""

    keys = deque(_as_list(legacy.get("dataKey")))
    mapping: Dict[str, Any] = {}

    for target, source, take in _PLANS[kind]:
        supplied = _as_list(legacy.get(source)) if source else []
        if take == _ONE:
            if supplied:
                value: Any = supplied[0]
            else:
                value = keys.popleft() if keys else None
        elif supplied:
            value = supplied
        else:
            value = list(keys)
            keys.clear()
        if value not in (None, []):
            mapping[target] = value

    aggregation = legacy.get("aggregation")
    if aggregation not in (None, "") and "aggregation" in RULES[kind].fields():
        mapping["aggregation"] = aggregation
    return mapping
