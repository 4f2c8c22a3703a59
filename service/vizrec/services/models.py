from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .chart_kinds import Category, ChartKind, category_of

if TYPE_CHECKING:
    from .rebalancer import RebalanceConfig

HIGH_QUALITY = 75.0
MEDIUM_QUALITY = 60.0


class InferredType(str, Enum):
    number = "number"
    date = "date"
    categorical = "categorical"
    boolean = "boolean"
    string = "string"

    @classmethod
    def parse(cls, value: Any) -> "InferredType":
        text = str(value or "").strip().lower()
        aliases = {
            "numeric": cls.number,
            "integer": cls.number,
            "int": cls.number,
            "float": cls.number,
            "decimal": cls.number,
            "quantitative": cls.number,
            "datetime": cls.date,
            "timestamp": cls.date,
            "temporal": cls.date,
            "category": cls.categorical,
            "bool": cls.boolean,
            "text": cls.string,
        }
        if text in aliases:
            return aliases[text]
        try:
            return cls(text)
        except ValueError:
            return cls.string


class IssueKind(str, Enum):
    structural = "structural"
    column_unresolved = "column_unresolved"
    unknown_field = "unknown_field"
    arity = "arity"
    migrated = "migrated"


class Priority(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"

    @property
    def weight(self) -> int:
        return {"high": 3, "medium": 2, "low": 1}[self.value]

    @classmethod
    def from_confidence(cls, confidence: float) -> "Priority":
        if confidence >= 80:
            return cls.high
        if confidence >= 50:
            return cls.medium
        return cls.low


class SchemaEmptyError(ValueError):
    """Raised when a Dataset Schema has no usable columns."""


@dataclass(frozen=True)
class ColumnDescriptor:
    name: str
    inferred_type: InferredType = InferredType.string
    cardinality: int = 0
    null_percentage: float = 0.0
    confidence: Optional[float] = None

    def effective_confidence(self) -> float:
        if self.confidence is not None:
            return float(self.confidence)
        return max(0.0, 100.0 - float(self.null_percentage))


@dataclass(frozen=True)
class DatasetSchema:
    """Ordered, read-only snapshot of the dataset's columns for one request."""

    columns: Tuple[ColumnDescriptor, ...]
    row_count: Optional[int] = None

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]], row_count: Optional[int] = None) -> "DatasetSchema":
        columns = []
        for record in records:
            confidence = record.get("confidence")
            columns.append(
                ColumnDescriptor(
                    name=str(record.get("name", "")),
                    inferred_type=InferredType.parse(record.get("inferred_type", record.get("type"))),
                    cardinality=int(record.get("cardinality") or 0),
                    null_percentage=float(record.get("null_percentage") or 0.0),
                    confidence=None if confidence is None else float(confidence),
                )
            )
        return cls(columns=tuple(columns), row_count=row_count)

    def column_names(self) -> List[str]:
        return [col.name for col in self.columns]

    def get(self, name: str) -> Optional[ColumnDescriptor]:
        for col in self.columns:
            if col.name == name:
                return col
        return None


@dataclass(frozen=True)
class UserCorrection:
    name: str
    corrected_type: InferredType
    role: Optional[str] = None
    semantic_type: Optional[str] = None
    confidence: float = 100.0


@dataclass
class RawRecommendation:
    """A model-proposed chart as decoded from the generative service, still untrusted."""

    chart_kind: Any
    title: str = "Untitled Chart"
    description: str = ""
    field_mapping: Any = None
    declared_confidence: float = 0.0
    reasoning: str = ""
    legacy: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RawRecommendation":
        mapping = payload.get("fieldMapping")
        if mapping is None:
            mapping = payload.get("dataMapping")
        legacy = {key: payload[key] for key in ("xAxis", "yAxis", "dataKey", "aggregation") if key in payload}
        return cls(
            chart_kind=payload.get("chartKind", payload.get("type")),
            title=str(payload.get("title") or "Untitled Chart"),
            description=str(payload.get("description") or ""),
            field_mapping=mapping,
            declared_confidence=normalize_confidence(payload.get("confidence", payload.get("declaredConfidence"))),
            reasoning=str(payload.get("reasoning") or ""),
            legacy=legacy,
        )


def normalize_confidence(value: Any) -> float:
    """Declared confidences arrive as 0-1 fractions or 0-100 percentages."""

    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number:
        return 0.0
    if 0.0 < number <= 1.0:
        number *= 100.0
    return round(max(0.0, min(number, 100.0)), 2)


@dataclass(frozen=True)
class ValidationIssue:
    kind: IssueKind
    message: str
    field: Optional[str] = None
    suggestions: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "field": self.field,
            "message": self.message,
            "suggestions": list(self.suggestions),
        }


@dataclass
class ValidationOutcome:
    recommendation: RawRecommendation
    chart_kind: Optional[ChartKind] = None
    blocking_issues: List[ValidationIssue] = field(default_factory=list)
    advisory_issues: List[ValidationIssue] = field(default_factory=list)
    normalized_mapping: Dict[str, Any] = field(default_factory=dict)
    unresolved: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return self.chart_kind is not None and not self.blocking_issues

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.recommendation.title,
            "chart_kind": self.chart_kind.value if self.chart_kind else None,
            "blocking_issues": [issue.to_dict() for issue in self.blocking_issues],
            "advisory_issues": [issue.to_dict() for issue in self.advisory_issues],
            "normalized_mapping": dict(self.normalized_mapping),
            "unresolved": dict(self.unresolved),
        }


@dataclass(frozen=True)
class QualityFactors:
    data_type_match: float
    column_confidence: float
    user_correction_boost: float
    clarity: float

    def total(self) -> float:
        return self.data_type_match + self.column_confidence + self.user_correction_boost + self.clarity


@dataclass
class ScoredRecommendation:
    recommendation: RawRecommendation
    chart_kind: ChartKind
    mapping: Dict[str, Any]
    quality_score: float
    factors: QualityFactors
    priority: Priority
    advisory_issues: List[ValidationIssue] = field(default_factory=list)
    unresolved: Dict[str, Any] = field(default_factory=dict)
    synthesized: bool = False

    @property
    def title(self) -> str:
        return self.recommendation.title

    @property
    def category(self) -> Category:
        return category_of(self.chart_kind)

    @property
    def declared_confidence(self) -> float:
        return self.recommendation.declared_confidence

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chart_kind": self.chart_kind.value,
            "category": self.category.value,
            "title": self.title,
            "description": self.recommendation.description,
            "reasoning": self.recommendation.reasoning,
            "mapping": dict(self.mapping),
            "unresolved": dict(self.unresolved),
            "quality_score": self.quality_score,
            "factors": {
                "data_type_match": self.factors.data_type_match,
                "column_confidence": self.factors.column_confidence,
                "user_correction_boost": self.factors.user_correction_boost,
                "clarity": self.factors.clarity,
            },
            "priority": self.priority.value,
            "declared_confidence": self.declared_confidence,
            "advisory_issues": [issue.to_dict() for issue in self.advisory_issues],
            "synthesized": self.synthesized,
        }


@dataclass(frozen=True)
class CategoryCounts:
    scorecards: int
    visualizations: int
    tables: int

    @classmethod
    def of(cls, items: Iterable[ScoredRecommendation]) -> "CategoryCounts":
        scorecards = visualizations = tables = 0
        for item in items:
            category = item.category
            if category is Category.scorecard:
                scorecards += 1
            elif category is Category.table:
                tables += 1
            else:
                visualizations += 1
        return cls(scorecards=scorecards, visualizations=visualizations, tables=tables)

    @property
    def non_scorecards(self) -> int:
        return self.visualizations + self.tables


@dataclass(frozen=True)
class QualityStats:
    """Score distribution of a recommendation set: high above 75, medium 60 to 75, low below 60."""

    total: int
    average_quality: float
    high: int
    medium: int
    low: int

    @classmethod
    def of(cls, items: Iterable[ScoredRecommendation]) -> "QualityStats":
        scores = [item.quality_score for item in items]
        average = round(sum(scores) / len(scores), 2) if scores else 0.0
        return cls(
            total=len(scores),
            average_quality=average,
            high=sum(1 for score in scores if score > HIGH_QUALITY),
            medium=sum(1 for score in scores if MEDIUM_QUALITY <= score <= HIGH_QUALITY),
            low=sum(1 for score in scores if score < MEDIUM_QUALITY),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "average_quality": self.average_quality,
            "high": self.high,
            "medium": self.medium,
            "low": self.low,
        }


@dataclass
class RecommendationSet:
    items: List[ScoredRecommendation] = field(default_factory=list)
    rejected: List[ValidationOutcome] = field(default_factory=list)
    synthesized_titles: List[str] = field(default_factory=list)
    trimmed_titles: List[str] = field(default_factory=list)

    @property
    def counts(self) -> CategoryCounts:
        return CategoryCounts.of(self.items)

    def satisfies(self, config: RebalanceConfig) -> bool:
        """True when the counts meet the quotas of a ``RebalanceConfig``."""

        counts = self.counts
        if counts.scorecards < config.min_scorecards:
            return False
        if config.max_scorecards is not None and counts.scorecards > config.max_scorecards:
            return False
        if counts.non_scorecards < config.min_visualizations:
            return False
        return not (config.require_table and counts.tables < 1)

    def stats(self) -> QualityStats:
        return QualityStats.of(self.items)

    def above(self, min_score: float) -> List[ScoredRecommendation]:
        """Items scoring at least ``min_score``, in set order."""
        return [item for item in self.items if item.quality_score >= min_score]

    def to_dict(self) -> Dict[str, Any]:
        counts = self.counts
        return {
            "items": [item.to_dict() for item in self.items],
            "counts": {
                "scorecards": counts.scorecards,
                "visualizations": counts.visualizations,
                "tables": counts.tables,
            },
            "rejected": [outcome.to_dict() for outcome in self.rejected],
            "synthesized": list(self.synthesized_titles),
            "trimmed": list(self.trimmed_titles),
            "stats": self.stats().to_dict(),
        }
