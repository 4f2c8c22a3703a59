from .chart_kinds import RULES, Category, ChartKind, category_of, parse_chart_kind
from .column_matcher import ColumnIndex, MatchResult, MatchTier, build_index, duplicate_groups, normalize, resolve, resolve_many
from .data_profile import DataProfiler, schema_records
from .fallbacks import FallbackGenerator
from .models import (
    ColumnDescriptor,
    DatasetSchema,
    InferredType,
    IssueKind,
    QualityStats,
    RawRecommendation,
    RecommendationSet,
    SchemaEmptyError,
    ScoredRecommendation,
    UserCorrection,
    ValidationIssue,
    ValidationOutcome,
)
from .pipeline import PipelineConfig, recommend
from .quality_scorer import QualityScorer, ScoringCaps, rank
from .rebalancer import RebalanceConfig, SetRebalancer
from .spec_validator import validate_all, validate_recommendation
from .table_loader import LoadedTable, TableLoader, TableLoadError

__all__ = [
    "RULES",
    "Category",
    "ChartKind",
    "category_of",
    "parse_chart_kind",
    "ColumnIndex",
    "MatchResult",
    "MatchTier",
    "build_index",
    "duplicate_groups",
    "normalize",
    "resolve",
    "resolve_many",
    "DataProfiler",
    "schema_records",
    "FallbackGenerator",
    "ColumnDescriptor",
    "DatasetSchema",
    "InferredType",
    "IssueKind",
    "QualityStats",
    "RawRecommendation",
    "RecommendationSet",
    "SchemaEmptyError",
    "ScoredRecommendation",
    "UserCorrection",
    "ValidationIssue",
    "ValidationOutcome",
    "PipelineConfig",
    "recommend",
    "QualityScorer",
    "ScoringCaps",
    "rank",
    "RebalanceConfig",
    "SetRebalancer",
    "validate_all",
    "validate_recommendation",
    "LoadedTable",
    "TableLoader",
    "TableLoadError",
]
