from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..services import ColumnDescriptor, DatasetSchema, InferredType, UserCorrection


class ColumnModel(BaseModel):
    name: str
    inferred_type: str = "string"
    cardinality: int = 0
    null_percentage: float = Field(0.0, ge=0.0, le=100.0)
    confidence: Optional[float] = Field(None, ge=0.0, le=100.0)

    @field_validator("inferred_type")
    @classmethod
    def _known_type(cls, value: str) -> str:
        return InferredType.parse(value).value

    def to_descriptor(self) -> ColumnDescriptor:
        return ColumnDescriptor(
            name=self.name,
            inferred_type=InferredType(self.inferred_type),
            cardinality=self.cardinality,
            null_percentage=self.null_percentage,
            confidence=self.confidence,
        )


class SchemaModel(BaseModel):
    columns: List[ColumnModel]
    row_count: Optional[int] = None

    def to_schema(self) -> DatasetSchema:
        return DatasetSchema(columns=tuple(col.to_descriptor() for col in self.columns), row_count=self.row_count)


class CorrectionModel(BaseModel):
    name: str
    corrected_type: str
    role: Optional[str] = None
    semantic_type: Optional[str] = None
    confidence: float = Field(100.0, ge=0.0, le=100.0)

    def to_correction(self) -> UserCorrection:
        return UserCorrection(
            name=self.name,
            corrected_type=InferredType.parse(self.corrected_type),
            role=self.role,
            semantic_type=self.semantic_type,
            confidence=self.confidence,
        )


class QuotaOverrides(BaseModel):
    min_scorecards: Optional[int] = Field(None, ge=0)
    max_scorecards: Optional[int] = Field(None, ge=0)
    min_visualizations: Optional[int] = Field(None, ge=0)
    require_table: Optional[bool] = None


class RankRequest(BaseModel):
    dataset: SchemaModel = Field(..., alias="schema")
    recommendations: List[Any] = Field(default_factory=list, description="Decoded model output; validated leniently.")
    corrections: List[CorrectionModel] = Field(default_factory=list)
    quotas: QuotaOverrides = Field(default_factory=QuotaOverrides)

    model_config = {"populate_by_name": True}


class ProfiledTableModel(BaseModel):
    table_name: str
    row_count: Optional[int]
    columns: List[ColumnModel]


class ProfileResponse(BaseModel):
    tables: List[ProfiledTableModel]
    table_names: List[str]


class IssueModel(BaseModel):
    kind: str
    field: Optional[str] = None
    message: str
    suggestions: List[str] = Field(default_factory=list)


class FactorsModel(BaseModel):
    data_type_match: float
    column_confidence: float
    user_correction_boost: float
    clarity: float


class ScoredRecommendationModel(BaseModel):
    chart_kind: str
    category: str
    title: str
    description: str
    reasoning: str
    mapping: Dict[str, Any]
    unresolved: Dict[str, Any]
    quality_score: float = Field(..., ge=0.0, le=100.0)
    factors: FactorsModel
    priority: str
    declared_confidence: float
    advisory_issues: List[IssueModel]
    synthesized: bool


class RejectedModel(BaseModel):
    title: str
    chart_kind: Optional[str]
    blocking_issues: List[IssueModel]
    advisory_issues: List[IssueModel]
    normalized_mapping: Dict[str, Any]
    unresolved: Dict[str, Any]


class CountsModel(BaseModel):
    scorecards: int
    visualizations: int
    tables: int


class StatsModel(BaseModel):
    total: int
    average_quality: float
    high: int
    medium: int
    low: int


class RankResponse(BaseModel):
    items: List[ScoredRecommendationModel]
    counts: CountsModel
    rejected: List[RejectedModel]
    synthesized: List[str]
    trimmed: List[str]
    stats: StatsModel
