from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Sequence

from .column_matcher import build_index
from .models import DatasetSchema, RecommendationSet, SchemaEmptyError, UserCorrection
from .quality_scorer import QualityScorer, ScoringCaps, rank
from .rebalancer import RebalanceConfig, SetRebalancer
from .spec_validator import validate_all


@dataclass(frozen=True)
class PipelineConfig:
    rebalance: RebalanceConfig = field(default_factory=RebalanceConfig)
    caps: ScoringCaps = field(default_factory=ScoringCaps)


def recommend(
    schema: DatasetSchema,
    raw_items: Iterable[Any],
    config: PipelineConfig | None = None,
    corrections: Sequence[UserCorrection] | None = None,
    logger: logging.Logger | None = None,
) -> RecommendationSet:
    """Validate, score, rank and rebalance model-proposed charts for one dataset.

    Raises ``SchemaEmptyError`` when the schema has no usable column; every
    problem with an individual recommendation is recovered locally.
    """

    log = logger or logging.getLogger(__name__)
    config = config or PipelineConfig()
    if not schema.columns:
        raise SchemaEmptyError("dataset schema has no columns")
    index = build_index(schema.column_names(), log)
    if not len(index):
        raise SchemaEmptyError("dataset schema has no named columns")

    items: List[Any] = list(raw_items or [])
    outcomes = validate_all(items, index, log)
    valid = [outcome for outcome in outcomes if outcome.is_valid]
    rejected = [outcome for outcome in outcomes if not outcome.is_valid]
    log.info("Validated %d recommendations: %d kept, %d dropped", len(outcomes), len(valid), len(rejected))

    scorer = QualityScorer(schema, index, corrections, config.caps, log)
    ranked = rank(scorer.score_all(valid))
    result = SetRebalancer(schema, index, scorer, config.rebalance, log).rebalance(ranked)
    result.rejected = rejected
    return result
