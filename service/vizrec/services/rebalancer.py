from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from .chart_kinds import Category
from .column_matcher import ColumnIndex
from .fallbacks import FallbackGenerator, mapping_columns, prefer_unused, signature_of
from .models import DatasetSchema, RecommendationSet, ScoredRecommendation
from .quality_scorer import QualityScorer, rank
from .spec_validator import validate_recommendation

logger = logging.getLogger(__name__)

SYNTHESIZED_GAP = 1.0


@dataclass(frozen=True)
class RebalanceConfig:
    """Per-category quotas; ``min_visualizations`` counts every non-scorecard item, tables included."""

    min_scorecards: int = 6
    max_scorecards: Optional[int] = None
    min_visualizations: int = 8
    require_table: bool = True

    def __post_init__(self) -> None:
        if self.min_scorecards < 0 or self.min_visualizations < 0:
            raise ValueError("category minimums must not be negative")
        if self.max_scorecards is not None and self.max_scorecards < self.min_scorecards:
            raise ValueError(
                f"max_scorecards ({self.max_scorecards}) must be >= min_scorecards ({self.min_scorecards})"
            )


def _below_floor(score: float, floor: float) -> float:
    if floor <= 0:
        return 0.0
    if floor < SYNTHESIZED_GAP:
        return min(score, round(floor / 2.0, 2))
    return min(score, round(floor - SYNTHESIZED_GAP, 2))


class SetRebalancer:
    """Bring a ranked recommendation list within its category quotas.

    Missing items are synthesized from the dataset schema, validated and
    scored like model output, then pushed below every original of their
    quota category. Excess scorecards are trimmed from the bottom.
    """

    def __init__(
        self,
        schema: DatasetSchema,
        index: ColumnIndex,
        scorer: QualityScorer,
        config: RebalanceConfig | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.index = index
        self.scorer = scorer
        self.config = config or RebalanceConfig()
        self.log = log or logger
        self.generator = FallbackGenerator(schema, index)

    def rebalance(self, ranked: List[ScoredRecommendation]) -> RecommendationSet:
        result = RecommendationSet(items=list(ranked))
        config = self.config
        counts = result.counts

        if config.require_table and counts.tables == 0:
            self._synthesize(result, Category.table, 1)
            counts = result.counts

        if counts.scorecards < config.min_scorecards:
            self._synthesize(result, Category.scorecard, config.min_scorecards - counts.scorecards)
            counts = result.counts

        if counts.non_scorecards < config.min_visualizations:
            self._synthesize(result, Category.visualization, config.min_visualizations - counts.non_scorecards)
            counts = result.counts

        if config.max_scorecards is not None and counts.scorecards > config.max_scorecards:
            self._trim_scorecards(result, counts.scorecards - config.max_scorecards)

        result.items = self._ordered(result.items)
        counts = result.counts
        self.log.info(
            "Recommendation set: %d scorecards, %d visualizations, %d tables (%d synthesized, %d trimmed)",
            counts.scorecards,
            counts.visualizations,
            counts.tables,
            len(result.synthesized_titles),
            len(result.trimmed_titles),
        )
        return result

    def _ordered(self, items: List[ScoredRecommendation]) -> List[ScoredRecommendation]:
        ordered: List[ScoredRecommendation] = []
        for category in (Category.scorecard, Category.visualization, Category.table):
            ordered.extend(rank(item for item in items if item.category is category))
        return ordered

    def _floor(self, items: List[ScoredRecommendation], category: Category) -> Optional[float]:
        if category is Category.scorecard:
            members = [item for item in items if item.category is Category.scorecard]
        elif category is Category.table:
            members = [item for item in items if item.category is Category.table]
        else:
            members = [item for item in items if item.category is not Category.scorecard]
        originals = [item.quality_score for item in members if not item.synthesized]
        return min(originals) if originals else None

    def _synthesize(self, result: RecommendationSet, category: Category, needed: int) -> None:
        proposals = self.generator.candidates(category)
        if not proposals:
            self.log.warning("No %s fallback can be built from this schema", category.value)
            return

        seen: Counter = Counter(signature_of(item.chart_kind, item.mapping) for item in result.items)
        used: Set[str] = set()
        for item in result.items:
            used.update(mapping_columns(item.chart_kind, item.mapping))
        ordered = prefer_unused(proposals, used)
        floor = self._floor(result.items, category)

        added = 0
        reuse = False
        position = 0
        for _ in range(len(ordered) * 2 + needed):
            if added >= needed:
                break
            if position >= len(ordered):
                if not reuse:
                    self.log.warning("Ran out of distinct %s fallbacks after %d; reusing candidates", category.value, added)
                reuse = True
                position = 0
            payload = ordered[position]
            position += 1
            item = self._build(payload, seen, reuse, floor)
            if item is None:
                continue
            result.items.append(item)
            result.synthesized_titles.append(item.title)
            added += 1
            self.log.info("Synthesized %s %r at %.2f", category.value, item.title, item.quality_score)

        if added < needed:
            self.log.warning("Only synthesized %d of %d %s items", added, needed, category.value)

    def _build(self, payload: Dict[str, Any], seen: Counter, reuse: bool, floor: Optional[float]) -> Optional[ScoredRecommendation]:
        outcome = validate_recommendation(payload, self.index, self.log)
        if not outcome.is_valid:
            self.log.warning("Discarding invalid fallback %r", payload.get("title"))
            return None
        signature = signature_of(outcome.chart_kind, outcome.normalized_mapping)
        if seen[signature] and not reuse:
            return None
        if seen[signature]:
            outcome.recommendation.title = f"{outcome.recommendation.title} ({seen[signature] + 1})"
        seen[signature] += 1
        item = self.scorer.score(outcome, synthesized=True)
        if floor is not None:
            item.quality_score = _below_floor(item.quality_score, floor)
        return item

    def _trim_scorecards(self, result: RecommendationSet, excess: int) -> None:
        scorecards = rank(item for item in result.items if item.category is Category.scorecard)
        dropped = scorecards[-excess:]
        result.items = [item for item in result.items if not any(item is gone for gone in dropped)]
        for item in reversed(dropped):
            result.trimmed_titles.append(item.title)
            self.log.info("Trimmed scorecard %r at %.2f", item.title, item.quality_score)
