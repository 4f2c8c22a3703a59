from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from ..services import PipelineConfig, RebalanceConfig


def _optional_int(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    return int(value)


def _flag(value: str | None, default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    min_scorecards: int
    max_scorecards: int | None
    min_visualizations: int
    require_table: bool
    log_level: str

    def rebalance_config(self, **overrides: object) -> RebalanceConfig:
        values = {
            "min_scorecards": self.min_scorecards,
            "max_scorecards": self.max_scorecards,
            "min_visualizations": self.min_visualizations,
            "require_table": self.require_table,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return RebalanceConfig(**values)

    def pipeline_config(self, **overrides: object) -> PipelineConfig:
        return PipelineConfig(rebalance=self.rebalance_config(**overrides))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        min_scorecards=int(os.getenv("VIZREC_MIN_SCORECARDS", "6")),
        max_scorecards=_optional_int(os.getenv("VIZREC_MAX_SCORECARDS")),
        min_visualizations=int(os.getenv("VIZREC_MIN_VISUALIZATIONS", "8")),
        require_table=_flag(os.getenv("VIZREC_REQUIRE_TABLE"), True),
        log_level=os.getenv("VIZREC_LOG_LEVEL", "INFO").upper(),
    )
