from __future__ import annotations

from typing import Dict, List, Mapping

import numpy as np
import pandas as pd

from .models import ColumnDescriptor, DatasetSchema, InferredType
from .table_loader import LoadedTable

_BOOLEAN_TOKENS = {"true", "false", "yes", "no", "y", "n", "t", "f"}


def _share(mask: pd.Series) -> float:
    if mask.empty:
        return 0.0
    return float(np.round(mask.mean() * 100.0, 2))


def _boolean_mask(values: pd.Series) -> pd.Series:
    if pd.api.types.is_bool_dtype(values):
        return pd.Series(True, index=values.index)
    return values.map(lambda v: isinstance(v, (bool, np.bool_)) or str(v).strip().lower() in _BOOLEAN_TOKENS)


def _numeric_mask(values: pd.Series) -> pd.Series:
    if pd.api.types.is_bool_dtype(values):
        return pd.Series(False, index=values.index)
    return pd.to_numeric(values, errors="coerce").notna()


def _date_mask(values: pd.Series) -> pd.Series:
    if pd.api.types.is_datetime64_any_dtype(values):
        return pd.Series(True, index=values.index)
    if pd.api.types.is_numeric_dtype(values):
        return pd.Series(False, index=values.index)
    return pd.to_datetime(values.astype(str), errors="coerce", format="mixed").notna()


class DataProfiler:
    """Turn loaded tables into the Dataset Schema the recommendation pipeline consumes."""

    def __init__(self, parse_threshold: float = 90.0, categorical_limit: int = 50) -> None:
        self.parse_threshold = parse_threshold
        self.categorical_limit = categorical_limit

    def build_schema(self, df: pd.DataFrame) -> DatasetSchema:
        columns = [self._describe(df[name], str(name)) for name in df.columns]
        return DatasetSchema(columns=tuple(columns), row_count=int(len(df)))

    def build_schemas(self, tables: Mapping[str, LoadedTable]) -> Dict[str, DatasetSchema]:
        return {name: self.build_schema(table.dataframe) for name, table in tables.items()}

    def _describe(self, series: pd.Series, name: str) -> ColumnDescriptor:
        total = len(series)
        values = series.dropna()
        null_percentage = round((1 - len(values) / total) * 100.0, 2) if total else 100.0
        if values.empty:
            return ColumnDescriptor(name=name, null_percentage=null_percentage, confidence=0.0)

        cardinality = int(values.astype(str).nunique())
        inferred, confidence = self._infer(values, cardinality)
        return ColumnDescriptor(
            name=name,
            inferred_type=inferred,
            cardinality=cardinality,
            null_percentage=null_percentage,
            confidence=confidence,
        )

    def _infer(self, values: pd.Series, cardinality: int) -> tuple:
        boolean = _share(_boolean_mask(values))
        if cardinality <= 2 and boolean >= self.parse_threshold:
            return InferredType.boolean, boolean
        if pd.api.types.is_datetime64_any_dtype(values):
            return InferredType.date, 100.0
        numeric = _share(_numeric_mask(values))
        if numeric >= self.parse_threshold:
            return InferredType.number, numeric
        dates = _share(_date_mask(values))
        if dates >= self.parse_threshold:
            return InferredType.date, dates
        if cardinality <= min(self.categorical_limit, max(2, len(values) // 2)):
            return InferredType.categorical, 100.0
        return InferredType.string, 100.0


def schema_records(schema: DatasetSchema) -> List[Dict[str, object]]:
    return [
        {
            "name": col.name,
            "inferred_type": col.inferred_type.value,
            "cardinality": col.cardinality,
            "null_percentage": col.null_percentage,
            "confidence": col.confidence,
        }
        for col in schema.columns
    ]
