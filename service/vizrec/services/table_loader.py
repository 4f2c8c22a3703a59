from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from io import BytesIO
from pathlib import PurePath
from typing import Dict, List
from zipfile import BadZipFile

import pandas as pd

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = {".xlsx", ".xlsm"}
CSV_SHEET_NAME = "data"


class TableLoadError(ValueError):
    """Uploaded bytes could not be read as CSV or Excel."""


@dataclass
class LoadedTable:
    name: str
    dataframe: pd.DataFrame
    header_row: int


class TableLoader:
    """Load CSV files and Excel workbooks while inferring headers and basic types."""

    def __init__(self, max_sample_rows: int = 200, coerce_threshold: float = 0.7) -> None:
        self.max_sample_rows = max_sample_rows
        self.coerce_threshold = coerce_threshold

    def load(self, data: bytes, filename: str | None = None) -> Dict[str, LoadedTable]:
        suffix = PurePath(filename or "").suffix.lower()
        if suffix in EXCEL_SUFFIXES:
            return self.load_workbook(data)
        name = PurePath(filename).stem if filename else CSV_SHEET_NAME
        return self.load_csv(data, name or CSV_SHEET_NAME)

    def load_workbook(self, data: bytes) -> Dict[str, LoadedTable]:
        try:
            raw = pd.read_excel(BytesIO(data), sheet_name=None, header=None, dtype=object)
        except (ValueError, KeyError, OSError, BadZipFile) as exc:
            raise TableLoadError(f"could not read workbook: {exc}") from exc

        tables: Dict[str, LoadedTable] = {}
        for sheet_name, frame in raw.items():
            if frame.empty:
                logger.debug("Skipping empty sheet %r", sheet_name)
                continue
            header_row = self._detect_header_row(frame)
            table_df = self._table_below_header(frame, header_row)
            tables[sheet_name] = LoadedTable(name=sheet_name, dataframe=table_df, header_row=header_row)
        return tables

    def load_csv(self, data: bytes, name: str = CSV_SHEET_NAME) -> Dict[str, LoadedTable]:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError:
            text = data.decode("latin-1")
        if not text.strip():
            return {}
        try:
            frame = pd.read_csv(BytesIO(text.encode("utf-8")), header=None, dtype=object, skip_blank_lines=True)
        except ValueError as exc:
            raise TableLoadError(f"could not read CSV: {exc}") from exc
        if frame.empty:
            return {}
        return {name: LoadedTable(name=name, dataframe=self._table_below_header(frame, 0), header_row=0)}

    def _detect_header_row(self, frame: pd.DataFrame) -> int:
        sample = frame.head(self.max_sample_rows)
        filled = sample.notna().sum(axis=1)
        labels = sample.apply(lambda column: column.map(_is_label)).sum(axis=1)
        distinct = sample.nunique(axis=1, dropna=True)
        scores = filled * 1.5 + labels * 2.5 + distinct
        return int(scores.to_numpy().argmax())

    def _table_below_header(self, frame: pd.DataFrame, header_row: int) -> pd.DataFrame:
        header = frame.iloc[header_row].fillna("").astype(str).str.strip()
        body = frame.iloc[header_row + 1 :].set_axis(self._dedupe_columns(header.tolist()), axis=1)
        body = body.dropna(axis=1, how="all").dropna(how="all").reset_index(drop=True)
        return self._coerce_types(body)

    def _coerce_types(self, df: pd.DataFrame) -> pd.DataFrame:
        for column in df.columns:
            series = df[column]
            if series.dropna().empty:
                continue
            numeric = pd.to_numeric(series, errors="coerce")
            if numeric.notna().mean() > self.coerce_threshold:
                df[column] = numeric
                continue
            if _may_hold_dates(series):
                parsed = pd.to_datetime(series, errors="coerce", format="mixed")
                if parsed.notna().mean() > self.coerce_threshold:
                    df[column] = parsed
        return df

    def _dedupe_columns(self, columns: List[str]) -> List[str]:
        seen: Dict[str, int] = {}
        result: List[str] = []
        for col in columns:
            base = col or "column"
            count = seen.get(base, 0)
            result.append(f"{base}_{count + 1}" if count else base)
            seen[base] = count + 1
        return result


def _is_label(value: object) -> bool:
    return isinstance(value, str) and 0 < len(value.strip()) <= 32


def _may_hold_dates(series: pd.Series) -> bool:
    for value in series.dropna().head(20):
        if isinstance(value, date):
            return True
        if isinstance(value, str) and any(ch.isdigit() for ch in value):
            return True
    return False
