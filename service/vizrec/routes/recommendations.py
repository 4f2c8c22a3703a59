from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from ..core.settings import Settings, get_settings
from ..schemas.recommendations import ProfileResponse, RankRequest, RankResponse
from ..services import DataProfiler, SchemaEmptyError, TableLoader, TableLoadError, recommend, schema_records

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recommendations", tags=["recommendations"])

_loader = TableLoader()
_profiler = DataProfiler()


def _read_file_bytes(upload: UploadFile) -> bytes:
    data = upload.file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")
    return data


@router.post("/profile", response_model=ProfileResponse)
def profile_upload(file: UploadFile = File(...)) -> ProfileResponse:
    data = _read_file_bytes(file)
    try:
        tables = _loader.load(data, file.filename)
    except TableLoadError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not tables:
        raise HTTPException(status_code=400, detail="Upload contained no readable tables.")

    schemas = _profiler.build_schemas(tables)
    payload = {
        "tables": [
            {"table_name": name, "row_count": schema.row_count, "columns": schema_records(schema)}
            for name, schema in schemas.items()
        ],
        "table_names": list(schemas.keys()),
    }
    return ProfileResponse.model_validate(payload)


@router.post("/rank", response_model=RankResponse)
def rank_recommendations(request: RankRequest, settings: Settings = Depends(get_settings)) -> RankResponse:
    try:
        config = settings.pipeline_config(**request.quotas.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        result = recommend(
            request.dataset.to_schema(),
            request.recommendations,
            config=config,
            corrections=[item.to_correction() for item in request.corrections],
            logger=logger,
        )
    except SchemaEmptyError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return RankResponse.model_validate(result.to_dict())
