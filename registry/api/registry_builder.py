"""
Registry API Endpoints

Upload the two extraction exports (and optionally the contact registry),
build the database registry and download it.
"""

from fastapi import APIRouter, UploadFile, File, HTTPException
from fastapi.responses import Response
from typing import List, Dict, Optional
from pydantic import BaseModel
import pandas as pd
import json
import tempfile
import shutil
from pathlib import Path
import logging
import uuid
from datetime import datetime

from shared.config import get_settings
from ..core.data_processor import DataProcessor
from ..core.exceptions import RegistryPipelineError, SchemaMismatchError
from ..core.pipeline import RegistryPipeline, PipelineResult

logger = logging.getLogger(__name__)

router = APIRouter()

# Built registries, keyed by registry_id (process lifetime only)
registry_storage: Dict[str, Dict] = {}

data_processor = DataProcessor()


# ===== Helper Functions =====

def df_to_json_safe(df: pd.DataFrame) -> List[Dict]:
    """
    Convert DataFrame to JSON-safe list of dicts

    Missing values (NaN, <NA>) become None, numpy scalars native types.
    """
    return json.loads(df.to_json(orient='records', force_ascii=False))


def parse_upload(upload: UploadFile) -> pd.DataFrame:
    """
    Persist an upload to a temporary file and parse it

    Raises:
        HTTPException: 413 when the file is over the size limit,
            400 when it cannot be parsed
    """
    suffix = Path(upload.filename or '').suffix
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as tmp_file:
        shutil.copyfileobj(upload.file, tmp_file)
        tmp_path = tmp_file.name

    try:
        max_size_mb = get_settings().max_file_size_mb
        if Path(tmp_path).stat().st_size > max_size_mb * 1024 * 1024:
            raise HTTPException(
                status_code=413,
                detail=f"{upload.filename} exceeds the {max_size_mb} MB upload limit"
            )
        return data_processor.parse_file(tmp_path)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Could not parse {upload.filename}: {e}")
        raise HTTPException(status_code=400, detail=f"Could not parse {upload.filename}: {str(e)}")
    finally:
        Path(tmp_path).unlink(missing_ok=True)


def get_result(registry_id: str) -> PipelineResult:
    if registry_id not in registry_storage:
        raise HTTPException(status_code=404, detail=f"Registry {registry_id} not found")
    return registry_storage[registry_id]['result']


# ===== Request/Response Models =====

class ConflictInfo(BaseModel):
    """One within-group disagreement"""
    name: str
    field_name: str
    values: List[str]
    source: Optional[str] = None


class BuildResponse(BaseModel):
    """Response model for a registry build"""
    registry_id: str
    created_at: str
    total_databases: int
    unidentified_records: int
    excluded: List[str]
    warnings: List[str]
    conflicts: List[ConflictInfo]
    summary: str
    preview: List[Dict]  # First 10 rows


class RegistryRows(BaseModel):
    """Registry rows"""
    registry_id: str
    columns: List[str]
    rows: List[Dict]


# ===== API Endpoints =====

@router.post("/build", response_model=BuildResponse)
async def build_registry(
    source_1: UploadFile = File(...),
    source_2: UploadFile = File(...),
    contacts: Optional[UploadFile] = File(None),
    strict: Optional[bool] = None
):
    """
    Build the registry from two extraction exports

    Supports CSV and Excel for every upload. The contact registry is
    optional; without it the contact columns stay empty.
    """
    logger.info(f"📤 Building registry from {source_1.filename} + {source_2.filename}")

    try:
        df_1 = parse_upload(source_1)
        df_2 = parse_upload(source_2)
        df_contacts = parse_upload(contacts) if contacts is not None else None
    finally:
        await source_1.close()
        await source_2.close()
        if contacts is not None:
            await contacts.close()

    try:
        pipeline = RegistryPipeline(strict_consistency=strict)
        result = pipeline.run(df_1, df_2, df_contacts)
    except SchemaMismatchError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RegistryPipelineError as e:
        logger.error(f"❌ Registry build failed: {e}")
        raise HTTPException(status_code=422, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    registry_id = str(uuid.uuid4())
    created_at = datetime.utcnow().isoformat()
    registry_storage[registry_id] = {
        'result': result,
        'created_at': created_at,
        'filenames': [source_1.filename, source_2.filename],
    }

    logger.info(f"✅ Registry {registry_id} built: {len(result.registry)} databases")

    return BuildResponse(
        registry_id=registry_id,
        created_at=created_at,
        total_databases=len(result.registry),
        unidentified_records=len(result.unidentified) if result.unidentified is not None else 0,
        excluded=result.excluded,
        warnings=result.warnings,
        conflicts=[
            ConflictInfo(name=c.name, field_name=c.field_name, values=c.values, source=c.source)
            for c in result.conflicts
        ],
        summary=result.summary_text,
        preview=df_to_json_safe(result.registry.head(10)),
    )


@router.get("/export/{registry_id}")
async def export_registry(registry_id: str, format: str = "csv"):
    """
    Export registry to file

    Supports CSV, Excel formats
    """
    result = get_result(registry_id)

    if format in ["excel", "xlsx"]:
        file_format = "xlsx"
        media_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    elif format == "csv":
        file_format = "csv"
        media_type = "text/csv"
    else:
        raise HTTPException(status_code=400, detail=f"Unsupported format: {format}")

    with tempfile.TemporaryDirectory() as tmp_dir:
        tmp_path = Path(tmp_dir) / f"registry.{file_format}"
        try:
            data_processor.export_dataframe(result.registry, tmp_path)
            content = tmp_path.read_bytes()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Export failed: {str(e)}")

    filename = f"database_registry_{registry_id[:8]}.{file_format}"
    return Response(
        content=content,
        media_type=media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"'
        }
    )


@router.get("/{registry_id}", response_model=RegistryRows)
async def get_registry(registry_id: str):
    """Return all rows of a built registry"""
    result = get_result(registry_id)
    return RegistryRows(
        registry_id=registry_id,
        columns=result.registry.columns.tolist(),
        rows=df_to_json_safe(result.registry),
    )


@router.get("/{registry_id}/unidentified", response_model=RegistryRows)
async def get_unidentified(registry_id: str):
    """Return the slot records whose database could not be identified"""
    result = get_result(registry_id)
    unidentified = result.unidentified if result.unidentified is not None else pd.DataFrame()
    return RegistryRows(
        registry_id=registry_id,
        columns=unidentified.columns.tolist(),
        rows=df_to_json_safe(unidentified),
    )
