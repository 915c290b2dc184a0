#######################
# IMPORTS
#######################
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field

from backend.ai import ContentKind, LLMGateway, get_gateway, list_models
from backend.database import RecordStore, get_store
from backend.errors import NotFoundError, ValidationError
from backend.exports import ExportFormat, ExportRenderer, get_renderer
from backend.generation import GenerationRequest, generate_content

logger = logging.getLogger("app")

#######################
# ROUTER INSTANCE
#######################
router = APIRouter()


#######################
# MODELS
#######################


class ExportRequest(BaseModel):
    format: ExportFormat
    filename: str = Field(min_length=1, max_length=100)
    content: Optional[str] = Field(default=None, description="Raw content to export")
    record_id: Optional[str] = Field(default=None, description="Export a stored record instead of raw content")
    kind: Optional[ContentKind] = Field(default=None, description="With record_id: export only this part")


#######################
# ENDPOINTS
#######################


@router.post("/content/generate", tags=["Content"])
async def generate_content_endpoint(
    request: GenerationRequest,
    gateway: LLMGateway = Depends(get_gateway),
    store: RecordStore = Depends(get_store),
):
    """Generate notes, slides and/or MCQs for a topic and store the result."""
    record = await generate_content(request, gateway, store)
    return {
        "success": True,
        "data": record,
        "message": f"Successfully generated {request.content_kind.value} for {request.topic}",
    }


@router.post("/content/export", tags=["Content"])
async def export_content_endpoint(
    request: ExportRequest,
    renderer: ExportRenderer = Depends(get_renderer),
    store: RecordStore = Depends(get_store),
):
    """Export raw content or a stored record to a downloadable file."""
    if request.record_id:
        record = store.get(request.record_id)
        if not record:
            raise NotFoundError("Topic not found")
        artifact = await renderer.export_record(record, request.format, request.filename, request.kind)
    elif request.content is not None:
        artifact = await renderer.export_content(request.content, request.format, request.filename)
    else:
        raise ValidationError("Either content or record_id is required")

    logger.info(f"Exported {artifact.filename} ({artifact.format.value}).")
    return {
        "success": True,
        "format": artifact.format,
        "filename": artifact.filename,
        "file_path": artifact.file_path,
        "download_url": artifact.download_url,
    }


@router.get("/content/models", tags=["Content"])
async def list_models_endpoint():
    """Describe the available model tiers."""
    return {"models": list_models()}


@router.get("/exports/{filename}", response_class=FileResponse, tags=["Content"])
async def download_export_endpoint(filename: str, renderer: ExportRenderer = Depends(get_renderer)):
    """Download a previously exported file."""
    path = renderer.resolve_download(filename)
    return FileResponse(path, filename=path.name)
