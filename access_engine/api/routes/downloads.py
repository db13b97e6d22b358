"""
Download API routes.

GET /api/downloads/{download_id}/url returns the file URL only when the
caller may download it. Every call is audited.
"""

import logging

from fastapi import APIRouter, Depends

from access_engine.api.dependencies.context import get_school_context
from access_engine.api.dependencies.store import get_download_service
from access_engine.api.schemas.access import DownloadResponse
from access_engine.downloads.service import DownloadService
from access_engine.platform.tenant_context import SchoolContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/downloads", tags=["downloads"])


@router.get("/{download_id}/url", response_model=DownloadResponse)
async def get_download_url(
    download_id: str,
    context: SchoolContext = Depends(get_school_context),
    service: DownloadService = Depends(get_download_service),
):
    resolution = await service.get_secure_download_url(
        context.school_id, download_id, context.user_email,
    )
    return DownloadResponse(
        allowed=resolution.allowed,
        url=resolution.url,
        reason=resolution.reason.value,
    )
