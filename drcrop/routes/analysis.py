import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile

from drcrop.config import Settings
from drcrop.dependencies import (
    get_app_settings,
    get_current_user,
    get_image_store,
    get_storage,
    get_webhook_client,
)
from drcrop.models.user import User
from drcrop.routes.serializers import serialize_analysis
from drcrop.services.ai_service import WebhookClient, WebhookError
from drcrop.services.image_store import ImageStore, ImageStoreError
from drcrop.services.normalizer import NormalizationError, parse_analysis_response
from drcrop.services.storage import AccessDeniedError, RecordNotFoundError, Storage, StorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["AI Analysis"])


def _read_upload(image: Optional[UploadFile], settings: Settings) -> bytes:
    if image is None or not image.filename:
        raise HTTPException(status_code=400, detail="No image file provided")
    if image.content_type not in settings.allowed_image_types:
        raise HTTPException(status_code=400, detail="Invalid file type. Only JPEG and PNG images are allowed.")

    data = image.file.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        limit_mb = settings.max_upload_bytes // (1024 * 1024)
        raise HTTPException(status_code=400, detail=f"File too large. Maximum size is {limit_mb}MB.")
    if not data:
        raise HTTPException(status_code=400, detail="Empty image file")
    return data


@router.post("/analyze")
def analyze(
    image: Optional[UploadFile] = File(default=None),
    user: User = Depends(get_current_user),
    settings: Settings = Depends(get_app_settings),
    storage: Storage = Depends(get_storage),
    webhook: WebhookClient = Depends(get_webhook_client),
    images: ImageStore = Depends(get_image_store),
):
    data = _read_upload(image, settings)

    # 1. Diagnose and normalize; nothing is stored unless both succeed
    try:
        raw = webhook.analyze_image(data, image.content_type, image.filename)
        result = parse_analysis_response(raw)
    except (WebhookError, NormalizationError) as exc:
        raise HTTPException(
            status_code=500,
            detail={"error": "Failed to analyze image", "details": str(exc)},
        )

    # 2. Keep the photo, then the record
    try:
        image_path = images.save(data, image.filename, image.content_type)
    except ImageStoreError as exc:
        logger.error("Could not store uploaded image: %s", exc)
        raise HTTPException(status_code=502, detail={"error": "Failed to store image", "details": str(exc)})
    try:
        analysis = storage.create_analysis(user.id, image_path, result)
    except StorageError:
        images.remove(image_path)
        raise

    return {"id": analysis.id, **result.model_dump()}


@router.get("/analyses")
def list_analyses(
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    analyses = storage.get_analyses_by_user_id(user.id, limit=limit, offset=offset)
    return [serialize_analysis(analysis) for analysis in analyses]


@router.get("/analyses/{analysis_id}")
def get_analysis(
    analysis_id: str,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    try:
        analysis = storage.get_owned_analysis(analysis_id, user.id)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Analysis not found")
    except AccessDeniedError:
        raise HTTPException(status_code=403, detail="Access denied")
    return serialize_analysis(analysis)


@router.delete("/analyses/{analysis_id}")
def delete_analysis(
    analysis_id: str,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
    images: ImageStore = Depends(get_image_store),
):
    try:
        analysis = storage.delete_analysis(analysis_id, user.id)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Analysis not found")
    except AccessDeniedError:
        raise HTTPException(status_code=403, detail="Access denied")

    images.remove(analysis.image_path)
    return {"message": "Analysis deleted successfully"}


@router.delete("/analyses")
def delete_analyses(
    ids: Optional[List[str]] = Query(default=None),
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
    images: ImageStore = Depends(get_image_store),
):
    """Delete the selected analyses, or every analysis of the caller when no ids are given."""
    removed = storage.delete_analyses(user.id, ids=ids)
    for analysis in removed:
        images.remove(analysis.image_path)
    return {"deleted": len(removed)}
