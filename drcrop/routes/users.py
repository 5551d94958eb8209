import logging

from fastapi import APIRouter, Depends, Response

from drcrop.config import Settings
from drcrop.dependencies import get_app_settings, get_current_user, get_image_store, get_storage
from drcrop.models.user import User
from drcrop.services.image_store import ImageStore
from drcrop.services.storage import RecordNotFoundError, Storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user", tags=["Users"])


@router.get("/stats")
def user_stats(user: User = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return storage.get_user_stats(user.id)


@router.delete("")
def delete_account(
    response: Response,
    user: User = Depends(get_current_user),
    settings: Settings = Depends(get_app_settings),
    storage: Storage = Depends(get_storage),
    images: ImageStore = Depends(get_image_store),
):
    try:
        removed = storage.delete_user(user.id)
    except RecordNotFoundError:
        # Already removed by a concurrent request
        removed = []
    for analysis in removed:
        images.remove(analysis.image_path)

    logger.info("Deleted user %s with %d analyses", user.id, len(removed))
    response.delete_cookie(settings.cookie_name)
    return {"message": "Account deleted successfully"}
