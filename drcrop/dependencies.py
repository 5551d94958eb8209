"""FastAPI dependencies that hand out the resources built by the app factory."""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from drcrop.config import Settings
from drcrop.models.user import User
from drcrop.services.ai_service import WebhookClient
from drcrop.services.auth_service import decode_access_token
from drcrop.services.image_store import ImageStore
from drcrop.services.storage import Storage

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_webhook_client(request: Request) -> WebhookClient:
    return request.app.state.webhook_client


def get_image_store(request: Request) -> ImageStore:
    return request.app.state.image_store


def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    settings: Settings = Depends(get_app_settings),
    storage: Storage = Depends(get_storage),
) -> User:
    """Resolve the caller from the bearer token, falling back to the session cookie."""
    token = token or request.cookies.get(settings.cookie_name)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")

    user_id = decode_access_token(settings, token)
    user = storage.get_user(user_id) if user_id else None
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired session")
    return user
