import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from drcrop.config import Settings
from drcrop.dependencies import get_app_settings, get_current_user, get_storage
from drcrop.models.schemas import Credentials
from drcrop.models.user import User
from drcrop.routes.serializers import serialize_user
from drcrop.services.auth_service import create_access_token, hash_password, verify_password
from drcrop.services.storage import DuplicateUsernameError, Storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def _start_session(response: Response, settings: Settings, user: User) -> dict:
    token = create_access_token(settings, user.id)
    response.set_cookie(
        settings.cookie_name,
        token,
        max_age=settings.access_token_expire_minutes * 60,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )
    return {"user": serialize_user(user), "access_token": token, "token_type": "bearer"}


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    payload: Credentials,
    response: Response,
    settings: Settings = Depends(get_app_settings),
    storage: Storage = Depends(get_storage),
):
    if storage.get_user_by_username(payload.username):
        raise HTTPException(status_code=409, detail="Username already exists")
    try:
        user = storage.create_user(payload.username, hash_password(payload.password))
    except DuplicateUsernameError:
        raise HTTPException(status_code=409, detail="Username already exists")

    logger.info("Registered user %s", user.id)
    return _start_session(response, settings, user)


@router.post("/login")
def login(
    payload: Credentials,
    response: Response,
    settings: Settings = Depends(get_app_settings),
    storage: Storage = Depends(get_storage),
):
    user = storage.get_user_by_username(payload.username)
    if not user or not verify_password(payload.password, user.password):
        raise HTTPException(status_code=401, detail="Invalid username or password")
    return _start_session(response, settings, user)


@router.post("/logout")
def logout(response: Response, settings: Settings = Depends(get_app_settings)):
    response.delete_cookie(settings.cookie_name)
    return {"message": "Logged out successfully"}


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return serialize_user(user)
