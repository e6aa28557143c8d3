# storefront/routers/profile.py
from fastapi import APIRouter, Depends, File, UploadFile

from storefront.core.auth import require_auth
from storefront.core.errors import ValidationFailed
from storefront.models.auth import AuthSession
from storefront.schemas.profile import ProfileRead, ProfileUpdate
from storefront.session import StorefrontSession, get_storefront_session

router = APIRouter(prefix="/profile", tags=["Profile"])


@router.get("", response_model=ProfileRead)
async def get_my_profile(
    auth: AuthSession = Depends(require_auth),
    session: StorefrontSession = Depends(get_storefront_session),
):
    return await session.profile().get(auth)


@router.patch("", response_model=ProfileRead)
async def update_my_profile(
    data: ProfileUpdate,
    auth: AuthSession = Depends(require_auth),
    session: StorefrontSession = Depends(get_storefront_session),
):
    return await session.profile().update(auth, data)


@router.post("/avatar", response_model=ProfileRead)
async def upload_my_avatar(
    file: UploadFile = File(...),
    auth: AuthSession = Depends(require_auth),
    session: StorefrontSession = Depends(get_storefront_session),
):
    """
    Upload a new profile photo.

    - Accepts JPEG, PNG, WEBP (max 5MB).
    - The previous photo is removed.
    """
    if not file.content_type:
        raise ValidationFailed("Missing content-type for uploaded file")

    file_bytes = await file.read()
    return await session.profile().upload_avatar(auth, file.content_type, file_bytes)
