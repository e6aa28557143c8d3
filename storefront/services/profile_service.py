# storefront/services/profile_service.py
import logging

import httpx
from storage3.utils import StorageException
from supabase import AsyncClient

from storefront.core.errors import RemoteCallError, ValidationFailed
from storefront.core.notices import NoticeBoard
from storefront.core.storage_utils import (
    delete_from_storage,
    extract_storage_path,
    generate_avatar_path,
    public_url,
    upload_to_storage,
)
from storefront.models.auth import AuthSession
from storefront.models.profile import Profile
from storefront.repositories.profile_repo import ProfileRepository
from storefront.schemas.profile import ProfileRead, ProfileUpdate

logger = logging.getLogger(__name__)

# --- Avatar config ---

MAX_AVATAR_BYTES = 5 * 1024 * 1024  # 5MB

ALLOWED_IMAGE_CONTENT_TYPES: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}

STORAGE_ERRORS = (StorageException, httpx.HTTPError)


class ProfileService:
    """
    Business logic for the shopper profile.

    Responsibilities:
      - read/update the display name
      - avatar upload into the avatars bucket, storing the object path
      - best-effort removal of the previous avatar object
    """

    def __init__(self, profile_repo: ProfileRepository, client: AsyncClient, notices: NoticeBoard):
        self.profile_repo = profile_repo
        self.client = client
        self.notices = notices

    # ----- Helpers -----

    @staticmethod
    def _validate_and_get_ext(content_type: str, file_bytes: bytes) -> str:
        if content_type not in ALLOWED_IMAGE_CONTENT_TYPES:
            raise ValidationFailed("Unsupported image type. Allowed: JPEG, PNG, WEBP.")
        if not file_bytes:
            raise ValidationFailed("Empty file")
        if len(file_bytes) > MAX_AVATAR_BYTES:
            raise ValidationFailed("Image too large (max 5MB).")
        return ALLOWED_IMAGE_CONTENT_TYPES[content_type]

    async def _read(self, auth: AuthSession, profile: Profile | None) -> ProfileRead:
        profile = profile or Profile(id=auth.user_id)
        path = extract_storage_path(profile.avatar)
        url = None
        if path:
            url = await public_url(self.client, path)
        elif profile.avatar:
            # legacy rows holding an external URL
            url = profile.avatar
        return ProfileRead(
            id=profile.id,
            email=auth.email,
            full_name=profile.full_name,
            avatar_path=path,
            avatar_url=url,
        )

    # ----- Profile -----

    async def get(self, auth: AuthSession) -> ProfileRead:
        return await self._read(auth, await self.profile_repo.get(auth.user_id))

    async def update(self, auth: AuthSession, data: ProfileUpdate) -> ProfileRead:
        profile = await self.profile_repo.upsert(auth.user_id, {"full_name": data.full_name})
        self.notices.push("Profile updated")
        return await self._read(auth, profile)

    async def upload_avatar(self, auth: AuthSession, content_type: str, file_bytes: bytes) -> ProfileRead:
        """
        Upload a new avatar, point the profile at it, then remove the
        previous object. Removal failures are logged only.
        """
        ext = self._validate_and_get_ext(content_type, file_bytes)
        current = await self.profile_repo.get(auth.user_id)
        old_path = extract_storage_path(current.avatar if current else None)

        path = generate_avatar_path(auth.user_id, ext)
        try:
            await upload_to_storage(self.client, path, file_bytes, content_type)
        except STORAGE_ERRORS as exc:
            logger.error("avatar upload for %s failed: %s", auth.user_id, exc)
            self.notices.error("Upload failed", "Could not upload your photo.")
            raise RemoteCallError(f"Uploading avatar failed: {exc}") from exc

        profile = await self.profile_repo.upsert(auth.user_id, {"avatar": path})

        if old_path and old_path != path:
            try:
                await delete_from_storage(self.client, old_path)
            except STORAGE_ERRORS as exc:
                logger.warning("removing old avatar %s failed: %s", old_path, exc)

        self.notices.push("Profile photo updated")
        return await self._read(auth, profile)
