# storefront/core/storage_utils.py
import time

from supabase import AsyncClient

from storefront.core.config import get_settings

settings = get_settings()

BUCKET = settings.AVATAR_BUCKET


async def upload_to_storage(client: AsyncClient, path: str, file_bytes: bytes, content_type: str) -> str:
    """
    Upload raw bytes to the avatars bucket and return the object path.

    If a file already exists at this path, it is overwritten thanks to
    the 'upsert' option.

    Args:
        path: Object path inside the bucket.
              Example: "<user uuid>/1718000000000.png"

    Raises:
        Any exception raised by the Supabase storage client if upload fails.
    """
    await client.storage.from_(BUCKET).upload(
        path,
        file_bytes,
        {"upsert": "true", "cache-control": "3600", "content-type": content_type},
    )
    return path


async def delete_from_storage(client: AsyncClient, path: str) -> None:
    """
    Delete a file from the avatars bucket by its object path.
    """
    await client.storage.from_(BUCKET).remove([path])


async def public_url(client: AsyncClient, path: str) -> str:
    return await client.storage.from_(BUCKET).get_public_url(path)


def extract_storage_path(value: str | None) -> str | None:
    """
    Normalize a stored avatar value to an object path.

    Profiles store the object path; older rows hold the full public URL.

    Example:
        https://<proj>.supabase.co/storage/v1/object/public/avatars/u/1.png
        -> 'u/1.png'
        'u/1.png' -> 'u/1.png'
        'https://elsewhere/x.png' -> None
    """
    if not value:
        return None
    marker = f"/storage/v1/object/public/{BUCKET}/"
    idx = value.find(marker)
    if idx != -1:
        return value[idx + len(marker) :]
    if value.startswith("http"):
        return None
    return value


def generate_avatar_path(user_id: str, ext: str) -> str:
    """
    Build a fresh object path for a user's avatar.

    Returns:
        A path like "<user_id>/<epoch millis>.png"
    """
    ext = (ext or "jpg").lstrip(".").lower()
    return f"{user_id}/{int(time.time() * 1000)}.{ext}"
