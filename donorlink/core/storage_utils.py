# donorlink/core/storage_utils.py
from donorlink.core.config import get_settings
from donorlink.core.supabase_client import supabase_admin

settings = get_settings()


def _bucket():
    return supabase_admin().storage.from_(settings.STORAGE_BUCKET)


def upload_to_storage(path: str, file_bytes: bytes, content_type: str) -> str:
    """
    Upload raw bytes to Supabase Storage and return a public URL.

    If a file already exists at this path, it will be overwritten
    thanks to the 'upsert' option.

    Args:
        path: Full object path inside the bucket.
              Example: "profile-images/<uuid>.png"
        file_bytes: File content in bytes.
        content_type: MIME type stored with the object.

    Returns:
        Public URL to the uploaded file.

    Raises:
        Any exception raised by Supabase client if upload fails.
    """
    bucket = _bucket()
    bucket.upload(
        path,
        file_bytes,
        {"upsert": "true", "content-type": content_type},
    )
    return bucket.get_public_url(path)


def delete_from_storage(path: str) -> None:
    """
    Delete a file from Supabase Storage by its object path.

    Example path (relative to bucket):
        'profile-images/<uuid>.png'
    """
    _bucket().remove([path])


def extract_path_from_public_url(url: str) -> str | None:
    """
    Given a public URL, extract the object path relative to the bucket.

    Example:
        https://<proj>.supabase.co/storage/v1/object/public/assets/profile-images/u.png
        -> 'profile-images/u.png'
    """
    marker = f"/storage/v1/object/public/{settings.STORAGE_BUCKET}/"
    idx = url.find(marker)
    if idx == -1:
        return None
    return url[idx + len(marker) :]


def delete_public_url(url: str) -> None:
    """
    Convenience helper: delete a file by its public URL.
    No-op if the URL does not belong to this bucket.
    """
    path = extract_path_from_public_url(url)
    if path:
        delete_from_storage(path)


def profile_image_path(user_id, ext: str) -> str:
    """
    Deterministic object path for a user's profile image.

    Returns:
        A path like "profile-images/<user_id>.png"
    """
    return f"profile-images/{user_id}.{ext}"
