# donorlink/core/supabase_client.py
from functools import lru_cache
from supabase import create_client, Client

from donorlink.core.config import get_settings

settings = get_settings()


def supabase_auth_client() -> Client:
    """
    Create a fresh Supabase client with the anon/public key.

    Use cases:
      - sign-up (createAccount)
      - sign-in with email/password

    Not cached: the auth client keeps the signed-in session in memory,
    so every sign-up / sign-in gets its own instance and no session
    leaks between requests.
    """
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)


@lru_cache
def supabase_admin() -> Client:
    """
    Create a Supabase client with the service role key.

    Use cases:
      - uploading profile images
      - revoking user sessions on sign-out

    WARNING:
      - Never expose service role key to frontend.
      - Only backend should call this.

    Raises:
        RuntimeError: if SUPABASE_SERVICE_ROLE_KEY is not set.
    """
    if not settings.SUPABASE_SERVICE_ROLE_KEY:
        raise RuntimeError("Missing SUPABASE_SERVICE_ROLE_KEY in .env")
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
