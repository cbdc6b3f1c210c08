from typing import Optional
import logging

from supabase import create_client, Client

from app.core.config import settings

logger = logging.getLogger(__name__)


def get_supabase_admin_client() -> Optional[Client]:
    """Admin client for mirroring accounts into Supabase Auth, or None when not configured."""
    if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_KEY:
        return None
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)


async def create_supabase_user(email: str, password: str) -> Optional[str]:
    client = get_supabase_admin_client()
    if client is None:
        return None
    response = client.auth.admin.create_user({
        "email": email,
        "password": password,
        # Ownership of the address was already proven with our own code
        "email_confirm": True,
    })
    return response.user.id if response.user else None


async def update_supabase_password(supabase_id: str, password: str) -> bool:
    client = get_supabase_admin_client()
    if client is None:
        return False
    client.auth.admin.update_user_by_id(supabase_id, {"password": password})
    return True
