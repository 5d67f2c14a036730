"""
Bearer Token Authentication

Resolves `Authorization: Bearer <access token>` to a CurrentUser:
the token is verified with Supabase Auth, the role comes from the users table.
"""

import asyncio
import logging
from typing import Any, Optional

from fastapi import Header, HTTPException, Request

from app.config import Settings
from app.models.records import CurrentUser

logger = logging.getLogger(__name__)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Token from an Authorization header, None when absent or not Bearer"""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class SupabaseAuthenticator:
    """Verifies access tokens and loads the caller's profile"""

    def __init__(self, client: Any, settings: Settings):
        self.client = client
        self.settings = settings

    def _resolve(self, token: str) -> Optional[CurrentUser]:
        try:
            response = self.client.auth.get_user(token)
        except Exception as e:
            logger.info(f"[Auth] Token rejected: {e}")
            return None

        auth_user = getattr(response, "user", None)
        if auth_user is None:
            return None

        result = self.client.table(self.settings.users_table) \
            .select("*") \
            .eq("id", auth_user.id) \
            .limit(1) \
            .execute()

        if not result.data:
            logger.warning(f"[Auth] No profile row for user {auth_user.id}")
            return CurrentUser(id=auth_user.id, email=getattr(auth_user, "email", None))

        profile = result.data[0]
        return CurrentUser(
            id=auth_user.id,
            role=profile.get("role"),
            name=profile.get("name"),
            email=profile.get("email") or getattr(auth_user, "email", None),
            enabled=profile.get("disabled") is not True,
        )

    async def authenticate(self, token: str) -> Optional[CurrentUser]:
        """
        Resolve a token to a user.

        Returns:
            CurrentUser, or None when the token is invalid
        """
        return await asyncio.to_thread(self._resolve, token)


def get_authenticator(request: Request) -> SupabaseAuthenticator:
    return request.app.state.authenticator


async def require_user(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> CurrentUser:
    """FastAPI dependency: 401 unless a valid bearer token is supplied"""
    token = extract_bearer_token(authorization)
    if token is None:
        raise HTTPException(status_code=401, detail="Missing bearer token")

    try:
        user = await get_authenticator(request).authenticate(token)
    except Exception as e:
        logger.error(f"[Auth] Profile lookup failed: {e}")
        raise HTTPException(status_code=502, detail="Could not load user profile")

    if user is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user
