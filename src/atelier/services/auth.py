"""Supabase Auth access-token verification."""

import asyncio

import structlog
from supabase import Client

from atelier.services.exceptions import AuthError

logger = structlog.get_logger(__name__)


def parse_bearer_token(authorization: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header.

    Raises:
        AuthError: If the header is missing or malformed
    """
    if not authorization:
        raise AuthError("Authorization header required")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthError("Invalid authorization header format. Use 'Bearer <token>'")

    return parts[1]


async def verify_access_token(client: Client, token: str) -> str:
    """Verify a Supabase access token and return the user id.

    Args:
        client: Supabase client with service role key
        token: JWT issued by Supabase Auth

    Returns:
        The authenticated user's id

    Raises:
        AuthError: If the token is invalid or expired
    """
    try:
        user_response = await asyncio.to_thread(client.auth.get_user, token)
    except Exception as e:
        logger.info("auth.token_rejected", error_type=type(e).__name__)
        raise AuthError(f"Token verification failed: {e}") from e

    if not user_response or not user_response.user:
        raise AuthError("Invalid or expired token")

    return str(user_response.user.id)
