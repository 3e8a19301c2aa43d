"""Authentication for lms-batch.

Logs in the creator/admin account with the configured password grant and
returns an immutable Session. The session is passed to every downstream
client call instead of being written back into shared configuration.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import jwt

from lb.api.client import LmsAuthenticationError

if TYPE_CHECKING:
    from lb.api.client import LmsClient
    from lb.config.settings import Settings

logger = logging.getLogger(__name__)

CONTENT_CREATOR_ROLE = "CONTENT_CREATOR"


@dataclass(frozen=True)
class Session:
    """Authenticated context for admin-scoped LMS calls."""

    user_token: str
    created_by: str
    channel_id: str


def decode_token_claims(token: str) -> dict[str, Any] | None:
    """Decode the claims of a JWT without verifying its signature.

    Returns None if the token is not a well-formed JWT.
    """
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.DecodeError:
        return None


def _organisation_from_roles(claims: dict[str, Any]) -> str | None:
    for role in claims.get("roles") or []:
        if not isinstance(role, dict) or role.get("role") != CONTENT_CREATOR_ROLE:
            continue
        scope = role.get("scope") or []
        if scope and isinstance(scope[0], dict) and scope[0].get("organisationId"):
            return str(scope[0]["organisationId"])
    return None


async def authenticate(settings: Settings, client: LmsClient) -> Session:
    """Log in the creator account and build a Session.

    The creator's user id comes from the last segment of the token's
    ``sub`` claim. The channel id comes from the organisation scope of the
    CONTENT_CREATOR role, falling back to the configured channel id.

    Raises:
        LmsAuthenticationError: If the login is rejected or returns no token.
        LmsClientError: For other API errors.
    """
    token_payload = await client.request_token(
        {
            "client_id": settings.client_id,
            "client_secret": settings.client_secret,
            "grant_type": settings.grant_type,
            "username": settings.creator_username,
            "password": settings.creator_password,
        }
    )
    refresh_token = token_payload.get("refresh_token")
    if not refresh_token:
        raise LmsAuthenticationError("Login response did not include a refresh token")

    access_token = await client.refresh_access_token(str(refresh_token))

    created_by = ""
    channel_id = settings.channel_id
    claims = decode_token_claims(access_token)
    if claims is None:
        logger.warning("Access token is not a decodable JWT; using configured channel id")
    else:
        subject = claims.get("sub")
        if subject:
            created_by = str(subject).split(":")[-1]
        channel_id = _organisation_from_roles(claims) or channel_id

    logger.info("Authenticated as %s (channel %s)", created_by or "unknown user", channel_id)
    return Session(user_token=access_token, created_by=created_by, channel_id=channel_id)
