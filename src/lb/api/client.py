"""LMS API client for lms-batch.

Provides an async interface to the Sunbird-style LMS REST API used by the
bulk enrollment workflow. Built on httpx.AsyncClient; one client instance is
shared by every concurrent task in a run.

Every call that acts on behalf of the admin account takes an explicit
Session (see lb.api.auth); the client itself holds no per-login state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from lb.api.auth import Session
    from lb.config.settings import Settings

logger = logging.getLogger(__name__)

TOKEN_EXCHANGE_GRANT = "urn:ietf:params:oauth:grant-type:token-exchange"


class Routes:
    """Upstream API paths."""

    PASSWORD_TOKEN = "/auth/realms/sunbird/protocol/openid-connect/token"
    REFRESH_TOKEN = "/auth/v1/refresh/token"
    USER_SEARCH = "/api/user/v3/search"
    COMPOSITE_SEARCH = "/api/composite/v1/search"
    CONTENT_READ = "/api/content/v1/read"
    BATCH_LIST = "/api/course/v1/batch/list"
    ENROL = "/api/course/v1/enrol"


class LmsClientError(Exception):
    """Base exception for LMS client errors.

    Attributes:
        status_code: HTTP status of the failed response, if any.
        upstream_message: Machine message from the response's params.errmsg, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        upstream_message: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.upstream_message = upstream_message


class LmsAuthenticationError(LmsClientError):
    """Raised when the LMS rejects the supplied credentials."""

    pass


class LmsNotFoundError(LmsClientError):
    """Raised when a requested resource is not found."""

    pass


@dataclass(frozen=True)
class UserIdentity:
    """A learner's durable id plus a short-lived access token."""

    user_id: str
    access_token: str


def extract_error_message(exc: BaseException, fallback: str) -> str:
    """Return the most useful human-readable message for a failure.

    Prefers the upstream params.errmsg, then the exception text, then fallback.
    """
    upstream = getattr(exc, "upstream_message", None)
    if upstream:
        return str(upstream)
    return str(exc) or fallback


def _upstream_message(response: httpx.Response) -> str | None:
    """Pull params.errmsg out of an LMS error payload."""
    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    params = payload.get("params")
    if isinstance(params, dict) and params.get("errmsg"):
        return str(params["errmsg"])
    return None


class LmsClient:
    """Async client for the LMS enrollment and search APIs.

    Use as an async context manager so the underlying connection pool is
    closed when the run finishes.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize LMS client.

        Args:
            settings: Loaded settings (base URL, static auth key, client credentials).
            client: Optional pre-built httpx client, mainly for tests.
        """
        self._settings = settings
        self._base_url = settings.base_url.rstrip("/")
        if client is None:
            self._http = httpx.AsyncClient(base_url=self._base_url, timeout=settings.http_timeout)
            self._owns_client = True
        else:
            self._http = client
            self._owns_client = False

    async def __aenter__(self) -> LmsClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # -------------------------------------------------------------------------
    # Request plumbing
    # -------------------------------------------------------------------------

    def _authorization(self) -> str:
        key = self._settings.api_auth_key
        if not key or key.lower().startswith("bearer "):
            return key
        return f"Bearer {key}"

    def _headers(self, session: Session | None = None, user_token: str | None = None) -> dict[str, str]:
        headers = {"Authorization": self._authorization()}
        if session is not None:
            headers["X-Channel-Id"] = session.channel_id
            headers["x-authenticated-user-token"] = session.user_token
        if user_token is not None:
            headers["x-authenticated-user-token"] = user_token
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str],
        json: dict[str, Any] | None = None,
        data: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Send a request and return the decoded JSON body.

        Raises:
            LmsAuthenticationError: On HTTP 401.
            LmsClientError: On any other error status, transport failure, or non-JSON body.
        """
        logger.debug("%s %s", method, path)
        try:
            response = await self._http.request(
                method, path, headers=headers, json=json, data=data, params=params
            )
        except httpx.HTTPError as e:
            raise LmsClientError(f"Request to {path} failed: {e}") from e

        if response.status_code == 401:
            upstream = _upstream_message(response)
            raise LmsAuthenticationError(
                upstream or f"LMS rejected credentials for {path} (HTTP 401)",
                status_code=401,
                upstream_message=upstream,
            )
        if response.is_error:
            upstream = _upstream_message(response)
            raise LmsClientError(
                f"LMS API error (HTTP {response.status_code}) for {path}"
                + (f": {upstream}" if upstream else ""),
                status_code=response.status_code,
                upstream_message=upstream,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise LmsClientError(f"LMS API returned non-JSON payload for {path}") from e
        if not isinstance(payload, dict):
            raise LmsClientError(f"LMS API returned unexpected payload for {path}")
        return payload

    # -------------------------------------------------------------------------
    # Tokens
    # -------------------------------------------------------------------------

    async def request_token(self, form: dict[str, str]) -> dict[str, Any]:
        """POST a form to the password-grant token endpoint."""
        return await self._request(
            "POST", Routes.PASSWORD_TOKEN, headers=self._headers(), data=form
        )

    async def refresh_access_token(self, refresh_token: str) -> str:
        """Exchange a refresh token for an LMS access token."""
        payload = await self._request(
            "POST",
            Routes.REFRESH_TOKEN,
            headers=self._headers(),
            data={"refresh_token": refresh_token},
        )
        token = (payload.get("result") or {}).get("access_token")
        if not token:
            raise LmsAuthenticationError("Refresh token response did not include an access token")
        return str(token)

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    async def resolve_user(self, session: Session, email: str) -> UserIdentity:
        """Resolve an email to a user id and a user-scoped access token.

        Raises:
            LmsNotFoundError: If no user has this email.
            LmsClientError: For other API errors.
        """
        body = {
            "request": {
                "filters": {"email": email},
                "fields": ["id", "email"],
                "limit": 1,
            }
        }
        payload = await self._request(
            "POST", Routes.USER_SEARCH, headers=self._headers(session), json=body
        )
        content = ((payload.get("result") or {}).get("response") or {}).get("content") or []
        if not content or not content[0].get("id"):
            raise LmsNotFoundError(f"User with email {email} not found")
        user_id = str(content[0]["id"])

        token_payload = await self.request_token(
            {
                "client_id": self._settings.client_id,
                "client_secret": self._settings.client_secret,
                "grant_type": TOKEN_EXCHANGE_GRANT,
                "subject_token": session.user_token,
                "requested_subject": user_id,
            }
        )
        access_token = token_payload.get("access_token")
        if not access_token:
            raise LmsAuthenticationError(f"No access token issued for user {email}")

        return UserIdentity(user_id=user_id, access_token=str(access_token))

    # -------------------------------------------------------------------------
    # Profiles and courses
    # -------------------------------------------------------------------------

    async def search_learner_profile(self, session: Session, code: str) -> str | None:
        """Return the identifier of the learner profile with this code, or None."""
        body = {
            "request": {
                "filters": {"code": code, "primaryCategory": "Learner Profile"},
                "fields": ["identifier", "code"],
                "limit": 1,
            }
        }
        payload = await self._request(
            "POST", Routes.COMPOSITE_SEARCH, headers=self._headers(session), json=body
        )
        result = payload.get("result") or {}
        if not result.get("count"):
            return None
        content = result.get("content") or []
        if not content:
            return None
        identifier = content[0].get("identifier")
        return str(identifier) if identifier else None

    async def get_profile_courses(self, session: Session, profile_id: str) -> list[str]:
        """Return the course node ids attached to a learner profile."""
        payload = await self._request(
            "GET",
            f"{Routes.CONTENT_READ}/{profile_id}",
            headers=self._headers(session),
            params={"fields": "childNodes"},
        )
        content = (payload.get("result") or {}).get("content") or {}
        return [str(node) for node in content.get("childNodes") or []]

    async def get_course_codes(self, session: Session, node_ids: list[str]) -> dict[str, str]:
        """Resolve node ids to course codes in one search call.

        Only live courses are returned. The mapping follows the order of
        node_ids; nodes that are not live courses are left out.
        """
        body = {
            "request": {
                "filters": {
                    "identifier": node_ids,
                    "primaryCategory": "Course",
                    "status": ["Live"],
                },
                "fields": ["identifier", "code"],
                "limit": len(node_ids),
            }
        }
        payload = await self._request(
            "POST", Routes.COMPOSITE_SEARCH, headers=self._headers(session), json=body
        )
        content = (payload.get("result") or {}).get("content") or []
        found = {
            str(item["identifier"]): str(item["code"])
            for item in content
            if item.get("identifier") and item.get("code")
        }
        return {node_id: found[node_id] for node_id in node_ids if node_id in found}

    # -------------------------------------------------------------------------
    # Batches and enrollment
    # -------------------------------------------------------------------------

    async def get_active_batch(self, session: Session, node_id: str) -> str | None:
        """Return the id of the course's active (status 1) batch, or None."""
        body = {
            "request": {
                "filters": {"courseId": node_id, "status": ["1"]},
                "sort_by": {"createdDate": "desc"},
            }
        }
        payload = await self._request(
            "POST", Routes.BATCH_LIST, headers=self._headers(session), json=body
        )
        content = ((payload.get("result") or {}).get("response") or {}).get("content") or []
        if not content:
            return None
        batch_id = content[0].get("batchId") or content[0].get("identifier")
        return str(batch_id) if batch_id else None

    async def enroll(
        self,
        session: Session,
        node_id: str,
        batch_id: str,
        identity: UserIdentity,
    ) -> None:
        """Enroll a user into a course batch using the user's own token.

        Raises:
            LmsClientError: If the LMS rejects the enrollment (including
                "user has already enrolled").
        """
        body = {
            "request": {
                "courseId": node_id,
                "batchId": batch_id,
                "userId": identity.user_id,
            }
        }
        await self._request(
            "POST",
            Routes.ENROL,
            headers=self._headers(session, user_token=identity.access_token),
            json=body,
        )
